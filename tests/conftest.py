import pytest
import torch

from cost_model import PipelineStats, ScheduleStats, WeightSet
from cost_model.config import (
    PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS, SCHEDULE_CHANNELS, weight_shapes,
)


def make_pipeline_features(num_stages, seed=0, dtype=torch.float32):
    gen = torch.Generator().manual_seed(seed)
    return torch.randn(PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS, num_stages,
                       generator=gen, dtype=dtype)


def make_schedule_features(batch_size, num_stages, seed=1, dtype=torch.float32):
    gen = torch.Generator().manual_seed(seed)
    # Non-negative, like real counts
    return torch.rand(batch_size, SCHEDULE_CHANNELS, num_stages,
                      generator=gen, dtype=dtype) * 10


def random_weights(seed=0, dtype=torch.float32):
    """Random filters and small non-zero biases."""
    weights = WeightSet.random(seed=seed, dtype=dtype)
    gen = torch.Generator().manual_seed(seed + 1000)
    biases = {
        name: 0.1 * torch.randn(shape, generator=gen, dtype=dtype)
        for name, shape in weight_shapes().items()
        if "bias" in name
    }
    return weights.replace(**biases)


def constant_weights(bias_value, dtype=torch.float32):
    """All filters zero, all biases set to bias_value."""
    tensors = {}
    for name, shape in weight_shapes().items():
        fill = bias_value if "bias" in name else 0.0
        tensors[name] = torch.full(shape, fill, dtype=dtype)
    return WeightSet(tensors)


@pytest.fixture
def pipeline_stats():
    return PipelineStats(
        mean=torch.zeros(PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS),
        std=torch.ones(PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS),
    )


@pytest.fixture
def schedule_stats():
    return ScheduleStats(
        mean=torch.full((SCHEDULE_CHANNELS,), 1.0),
        std=torch.full((SCHEDULE_CHANNELS,), 0.5),
    )


@pytest.fixture
def weights():
    return random_weights(seed=0)
