"""Whitening and stage-window centering of raw cost model features.

Pipelines have a variable number of stages. The network works on a window of
at least MIN_PADDED_STAGES positions; shorter pipelines are centered in it:

  padded_stages = max(num_stages, 22)
  first_valid   = (padded_stages - num_stages) // 2

Positions outside [first_valid, first_valid + num_stages) are exactly zero
after normalization.

Schedule features go through log(x + 1) before whitening. Raw schedule
features are counts and sizes, so the assumed domain is x > -1; nothing is
clamped, and values <= -1 produce non-finite outputs.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np
import torch
import torch.nn.functional as F

from ..config import (
    MIN_PADDED_STAGES, PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS,
    SCHEDULE_CHANNELS, STD_FLOOR,
)
from ..errors import InvalidConfiguration, ShapeMismatch


def padded_window(num_stages: int) -> Tuple[int, int]:
    """Return (padded_stages, first_valid) for a pipeline with num_stages stages."""
    if num_stages <= 0:
        raise InvalidConfiguration(f"num_stages must be positive, got {num_stages}")
    padded_stages = max(num_stages, MIN_PADDED_STAGES)
    first_valid = (padded_stages - num_stages) // 2
    return padded_stages, first_valid


def _as_tensor(value, name: str, shape: Tuple[int, ...]) -> torch.Tensor:
    t = value if torch.is_tensor(value) else torch.as_tensor(value, dtype=torch.float32)
    if tuple(t.shape) != shape:
        raise ShapeMismatch(f"{name}: expected shape {shape}, got {tuple(t.shape)}")
    return t


@dataclass(frozen=True, eq=False)
class PipelineStats:
    """Per (channel, feature row) whitening statistics for pipeline features."""
    mean: torch.Tensor  # [56, 7]
    std: torch.Tensor   # [56, 7]

    def __post_init__(self):
        shape = (PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS)
        object.__setattr__(self, "mean", _as_tensor(self.mean, "pipeline mean", shape))
        object.__setattr__(self, "std", _as_tensor(self.std, "pipeline std", shape))

    @classmethod
    def from_samples(cls, samples: Iterable[np.ndarray]) -> "PipelineStats":
        """Compute stats from raw [56, 7, num_stages] arrays.

        Every stage of every sample counts as one observation.
        """
        stacked = np.concatenate([np.asarray(s, dtype=np.float64) for s in samples], axis=-1)
        return cls(
            mean=torch.tensor(stacked.mean(axis=-1), dtype=torch.float32),
            std=torch.tensor(stacked.std(axis=-1), dtype=torch.float32),
        )


@dataclass(frozen=True, eq=False)
class ScheduleStats:
    """Per-channel whitening statistics for log-transformed schedule features."""
    mean: torch.Tensor  # [26]
    std: torch.Tensor   # [26]

    def __post_init__(self):
        shape = (SCHEDULE_CHANNELS,)
        object.__setattr__(self, "mean", _as_tensor(self.mean, "schedule mean", shape))
        object.__setattr__(self, "std", _as_tensor(self.std, "schedule std", shape))

    @classmethod
    def from_samples(cls, samples: Iterable[np.ndarray]) -> "ScheduleStats":
        """Compute stats from raw [batch, 26, num_stages] arrays.

        Statistics are taken over log(x + 1), matching the transform
        applied in normalize_schedule_features.
        """
        flat = [
            np.log1p(np.asarray(s, dtype=np.float64)).transpose(1, 0, 2).reshape(SCHEDULE_CHANNELS, -1)
            for s in samples
        ]
        stacked = np.concatenate(flat, axis=-1)
        return cls(
            mean=torch.tensor(stacked.mean(axis=-1), dtype=torch.float32),
            std=torch.tensor(stacked.std(axis=-1), dtype=torch.float32),
        )


def _center(x: torch.Tensor, num_stages: int) -> torch.Tensor:
    """Zero-pad the trailing stage axis so the valid stages sit centered."""
    padded_stages, first_valid = padded_window(num_stages)
    return F.pad(x, (first_valid, padded_stages - num_stages - first_valid))


def normalize_pipeline_features(features: torch.Tensor, stats: PipelineStats,
                                num_stages: int) -> torch.Tensor:
    """Whiten [56, 7, num_stages] pipeline features into [56, 7, padded_stages]."""
    mean = stats.mean.to(features)
    std = stats.std.to(features).clamp(min=STD_FLOOR)
    whitened = (features - mean.unsqueeze(-1)) / std.unsqueeze(-1)
    return _center(whitened, num_stages)


def normalize_schedule_features(features: torch.Tensor, stats: ScheduleStats,
                                num_stages: int) -> torch.Tensor:
    """Whiten [B, 26, num_stages] schedule features into [B, 26, padded_stages]."""
    mean = stats.mean.to(features)
    std = stats.std.to(features).clamp(min=STD_FLOOR)
    whitened = (torch.log(features + 1) - mean[:, None]) / std[:, None]
    return _center(whitened, num_stages)


def validate_features(pipeline_features: torch.Tensor,
                      schedule_features: torch.Tensor,
                      num_stages: int) -> int:
    """Check raw feature shapes against num_stages. Returns the batch size."""
    if num_stages <= 0:
        raise InvalidConfiguration(f"num_stages must be positive, got {num_stages}")
    expected = (PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS, num_stages)
    if tuple(pipeline_features.shape) != expected:
        raise ShapeMismatch(
            f"pipeline features: expected shape {expected}, "
            f"got {tuple(pipeline_features.shape)}")
    if schedule_features.dim() != 3 or tuple(schedule_features.shape[1:]) != (SCHEDULE_CHANNELS, num_stages):
        raise ShapeMismatch(
            f"schedule features: expected shape (batch, {SCHEDULE_CHANNELS}, {num_stages}), "
            f"got {tuple(schedule_features.shape)}")
    batch_size = schedule_features.shape[0]
    if batch_size <= 0:
        raise InvalidConfiguration(f"batch_size must be positive, got {batch_size}")
    return batch_size
