"""Full cost model: normalization -> heads -> trunk -> sum over stages.

CostModel is an nn.Module whose parameters are named exactly like the
WeightSet entries, so gradients come back keyed by weight name. infer() is
the stateless inference entry point used by schedule search.
"""

import logging
from typing import Mapping

import torch
import torch.nn as nn

from ..config import WEIGHT_NAMES
from ..features.normalize import (
    PipelineStats, ScheduleStats, normalize_pipeline_features,
    normalize_schedule_features, validate_features,
)
from .heads import pipeline_head, schedule_head
from .trunk import trunk
from .weights import WeightSet

logger = logging.getLogger(__name__)


def aggregate(stages: torch.Tensor) -> torch.Tensor:
    """Sum [B, W] per-stage runtimes into one prediction per schedule."""
    return stages.sum(dim=-1)


def per_stage(weights: Mapping[str, torch.Tensor], pipeline: torch.Tensor,
              schedule: torch.Tensor) -> torch.Tensor:
    """Per-stage runtime contributions [B, (P + 6) // 4] from normalized features."""
    head1 = pipeline_head(pipeline, weights["head1_filter"], weights["head1_bias"])
    head2 = schedule_head(schedule, weights["head2_filter"], weights["head2_bias"])
    return trunk(head1, head2, weights)


class CostModel(nn.Module):
    """Runtime predictor over a batch of schedules for one pipeline.

    forward() takes already-normalized features:
      pipeline: [56, 7, P]
      schedule: [B, 26, P]
    and returns predictions [B].
    """

    def __init__(self, weights: WeightSet, trainable: bool = False):
        super().__init__()
        for name, tensor in weights.items():
            self.register_parameter(
                name, nn.Parameter(tensor.detach().clone(), requires_grad=trainable))

    def weight_dict(self):
        return {name: getattr(self, name) for name in WEIGHT_NAMES}

    def to_weights(self) -> WeightSet:
        return WeightSet({name: p.detach().clone() for name, p in self.weight_dict().items()})

    def per_stage(self, pipeline: torch.Tensor, schedule: torch.Tensor) -> torch.Tensor:
        return per_stage(self.weight_dict(), pipeline, schedule)

    def forward(self, pipeline: torch.Tensor, schedule: torch.Tensor) -> torch.Tensor:
        return aggregate(self.per_stage(pipeline, schedule))


def normalize_inputs(pipeline_features, pipeline_stats: PipelineStats,
                     schedule_features, schedule_stats: ScheduleStats,
                     num_stages: int, dtype: torch.dtype):
    """Validate raw features and return (normalized pipeline, normalized schedule)."""
    pipeline_features = torch.as_tensor(pipeline_features, dtype=dtype)
    schedule_features = torch.as_tensor(schedule_features, dtype=dtype)
    validate_features(pipeline_features, schedule_features, num_stages)
    return (
        normalize_pipeline_features(pipeline_features, pipeline_stats, num_stages),
        normalize_schedule_features(schedule_features, schedule_stats, num_stages),
    )


def infer(weights: WeightSet,
          pipeline_features: torch.Tensor,
          pipeline_stats: PipelineStats,
          schedule_features: torch.Tensor,
          schedule_stats: ScheduleStats,
          num_stages: int) -> torch.Tensor:
    """Predict runtimes for a batch of schedules of one pipeline.

    Args:
        weights: model weights (read only).
        pipeline_features: raw [56, 7, num_stages] pipeline features.
        pipeline_stats: whitening stats for pipeline features.
        schedule_features: raw [B, 26, num_stages] schedule features.
        schedule_stats: whitening stats for log schedule features.
        num_stages: number of stages in the pipeline.

    Returns:
        [B] predicted runtimes.
    """
    dtype = weights.dtype
    pipeline, schedule = normalize_inputs(
        pipeline_features, pipeline_stats, schedule_features, schedule_stats,
        num_stages, dtype)
    logger.debug("infer: batch=%d stages=%d window=%d",
                 schedule.shape[0], num_stages, schedule.shape[-1])
    with torch.no_grad():
        return aggregate(per_stage(weights.as_dict(), pipeline, schedule))
