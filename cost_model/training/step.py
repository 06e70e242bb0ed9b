"""One training step: forward, batch-mean squared error, backward, ADAM.

The whole batch contributes to the loss before any gradient is taken, so the
ADAM update always sees the full-batch gradient.
"""

import logging
from typing import NamedTuple

import torch
import torch.nn.functional as F

from ..errors import ShapeMismatch
from ..features.normalize import PipelineStats, ScheduleStats
from ..model.network import CostModel, normalize_inputs
from ..model.weights import WeightSet
from .adam import OptimizerState, apply_adam

logger = logging.getLogger(__name__)


class TrainStepResult(NamedTuple):
    predictions: torch.Tensor   # [B], from the weights before the update
    loss: torch.Tensor          # scalar
    weights: WeightSet
    optimizer_state: OptimizerState


def train_step(weights: WeightSet,
               optimizer_state: OptimizerState,
               pipeline_features: torch.Tensor,
               pipeline_stats: PipelineStats,
               schedule_features: torch.Tensor,
               schedule_stats: ScheduleStats,
               num_stages: int,
               true_runtime: torch.Tensor,
               learning_rate: float,
               timestep: int) -> TrainStepResult:
    """Score a batch, take the MSE gradient and apply one ADAM update.

    The inputs are not modified. The caller keeps the returned weights and
    optimizer state and passes timestep + 1 on the next call.
    """
    dtype = weights.dtype
    pipeline, schedule = normalize_inputs(
        pipeline_features, pipeline_stats, schedule_features, schedule_stats,
        num_stages, dtype)
    batch_size = schedule.shape[0]

    target = torch.as_tensor(true_runtime, dtype=dtype)
    if tuple(target.shape) != (batch_size,):
        raise ShapeMismatch(
            f"true_runtime: expected shape ({batch_size},), got {tuple(target.shape)}")

    model = CostModel(weights, trainable=True)
    predictions = model(pipeline, schedule)
    loss = F.mse_loss(predictions, target)

    names = list(model.weight_dict())
    grads = torch.autograd.grad(loss, [getattr(model, name) for name in names])
    grads = dict(zip(names, grads))

    if not torch.isfinite(loss):
        logger.error("Non-finite loss %s (batch=%d, stages=%d)", loss.item(), batch_size, num_stages)
    for name, g in grads.items():
        if not torch.isfinite(g).all():
            logger.error("NaN/inf in gradient of %s", name)

    new_weights, new_state = apply_adam(weights, grads, optimizer_state, learning_rate, timestep)
    logger.debug("train_step t=%d: batch=%d loss=%.6g", timestep, batch_size, loss.item())

    return TrainStepResult(
        predictions=predictions.detach(),
        loss=loss.detach(),
        weights=new_weights,
        optimizer_state=new_state,
    )
