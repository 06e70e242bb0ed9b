"""Stage-window cost model for ranking candidate pipeline schedules.

Predicts the runtime of a schedule from per-stage pipeline features and
per-stage schedule features, without running it:

  normalize -> pipeline head + schedule head -> conv trunk -> sum over stages

Entry points:
  infer(weights, ...)                    -> predictions [B]
  train_step(weights, state, ..., t)     -> (predictions, loss, weights, state)

Both are stateless: weights and ADAM state go in and come out explicitly,
and the caller owns the timestep.
"""

from .errors import CostModelError, ShapeMismatch, InvalidConfiguration
from .features import PipelineStats, ScheduleStats, padded_window
from .model import CostModel, WeightSet, infer
from .training import OptimizerState, TrainStepResult, train_step
