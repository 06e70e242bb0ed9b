"""Training for the cost model.

  adam.py  caller-owned ADAM state and update
  step.py  train_step: MSE loss, autograd, ADAM
  loop.py  epoch driver and Spearman ranking evaluation
"""

from .adam import OptimizerState, adam_update, apply_adam
from .step import TrainStepResult, train_step
from .loop import TrainingSample, EpochResult, RankingResult, train_epoch, evaluate_ranking
