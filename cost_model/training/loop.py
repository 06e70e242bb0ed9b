"""Epoch driver and ranking evaluation on top of train_step / infer.

A sample is one pipeline together with a batch of candidate schedules and
their measured runtimes. Each sample becomes exactly one train_step, so the
batch-mean loss is always taken over schedules of a single pipeline.

Schedule search only cares about the order of candidates, so evaluation
reports Spearman rank correlation next to the MSE.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import torch
from scipy.stats import spearmanr

from ..config import TrainingConfig
from ..features.normalize import PipelineStats, ScheduleStats
from ..model.network import infer
from ..model.weights import WeightSet
from .adam import OptimizerState
from .step import train_step

logger = logging.getLogger(__name__)


@dataclass
class TrainingSample:
    """One pipeline and a batch of scored schedules."""
    pipeline_features: torch.Tensor   # [56, 7, num_stages]
    schedule_features: torch.Tensor   # [B, 26, num_stages]
    true_runtime: torch.Tensor        # [B]
    num_stages: int


@dataclass
class EpochResult:
    weights: WeightSet
    optimizer_state: OptimizerState
    timestep: int          # next timestep to pass in
    mean_loss: float
    losses: List[float]


@dataclass
class RankingResult:
    spearman: float        # mean over samples with a defined correlation
    mse: float             # mean over all samples
    num_ranked: int


def train_epoch(weights: WeightSet,
                optimizer_state: OptimizerState,
                samples: Sequence[TrainingSample],
                pipeline_stats: PipelineStats,
                schedule_stats: ScheduleStats,
                timestep: int,
                config: Optional[TrainingConfig] = None) -> EpochResult:
    """Run one train_step per sample, threading weights, state and timestep."""
    config = config or TrainingConfig()
    n = len(samples)
    if config.shuffle:
        order = np.random.RandomState(config.seed).permutation(n)
    else:
        order = np.arange(n)

    logger.info("Epoch start: %d samples, %d parameters, timestep=%d",
                n, weights.num_parameters(), timestep)
    losses = []
    for i, idx in enumerate(order):
        sample = samples[idx]
        result = train_step(
            weights, optimizer_state,
            sample.pipeline_features, pipeline_stats,
            sample.schedule_features, schedule_stats,
            sample.num_stages, sample.true_runtime,
            config.learning_rate, timestep,
        )
        weights = result.weights
        optimizer_state = result.optimizer_state
        timestep += 1
        losses.append(result.loss.item())

        if config.log_every and (i + 1) % config.log_every == 0:
            logger.info("Step %d/%d: loss=%.4f (running mean=%.4f)",
                        i + 1, n, losses[-1], float(np.mean(losses)))

    mean_loss = float(np.mean(losses)) if losses else 0.0
    logger.info("Epoch done: %d samples, mean loss=%.4f, next timestep=%d",
                n, mean_loss, timestep)
    return EpochResult(
        weights=weights,
        optimizer_state=optimizer_state,
        timestep=timestep,
        mean_loss=mean_loss,
        losses=losses,
    )


def evaluate_ranking(weights: WeightSet,
                     samples: Sequence[TrainingSample],
                     pipeline_stats: PipelineStats,
                     schedule_stats: ScheduleStats) -> RankingResult:
    """Mean Spearman and MSE of predictions against measured runtimes."""
    correlations = []
    errors = []
    for sample in samples:
        preds = infer(
            weights, sample.pipeline_features, pipeline_stats,
            sample.schedule_features, schedule_stats, sample.num_stages,
        ).cpu().numpy().astype(np.float64)
        target = np.asarray(torch.as_tensor(sample.true_runtime), dtype=np.float64)
        errors.append(float(np.mean((preds - target) ** 2)))

        # Correlation is undefined for single schedules or constant vectors
        if len(target) < 2 or np.ptp(target) == 0 or np.ptp(preds) == 0:
            continue
        sp, _ = spearmanr(preds, target)
        correlations.append(float(sp))

    if len(correlations) < len(samples):
        logger.debug("Skipped %d samples without a defined rank correlation",
                     len(samples) - len(correlations))
    return RankingResult(
        spearman=float(np.mean(correlations)) if correlations else float("nan"),
        mse=float(np.mean(errors)) if errors else float("nan"),
        num_ranked=len(correlations),
    )
