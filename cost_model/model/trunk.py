"""Convolutional trunk over the stage axis.

Layout (P = padded_stages, B = batch):

  pipeline head [24, P] ─┐
                         ├─ conv1 (48) ─ conv2 (48) ─ conv3 (96) ─ pool
  schedule head [B,24,P]─┘
      ─ conv4 (120) ─ pool ─ conv5 (168) ─ conv6 (1) -> [B, (P + 6) // 4]

conv1..conv5 are 3-wide convolutions centered on the output stage
(reads w-1, w, w+1). Every layer output is re-padded to its window so that
reads past either end of the window see zeros. The windows shrink at the
two pools:

  after conv3 pool: P // 2 + 1
  after conv4 pool: (P + 6) // 4

conv1 takes the two heads in separate passes. The input-channel axis of
filter1 is split at HEAD1_CHANNELS: [0, 24) weights the pipeline head and
[24, 48) the schedule head. Trained weights depend on this order.
"""

from typing import Mapping

import torch
import torch.nn.functional as F

from ..config import HEAD1_CHANNELS
from .heads import activation, pad_stages


def pooled_extent(padded_stages: int) -> int:
    """Stage window after the first pool."""
    return padded_stages // 2 + 1


def final_extent(padded_stages: int) -> int:
    """Stage window after the second pool, also the aggregation window."""
    return (padded_stages + 6) // 4


def conv_stage(x: torch.Tensor, filt: torch.Tensor,
               bias: torch.Tensor) -> torch.Tensor:
    """out[n, c, w] = bias[c] + sum_{x,k} filt[c, x, k] * in[n, x, w + k - 1]."""
    support = filt.shape[-1]
    return F.conv1d(x, filt, bias, padding=support // 2)


def average_pool(x: torch.Tensor, extent: int) -> torch.Tensor:
    """pool[..., w] = 0.5 * (in[..., 2w - 1] + in[..., 2w]) for w in [0, extent)."""
    # shifted[i] == in[i - 1], zero outside the input window
    shifted = pad_stages(F.pad(x, (1, 0)), 2 * extent)
    return 0.5 * (shifted[..., 0::2] + shifted[..., 1::2])


def conv1(pipeline_head: torch.Tensor, schedule_head: torch.Tensor,
          filt: torch.Tensor, bias: torch.Tensor) -> torch.Tensor:
    """Combine [24, P] and [B, 24, P] heads into [B, 48, P]."""
    padded_stages = pipeline_head.shape[-1]
    # Pass A: identical for every batch element
    stage1 = conv_stage(pipeline_head.unsqueeze(0), filt[:, :HEAD1_CHANNELS], bias)
    # Pass B: per schedule
    stage2 = stage1 + conv_stage(schedule_head, filt[:, HEAD1_CHANNELS:], None)
    return pad_stages(activation(stage2), padded_stages)


def trunk(pipeline_head: torch.Tensor, schedule_head: torch.Tensor,
          weights: Mapping[str, torch.Tensor]) -> torch.Tensor:
    """Run conv1..conv6. Returns per-stage scalars [B, (P + 6) // 4]."""
    padded_stages = pipeline_head.shape[-1]
    mid = pooled_extent(padded_stages)
    low = final_extent(padded_stages)

    relu1 = conv1(pipeline_head, schedule_head, weights["filter1"], weights["bias1"])

    relu2 = pad_stages(activation(conv_stage(relu1, weights["filter2"], weights["bias2"])),
                       padded_stages)

    relu3 = pad_stages(activation(conv_stage(relu2, weights["filter3"], weights["bias3"])),
                       padded_stages)
    pool3 = pad_stages(average_pool(relu3, mid), mid)

    relu4 = pad_stages(activation(conv_stage(pool3, weights["filter4"], weights["bias4"])), mid)
    pool4 = pad_stages(average_pool(relu4, low), low)

    relu5 = pad_stages(activation(conv_stage(pool4, weights["filter5"], weights["bias5"])), low)

    # conv6 collapses channels with no spatial offset
    conv6 = torch.einsum("c,ncw->nw", weights["filter6"], relu5) + weights["bias6"]
    return activation(conv6)
