"""Per-stage head encoders.

Two dense layers applied independently at every stage position:

  Pipeline head: [56, 7, P]  -> [24, P]     shared by the whole batch
  Schedule head: [B, 26, P]  -> [B, 24, P]  one per candidate schedule

Both use the attenuated rectifier a(x) = max(0, x) + 1e-5 * x so that
negative pre-activations still carry gradient.
"""

import torch
import torch.nn.functional as F

from ..config import ACTIVATION_SLOPE


def activation(x: torch.Tensor) -> torch.Tensor:
    return torch.relu(x) + ACTIVATION_SLOPE * x


def pad_stages(x: torch.Tensor, extent: int) -> torch.Tensor:
    """Make the trailing stage axis exactly ``extent`` long.

    Values past the current end are zero, values at or beyond ``extent`` are
    dropped. Convolutions read zeros outside [0, extent).
    """
    length = x.shape[-1]
    if length >= extent:
        return x[..., :extent]
    return F.pad(x, (0, extent - length))


def pipeline_head(features: torch.Tensor, filt: torch.Tensor,
                  bias: torch.Tensor) -> torch.Tensor:
    """Encode normalized pipeline features [56, 7, P] into [24, P]."""
    conv = torch.einsum("cxy,xyw->cw", filt, features) + bias[:, None]
    return pad_stages(activation(conv), features.shape[-1])


def schedule_head(features: torch.Tensor, filt: torch.Tensor,
                  bias: torch.Tensor) -> torch.Tensor:
    """Encode normalized schedule features [B, 26, P] into [B, 24, P]."""
    conv = torch.einsum("cx,nxw->ncw", filt, features) + bias[None, :, None]
    return pad_stages(activation(conv), features.shape[-1])
