"""Fixed architecture and optimizer constants for the stage-window cost model.

The weight shapes derived from these constants are part of the trained-weight
format: changing any of them makes existing weights unusable.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# Raw feature layout
PIPELINE_CHANNELS = 56
PIPELINE_FEATURE_ROWS = 7
SCHEDULE_CHANNELS = 26

# Head encoders
HEAD1_CHANNELS = 24
HEAD2_CHANNELS = 24

# Trunk widths, conv1..conv5
CONV_CHANNELS = (48, 48, 96, 120, 168)
CONV_SUPPORT = 3

# Stage axis is padded out to at least this many positions
MIN_PADDED_STAGES = 22

ACTIVATION_SLOPE = 1e-5
STD_FLOOR = 1e-8

# ADAM
ADAM_BETA1 = 0.9
ADAM_BETA2 = 0.999
ADAM_EPS = 1e-8


def weight_shapes() -> Dict[str, Tuple[int, ...]]:
    """Return the ordered name -> shape table of every trainable tensor."""
    c1, c2, c3, c4, c5 = CONV_CHANNELS
    return {
        "head1_filter": (HEAD1_CHANNELS, PIPELINE_CHANNELS, PIPELINE_FEATURE_ROWS),
        "head1_bias": (HEAD1_CHANNELS,),
        "head2_filter": (HEAD2_CHANNELS, SCHEDULE_CHANNELS),
        "head2_bias": (HEAD2_CHANNELS,),
        "filter1": (c1, HEAD1_CHANNELS + HEAD2_CHANNELS, CONV_SUPPORT),
        "bias1": (c1,),
        "filter2": (c2, c1, CONV_SUPPORT),
        "bias2": (c2,),
        "filter3": (c3, c2, CONV_SUPPORT),
        "bias3": (c3,),
        "filter4": (c4, c3, CONV_SUPPORT),
        "bias4": (c4,),
        "filter5": (c5, c4, CONV_SUPPORT),
        "bias5": (c5,),
        "filter6": (c5,),
        "bias6": (),
    }


WEIGHT_NAMES = tuple(weight_shapes())


@dataclass
class TrainingConfig:
    """Hyperparameters for the epoch driver in ``cost_model.training.loop``."""
    # ADAM step size
    learning_rate: float = 1e-4

    # Visit samples in a random order each epoch
    shuffle: bool = True

    # Seed for the sample permutation (None = nondeterministic)
    seed: Optional[int] = None

    # Log a progress line every N samples (0 = only the epoch summary)
    log_every: int = 100
