"""Network layers, weights and the inference entry point.

  heads.py    per-stage dense encoders for pipeline and schedule features
  trunk.py    conv1..conv6 with the two average pools
  network.py  CostModel module, aggregation and infer()
  weights.py  WeightSet with fixed shapes
"""

from .weights import WeightSet
from .heads import activation, pad_stages, pipeline_head, schedule_head
from .trunk import trunk, average_pool, pooled_extent, final_extent
from .network import CostModel, aggregate, infer, per_stage
