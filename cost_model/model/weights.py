"""Named weight tensors of the cost model.

A WeightSet always holds exactly the tensors listed in
config.weight_shapes(), each with its fixed shape. Shapes are checked once
here so that the layer code can assume them.
"""

import math
from functools import reduce
from typing import Dict, Iterator, Mapping, Optional, Tuple

import torch

from ..config import WEIGHT_NAMES, weight_shapes
from ..errors import ShapeMismatch


class WeightSet:
    """Immutable-by-convention mapping of weight name -> tensor.

    All tensors are copied into one floating dtype: ``dtype`` when given,
    otherwise the promoted dtype of the inputs (float32 if none is floating).
    """

    def __init__(self, tensors: Mapping[str, torch.Tensor],
                 dtype: Optional[torch.dtype] = None):
        shapes = weight_shapes()
        missing = [name for name in WEIGHT_NAMES if name not in tensors]
        unknown = [name for name in tensors if name not in shapes]
        if missing or unknown:
            raise ShapeMismatch(
                f"Weight names do not match the model: missing={missing}, unknown={unknown}")
        raw = {name: torch.as_tensor(tensors[name]).detach() for name in WEIGHT_NAMES}
        if dtype is None:
            dtype = reduce(torch.promote_types, (t.dtype for t in raw.values()))
            if not dtype.is_floating_point:
                dtype = torch.float32
        self._dtype = dtype
        self._tensors: Dict[str, torch.Tensor] = {}
        for name in WEIGHT_NAMES:
            t = raw[name]
            if tuple(t.shape) != shapes[name]:
                raise ShapeMismatch(
                    f"{name}: expected shape {shapes[name]}, got {tuple(t.shape)}")
            self._tensors[name] = t.to(dtype=dtype, copy=True)

    @classmethod
    def zeros(cls, dtype: torch.dtype = torch.float32) -> "WeightSet":
        return cls({name: torch.zeros(shape, dtype=dtype)
                    for name, shape in weight_shapes().items()})

    @classmethod
    def random(cls, seed: Optional[int] = None,
               dtype: torch.dtype = torch.float32) -> "WeightSet":
        """Gaussian filters scaled by 1/sqrt(fan_in), zero biases."""
        gen = torch.Generator()
        if seed is None:
            gen.seed()
        else:
            gen.manual_seed(seed)
        tensors = {}
        for name, shape in weight_shapes().items():
            if name.endswith("bias") or name.startswith("bias"):
                tensors[name] = torch.zeros(shape, dtype=dtype)
            else:
                fan_in = math.prod(shape[1:]) if len(shape) > 1 else shape[0]
                tensors[name] = torch.randn(shape, generator=gen, dtype=dtype) / math.sqrt(fan_in)
        return cls(tensors)

    @property
    def dtype(self) -> torch.dtype:
        return self._dtype

    def __getitem__(self, name: str) -> torch.Tensor:
        return self._tensors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tensors)

    def __len__(self) -> int:
        return len(self._tensors)

    def items(self) -> Iterator[Tuple[str, torch.Tensor]]:
        return iter(self._tensors.items())

    def as_dict(self) -> Dict[str, torch.Tensor]:
        return dict(self._tensors)

    def clone(self) -> "WeightSet":
        return WeightSet(self._tensors, dtype=self._dtype)

    def replace(self, **updates: torch.Tensor) -> "WeightSet":
        """Return a copy with some tensors swapped out (shapes re-checked)."""
        tensors = dict(self._tensors)
        tensors.update(updates)
        return WeightSet(tensors, dtype=self._dtype)

    def num_parameters(self) -> int:
        return sum(t.numel() for t in self._tensors.values())
