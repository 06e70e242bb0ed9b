"""ADAM update with caller-owned state.

Each weight tensor of shape S has an optimizer plane of shape S + (4,):

  [..., 0]  weight value after the update
  [..., 1]  first moment m (smoothed gradient)
  [..., 2]  second moment v (smoothed squared gradient)
  [..., 3]  loss gradient from the last step

The update keeps no hidden state. The timestep t is 0-based, shared by every
weight in one step and incremented by the caller:

  m     = 0.9 * m_prev + 0.1 * g
  v     = 0.999 * v_prev + 0.001 * g^2
  m_hat = m / (1 - 0.9^(t + 1))
  v_hat = v / (1 - 0.999^(t + 1))
  theta = theta - lr * m_hat / (sqrt(v_hat) + 1e-8)
"""

from typing import Dict, Iterator, Mapping, Tuple

import torch

from ..config import ADAM_BETA1, ADAM_BETA2, ADAM_EPS, WEIGHT_NAMES, weight_shapes
from ..errors import InvalidConfiguration, ShapeMismatch
from ..model.weights import WeightSet

VALUE, FIRST_MOMENT, SECOND_MOMENT, GRADIENT = range(4)


class OptimizerState:
    """Per-weight ADAM planes, keyed like WeightSet."""

    def __init__(self, planes: Mapping[str, torch.Tensor]):
        shapes = weight_shapes()
        if set(planes) != set(WEIGHT_NAMES):
            raise ShapeMismatch(
                f"Optimizer state names do not match the model: got {sorted(planes)}")
        self._planes: Dict[str, torch.Tensor] = {}
        for name in WEIGHT_NAMES:
            expected = shapes[name] + (4,)
            plane = torch.as_tensor(planes[name])
            if tuple(plane.shape) != expected:
                raise ShapeMismatch(
                    f"{name} optimizer state: expected shape {expected}, "
                    f"got {tuple(plane.shape)}")
            self._planes[name] = plane

    @classmethod
    def zeros_like(cls, weights: WeightSet) -> "OptimizerState":
        """Fresh state for t=0: value plane holds the weights, moments are zero."""
        planes = {}
        for name, w in weights.items():
            plane = torch.zeros(tuple(w.shape) + (4,), dtype=w.dtype)
            plane[..., VALUE] = w
            planes[name] = plane
        return cls(planes)

    def __getitem__(self, name: str) -> torch.Tensor:
        return self._planes[name]

    def items(self) -> Iterator[Tuple[str, torch.Tensor]]:
        return iter(self._planes.items())

    def first_moment(self, name: str) -> torch.Tensor:
        return self._planes[name][..., FIRST_MOMENT]

    def second_moment(self, name: str) -> torch.Tensor:
        return self._planes[name][..., SECOND_MOMENT]

    def gradient(self, name: str) -> torch.Tensor:
        return self._planes[name][..., GRADIENT]

    def weights(self) -> WeightSet:
        """Weights stored in the value plane."""
        return WeightSet({name: plane[..., VALUE].clone() for name, plane in self._planes.items()})


def adam_update(value: torch.Tensor, grad: torch.Tensor,
                m_prev: torch.Tensor, v_prev: torch.Tensor,
                learning_rate: float, timestep: int) -> torch.Tensor:
    """One ADAM step for a single tensor. Returns the stacked [..., 4] plane."""
    m = ADAM_BETA1 * m_prev + (1 - ADAM_BETA1) * grad
    v = ADAM_BETA2 * v_prev + (1 - ADAM_BETA2) * grad * grad
    m_hat = m / (1 - ADAM_BETA1 ** (timestep + 1))
    v_hat = v / (1 - ADAM_BETA2 ** (timestep + 1))
    new_value = value - learning_rate * m_hat / (torch.sqrt(v_hat) + ADAM_EPS)
    return torch.stack([new_value, m, v, grad], dim=-1)


def check_step_config(learning_rate: float, timestep: int) -> None:
    if learning_rate <= 0:
        raise InvalidConfiguration(f"learning_rate must be positive, got {learning_rate}")
    if timestep < 0:
        raise InvalidConfiguration(f"timestep must be non-negative, got {timestep}")


def apply_adam(weights: WeightSet, grads: Mapping[str, torch.Tensor],
               state: OptimizerState, learning_rate: float,
               timestep: int) -> Tuple[WeightSet, OptimizerState]:
    """Update every weight from its full-batch gradient.

    Neither ``weights`` nor ``state`` is modified.
    """
    check_step_config(learning_rate, timestep)

    planes = {}
    with torch.no_grad():
        for name, value in weights.items():
            grad = grads[name].to(value)
            planes[name] = adam_update(
                value, grad,
                state.first_moment(name).to(value),
                state.second_moment(name).to(value),
                learning_rate, timestep,
            )
    new_state = OptimizerState(planes)
    return new_state.weights(), new_state
