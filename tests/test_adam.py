import pytest
import torch

from cost_model import InvalidConfiguration, OptimizerState, ShapeMismatch, WeightSet
from cost_model.config import WEIGHT_NAMES
from cost_model.training import adam_update, apply_adam
from cost_model.training.adam import FIRST_MOMENT, GRADIENT, SECOND_MOMENT, VALUE

from conftest import random_weights


def test_first_step_matches_closed_form():
    g = torch.tensor([0.5, -2.0, 1e-3, 0.0], dtype=torch.float64)
    theta = torch.ones(4, dtype=torch.float64)
    zeros = torch.zeros(4, dtype=torch.float64)

    plane = adam_update(theta, g, zeros, zeros, learning_rate=0.01, timestep=0)
    m, v = plane[..., FIRST_MOMENT], plane[..., SECOND_MOMENT]

    torch.testing.assert_close(m, 0.1 * g)
    torch.testing.assert_close(v, 0.001 * g * g)
    # Bias correction makes m_hat == g and v_hat == g^2 at t=0
    torch.testing.assert_close(plane[..., VALUE], theta - 0.01 * g / (g.abs() + 1e-8))
    torch.testing.assert_close(plane[..., GRADIENT], g)
    # Roughly a signed step of lr for |g| >> eps
    torch.testing.assert_close(plane[:3, VALUE], theta[:3] - 0.01 * torch.sign(g[:3]),
                               rtol=0, atol=1e-6)
    assert plane[3, VALUE].item() == 1.0


def test_later_step_uses_previous_moments():
    g = torch.tensor([0.3, -0.7], dtype=torch.float64)
    theta = torch.tensor([2.0, -1.0], dtype=torch.float64)
    m_prev = torch.tensor([0.05, 0.02], dtype=torch.float64)
    v_prev = torch.tensor([1e-3, 4e-4], dtype=torch.float64)
    t, lr = 4, 1e-3

    plane = adam_update(theta, g, m_prev, v_prev, lr, t)

    m = 0.9 * m_prev + 0.1 * g
    v = 0.999 * v_prev + 0.001 * g ** 2
    m_hat = m / (1 - 0.9 ** (t + 1))
    v_hat = v / (1 - 0.999 ** (t + 1))
    torch.testing.assert_close(plane[..., FIRST_MOMENT], m)
    torch.testing.assert_close(plane[..., SECOND_MOMENT], v)
    torch.testing.assert_close(plane[..., VALUE], theta - lr * m_hat / (v_hat.sqrt() + 1e-8))


def test_scalar_weight_plane_shape():
    plane = adam_update(torch.tensor(1.0), torch.tensor(0.5),
                        torch.tensor(0.0), torch.tensor(0.0), 0.1, 0)
    assert plane.shape == (4,)


def test_zeros_like_holds_weights():
    weights = random_weights(seed=1)
    state = OptimizerState.zeros_like(weights)
    for name in WEIGHT_NAMES:
        assert state[name].shape == tuple(weights[name].shape) + (4,)
        assert torch.equal(state[name][..., VALUE], weights[name])
        assert not state.first_moment(name).any()
        assert not state.second_moment(name).any()
        assert not state.gradient(name).any()


def test_state_shape_checked():
    planes = dict(OptimizerState.zeros_like(WeightSet.zeros()).items())
    planes["filter2"] = torch.zeros(48, 48, 3)
    with pytest.raises(ShapeMismatch):
        OptimizerState(planes)
    del planes["filter2"]
    with pytest.raises(ShapeMismatch):
        OptimizerState(planes)


def test_apply_adam_does_not_mutate_inputs():
    weights = random_weights(seed=2)
    state = OptimizerState.zeros_like(weights)
    grads = {name: torch.ones_like(weights[name]) for name in WEIGHT_NAMES}
    before_w = weights.clone()
    before_s = {name: plane.clone() for name, plane in state.items()}

    new_weights, new_state = apply_adam(weights, grads, state, 0.01, 0)

    for name in WEIGHT_NAMES:
        assert torch.equal(weights[name], before_w[name])
        assert torch.equal(state[name], before_s[name])
        torch.testing.assert_close(new_weights[name], weights[name] - 0.01, rtol=0, atol=1e-6)
        assert torch.equal(new_state[name][..., VALUE], new_weights[name])
        assert torch.equal(new_state.gradient(name), grads[name])


@pytest.mark.parametrize("lr,t", [(0.0, 0), (-1e-3, 0), (1e-3, -1)])
def test_apply_adam_rejects_bad_config(lr, t):
    weights = WeightSet.zeros()
    state = OptimizerState.zeros_like(weights)
    grads = {name: torch.zeros_like(weights[name]) for name in WEIGHT_NAMES}
    with pytest.raises(InvalidConfiguration):
        apply_adam(weights, grads, state, lr, t)
