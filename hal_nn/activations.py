"""
Activation functions and their derivatives.

Derivatives are written in terms of the activated output y = f(x), which is
what the layers keep in their timestep caches. backprop() pushes a delta
through an activation and is exact for every activation including softmax.

This module also holds mod-ReLU, the complex nonlinearity of the Unitary
layer, together with its hand-derived adjoints.
"""

import torch
import torch.nn.functional as F

from .errors import UnknownConfigError

LRELU_SLOPE = 0.01
MOD_RELU_EPS = 1e-12


def tanh(x: torch.Tensor) -> torch.Tensor:
    return torch.tanh(x)


def sigmoid(x: torch.Tensor) -> torch.Tensor:
    return torch.sigmoid(x)


def relu(x: torch.Tensor) -> torch.Tensor:
    return F.relu(x)


def lrelu(x: torch.Tensor) -> torch.Tensor:
    return F.leaky_relu(x, negative_slope=LRELU_SLOPE)


def softmax(x: torch.Tensor) -> torch.Tensor:
    """Softmax over the feature axis."""
    return torch.softmax(x, dim=-1)


def ones(x: torch.Tensor) -> torch.Tensor:
    """Identity activation."""
    return x.clone()


def tanh_derivative(y: torch.Tensor) -> torch.Tensor:
    # 1 - tanh(x)^2
    return 1 - y * y


def sigmoid_derivative(y: torch.Tensor) -> torch.Tensor:
    # s(x) * (1 - s(x))
    return y * (1 - y)


def relu_derivative(y: torch.Tensor) -> torch.Tensor:
    return (y > 0).to(y.dtype)


def lrelu_derivative(y: torch.Tensor) -> torch.Tensor:
    return torch.where(y > 0, torch.ones_like(y), torch.full_like(y, LRELU_SLOPE))


def softmax_derivative(y: torch.Tensor) -> torch.Tensor:
    """Diagonal of the softmax Jacobian. Use backprop() for the exact product."""
    return sigmoid_derivative(y)


def ones_derivative(y: torch.Tensor) -> torch.Tensor:
    return torch.ones_like(y)


_ACTIVATIONS = {
    "tanh": (tanh, tanh_derivative),
    "sigmoid": (sigmoid, sigmoid_derivative),
    "relu": (relu, relu_derivative),
    "lrelu": (lrelu, lrelu_derivative),
    "softmax": (softmax, softmax_derivative),
    "ones": (ones, ones_derivative),
    "linear": (ones, ones_derivative),
}

_NON_SMOOTH = {"relu", "lrelu"}


def _lookup(name: str):
    try:
        return _ACTIVATIONS[name]
    except KeyError:
        raise UnknownConfigError(f"Unknown activation: {name}") from None


def validate(name: str) -> str:
    """Return `name` if it is a known activation, raise UnknownConfigError otherwise."""
    _lookup(name)
    return name


def get_activation(name: str, x: torch.Tensor) -> torch.Tensor:
    return _lookup(name)[0](x)


def get_derivative(name: str, y: torch.Tensor) -> torch.Tensor:
    """Elementwise derivative of activation `name` evaluated from its output y."""
    return _lookup(name)[1](y)


def backprop(name: str, y: torch.Tensor, delta: torch.Tensor) -> torch.Tensor:
    """
    Gradient w.r.t. the pre-activation given the gradient w.r.t. the output.

    Args:
        name: Activation name
        y: Activated output
        delta: Gradient of the loss w.r.t. y

    Returns:
        Gradient of the loss w.r.t. the activation input
    """
    if name == "softmax":
        # J^T delta = y * (delta - <delta, y>)
        return y * (delta - (delta * y).sum(dim=-1, keepdim=True))
    return delta * get_derivative(name, y)


def is_smooth(name: str) -> bool:
    validate(name)
    return name not in _NON_SMOOTH


def mod_relu(z: torch.Tensor, bias: torch.Tensor) -> torch.Tensor:
    """
    ModReLU activation: ReLU(|z| + bias) * z / |z|

    This activation preserves the phase while applying ReLU to the magnitude.

    Args:
        z: Complex input tensor [batch, hidden]
        bias: Real bias broadcastable to z

    Returns:
        ModReLU activated complex tensor
    """
    magnitude = torch.abs(z)
    activated_mag = F.relu(magnitude + bias)

    # Avoid division by zero
    safe_magnitude = torch.clamp(magnitude, min=MOD_RELU_EPS)
    return z * (activated_mag / safe_magnitude)


def mod_relu_backward_z(z: torch.Tensor, bias: torch.Tensor, grad: torch.Tensor) -> torch.Tensor:
    """
    Gradient of the loss w.r.t. the mod-ReLU input.

    Where the unit is active, h = z + bias * z/|z| and the Jacobian (as a real
    2x2 map per entry) is (1 + b/r) I - (b/r) zhat zhat^T, which is symmetric.

    Args:
        z: Complex pre-activation cached during forward
        bias: Real mod-ReLU bias
        grad: Gradient w.r.t. the mod-ReLU output

    Returns:
        Complex gradient w.r.t. z
    """
    magnitude = torch.clamp(torch.abs(z), min=MOD_RELU_EPS)
    active = (torch.abs(z) + bias > 0).to(magnitude.dtype)
    unit = z / magnitude
    radial = (unit.conj() * grad).real
    ratio = bias / magnitude
    return active * ((1 + ratio) * grad - ratio * radial * unit)


def mod_relu_backward_b(z: torch.Tensor, bias: torch.Tensor, grad: torch.Tensor) -> torch.Tensor:
    """
    Gradient of the loss w.r.t. the mod-ReLU bias, per batch row.

    dh/db = z/|z| where active, so the gradient is Re(conj(z/|z|) * grad).
    """
    magnitude = torch.clamp(torch.abs(z), min=MOD_RELU_EPS)
    active = (torch.abs(z) + bias > 0).to(magnitude.dtype)
    unit = z / magnitude
    return active * (unit.conj() * grad).real
