"""
Parameter initialization schemes.

Weight matrices are laid out [fan_in, fan_out] (inputs multiply from the
left), so fans are read from the first two axes.
"""

import math
import torch
from typing import Optional, Sequence, Tuple

from .errors import UnknownConfigError

DEFAULT_SCALE = 0.05


def get_fans(shape: Sequence[int]) -> Tuple[float, float]:
    """Return (fan_in, fan_out) for a weight of the given shape."""
    if len(shape) == 1:
        return float(shape[0]), float(shape[0])
    fan_in = shape[0]
    fan_out = math.prod(shape[1:])
    return float(fan_in), float(fan_out)


def normal(shape, scale: float = DEFAULT_SCALE, dtype=torch.float32, device=None) -> torch.Tensor:
    return torch.randn(*shape, dtype=dtype, device=device) * scale


def uniform(shape, low: float = -DEFAULT_SCALE, high: float = DEFAULT_SCALE,
            dtype=torch.float32, device=None) -> torch.Tensor:
    return torch.rand(*shape, dtype=dtype, device=device) * (high - low) + low


def zeros(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    return torch.zeros(*shape, dtype=dtype, device=device)


def ones(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    return torch.ones(*shape, dtype=dtype, device=device)


def glorot_uniform(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    fan_in, fan_out = get_fans(shape)
    s = math.sqrt(6.0 / (fan_in + fan_out))
    return uniform(shape, -s, s, dtype=dtype, device=device)


def glorot_normal(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    fan_in, fan_out = get_fans(shape)
    s = math.sqrt(2.0 / (fan_in + fan_out))
    return normal(shape, s, dtype=dtype, device=device)


def lecun_uniform(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    fan_in, _ = get_fans(shape)
    s = math.sqrt(3.0 / fan_in)
    return uniform(shape, -s, s, dtype=dtype, device=device)


def orthogonal(shape, gain: float = 1.0, dtype=torch.float32, device=None) -> torch.Tensor:
    """Orthogonal matrix (semi-orthogonal if not square) via QR."""
    rows, cols = shape[0], math.prod(shape[1:])
    flat = torch.randn(max(rows, cols), min(rows, cols), dtype=dtype, device=device)
    q, r = torch.linalg.qr(flat)
    # Make the decomposition unique
    q = q * torch.sign(torch.diagonal(r)).unsqueeze(0)
    if rows < cols:
        q = q.transpose(0, 1)
    return (gain * q).reshape(*shape).contiguous()


def phase(shape, dtype=torch.float32, device=None) -> torch.Tensor:
    """Phases drawn uniformly from [-pi, pi)."""
    return uniform(shape, -math.pi, math.pi, dtype=dtype, device=device)


def permutation(n: int, identity: bool = False, device=None) -> torch.Tensor:
    """Index vector of a random (or the identity) permutation of n units."""
    if identity:
        return torch.arange(n, device=device)
    return torch.randperm(n, device=device)


_INITIALIZATIONS = {
    "glorot_uniform": glorot_uniform,
    "glorot_normal": glorot_normal,
    "lecun_uniform": lecun_uniform,
    "orthogonal": orthogonal,
    "normal": normal,
    "uniform": uniform,
    "phase": phase,
    "zeros": zeros,
    "ones": ones,
}


def validate(name: str) -> str:
    if name not in _INITIALIZATIONS:
        raise UnknownConfigError(f"Unknown initialization: {name}")
    return name


def get_initialization(name: str, shape, dtype=torch.float32,
                       device: Optional[torch.device] = None) -> torch.Tensor:
    """
    Build a tensor of the given shape with initialization scheme `name`.

    Args:
        name: One of glorot_uniform, glorot_normal, lecun_uniform, orthogonal,
            normal, uniform, phase, zeros, ones
        shape: Tensor shape
        dtype: Real dtype of the result
        device: Target device

    Returns:
        Initialized tensor
    """
    validate(name)
    return _INITIALIZATIONS[name](tuple(shape), dtype=dtype, device=device)
