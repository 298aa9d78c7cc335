"""
Packing between real "wire format" tensors and complex tensors.

Layers exchange real tensors of shape [batch, features]. A complex quantity of
width n travels as a real tensor of width 2n whose first half holds the real
parts and whose second half holds the imaginary parts.
"""

import torch

from .errors import PreconditionError


def to_complex(x: torch.Tensor) -> torch.Tensor:
    """
    Convert a real tensor to a complex one using the first and second half of
    the last axis as real and imaginary parts.

    Args:
        x: Real tensor with shape [..., 2n]

    Returns:
        Complex tensor with shape [..., n]
    """
    if x.is_complex():
        raise PreconditionError("to_complex expects a real tensor")
    dim = x.shape[-1]
    if dim % 2 != 0:
        raise PreconditionError(
            f"The dimension of the complex split has to be even, got {dim}")
    half = dim // 2
    return torch.complex(x[..., :half], x[..., half:])


def to_real(z: torch.Tensor) -> torch.Tensor:
    """
    Convert a complex tensor to a real one by concatenating real and imaginary
    parts along the last axis. Inverse of to_complex.

    Args:
        z: Complex tensor with shape [..., n]

    Returns:
        Real tensor with shape [..., 2n]
    """
    return torch.cat([z.real, z.imag], dim=-1)

