"""
Structured unitary transforms used by the Unitary recurrent layer.

The hidden-to-hidden matrix is never materialized. It is applied as the fixed
composition

    W h = D3 R2 F^-1 D2 Pi R1 F D1 h

where D are diagonal phase matrices, F is the discrete Fourier transform,
Pi is a fixed permutation and R are Householder reflections. Every factor is
unitary, so W preserves the L2 norm of h. Each factor has an adjoint used to
propagate gradients backward, and the phase and reflection factors have a
parameter-gradient rule.

All hidden-state tensors are complex with shape [batch, hidden]. Complex
gradients follow the convention dL/dRe + i * dL/dIm.
"""

import torch
from typing import List, NamedTuple


class HiddenParams(NamedTuple):
    """Parameters of the hidden-to-hidden composition."""
    theta1: torch.Tensor  # [1, hidden] real
    v1: torch.Tensor  # [1, hidden] complex
    permutation: torch.Tensor  # [hidden] long
    theta2: torch.Tensor  # [1, hidden] real
    v2: torch.Tensor  # [1, hidden] complex
    theta3: torch.Tensor  # [1, hidden] real
    inverse_permutation: torch.Tensor  # [hidden] long


def _phase(theta: torch.Tensor) -> torch.Tensor:
    return torch.complex(torch.cos(theta), torch.sin(theta))


def diag_phase(theta: torch.Tensor, h: torch.Tensor) -> torch.Tensor:
    """
    Multiply by the diagonal matrix of phases D = diag(exp(i * theta)).

    Args:
        theta: Real phase vector broadcastable to h
        h: Complex hidden state [batch, hidden]

    Returns:
        Complex tensor exp(i * theta) * h
    """
    return _phase(theta) * h


def diag_phase_adjoint(theta: torch.Tensor, h: torch.Tensor) -> torch.Tensor:
    """Multiply by the conjugate phases diag(exp(-i * theta))."""
    return torch.complex(torch.cos(theta), -torch.sin(theta)) * h


def fft_hidden(h: torch.Tensor) -> torch.Tensor:
    """Unnormalized FFT along the hidden axis."""
    return torch.fft.fft(h, dim=-1, norm="backward")


def fft_hidden_adjoint(h: torch.Tensor) -> torch.Tensor:
    """Adjoint of fft_hidden: the inverse FFT without the 1/n factor."""
    return torch.fft.ifft(h, dim=-1, norm="forward")


def ifft_hidden(h: torch.Tensor) -> torch.Tensor:
    """Inverse FFT along the hidden axis, scaled by 1/n."""
    return torch.fft.ifft(h, dim=-1, norm="backward")


def ifft_hidden_adjoint(h: torch.Tensor) -> torch.Tensor:
    """Adjoint of ifft_hidden: the forward FFT scaled by 1/n."""
    return torch.fft.fft(h, dim=-1, norm="forward")


def permute(indices: torch.Tensor, h: torch.Tensor) -> torch.Tensor:
    """
    Gather hidden units by index: out[:, j] = h[:, indices[j]].

    The adjoint is the same gather with the inverse permutation.
    """
    return torch.index_select(h, -1, indices)


def inverse_permutation(indices: torch.Tensor) -> torch.Tensor:
    """Index vector undoing `indices`."""
    return torch.argsort(indices)


def householder(v: torch.Tensor, h: torch.Tensor) -> torch.Tensor:
    """
    Apply the Householder reflection R h = h - 2 (v^T h) conj(v).

    With u = conj(v) this is the usual I - 2 u u^H, which is Hermitian, so the
    same function applies the adjoint. v must have unit norm for R to be unitary.

    Args:
        v: Complex direction [1, hidden]
        h: Complex hidden state [batch, hidden]

    Returns:
        Reflected complex hidden state [batch, hidden]
    """
    projection = torch.matmul(h, v.transpose(0, 1))  # [batch, 1]
    return h - 2 * torch.matmul(projection, v.conj())


def hidden_map_stages(p: HiddenParams, h: torch.Tensor) -> List[torch.Tensor]:
    """
    Apply the hidden-to-hidden composition and keep every intermediate.

    Returns:
        List [h, D1 h, F D1 h, R1 F D1 h, Pi ..., D2 ..., F^-1 ..., R2 ..., D3 ...]
        whose last element is W h
    """
    stages = [h]
    stages.append(diag_phase(p.theta1, stages[-1]))
    stages.append(fft_hidden(stages[-1]))
    stages.append(householder(p.v1, stages[-1]))
    stages.append(permute(p.permutation, stages[-1]))
    stages.append(diag_phase(p.theta2, stages[-1]))
    stages.append(ifft_hidden(stages[-1]))
    stages.append(householder(p.v2, stages[-1]))
    stages.append(diag_phase(p.theta3, stages[-1]))
    return stages


def hidden_map(p: HiddenParams, h: torch.Tensor) -> torch.Tensor:
    """W h = D3 R2 F^-1 D2 Pi R1 F D1 h."""
    return hidden_map_stages(p, h)[-1]


def hidden_map_adjoint_stages(p: HiddenParams, grad: torch.Tensor) -> List[torch.Tensor]:
    """
    Propagate a gradient w.r.t. W h back through the composition.

    Element k of the result is the gradient w.r.t. stage k of
    hidden_map_stages, so element 0 is W^H grad and the last element is grad.
    """
    rev = [grad]
    rev.append(diag_phase_adjoint(p.theta3, rev[-1]))
    rev.append(householder(p.v2, rev[-1]))
    rev.append(ifft_hidden_adjoint(rev[-1]))
    rev.append(diag_phase_adjoint(p.theta2, rev[-1]))
    rev.append(permute(p.inverse_permutation, rev[-1]))
    rev.append(householder(p.v1, rev[-1]))
    rev.append(fft_hidden_adjoint(rev[-1]))
    rev.append(diag_phase_adjoint(p.theta1, rev[-1]))
    return rev[::-1]


def hidden_map_adjoint(p: HiddenParams, grad: torch.Tensor) -> torch.Tensor:
    """W^H grad = D1^H F^H R1 Pi^T D2^H F^-H R2 D3^H grad."""
    return hidden_map_adjoint_stages(p, grad)[0]


def phase_grad(theta: torch.Tensor, left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    """
    Gradient of the loss w.r.t. the phases of a diagonal factor.

    Args:
        theta: Real phases [1, hidden]
        left: Input of the factor during forward [batch, hidden]
        right: Gradient w.r.t. the output of the factor [batch, hidden]

    Returns:
        Real gradient [1, hidden], summed over the batch
    """
    # d(exp(i theta) h)/d theta = i exp(i theta) h
    d_out = 1j * _phase(theta) * left
    return (right.conj() * d_out).real.sum(dim=0, keepdim=True)


def householder_grad(v: torch.Tensor, left: torch.Tensor, right: torch.Tensor) -> torch.Tensor:
    """
    Gradient of the loss w.r.t. the direction of a Householder factor.

    Args:
        v: Complex direction [1, hidden]
        left: Input of the reflection during forward [batch, hidden]
        right: Gradient w.r.t. the output of the reflection [batch, hidden]

    Returns:
        Complex gradient [1, hidden], summed over the batch
    """
    vt = v.transpose(0, 1)
    left_proj = torch.matmul(left, vt)  # v^T h, [batch, 1]
    right_proj = torch.matmul(right, vt)  # v^T g, [batch, 1]
    grad = left.conj() * right_proj + right.conj() * left_proj
    return -2 * grad.sum(dim=0, keepdim=True)


def tangent_projection(v: torch.Tensor, grad: torch.Tensor) -> torch.Tensor:
    """
    Gradient of L(v / |v|) given the gradient of L at the normalized direction.

    The radial component is removed and the rest is scaled by 1/|v|.
    """
    norm = torch.linalg.vector_norm(v)
    w = v / norm
    radial = (w.conj() * grad).real.sum()
    return (grad - radial * w) / norm
