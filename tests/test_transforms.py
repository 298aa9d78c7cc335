"""
Tests for the structured unitary transforms.

This module verifies that every factor of the hidden-to-hidden map preserves
the norm of the hidden state, that every implemented adjoint matches a
finite-difference Jacobian-vector product, and that the phase and Householder
parameter gradients agree with torch autograd.
"""

import math
import torch
import sys
import os

# Add repository root to path to import hal_nn
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(parent_dir)

from hal_nn.transforms import (
    HiddenParams,
    diag_phase,
    diag_phase_adjoint,
    fft_hidden,
    fft_hidden_adjoint,
    ifft_hidden,
    ifft_hidden_adjoint,
    permute,
    inverse_permutation,
    householder,
    hidden_map,
    hidden_map_adjoint,
    hidden_map_stages,
    hidden_map_adjoint_stages,
    phase_grad,
    householder_grad,
    tangent_projection,
)

HIDDEN = 8
BATCH = 3


def random_direction(n: int = HIDDEN) -> torch.Tensor:
    v = torch.randn(1, n, dtype=torch.complex128)
    return v / torch.linalg.vector_norm(v)


def random_params(n: int = HIDDEN) -> HiddenParams:
    perm = torch.randperm(n)
    return HiddenParams(
        theta1=torch.rand(1, n, dtype=torch.float64) * 2 * math.pi - math.pi,
        v1=random_direction(n),
        permutation=perm,
        theta2=torch.rand(1, n, dtype=torch.float64) * 2 * math.pi - math.pi,
        v2=random_direction(n),
        theta3=torch.rand(1, n, dtype=torch.float64) * 2 * math.pi - math.pi,
        inverse_permutation=inverse_permutation(perm),
    )


def real_inner(a: torch.Tensor, b: torch.Tensor) -> float:
    """Real inner product Re(sum(conj(a) * b)) on complex tensors."""
    return (a.conj() * b).real.sum().item()


def check_adjoint(forward, adjoint, eps: float = 1e-6, rtol: float = 1e-4):
    """
    Compare <probe, J d> estimated by central differences with <A probe, d>.
    """
    h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
    d = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
    probe = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)

    jvp = (forward(h + eps * d) - forward(h - eps * d)) / (2 * eps)
    lhs = real_inner(probe, jvp)
    rhs = real_inner(adjoint(probe), d)
    assert abs(lhs - rhs) <= rtol * max(abs(lhs), abs(rhs), 1.0), \
        f"Adjoint mismatch: {lhs} vs {rhs}"


class TestUnitarity:
    """Test class for norm preservation."""

    def test_factors_preserve_norm(self):
        """Every factor maps h to a vector of the same norm."""
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        p = random_params()
        norm = torch.linalg.vector_norm(h, dim=-1)

        outputs = [
            diag_phase(p.theta1, h),
            fft_hidden(h) / math.sqrt(HIDDEN),
            ifft_hidden(h) * math.sqrt(HIDDEN),
            permute(p.permutation, h),
            householder(p.v1, h),
        ]
        for out in outputs:
            assert torch.allclose(torch.linalg.vector_norm(out, dim=-1), norm, atol=1e-10)

    def test_hidden_map_preserves_norm(self):
        """W = D3 R2 F^-1 D2 Pi R1 F D1 preserves the norm of each row."""
        for _ in range(5):
            h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
            p = random_params()
            out = hidden_map(p, h)
            assert torch.allclose(torch.linalg.vector_norm(out, dim=-1),
                                  torch.linalg.vector_norm(h, dim=-1), atol=1e-10)

    def test_adjoint_inverts_hidden_map(self):
        """For a unitary W, W^H W h = h."""
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        p = random_params()
        assert torch.allclose(hidden_map_adjoint(p, hidden_map(p, h)), h, atol=1e-10)

    def test_stage_layout(self):
        """Stages go from h to W h, adjoint stages from W^H g to g."""
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        g = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        p = random_params()

        stages = hidden_map_stages(p, h)
        rev = hidden_map_adjoint_stages(p, g)
        assert len(stages) == 9 and len(rev) == 9
        assert torch.equal(stages[0], h)
        assert torch.equal(rev[-1], g)
        assert torch.allclose(stages[-1], hidden_map(p, h))


class TestAdjoints:
    """Test class for adjoint correctness of every primitive."""

    def test_diag_phase_adjoint(self):
        theta = torch.randn(1, HIDDEN, dtype=torch.float64)
        check_adjoint(lambda h: diag_phase(theta, h), lambda g: diag_phase_adjoint(theta, g))

    def test_fft_adjoint(self):
        check_adjoint(fft_hidden, fft_hidden_adjoint)

    def test_ifft_adjoint(self):
        check_adjoint(ifft_hidden, ifft_hidden_adjoint)

    def test_permutation_adjoint(self):
        perm = torch.randperm(HIDDEN)
        inv = inverse_permutation(perm)
        check_adjoint(lambda h: permute(perm, h), lambda g: permute(inv, g))

    def test_householder_adjoint(self):
        v = random_direction()
        check_adjoint(lambda h: householder(v, h), lambda g: householder(v, g))

    def test_hidden_map_adjoint(self):
        p = random_params()
        check_adjoint(lambda h: hidden_map(p, h), lambda g: hidden_map_adjoint(p, g))


class TestParameterGradients:
    """Test class for phase and Householder parameter gradients."""

    def test_phase_grad_matches_autograd(self):
        """phase_grad equals d/dtheta of Re(<g, D(theta) h>)."""
        theta = torch.randn(1, HIDDEN, dtype=torch.float64, requires_grad=True)
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        g = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)

        loss = (g.conj() * diag_phase(theta, h)).real.sum()
        loss.backward()

        expected = theta.grad
        actual = phase_grad(theta.detach(), h, g)
        assert actual.shape == (1, HIDDEN)
        assert torch.allclose(actual, expected, atol=1e-10)

    def test_householder_grad_matches_autograd(self):
        """householder_grad equals dL/dRe(v) + i dL/dIm(v)."""
        v0 = random_direction()
        v_re = v0.real.clone().requires_grad_(True)
        v_im = v0.imag.clone().requires_grad_(True)
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        g = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)

        v = torch.complex(v_re, v_im)
        loss = (g.conj() * householder(v, h)).real.sum()
        loss.backward()

        expected = torch.complex(v_re.grad, v_im.grad)
        actual = householder_grad(v0, h, g)
        assert torch.allclose(actual, expected, atol=1e-10)

    def test_tangent_projection_matches_autograd(self):
        """tangent_projection gives the gradient of L(v / |v|)."""
        v0 = torch.randn(1, HIDDEN, dtype=torch.complex128) * 1.7
        v_re = v0.real.clone().requires_grad_(True)
        v_im = v0.imag.clone().requires_grad_(True)
        h = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)
        g = torch.randn(BATCH, HIDDEN, dtype=torch.complex128)

        v = torch.complex(v_re, v_im)
        w = v / torch.linalg.vector_norm(v)
        loss = (g.conj() * householder(w, h)).real.sum()
        loss.backward()

        expected = torch.complex(v_re.grad, v_im.grad)
        w0 = v0 / torch.linalg.vector_norm(v0)
        actual = tangent_projection(v0, householder_grad(w0, h, g))
        assert torch.allclose(actual, expected, atol=1e-10)


def run_transform_tests():
    """Run all transform tests."""
    print("Running transform tests...")

    unitarity = TestUnitarity()
    adjoints = TestAdjoints()
    grads = TestParameterGradients()

    test_methods = [
        unitarity.test_factors_preserve_norm,
        unitarity.test_hidden_map_preserves_norm,
        unitarity.test_adjoint_inverts_hidden_map,
        unitarity.test_stage_layout,
        adjoints.test_diag_phase_adjoint,
        adjoints.test_fft_adjoint,
        adjoints.test_ifft_adjoint,
        adjoints.test_permutation_adjoint,
        adjoints.test_householder_adjoint,
        adjoints.test_hidden_map_adjoint,
        grads.test_phase_grad_matches_autograd,
        grads.test_householder_grad_matches_autograd,
        grads.test_tangent_projection_matches_autograd,
    ]

    for i, test_method in enumerate(test_methods, 1):
        try:
            test_method()
            print(f"✓ Test {i}/{len(test_methods)}: {test_method.__name__}")
        except Exception as e:
            print(f"✗ Test {i}/{len(test_methods)}: {test_method.__name__} - {e}")
            raise

    print("All transform tests passed! ✓")


if __name__ == "__main__":
    run_transform_tests()
