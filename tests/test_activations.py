"""
Tests for activation functions, their derivatives and mod-ReLU.

This module checks reference activation values, compares every
hand-written derivative with torch autograd, and verifies the mod-ReLU
adjoints.
"""

import torch
import pytest
import sys
import os

# Add repository root to path to import hal_nn
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(parent_dir)

from hal_nn import activations, UnknownConfigError

X = torch.tensor([[-1.0, 0.0, 1.0, 2.0, 3.0]], dtype=torch.float64)

REFERENCE = {
    "tanh": [-0.7616, 0.0, 0.7616, 0.9640, 0.9951],
    "sigmoid": [0.2689, 0.5, 0.7311, 0.8808, 0.9526],
    "relu": [0.0, 0.0, 1.0, 2.0, 3.0],
    "lrelu": [-0.01, 0.0, 1.0, 2.0, 3.0],
    "softmax": [0.01165623, 0.03168492, 0.08612854, 0.23412165, 0.63640863],
    "ones": [-1.0, 0.0, 1.0, 2.0, 3.0],
}


class TestActivations:
    """Test class for real activations."""

    def test_reference_values(self):
        """Activations reproduce tabulated values."""
        for name, expected in REFERENCE.items():
            y = activations.get_activation(name, X)
            expected = torch.tensor([expected], dtype=torch.float64)
            assert torch.allclose(y, expected, atol=1e-4), f"{name}: {y}"

    def test_linear_is_identity(self):
        y = activations.get_activation("linear", X)
        assert torch.equal(y, X)
        assert y is not X

    def test_backprop_matches_autograd(self):
        """backprop(name, f(x), delta) equals the vector-Jacobian product of f."""
        # Avoid the relu kink at 0
        x = torch.tensor([[-1.3, -0.2, 0.4, 1.1, 2.5]], dtype=torch.float64)
        delta = torch.tensor([[0.3, -1.2, 0.7, 0.05, -0.4]], dtype=torch.float64)
        for name in ("tanh", "sigmoid", "relu", "lrelu", "softmax", "ones"):
            leaf = x.clone().requires_grad_(True)
            y = activations.get_activation(name, leaf)
            (y * delta).sum().backward()
            actual = activations.backprop(name, y.detach(), delta)
            assert torch.allclose(actual, leaf.grad, atol=1e-10), name

    def test_unknown_activation(self):
        with pytest.raises(UnknownConfigError):
            activations.get_activation("swish", X)
        with pytest.raises(UnknownConfigError):
            activations.validate("swish")

    def test_smoothness(self):
        assert activations.is_smooth("tanh")
        assert not activations.is_smooth("relu")


class TestModReLU:
    """Test class for the complex mod-ReLU nonlinearity."""

    def test_preserves_phase(self):
        z = torch.randn(4, 6, dtype=torch.complex128) + 0.1
        bias = torch.full((1, 6), 0.3, dtype=torch.float64)
        h = activations.mod_relu(z, bias)
        assert torch.allclose(torch.angle(h), torch.angle(z), atol=1e-10)
        assert torch.allclose(torch.abs(h), torch.abs(z) + 0.3, atol=1e-10)

    def test_zeroes_small_magnitudes(self):
        z = torch.tensor([[0.1 + 0.1j, 2.0 + 0.0j]], dtype=torch.complex128)
        bias = torch.tensor([[-0.5, -0.5]], dtype=torch.float64)
        h = activations.mod_relu(z, bias)
        assert h[0, 0] == 0
        assert torch.allclose(h[0, 1], torch.tensor(1.5 + 0.0j, dtype=torch.complex128))

    def test_backward_matches_autograd(self):
        """Input and bias gradients agree with autograd on a real parameterization."""
        torch.manual_seed(3)
        z0 = torch.randn(4, 6, dtype=torch.complex128)
        b0 = torch.rand(1, 6, dtype=torch.float64) * 0.6 - 0.3
        g = torch.randn(4, 6, dtype=torch.complex128)

        z_re = z0.real.clone().requires_grad_(True)
        z_im = z0.imag.clone().requires_grad_(True)
        bias = b0.clone().requires_grad_(True)
        h = activations.mod_relu(torch.complex(z_re, z_im), bias)
        (g.conj() * h).real.sum().backward()

        d_z = activations.mod_relu_backward_z(z0, b0, g)
        d_b = activations.mod_relu_backward_b(z0, b0, g).sum(dim=0, keepdim=True)
        assert torch.allclose(d_z, torch.complex(z_re.grad, z_im.grad), atol=1e-10)
        assert torch.allclose(d_b, bias.grad, atol=1e-10)


def run_activation_tests():
    """Run all activation tests."""
    print("Running activation tests...")

    acts = TestActivations()
    mod = TestModReLU()

    test_methods = [
        acts.test_reference_values,
        acts.test_linear_is_identity,
        acts.test_backprop_matches_autograd,
        acts.test_unknown_activation,
        acts.test_smoothness,
        mod.test_preserves_phase,
        mod.test_zeroes_small_magnitudes,
        mod.test_backward_matches_autograd,
    ]

    for i, test_method in enumerate(test_methods, 1):
        try:
            test_method()
            print(f"✓ Test {i}/{len(test_methods)}: {test_method.__name__}")
        except Exception as e:
            print(f"✗ Test {i}/{len(test_methods)}: {test_method.__name__} - {e}")
            raise

    print("All activation tests passed! ✓")


if __name__ == "__main__":
    run_activation_tests()
