"""
Utility functions and helpers for hal_nn.

This file provides random seed management, device handling, finite-difference
gradient checking, data normalization and shuffling, and CSV helpers.
"""

import torch
import numpy as np
import warnings
from typing import Callable, Sequence, Tuple

from .errors import GradientCheckError
from .params import ParamManager


def set_seed(seed: int = 42) -> None:
    """Configure random number generators for consistent results across runs.

Sets seeds for PyTorch, NumPy, and CUDA (if available) to ensure
experiment reproducibility.

Args:
    seed: Integer value to use as the base random seed"""
    torch.manual_seed(seed)
    np.random.seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed(seed)
        torch.cuda.manual_seed_all(seed)
        # Use deterministic algorithms when possible
        try:
            torch.use_deterministic_algorithms(True)
        except RuntimeError:
            warnings.warn("Deterministic algorithms not available on this platform")


def get_device() -> torch.device:
    """Determine the optimal computing device for model operations.

Prioritizes CUDA GPUs if available, then MPS (Apple Silicon),
falling back to CPU if neither accelerator is available.

Returns:
    PyTorch device object representing the best available device"""
    if torch.cuda.is_available():
        return torch.device("cuda")
    elif torch.backends.mps.is_available():
        return torch.device("mps")
    else:
        return torch.device("cpu")


def count_parameters(manager: ParamManager) -> int:
    """Calculate the total number of trainable scalars held by a ParamManager.

Complex arrays are stored packed as [real | imag], so each complex
parameter counts as two.

Args:
    manager: ParamManager to analyze

Returns:
    Integer count of trainable parameters"""
    return sum(a.numel() for a in manager.get_all_arrays())


def numerical_gradient(loss_fn: Callable[[], float], manager: ParamManager,
                       layer_index: int, array_index: int, eps: float = 1e-6) -> torch.Tensor:
    """
    Centered finite-difference gradient of a scalar loss w.r.t. one array.

    Each element is perturbed by +/- eps through set_array_from_index, and
    loss_fn is evaluated after every perturbation. loss_fn must run a
    complete fresh forward pass (including reset_for_new_sequence) and
    return the loss as a float. The array is restored afterwards.

    Args:
        loss_fn: Closure evaluating the loss of the current parameters
        manager: ParamManager owning the array
        layer_index: Index of the layer's store
        array_index: Flat array index within the store
        eps: Perturbation size

    Returns:
        Tensor shaped like the array holding dL/d(array)
    """
    base = manager.get_array_from_index(layer_index, array_index).detach().clone()
    grad = torch.zeros_like(base)
    flat_grad = grad.view(-1)
    try:
        for i in range(base.numel()):
            plus = base.clone()
            plus.view(-1)[i] += eps
            manager.set_array_from_index(layer_index, array_index, plus)
            loss_plus = loss_fn()

            minus = base.clone()
            minus.view(-1)[i] -= eps
            manager.set_array_from_index(layer_index, array_index, minus)
            loss_minus = loss_fn()

            flat_grad[i] = (loss_plus - loss_minus) / (2 * eps)
    finally:
        manager.set_array_from_index(layer_index, array_index, base)
    return grad


def relative_error(a: torch.Tensor, b: torch.Tensor) -> float:
    """Norm-relative distance ||a - b|| / (||a|| + ||b||), 0 when both vanish."""
    denom = (torch.linalg.vector_norm(a) + torch.linalg.vector_norm(b)).item()
    if denom < 1e-12:
        return 0.0
    return torch.linalg.vector_norm(a - b).item() / denom


def verify_gradient(loss_fn: Callable[[], float], manager: ParamManager,
                    layer_index: int, array_index: int, analytic: torch.Tensor,
                    eps: float = 1e-6, tolerance: float = 1e-3) -> float:
    """
    Compare an analytic gradient with a centered finite difference.

    Args:
        loss_fn: Closure evaluating the loss (see numerical_gradient)
        manager: ParamManager owning the array
        layer_index: Index of the layer's store
        array_index: Flat array index within the store
        analytic: Gradient accumulated by backward for the same parameters
        eps: Perturbation size
        tolerance: Largest accepted relative error

    Returns:
        The relative error

    Raises:
        GradientCheckError: If the relative error exceeds the tolerance
    """
    numeric = numerical_gradient(loss_fn, manager, layer_index, array_index, eps)
    error = relative_error(numeric, analytic.to(numeric.dtype))
    if error > tolerance:
        raise GradientCheckError(
            f"Gradient check failed for layer {layer_index} array {array_index}: "
            f"relative error {error:.3e} > {tolerance:.1e}")
    return error


def normalize_array(x: torch.Tensor, num_std_dev: float = 3.0) -> torch.Tensor:
    """
    Center on the mean and divide by num_std_dev standard deviations.

    A constant array is only centered.
    """
    mean = torch.mean(x)
    spread = num_std_dev * torch.std(x, correction=0)
    if spread.item() > 1e-8:
        return (x - mean) / spread
    return x - mean


def scale(x: torch.Tensor, low: float, high: float) -> torch.Tensor:
    """Linearly map the range of x onto [low, high]."""
    x_min, x_max = torch.min(x), torch.max(x)
    return (high - low) * (x - x_min) / (x_max - x_min) + low


def shuffle_arrays(*arrays: torch.Tensor) -> Tuple[torch.Tensor, ...]:
    """Shuffle several tensors along their first dimension with one permutation."""
    if not arrays:
        return ()
    n = arrays[0].shape[0]
    for a in arrays:
        if a.shape[0] != n:
            raise ValueError(f"All arrays must share the first dimension, got {a.shape[0]} and {n}")
    perm = torch.randperm(n, device=arrays[0].device)
    return tuple(a[perm] for a in arrays)


def write_csv(filename: str, values: Sequence[float]) -> None:
    """Write one value per line."""
    np.savetxt(filename, np.asarray(values, dtype=np.float64).reshape(-1, 1),
               delimiter=",", fmt="%.10g")


def read_csv(filename: str) -> np.ndarray:
    """Read every comma-separated value of a file into a flat float array."""
    return np.loadtxt(filename, delimiter=",", dtype=np.float64, ndmin=1).reshape(-1)
