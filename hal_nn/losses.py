"""
Loss functions for training hal_nn models.

Every loss reduces to a scalar averaged over the batch, and every derivative
is the exact gradient of that scalar w.r.t. the prediction, so the deltas
injected into a model are already batch-averaged.

cross_entropy_softmax and binary_cross_entropy take raw scores (logits).
"""

import torch
import torch.nn.functional as F

from .errors import UnknownConfigError


def mse(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Mean of squared errors over all elements."""
    diff = pred - target
    return torch.mean(diff * diff)


def mse_derivative(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return 2 * (pred - target) / pred.numel()


def l2(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Half squared L2 distance per sample, averaged over the batch."""
    diff = pred - target
    return 0.5 * torch.sum(diff * diff) / pred.shape[0]


def l2_derivative(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return (pred - target) / pred.shape[0]


def cross_entropy_softmax(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """
    Calculate softmax cross entropy against one-hot (or soft) targets.

    Args:
        pred: Scores with shape [batch_size, num_classes]
        target: Target distribution with the same shape

    Returns:
        Scalar tensor, the mean over the batch of -sum(t * log softmax(pred))
    """
    log_probs = F.log_softmax(pred, dim=-1)
    return -torch.sum(target * log_probs) / pred.shape[0]


def cross_entropy_softmax_derivative(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    # Assumes each target row sums to one
    return (torch.softmax(pred, dim=-1) - target) / pred.shape[0]


def binary_cross_entropy(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Sigmoid cross entropy summed over features, averaged over the batch."""
    loss = F.binary_cross_entropy_with_logits(pred, target, reduction="sum")
    return loss / pred.shape[0]


def binary_cross_entropy_derivative(pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    return (torch.sigmoid(pred) - target) / pred.shape[0]


_LOSSES = {
    "mse": (mse, mse_derivative),
    "l2": (l2, l2_derivative),
    "cross_entropy_softmax": (cross_entropy_softmax, cross_entropy_softmax_derivative),
    "binary_cross_entropy": (binary_cross_entropy, binary_cross_entropy_derivative),
}


def _lookup(name: str):
    try:
        return _LOSSES[name]
    except KeyError:
        raise UnknownConfigError(f"Unknown loss: {name}") from None


def validate(name: str) -> str:
    _lookup(name)
    return name


def get_loss(name: str, pred: torch.Tensor, target: torch.Tensor) -> float:
    """Evaluate loss `name` and return it as a Python float."""
    return float(_lookup(name)[0](pred, target))


def get_loss_derivative(name: str, pred: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    """Gradient of loss `name` w.r.t. `pred`."""
    return _lookup(name)[1](pred, target)
