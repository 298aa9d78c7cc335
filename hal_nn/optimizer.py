"""
Stochastic gradient descent over a ParamManager.

Gradients accumulated by the layers during backward are already averaged
over the batch by the loss, so update() applies them as they are and then
zeroes every accumulator for the next batch.
"""

import logging
import torch
from typing import List, Optional

from .params import ParamManager

logger = logging.getLogger(__name__)


class SGD:
    """
    SGD with optional momentum and element-wise gradient clipping.

    Args:
        lr: Learning rate
        momentum: Momentum coefficient (0 disables momentum)
        clip: If given, gradients are clipped to [-clip, clip] before the step
    """

    def __init__(self, lr: float = 0.01, momentum: float = 0.0, clip: Optional[float] = None):
        if lr <= 0:
            raise ValueError(f"Learning rate must be positive, got {lr}")
        if not 0.0 <= momentum < 1.0:
            raise ValueError(f"Momentum must be in [0, 1), got {momentum}")
        self.lr = lr
        self.momentum = momentum
        self.clip = clip
        self.velocities: List[torch.Tensor] = []

    def setup(self, manager: ParamManager) -> None:
        """Allocate momentum buffers matching every trainable array."""
        arrays = manager.get_all_arrays()
        if len(self.velocities) != len(arrays) or any(
                v.shape != a.shape for v, a in zip(self.velocities, arrays)):
            self.velocities = [torch.zeros_like(a) for a in arrays]

    @torch.no_grad()
    def update(self, manager: ParamManager) -> None:
        """Apply one step to every store, then zero their gradients."""
        self.setup(manager)
        index = 0
        for store in manager.stores:
            with store.lock:
                for array, delta in zip(store.arrays(), store.deltas()):
                    grad = delta
                    if self.clip is not None:
                        grad = torch.clamp(grad, -self.clip, self.clip)
                    velocity = self.velocities[index]
                    velocity.mul_(self.momentum).add_(grad)
                    array.sub_(self.lr * velocity)
                    index += 1
        manager.zero_all_deltas()

    def info(self) -> None:
        logger.info("optimizer:      SGD")
        logger.info("learning rate:  %s", self.lr)
        logger.info("momentum:       %s", self.momentum)
        if self.clip is not None:
            logger.info("clip:           %s", self.clip)

    def __repr__(self) -> str:
        return f"SGD(lr={self.lr}, momentum={self.momentum}, clip={self.clip})"
