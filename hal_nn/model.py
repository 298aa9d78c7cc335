"""
Sequential model container.

This file defines the Sequential model that stacks layers, unrolls them over
the time axis of a (batch, time, features) input, injects the loss delta and
walks every timestep back in reverse, then hands the accumulated gradients to
the optimizer.
"""

import logging
import torch
from typing import List, Optional, Tuple, Union

from . import losses
from .config import LayerConfig, config_from_dict
from .errors import LayerSizeError, PreconditionError
from .layers import Layer
from .optimizer import SGD
from .params import ParamManager
from .utils import normalize_array, shuffle_arrays, write_csv

logger = logging.getLogger(__name__)


class Sequential:
    """
Ordered stack of layers trained with hand-derived gradients.

Each layer reads the previous layer's output at the same timestep. A 2-D
input (batch, features) is treated as a single timestep.

Args:
    optimizer: Optimizer applied after each batch (SGD by default)
    loss: Name of the loss function
    device: Device on which parameters live
    dtype: Real parameter dtype (float32 or float64)
"""

    def __init__(self, optimizer: Optional[SGD] = None, loss: str = "mse",
                 device: Optional[torch.device] = None, dtype: torch.dtype = torch.float32):
        self.optimizer = optimizer if optimizer is not None else SGD()
        self.loss = losses.validate(loss)
        self.device = device
        self.dtype = dtype
        self.manager = ParamManager(dtype=dtype, device=device)
        self.layers: List[Layer] = []

    def add(self, layer: Union[LayerConfig, str], **params) -> Layer:
        """
        Append a layer built from a config (or from a kind name and options).

        Raises:
            UnknownConfigError: If the kind or any named option is unknown
            LayerSizeError: If the input size does not match the previous
                layer's output size
        """
        config = config_from_dict(layer, params) if isinstance(layer, str) else layer
        config.validate()
        if self.layers and self.layers[-1].output_size != config.input_size:
            raise LayerSizeError(
                f"Layer input size {config.input_size} does not match previous "
                f"output size {self.layers[-1].output_size}")
        built, _ = config.build(self.manager)
        self.layers.append(built)
        return built

    def _check_built(self) -> None:
        if not self.layers:
            raise PreconditionError("Model has no layers")

    def _prepare(self, x: torch.Tensor) -> Tuple[torch.Tensor, bool]:
        x = torch.as_tensor(x).to(dtype=self.dtype, device=self.device)
        if x.dim() == 2:
            return x.unsqueeze(1), True
        if x.dim() != 3:
            raise PreconditionError(f"Expected (batch, features) or (batch, time, features), "
                                    f"got {tuple(x.shape)}")
        return x, False

    def reset(self) -> None:
        """Start a new unroll in every layer."""
        for i, layer in enumerate(self.layers):
            layer.reset_for_new_sequence(self.manager.get_params(i))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Unroll the model over every timestep of x.

        Args:
            x: Input [batch, features] or [batch, time, features]

        Returns:
            Output [batch, output_size] or [batch, time, output_size],
            matching the rank of x
        """
        self._check_built()
        x, single_step = self._prepare(x)
        self.reset()

        outputs = []
        for t in range(x.shape[1]):
            activation = x[:, t]
            for i, layer in enumerate(self.layers):
                activation = layer.forward(self.manager.get_params(i), activation)
            outputs.append(activation)

        out = torch.stack(outputs, dim=1)
        return out[:, 0] if single_step else out

    def backward(self, prediction: torch.Tensor, target: torch.Tensor) -> float:
        """
        Inject the loss delta and back-propagate through every timestep.

        Args:
            prediction: Output of the last forward call
            target: Either a target for every timestep (same shape as a
                3-D prediction) or a target for the final timestep only
                [batch, output_size]. Timesteps without a target receive
                a zero delta.

        Returns:
            Loss value
        """
        self._check_built()
        target = torch.as_tensor(target).to(dtype=prediction.dtype, device=prediction.device)
        steps = prediction.unsqueeze(1) if prediction.dim() == 2 else prediction

        if target.shape == steps.shape:
            loss = losses.get_loss(self.loss, steps, target)
            deltas = losses.get_loss_derivative(self.loss, steps, target)
        elif target.shape == steps[:, -1].shape:
            loss = losses.get_loss(self.loss, steps[:, -1], target)
            deltas = torch.zeros_like(steps)
            deltas[:, -1] = losses.get_loss_derivative(self.loss, steps[:, -1], target)
        else:
            raise PreconditionError(f"Target shape {tuple(target.shape)} does not match "
                                    f"prediction shape {tuple(prediction.shape)}")

        for t in reversed(range(steps.shape[1])):
            delta = deltas[:, t]
            for i in reversed(range(len(self.layers))):
                delta = self.layers[i].backward(self.manager.get_params(i), delta)
        return loss

    def fit(self, x: torch.Tensor, y: torch.Tensor, batch_size: int, epochs: int = 1,
            shuffle: bool = True, normalize: bool = False, verbose: bool = True,
            loss_csv: Optional[str] = None) -> List[float]:
        """
        Train on (x, y) with mini-batches.

        Args:
            x: Inputs [samples, features] or [samples, time, features]
            y: Targets, per timestep or for the final timestep only
            batch_size: Samples per batch; must divide the number of samples
            epochs: Passes over the data
            shuffle: Shuffle samples at the start of every epoch
            normalize: Normalize x and y by their mean and 3 standard deviations
            verbose: Log the loss of every batch
            loss_csv: If given, write the loss history to this file

        Returns:
            Loss of every batch, in order
        """
        self._check_built()
        x = torch.as_tensor(x).to(dtype=self.dtype, device=self.device)
        y = torch.as_tensor(y).to(dtype=self.dtype, device=self.device)
        n = x.shape[0]
        if y.shape[0] != n:
            raise ValueError(f"Got {n} input samples but {y.shape[0]} target samples")
        if batch_size <= 0 or n < batch_size or n % batch_size != 0:
            raise ValueError(f"Batch size {batch_size} must divide the {n} samples")

        if normalize:
            x = normalize_array(x, 3.0)
            y = normalize_array(y, 3.0)

        iterations = n // batch_size
        logger.info("train samples: %s | target samples: %s | batch size: %d | iterations: %d",
                    tuple(x.shape), tuple(y.shape), batch_size, iterations)

        self.optimizer.setup(self.manager)
        history = []
        for epoch in range(epochs):
            if shuffle:
                x, y = shuffle_arrays(x, y)
            for it in range(iterations):
                start = it * batch_size
                batch_x = x[start:start + batch_size]
                batch_y = y[start:start + batch_size]

                prediction = self.forward(batch_x)
                loss = self.backward(prediction, batch_y)
                self.optimizer.update(self.manager)
                history.append(loss)
                if verbose:
                    logger.info("[epoch %d iter %d] loss %.6f", epoch, it, loss)

        if loss_csv is not None:
            write_csv(loss_csv, history)
        return history

    def info(self) -> None:
        self.optimizer.info()
        logger.info("loss:           %s", self.loss)
        logger.info("num_layers:     %d", len(self.layers))
        for layer, summary in zip(self.layers, self.manager.info()):
            logger.info("  %r activations=%s shapes=%s", layer,
                        summary["activations"], summary["shapes"])

    def __repr__(self) -> str:
        layers = ", ".join(repr(layer) for layer in self.layers)
        return f"Sequential([{layers}], loss={self.loss!r}, optimizer={self.optimizer!r})"
