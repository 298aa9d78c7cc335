"""
Layer interface and the real-valued layers.

A layer is a stateless description of a computation (its sizes). All state
lives in the ParamStore passed to each call, so a model calls

    out = layer.forward(store, x)        # once per timestep, in order
    dx = layer.backward(store, delta)    # once per timestep, in reverse

with layer.reset_for_new_sequence(store) before every new unroll.
"""

import torch
from abc import ABC, abstractmethod
from typing import Optional

from . import activations
from .errors import PreconditionError
from .params import ParamStore


def check_width(x: torch.Tensor, expected: int, what: str) -> None:
    if x.dim() != 2 or x.shape[-1] != expected:
        raise PreconditionError(
            f"{what} must have shape [batch, {expected}], got {tuple(x.shape)}")


class Layer(ABC):
    """Forward/backward capability shared by every layer kind."""

    input_size: int
    output_size: int

    @abstractmethod
    def forward(self, store: ParamStore, inputs: torch.Tensor,
                initial_state: Optional[torch.Tensor] = None) -> torch.Tensor:
        """Run one timestep and cache what backward needs."""

    @abstractmethod
    def backward(self, store: ParamStore, delta: torch.Tensor) -> torch.Tensor:
        """Consume the most recent cached timestep and return dL/d(inputs)."""

    def reset_for_new_sequence(self, store: ParamStore) -> None:
        """Prepare the store for a new unroll starting at timestep 0."""
        with store.lock:
            store.current_unroll = 0
            store.state_derivative = None


class Dense(Layer):
    """
    Fully connected layer: a_t = sigma(x_t W + b).

    Args:
        input_size: Input feature dimension
        output_size: Output feature dimension
    """

    def __init__(self, input_size: int, output_size: int):
        self.input_size = input_size
        self.output_size = output_size

    @torch.no_grad()
    def forward(self, store: ParamStore, inputs: torch.Tensor,
                initial_state: Optional[torch.Tensor] = None) -> torch.Tensor:
        with store.lock:
            t = store.current_unroll
            check_width(inputs, self.input_size, "Dense input")
            z_t = torch.matmul(inputs, store.weights[0]) + store.biases[0]
            a_t = activations.get_activation(store.activations[0], z_t)

            store.inputs.put(t, inputs)
            store.outputs.put(t, a_t)
            store.current_unroll += 1
            return a_t

    @torch.no_grad()
    def backward(self, store: ParamStore, delta: torch.Tensor) -> torch.Tensor:
        with store.lock:
            t = store.current_unroll
            if t < 1:
                raise PreconditionError("Cannot call backward pass without at least 1 forward pass")
            check_width(delta, self.output_size, "Dense delta")

            # delta_z = delta .* sigma'(z)
            d_z = activations.backprop(store.activations[0], store.outputs[t - 1], delta)
            store.weight_deltas[0] += torch.matmul(store.inputs[t - 1].transpose(0, 1), d_z)
            store.bias_deltas[0] += d_z.sum(dim=0, keepdim=True)

            store.current_unroll -= 1
            return torch.matmul(d_z, store.weights[0].transpose(0, 1))

    def __repr__(self) -> str:
        return f"Dense(input_size={self.input_size}, output_size={self.output_size})"


class RNN(Layer):
    """
    Elman recurrent layer.

    h_t = inner(x_t W + h_{t-1} U + b_h)
    o_t = outer(h_t V + b_o)

    Weights: 0 W, 1 U, 2 V. Biases: 0 b_h, 1 b_o. The initial hidden state is
    the store's dedicated initial_state field.
    """

    def __init__(self, input_size: int, hidden_size: int, output_size: int):
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size

    @torch.no_grad()
    def forward(self, store: ParamStore, inputs: torch.Tensor,
                initial_state: Optional[torch.Tensor] = None) -> torch.Tensor:
        with store.lock:
            t = store.current_unroll
            check_width(inputs, self.input_size, "RNN input")
            batch_size = inputs.shape[0]

            if t == 0:
                h0 = store.initial_state if initial_state is None else initial_state
                check_width(h0, self.hidden_size, "RNN initial state")
                store.recurrences.put(0, h0.expand(batch_size, -1).clone())
            elif initial_state is not None:
                raise PreconditionError("An initial state can only be supplied at timestep 0")

            w, u, v = store.weights
            b_h, b_o = store.biases
            h_prev = store.recurrences[t]
            h_t = activations.get_activation(
                store.activations[0], torch.matmul(inputs, w) + torch.matmul(h_prev, u) + b_h)
            o_t = activations.get_activation(store.activations[1], torch.matmul(h_t, v) + b_o)

            store.inputs.put(t, inputs)
            store.recurrences.put(t + 1, h_t)
            store.outputs.put(t, o_t)
            store.current_unroll += 1
            return o_t

    @torch.no_grad()
    def backward(self, store: ParamStore, delta: torch.Tensor) -> torch.Tensor:
        with store.lock:
            t = store.current_unroll
            if t < 1:
                raise PreconditionError("Cannot call backward pass without at least 1 forward pass")
            check_width(delta, self.output_size, "RNN delta")

            w, u, v = store.weights
            h_prev = store.recurrences[t - 1]
            h_t = store.recurrences[t]
            if store.state_derivative is None:
                store.state_derivative = torch.zeros_like(h_t)

            d_o = activations.backprop(store.activations[1], store.outputs[t - 1], delta)
            store.weight_deltas[2] += torch.matmul(h_t.transpose(0, 1), d_o)
            store.bias_deltas[1] += d_o.sum(dim=0, keepdim=True)

            # output path + recurrent path from t+1
            d_h = torch.matmul(d_o, v.transpose(0, 1)) + store.state_derivative
            d_a = activations.backprop(store.activations[0], h_t, d_h)
            store.weight_deltas[0] += torch.matmul(store.inputs[t - 1].transpose(0, 1), d_a)
            store.weight_deltas[1] += torch.matmul(h_prev.transpose(0, 1), d_a)
            store.bias_deltas[0] += d_a.sum(dim=0, keepdim=True)

            d_h_prev = torch.matmul(d_a, u.transpose(0, 1))
            if t == 1:
                store.initial_state_delta += d_h_prev.sum(dim=0, keepdim=True)
                store.state_derivative = None
            else:
                store.state_derivative = d_h_prev

            store.current_unroll -= 1
            return torch.matmul(d_a, w.transpose(0, 1))

    def __repr__(self) -> str:
        return (f"RNN(input_size={self.input_size}, hidden_size={self.hidden_size}, "
                f"output_size={self.output_size})")
