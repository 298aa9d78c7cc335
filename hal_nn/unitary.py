"""
Unitary recurrent layer.

The hidden state is complex and evolves as

    z_t = x_t U + W h_{t-1}
    h_t = modReLU(z_t, b)
    o_t = sigma([Re h_t | Im h_t] V + c)

where W = D3 R2 F^-1 D2 Pi R1 F D1 is the structured unitary map from
transforms.py. Gradients are derived by hand. Backward replays the cached
per-timestep quantities in reverse order and accumulates into the store's
gradient slots:

    weights  0 U (complex, packed), 1-3 theta1..3, 4-5 v1, v2 (complex, packed), 6 V
    biases   0 b (mod-ReLU), 1 c (output)
    initial_state  h_0 (complex, packed)
"""

import torch
from typing import Optional

from . import activations
from .complex_ops import to_complex, to_real
from .errors import PreconditionError
from .layers import Layer, check_width
from .params import ParamStore, normalize_householder
from .transforms import (
    HiddenParams,
    hidden_map,
    hidden_map_adjoint_stages,
    hidden_map_stages,
    householder_grad,
    phase_grad,
    tangent_projection,
)


def hidden_params(store: ParamStore) -> HiddenParams:
    """Unpack the hidden-to-hidden parameters of a Unitary store."""
    w = store.weights
    return HiddenParams(
        theta1=w[1],
        v1=to_complex(w[4]),
        permutation=store.buffers["permutation"],
        theta2=w[2],
        v2=to_complex(w[5]),
        theta3=w[3],
        inverse_permutation=store.buffers["inverse_permutation"],
    )


class Unitary(Layer):
    """
    Recurrent layer with a unitary hidden-to-hidden transform.

    Args:
        input_size: Real input feature dimension
        hidden_size: Number of complex hidden units
        output_size: Real output feature dimension
    """

    def __init__(self, input_size: int, hidden_size: int, output_size: int):
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.output_size = output_size

    @torch.no_grad()
    def reset_for_new_sequence(self, store: ParamStore) -> None:
        """
        Start a new unroll: zero the counter, drop the carried state
        derivative and renormalize the Householder directions in place.
        """
        with store.lock:
            store.current_unroll = 0
            store.state_derivative = None
            normalize_householder(store)

    def _initial_state(self, store: ParamStore, batch_size: int,
                       initial_state: Optional[torch.Tensor]) -> torch.Tensor:
        if initial_state is None:
            h0 = store.initial_state
        elif initial_state.is_complex():
            h0 = to_real(initial_state)
        else:
            h0 = initial_state
        check_width(h0, 2 * self.hidden_size, "Unitary initial state")
        if h0.shape[0] not in (1, batch_size):
            raise PreconditionError(
                f"Initial state batch {h0.shape[0]} does not match input batch {batch_size}")
        # Make a copy of h0 for all batch inputs
        return h0.expand(batch_size, -1).to(store.weights[0].dtype).clone()

    @torch.no_grad()
    def forward(self, store: ParamStore, inputs: torch.Tensor,
                initial_state: Optional[torch.Tensor] = None) -> torch.Tensor:
        """
        Run one timestep of the unitary RNN.

        Args:
            store: Parameter/state store of this layer
            inputs: Real input [batch, input_size]
            initial_state: Optional hidden state to start from, only valid at
                timestep 0. Complex [batch|1, hidden] or packed real
                [batch|1, 2 * hidden].

        Returns:
            Activated output [batch, output_size]
        """
        with store.lock:
            t = store.current_unroll
            check_width(inputs, self.input_size, "Unitary input")
            batch_size = inputs.shape[0]

            if t == 0:
                store.recurrences.put(0, self._initial_state(store, batch_size, initial_state))
            elif initial_state is not None:
                raise PreconditionError("An initial state can only be supplied at timestep 0")

            u = to_complex(store.weights[0])
            v = store.weights[6]
            mod_bias, out_bias = store.biases

            h_prev = to_complex(store.recurrences[t])
            if h_prev.shape[0] != batch_size:
                raise PreconditionError(
                    f"Hidden state batch {h_prev.shape[0]} does not match input batch {batch_size}")

            # h_{t+1} = modReLU(W h_t + x_t U, b)
            wh = hidden_map(hidden_params(store), h_prev)
            c_inputs = inputs.to(u.dtype)
            z = torch.matmul(c_inputs, u) + wh
            new_h = activations.mod_relu(z, mod_bias)

            # o_t = sigma([Re h | Im h] V + c)
            packed_h = to_real(new_h)
            out = activations.get_activation(store.activations[0],
                                             torch.matmul(packed_h, v) + out_bias)

            store.inputs.put(t, c_inputs)
            store.recurrences.put(t + 1, packed_h)
            store.outputs.put(t, out)
            store.optional.put(t, z)
            store.current_unroll += 1
            return out

    @torch.no_grad()
    def backward(self, store: ParamStore, delta: torch.Tensor) -> torch.Tensor:
        """
        Back-propagate one timestep, newest first.

        Args:
            store: Parameter/state store of this layer
            delta: Gradient of the loss w.r.t. this timestep's output

        Returns:
            Real gradient w.r.t. this timestep's input [batch, input_size]
        """
        with store.lock:
            t = store.current_unroll
            if t < 1:
                raise PreconditionError("Cannot call backward pass without at least 1 forward pass")
            check_width(delta, self.output_size, "Unitary delta")

            u = to_complex(store.weights[0])
            v = store.weights[6]
            mod_bias = store.biases[0]
            params = hidden_params(store)

            h_prev = to_complex(store.recurrences[t - 1])
            packed_h = store.recurrences[t]
            z = store.optional[t - 1]
            if delta.shape[0] != packed_h.shape[0]:
                raise PreconditionError(
                    f"Delta batch {delta.shape[0]} does not match cached batch {packed_h.shape[0]}")
            if store.state_derivative is None:
                store.state_derivative = torch.zeros_like(packed_h)

            # do => dz2
            d_z2 = activations.backprop(store.activations[0], store.outputs[t - 1], delta)

            # dz2 => dh_t, plus dh_t carried back from t+1
            d_h = to_complex(torch.matmul(d_z2, v.transpose(0, 1)))
            d_rec = d_h + to_complex(store.state_derivative)

            # dh_t => dz
            d_z = activations.mod_relu_backward_z(z, mod_bias, d_rec)

            # Left: forward intermediates. Right: gradients w.r.t. the same stages.
            left = hidden_map_stages(params, h_prev)
            right = hidden_map_adjoint_stages(params, d_z)
            d_h_prev = right[0]

            store.weight_deltas[1] += phase_grad(params.theta1, left[0], right[1])
            store.weight_deltas[2] += phase_grad(params.theta2, left[4], right[5])
            store.weight_deltas[3] += phase_grad(params.theta3, left[7], right[8])

            d_v1 = householder_grad(params.v1, left[2], right[3])
            d_v2 = householder_grad(params.v2, left[6], right[7])
            store.weight_deltas[4] += to_real(tangent_projection(params.v1, d_v1))
            store.weight_deltas[5] += to_real(tangent_projection(params.v2, d_v2))

            # dz => dU
            x = store.inputs[t - 1]
            store.weight_deltas[0] += to_real(torch.matmul(x.conj().transpose(0, 1), d_z))

            # dz2 => dV
            store.weight_deltas[6] += torch.matmul(packed_h.transpose(0, 1), d_z2)

            # dh_t => db, dz2 => dc
            d_b = activations.mod_relu_backward_b(z, mod_bias, d_rec)
            store.bias_deltas[0] += d_b.sum(dim=0, keepdim=True)
            store.bias_deltas[1] += d_z2.sum(dim=0, keepdim=True)

            if t == 1:
                # Oldest step: the remaining state gradient belongs to h_0
                store.initial_state_delta += to_real(d_h_prev.sum(dim=0, keepdim=True))
                store.state_derivative = None
            else:
                store.state_derivative = to_real(d_h_prev)

            store.current_unroll -= 1
            # dz => dx
            return torch.matmul(d_z, u.conj().transpose(0, 1)).real

    def __repr__(self) -> str:
        return (f"Unitary(input_size={self.input_size}, hidden_size={self.hidden_size}, "
                f"output_size={self.output_size})")
