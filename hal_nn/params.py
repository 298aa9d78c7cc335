"""
Per-layer parameter and state storage.

A ParamStore owns everything a layer instance needs across calls: trainable
arrays, their gradient accumulators, non-trainable buffers, the recurrence
trace and the timestep caches replayed by backward. Layers themselves are
stateless; forward and backward take the store and hold its lock for the whole
call.

ParamManager builds stores for each layer kind and exposes flat views over all
arrays and gradients for the optimizer and for gradient checking.
"""

import threading
import torch
from typing import Any, Dict, List, Optional

from . import initializations
from .complex_ops import to_complex, to_real
from .errors import PreconditionError


class TimestepArena:
    """
    List indexed by timestep that is reused across unrolls.

    put(index, value) appends when index == len(arena) and overwrites when
    index < len(arena). Skipping ahead is an error.
    """

    def __init__(self):
        self._items: List[torch.Tensor] = []

    def put(self, index: int, value: torch.Tensor) -> None:
        if index == len(self._items):
            self._items.append(value)
        elif 0 <= index < len(self._items):
            self._items[index] = value
        else:
            raise PreconditionError(
                f"Cannot store timestep {index} in a cache of length {len(self._items)}")

    def __getitem__(self, index: int) -> torch.Tensor:
        if not 0 <= index < len(self._items):
            raise PreconditionError(
                f"Timestep {index} is not cached (cache length {len(self._items)})")
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items = []


class ParamStore:
    """
    Parameters, gradients and recurrent state of one layer instance.

    Args:
        layer_type: Kind of the owning layer ("dense", "rnn", "unitary")
        weights: Trainable weight tensors
        biases: Trainable bias tensors
        activations: Activation names used by the layer
        initial_state: Trainable initial hidden state (recurrent layers only)
        buffers: Non-trainable tensors such as permutation indices
    """

    def __init__(self, layer_type: str, weights: List[torch.Tensor], biases: List[torch.Tensor],
                 activations: List[str], initial_state: Optional[torch.Tensor] = None,
                 buffers: Optional[Dict[str, torch.Tensor]] = None):
        self.layer_type = layer_type
        self.weights = weights
        self.biases = biases
        self.activations = activations
        self.initial_state = initial_state
        self.buffers = buffers or {}

        self.weight_deltas = [torch.zeros_like(w) for w in weights]
        self.bias_deltas = [torch.zeros_like(b) for b in biases]
        self.initial_state_delta = (torch.zeros_like(initial_state)
                                    if initial_state is not None else None)
        # dL/dh carried from timestep t+1 to t during backward
        self.state_derivative: Optional[torch.Tensor] = None

        self.recurrences = TimestepArena()
        self.inputs = TimestepArena()
        self.outputs = TimestepArena()
        self.optional = TimestepArena()

        self.current_unroll = 0
        self.lock = threading.Lock()

    def arrays(self) -> List[torch.Tensor]:
        """All trainable arrays: weights, then biases, then the initial state."""
        arrays = list(self.weights) + list(self.biases)
        if self.initial_state is not None:
            arrays.append(self.initial_state)
        return arrays

    def deltas(self) -> List[torch.Tensor]:
        """Gradient accumulators, aligned with arrays()."""
        deltas = list(self.weight_deltas) + list(self.bias_deltas)
        if self.initial_state_delta is not None:
            deltas.append(self.initial_state_delta)
        return deltas

    def num_arrays(self) -> int:
        return len(self.arrays())

    def _locate(self, index: int):
        n_w, n_b = len(self.weights), len(self.biases)
        if 0 <= index < n_w:
            return self.weights, self.weight_deltas, index
        if n_w <= index < n_w + n_b:
            return self.biases, self.bias_deltas, index - n_w
        if index == n_w + n_b and self.initial_state is not None:
            return None, None, None
        raise PreconditionError(f"Array index {index} out of range for {self.layer_type} layer")

    def get_array(self, index: int) -> torch.Tensor:
        with self.lock:
            arrays, _, i = self._locate(index)
            return self.initial_state if arrays is None else arrays[i]

    def set_array(self, index: int, value: torch.Tensor) -> None:
        """Replace one trainable array (used by gradient checking)."""
        with self.lock:
            arrays, _, i = self._locate(index)
            current = self.initial_state if arrays is None else arrays[i]
            if value.shape != current.shape:
                raise PreconditionError(
                    f"Array {index} has shape {tuple(current.shape)}, got {tuple(value.shape)}")
            # The store may mutate its arrays in place, so never alias the caller's tensor
            value = value.detach().to(dtype=current.dtype, device=current.device).clone()
            if arrays is None:
                self.initial_state = value
            else:
                arrays[i] = value

    def zero_deltas(self) -> None:
        with self.lock:
            for d in self.deltas():
                d.zero_()
            self.state_derivative = None

    def get_activation(self, index: int = 0) -> str:
        return self.activations[index]


class ParamManager:
    """
    Creates and owns the ParamStore of every layer in a model.

    Args:
        dtype: Real dtype of all parameters (float32 or float64)
        device: Device on which parameters are allocated
    """

    def __init__(self, dtype: torch.dtype = torch.float32, device: Optional[torch.device] = None):
        self.dtype = dtype
        self.device = device
        self.stores: List[ParamStore] = []

    def _init(self, name: str, shape) -> torch.Tensor:
        return initializations.get_initialization(name, shape, dtype=self.dtype, device=self.device)

    def add_dense(self, input_size: int, output_size: int, activation: str,
                  w_init: str, b_init: str) -> ParamStore:
        store = ParamStore("dense",
                           weights=[self._init(w_init, (input_size, output_size))],
                           biases=[self._init(b_init, (1, output_size))],
                           activations=[activation])
        self.stores.append(store)
        return store

    def add_rnn(self, input_size: int, hidden_size: int, output_size: int,
                inner_activation: str, outer_activation: str,
                w_init: str, w_recurrent_init: str, b_init: str, h_init: str) -> ParamStore:
        weights = [
            self._init(w_init, (input_size, hidden_size)),
            self._init(w_recurrent_init, (hidden_size, hidden_size)),
            self._init(w_init, (hidden_size, output_size)),
        ]
        biases = [self._init(b_init, (1, hidden_size)), self._init(b_init, (1, output_size))]
        store = ParamStore("rnn", weights=weights, biases=biases,
                           activations=[inner_activation, outer_activation],
                           initial_state=self._init(h_init, (1, hidden_size)))
        self.stores.append(store)
        return store

    def add_unitary(self, input_size: int, output_size: int, hidden_size: int,
                    activation: str, h_init: str, output_init: str, phase_init: str,
                    householder_init: str, input_init: str, h_bias_init: str,
                    o_bias_init: str, identity_permutation: bool = False) -> ParamStore:
        """
        Allocate the parameters of a Unitary layer.

        Weight layout: 0 input projection, 1-3 phase diagonals, 4-5 Householder
        directions, 6 output projection. Biases: 0 mod-ReLU, 1 output. The
        initial hidden state is a dedicated field.
        """
        weights = [
            self._init(input_init, (input_size, 2 * hidden_size)),
            self._init(phase_init, (1, hidden_size)),
            self._init(phase_init, (1, hidden_size)),
            self._init(phase_init, (1, hidden_size)),
            self._init(householder_init, (1, 2 * hidden_size)),
            self._init(householder_init, (1, 2 * hidden_size)),
            self._init(output_init, (2 * hidden_size, output_size)),
        ]
        biases = [self._init(h_bias_init, (1, hidden_size)),
                  self._init(o_bias_init, (1, output_size))]
        perm = initializations.permutation(hidden_size, identity=identity_permutation,
                                           device=self.device)
        buffers = {"permutation": perm, "inverse_permutation": torch.argsort(perm)}
        store = ParamStore("unitary", weights=weights, biases=biases, activations=[activation],
                           initial_state=self._init(h_init, (1, 2 * hidden_size)),
                           buffers=buffers)
        normalize_householder(store)
        self.stores.append(store)
        return store

    def get_params(self, layer_index: int) -> ParamStore:
        return self.stores[layer_index]

    def num_arrays(self, layer_index: int) -> int:
        return self.stores[layer_index].num_arrays()

    def get_all_arrays(self) -> List[torch.Tensor]:
        return [a for store in self.stores for a in store.arrays()]

    def get_all_deltas(self) -> List[torch.Tensor]:
        return [d for store in self.stores for d in store.deltas()]

    def get_array_from_index(self, layer_index: int, array_index: int) -> torch.Tensor:
        return self.stores[layer_index].get_array(array_index)

    def set_array_from_index(self, layer_index: int, array_index: int, value: torch.Tensor) -> None:
        self.stores[layer_index].set_array(array_index, value)

    def zero_all_deltas(self) -> None:
        for store in self.stores:
            store.zero_deltas()

    def info(self) -> List[Dict[str, Any]]:
        """Summary of each store: kind, activations and array shapes."""
        return [{"type": s.layer_type,
                 "activations": list(s.activations),
                 "shapes": [tuple(a.shape) for a in s.arrays()]} for s in self.stores]


HOUSEHOLDER_INDICES = (4, 5)


def normalize_householder(store: ParamStore) -> None:
    """Rescale the Householder directions of a Unitary store to unit norm, in place."""
    for i in HOUSEHOLDER_INDICES:
        v = to_complex(store.weights[i])
        v = v / torch.linalg.vector_norm(v)
        store.weights[i].copy_(to_real(v))
