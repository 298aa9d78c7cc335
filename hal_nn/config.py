"""
Layer configurations.

Each layer kind has one dataclass. A model is assembled from these configs and
every name they hold (activations, initializations) is checked when the layer
is added, so an unknown name fails the model build instead of a forward pass.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Tuple, Union

from . import activations, initializations
from .errors import UnknownConfigError
from .layers import RNN, Dense, Layer
from .params import ParamManager, ParamStore
from .unitary import Unitary


@dataclass
class DenseConfig:
    """Fully connected layer."""
    kind: ClassVar[str] = "dense"

    input_size: int
    output_size: int
    activation: str = "tanh"
    w_init: str = "glorot_uniform"
    b_init: str = "zeros"

    def validate(self) -> None:
        _check_sizes(self.input_size, self.output_size)
        activations.validate(self.activation)
        initializations.validate(self.w_init)
        initializations.validate(self.b_init)

    def build(self, manager: ParamManager) -> Tuple[Layer, ParamStore]:
        self.validate()
        store = manager.add_dense(self.input_size, self.output_size, self.activation,
                                  self.w_init, self.b_init)
        return Dense(self.input_size, self.output_size), store


@dataclass
class RNNConfig:
    """Elman recurrent layer."""
    kind: ClassVar[str] = "rnn"

    input_size: int
    hidden_size: int
    output_size: int
    inner_activation: str = "tanh"
    outer_activation: str = "tanh"
    w_init: str = "glorot_uniform"
    w_recurrent_init: str = "orthogonal"
    b_init: str = "zeros"
    h_init: str = "zeros"

    def validate(self) -> None:
        _check_sizes(self.input_size, self.hidden_size, self.output_size)
        activations.validate(self.inner_activation)
        activations.validate(self.outer_activation)
        for name in (self.w_init, self.w_recurrent_init, self.b_init, self.h_init):
            initializations.validate(name)

    def build(self, manager: ParamManager) -> Tuple[Layer, ParamStore]:
        self.validate()
        store = manager.add_rnn(self.input_size, self.hidden_size, self.output_size,
                                self.inner_activation, self.outer_activation,
                                self.w_init, self.w_recurrent_init, self.b_init, self.h_init)
        return RNN(self.input_size, self.hidden_size, self.output_size), store


@dataclass
class UnitaryConfig:
    """Unitary recurrent layer with a complex hidden state."""
    kind: ClassVar[str] = "unitary"

    input_size: int
    hidden_size: int
    output_size: int
    activation: str = "linear"
    h_init: str = "uniform"
    output_init: str = "glorot_uniform"
    phase_init: str = "phase"
    householder_init: str = "uniform"
    input_init: str = "glorot_uniform"
    h_bias_init: str = "zeros"
    o_bias_init: str = "zeros"
    identity_permutation: bool = False

    def validate(self) -> None:
        _check_sizes(self.input_size, self.hidden_size, self.output_size)
        activations.validate(self.activation)
        for name in (self.h_init, self.output_init, self.phase_init, self.householder_init,
                     self.input_init, self.h_bias_init, self.o_bias_init):
            initializations.validate(name)
        if self.householder_init == "zeros":
            raise UnknownConfigError("Householder directions cannot be initialized to zeros")

    def build(self, manager: ParamManager) -> Tuple[Layer, ParamStore]:
        self.validate()
        store = manager.add_unitary(self.input_size, self.output_size, self.hidden_size,
                                    self.activation, self.h_init, self.output_init,
                                    self.phase_init, self.householder_init, self.input_init,
                                    self.h_bias_init, self.o_bias_init,
                                    identity_permutation=self.identity_permutation)
        return Unitary(self.input_size, self.hidden_size, self.output_size), store


LayerConfig = Union[DenseConfig, RNNConfig, UnitaryConfig]

LAYER_CONFIGS = {cls.kind: cls for cls in (DenseConfig, RNNConfig, UnitaryConfig)}


def _check_sizes(*sizes: int) -> None:
    for size in sizes:
        if int(size) <= 0:
            raise UnknownConfigError(f"Layer sizes must be positive, got {sizes}")


def config_from_dict(kind: str, params: Dict[str, Any]) -> LayerConfig:
    """
    Build a layer config from a kind name and a dict of string or typed values.

    Args:
        kind: "dense", "rnn" or "unitary"
        params: Field values; sizes may be given as strings

    Returns:
        The matching config dataclass, already validated
    """
    try:
        cls = LAYER_CONFIGS[kind.lower()]
    except KeyError:
        raise UnknownConfigError(f"Unknown layer type: {kind}") from None

    known = {f.name for f in fields(cls)}
    unknown = set(params) - known
    if unknown:
        raise UnknownConfigError(f"Unknown {kind} layer options: {sorted(unknown)}")

    values = {}
    for name, value in params.items():
        if name.endswith("_size"):
            value = int(value)
        elif name == "identity_permutation" and isinstance(value, str):
            value = value.lower() in ("1", "true", "yes")
        values[name] = value
    try:
        config = cls(**values)
    except TypeError as e:
        raise UnknownConfigError(f"Invalid {kind} layer options: {e}") from e
    config.validate()
    return config
