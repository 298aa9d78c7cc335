r"""
hal_nn: Hand-Derived Neural Networks with Unitary Recurrence
============================================================

  _           _
 | |__   __ _| |    _ __  _ __
 | '_ \ / _` | |   | '_ \| '_ \
 | | | | (_| | |   | | | | | | |
 |_| |_|\__,_|_|___|_| |_|_| |_|
              |_____|

 ============================================================

A small PyTorch training library whose layers compute their own gradients.
Its centerpiece is a unitary recurrent layer: a complex hidden state evolves
through a norm-preserving map built from phase diagonals, FFTs, a permutation
and Householder reflections, followed by a mod-ReLU nonlinearity.

Main Components:
- to_complex / to_real: Packing between real wire tensors and complex tensors
- transforms: The structured unitary factors and their adjoints
- Unitary: Unitary recurrent layer with hand-derived backward
- Dense, RNN: Real-valued layers sharing the same store protocol
- ParamStore / ParamManager: Parameters, gradients and per-timestep caches
- DenseConfig, RNNConfig, UnitaryConfig: Layer configurations
- Sequential: Model container with forward/backward/fit
- SGD: Optimizer
"""

from .errors import (HALError, PreconditionError, UnknownConfigError, LayerSizeError,
                     GradientCheckError)

from .complex_ops import to_complex, to_real

from .transforms import HiddenParams, hidden_map, hidden_map_adjoint

from .params import ParamStore, ParamManager, TimestepArena

from .layers import Layer, Dense, RNN

from .unitary import Unitary

from .config import (
    DenseConfig,
    RNNConfig,
    UnitaryConfig,
    config_from_dict
)

from .optimizer import SGD

from .model import Sequential

from .utils import (
    set_seed,
    get_device,
    count_parameters,
    numerical_gradient,
    verify_gradient
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "HALError",
    "PreconditionError",
    "UnknownConfigError",
    "LayerSizeError",
    "GradientCheckError",

    # Complex packing
    "to_complex",
    "to_real",

    # Transforms
    "HiddenParams",
    "hidden_map",
    "hidden_map_adjoint",

    # Parameters
    "ParamStore",
    "ParamManager",
    "TimestepArena",

    # Layers
    "Layer",
    "Dense",
    "RNN",
    "Unitary",

    # Config
    "DenseConfig",
    "RNNConfig",
    "UnitaryConfig",
    "config_from_dict",

    # Training
    "SGD",
    "Sequential",

    # Utils
    "set_seed",
    "get_device",
    "count_parameters",
    "numerical_gradient",
    "verify_gradient",
]
