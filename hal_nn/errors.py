"""
Exception types raised by hal_nn.

Forward/backward code raises PreconditionError when an invariant is broken and
never recovers from it. Name lookups for layers, activations, losses and
initializations raise UnknownConfigError while a model is being assembled.
Adjacent layers whose sizes disagree raise LayerSizeError at the same point.
"""


class HALError(Exception):
    """Base class for all hal_nn errors."""


class PreconditionError(HALError, RuntimeError):
    """A shape, ordering or state invariant was violated."""


class UnknownConfigError(HALError, ValueError):
    """An unrecognized layer kind, activation, loss or initialization name."""


class LayerSizeError(HALError, ValueError):
    """A layer's input size differs from the previous layer's output size."""


class GradientCheckError(HALError, AssertionError):
    """Analytic and numerical gradients disagree beyond tolerance."""
