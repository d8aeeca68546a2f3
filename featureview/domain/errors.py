"""
Error taxonomy.

Every error raised by featureview derives from `FeatureViewError` and from the
closest builtin exception, so callers can catch either the library-specific
type or the generic Python one.
"""
from concurrent.futures import CancelledError


class FeatureViewError(Exception):
    """Base class for all featureview errors."""


class InvalidShape(FeatureViewError, ValueError):
    """A shape is malformed, ambiguous, or incompatible with a transform."""


class ElementCountMismatch(InvalidShape):
    """A new shape does not describe the same number of elements."""


class IndexOutOfRange(FeatureViewError, IndexError):
    """An index addresses an element outside of a view."""


class InvalidOperation(FeatureViewError, RuntimeError):
    """An operation was attempted while its preconditions do not hold."""


class NativeInteropFailure(FeatureViewError, RuntimeError):
    """The inference engine returned a null handle."""


class PredictionFailed(FeatureViewError, RuntimeError):
    """The wrapped predictor raised while processing a request.

    The original exception is available as ``__cause__``.
    """


class PredictionCancelled(FeatureViewError, CancelledError):
    """A queued prediction request was cancelled before it started."""
