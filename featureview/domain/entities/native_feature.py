"""
Native feature handles.

A `NativeFeatureHandle` wraps a feature created by the inference engine. It
is the only place where tensor views cross the engine boundary, in both
directions: `create` turns a feature into an engine input, and `to_view`
turns an engine output back into a tensor view.
"""
import numpy as np

from featureview.domain.entities.buffer import BufferKind, NativeBuffer
from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_type import (
    ArrayType,
    FeatureType,
    ImageType,
)
from featureview.domain.entities.shape import DYNAMIC
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation, InvalidShape, NativeInteropFailure
from featureview.domain.interfaces.engine import (
    NULL_HANDLE,
    FeatureFlags,
    InferenceEngine,
    NativeFeatureType,
)


def to_feature_type(native: NativeFeatureType) -> FeatureType | None:
    """
    Marshal an engine feature type into a feature type.

    Four-axis types become image types, and sequence, dictionary or
    undefined types have no counterpart. A type with more than one dynamic
    axis, such as a fully convolutional input, becomes a shapeless array type.

    Parameters
    ----------
    native : NativeFeatureType
        Feature type reported by the engine.

    Returns
    -------
    FeatureType | None
        Marshalled feature type, or None if the type is not supported.
    """
    if native.dtype in (Dtype.UNDEFINED, Dtype.SEQUENCE, Dtype.DICTIONARY):
        return None
    shape = tuple(native.shape) or None
    if shape is not None and shape.count(DYNAMIC) > 1:
        return ArrayType(native.dtype, name=native.name)
    if shape is not None and len(shape) == 4:
        return ImageType(native.dtype, name=native.name, shape=shape)
    return ArrayType(native.dtype, name=native.name, shape=shape)


class NativeFeatureHandle:
    """
    Owning wrapper around an engine feature handle.

    The handle is released exactly once: either by `dispose`, or by the
    tensor view returned from `to_view`, which takes ownership of it.
    """

    def __init__(self, engine: InferenceEngine, handle: int, keepalive: np.ndarray | None = None):
        if handle == NULL_HANDLE:
            raise NativeInteropFailure("Engine returned a null feature handle")
        self.engine = engine
        self.handle = handle
        # Memory the engine reads from when the feature was created without a copy
        self._keepalive = keepalive
        self._owned = True

    @classmethod
    def create(
        cls,
        engine: InferenceEngine,
        feature: Feature,
        expected: FeatureType | None = None,
    ) -> "NativeFeatureHandle":
        """
        Create an engine feature from a feature.

        The engine is asked not to copy when the data lives in borrowed or
        native memory, and to copy when it lives in an owned buffer.
        Non-contiguous views are materialized first and always copied.

        Parameters
        ----------
        engine : InferenceEngine
            Engine that creates the feature.
        feature : Feature
            Feature to convert.
        expected : FeatureType | None
            Type the model expects for this input, if known.

        Raises
        ------
        InvalidShape
            If the feature shape is unknown or has an unresolved dynamic axis.
        NativeInteropFailure
            If the engine fails to create the feature.
        """
        view = feature.to_view(expected)
        try:
            if view.shape is None or not view.type.is_fully_specified:
                raise InvalidShape(f"Cannot create a native feature from shape {view.shape}")
            if view.is_contiguous:
                data = view.buffer.as_array()[:view.element_count]
                copy = view.kind is BufferKind.OWNED
            else:
                data = np.ascontiguousarray(view.numpy()).reshape(-1)
                copy = True
            flags = FeatureFlags.COPY_DATA if copy else FeatureFlags.NONE
            handle = engine.create_feature(data, view.shape, view.dtype, flags)
            if handle == NULL_HANDLE:
                raise NativeInteropFailure(f"Failed to create native feature for {view.type}")
            return cls(engine, handle, keepalive=None if copy else data)
        finally:
            view.dispose()

    @property
    def type(self) -> ArrayType:
        native = self.engine.feature_type(self.handle)
        return ArrayType(native.dtype, name=native.name, shape=tuple(native.shape) or None)

    @property
    def shape(self) -> tuple[int, ...] | None:
        return self.type.shape

    @property
    def data(self) -> np.ndarray:
        """Flat typed array over the feature data, valid until the handle is released."""
        return self.engine.feature_data(self.handle)

    def to_view(self) -> TensorView:
        """
        Convert this handle into a tensor view that owns it.

        The view reads engine memory without copying, and disposing it
        releases the handle. This handle must not be used afterwards.

        Raises
        ------
        InvalidOperation
            If the handle was already released or handed over.
        """
        if not self._owned:
            raise InvalidOperation("Native feature handle has already been released")
        feature_type = self.type
        engine, handle = self.engine, self.handle
        buffer = NativeBuffer(
            data=lambda: engine.feature_data(handle),
            release=lambda: engine.release_feature(handle),
        )
        self._owned = False
        try:
            return TensorView(buffer, feature_type)
        except Exception:
            buffer.release()
            raise

    def dispose(self) -> None:
        """Release the engine feature. Safe to call more than once."""
        if self._owned:
            self._owned = False
            self.engine.release_feature(self.handle)
        self._keepalive = None

    def __enter__(self) -> "NativeFeatureHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"NativeFeatureHandle(handle={self.handle}, owned={self._owned})"
