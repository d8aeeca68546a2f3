"""
TensorView entity - a typed, shaped, strided window over a buffer.

Views never copy data when transformed: `flatten`, `permute`, `squeeze` and
`view` all return a new view over the same buffer with a new shape and new
strides. Strides are counted in elements, not bytes.
"""
import math
import operator
from collections.abc import Sequence
from dataclasses import replace

import numpy as np

from featureview.domain.entities.buffer import (
    Buffer,
    BufferKind,
    BorrowedBuffer,
    OwnedBuffer,
)
from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_type import ArrayType, FeatureType
from featureview.domain.entities.shape import (
    DYNAMIC,
    element_count,
    resolve_shape,
    row_major_strides,
)
from featureview.domain.errors import (
    ElementCountMismatch,
    IndexOutOfRange,
    InvalidOperation,
    InvalidShape,
)


def _numpy_dtype(dtype) -> np.dtype | None:
    if dtype is None:
        return None
    if isinstance(dtype, Dtype):
        return dtype.to_numpy()
    return np.dtype(dtype)


def _dims(args: tuple) -> tuple[int, ...]:
    # Accept both `f(1, 0)` and `f((1, 0))`
    if len(args) == 1 and isinstance(args[0], Sequence):
        return tuple(args[0])
    return tuple(args)


class TensorView(Feature):
    """
    Strided, typed view over an owned, borrowed or native buffer.

    Views are not thread-safe. Concurrent writes to views over the same
    buffer must be serialized by the caller.

    Examples
    --------
    >>> view = TensorView.from_array(np.zeros(24, dtype=np.float32), shape=(2, 3, 4))
    >>> view.strides
    (12, 4, 1)
    >>> view.permute(2, 1, 0).shape
    (4, 3, 2)
    """

    def __init__(
        self,
        buffer: Buffer,
        feature_type: ArrayType,
        strides: Sequence[int] | None = None,
    ):
        """
        Create a view over a buffer.

        Parameters
        ----------
        buffer : Buffer
            Backing buffer. The view takes over this buffer reference, so
            disposing the view releases it.
        feature_type : ArrayType
            Name, data type and shape of the view. A `None` shape makes the
            view shapeless, and a dynamic axis is resolved from the buffer length.
        strides : Sequence[int] | None
            Strides in elements. Defaults to row-major strides for the shape.

        Raises
        ------
        InvalidShape
            If the dynamic axis cannot be resolved, or the shape addresses more
            elements than the buffer holds.
        InvalidOperation
            If the buffer element type does not match the feature type.
        """
        array = buffer.as_array()
        if array.dtype != feature_type.dtype.to_numpy():
            raise InvalidOperation(
                f"Buffer of {array.dtype} cannot back a {feature_type.dtype.name.lower()} view"
            )
        shape = feature_type.shape
        if shape is not None:
            if DYNAMIC in shape:
                shape = resolve_shape(shape, array.size)
                feature_type = replace(feature_type, shape=shape)
            strides = tuple(strides) if strides is not None else row_major_strides(shape)
            if len(strides) != len(shape):
                raise InvalidShape(f"Strides {strides} do not match shape {shape}")
            max_offset = sum((size - 1) * stride for size, stride in zip(shape, strides))
            if element_count(shape) > array.size or max_offset >= array.size:
                raise InvalidShape(
                    f"Shape {shape} addresses more than the {array.size} elements in the buffer"
                )
        else:
            strides = None
        self._buffer = buffer
        self._type = feature_type
        self._strides = strides

    # region Constructors

    @classmethod
    def from_array(cls, data, shape=None, dtype=None, name: str | None = None) -> "TensorView":
        """
        Create a view over a private copy of application data.

        Parameters
        ----------
        data : array-like
            Data to copy.
        shape : Sequence[int] | None
            View shape, possibly with one dynamic axis. Defaults to the data's
            own shape (a scalar gives a shapeless view).
        dtype : Dtype | np.dtype | None
            Element type. Defaults to the data's own type.
        name : str | None
            Optional feature name.
        """
        buffer = OwnedBuffer(data, dtype=_numpy_dtype(dtype))
        if shape is None:
            shape = np.shape(data) or None
        return cls(buffer, ArrayType(cls._dtype_of(buffer), name=name, shape=shape))

    @classmethod
    def borrow(cls, source, shape=None, dtype=None, name: str | None = None) -> "TensorView":
        """
        Create a zero-copy view over caller-owned memory.

        The caller keeps ownership of `source` and must keep it alive and
        unmodified by other threads while the view, or any view derived from
        it, is in use. Disposing the view never frees `source`.

        Parameters
        ----------
        source : np.ndarray | bytes | bytearray | memoryview | ctypes array
            Contiguous caller memory.
        shape : Sequence[int] | None
            View shape. Defaults to the array shape for numpy arrays, and to a
            shapeless view otherwise.
        dtype : Dtype | np.dtype | None
            Element type used to interpret the memory.
        name : str | None
            Optional feature name.
        """
        buffer = BorrowedBuffer(source, dtype=_numpy_dtype(dtype))
        if shape is None and isinstance(source, np.ndarray) and source.ndim > 0:
            if buffer.as_array().size == source.size:
                shape = source.shape
        return cls(buffer, ArrayType(cls._dtype_of(buffer), name=name, shape=shape))

    @classmethod
    def shapeless(cls, data, dtype=None, name: str | None = None) -> "TensorView":
        """Create a shapeless view over a private copy of `data`."""
        buffer = OwnedBuffer(data, dtype=_numpy_dtype(dtype))
        return cls(buffer, ArrayType(cls._dtype_of(buffer), name=name))

    @staticmethod
    def _dtype_of(buffer: Buffer) -> Dtype:
        dtype = Dtype.from_numpy(buffer.as_array().dtype)
        if dtype is Dtype.UNDEFINED:
            raise InvalidOperation(f"Unsupported element type {buffer.as_array().dtype}")
        return dtype

    # endregion

    # region Inspection

    @property
    def type(self) -> ArrayType:
        return self._type

    @property
    def name(self) -> str | None:
        return self._type.name

    @property
    def dtype(self) -> Dtype:
        return self._type.dtype

    @property
    def shape(self) -> tuple[int, ...] | None:
        return self._type.shape

    @property
    def strides(self) -> tuple[int, ...] | None:
        return self._strides

    @property
    def kind(self) -> BufferKind:
        return self._buffer.kind

    @property
    def buffer(self) -> Buffer:
        return self._buffer

    @property
    def element_size(self) -> int:
        return self._type.dtype.itemsize

    @property
    def element_count(self) -> int:
        """Number of elements in the view, or in the buffer when shapeless."""
        if self.shape is None:
            return self._buffer.length
        return element_count(self.shape)

    @property
    def nbytes(self) -> int:
        return self.element_count * self.element_size

    @property
    def is_contiguous(self) -> bool:
        """Whether the strides are the row-major strides of the shape."""
        return self.shape is None or self._strides == row_major_strides(self.shape)

    @property
    def released(self) -> bool:
        return self._buffer.released

    # endregion

    # region Indexing

    def __getitem__(self, index):
        return self._buffer.as_array()[self._linear_index(index)]

    def __setitem__(self, index, value) -> None:
        array = self._buffer.as_array()
        if not array.flags.writeable:
            raise InvalidOperation("Cannot write to a read-only buffer")
        array[self._linear_index(index)] = value

    def _linear_index(self, index) -> int:
        if self.shape is None:
            if isinstance(index, tuple):
                raise IndexOutOfRange("Shapeless view only supports linear indexing")
            linear = operator.index(index)
            if not 0 <= linear < self.element_count:
                raise IndexOutOfRange(f"Index {linear} is out of range for {self.element_count} elements")
            return linear
        if not isinstance(index, tuple):
            index = (index,)
        if len(index) != len(self.shape):
            raise IndexOutOfRange(f"Expected {len(self.shape)} indices but got {len(index)}")
        linear = 0
        for axis, (idx, size, stride) in enumerate(zip(index, self.shape, self._strides)):
            idx = operator.index(idx)
            if not 0 <= idx < size:
                raise IndexOutOfRange(f"Index {idx} is out of range for axis {axis} with size {size}")
            linear += idx * stride
        return linear

    # endregion

    # region Viewing

    def flatten(self, start_dim: int = 0, end_dim: int = -1) -> "TensorView":
        """
        Collapse the axes in `[start_dim, end_dim]` into a single axis.

        Negative dimensions count from the last axis. Axes outside the range
        are kept in order.

        Raises
        ------
        InvalidShape
            If the view is shapeless or the range is invalid.
        InvalidOperation
            If the axes cannot be merged without copying, as happens after
            some permutations.
        """
        shape = self._require_shape("flatten")
        rank = len(shape)
        start = start_dim + rank if start_dim < 0 else start_dim
        end = end_dim + rank if end_dim < 0 else end_dim
        if not 0 <= start <= end < rank:
            raise InvalidShape(f"Cannot flatten dims {start_dim}..{end_dim} of shape {shape}")
        axes = [i for i in range(start, end + 1) if shape[i] != 1]
        for outer, inner in zip(axes, axes[1:]):
            if self._strides[outer] != shape[inner] * self._strides[inner]:
                raise InvalidOperation(f"Cannot flatten non-contiguous dims {start}..{end} without copying")
        merged_stride = self._strides[axes[-1]] if axes else 1
        new_shape = shape[:start] + (math.prod(shape[start:end + 1]),) + shape[end + 1:]
        new_strides = self._strides[:start] + (merged_stride,) + self._strides[end + 1:]
        return self._derive(new_shape, new_strides)

    def permute(self, *dims: int) -> "TensorView":
        """
        Reorder the axes of this view, generalizing a transpose.

        The strides follow their axes, so no data moves and
        `view.permute(1, 0)[i, j] == view[j, i]`.

        Raises
        ------
        InvalidShape
            If the view is shapeless or `dims` is not a permutation of the axes.
        """
        shape = self._require_shape("permute")
        dims = _dims(dims)
        if sorted(dims) != list(range(len(shape))):
            raise InvalidShape(f"{dims} is not a permutation of the axes of shape {shape}")
        new_shape = tuple(shape[d] for d in dims)
        new_strides = tuple(self._strides[d] for d in dims)
        return self._derive(new_shape, new_strides)

    def squeeze(self, dim: int = -1) -> "TensorView":
        """
        Remove axes of size 1.

        Parameters
        ----------
        dim : int
            Axis to remove. When negative, every axis of size 1 is removed.
            A view whose axes are all removed keeps a single axis of size 1.

        Raises
        ------
        InvalidShape
            If the view is shapeless, `dim` is out of range, or axis `dim`
            does not have size 1.
        """
        shape = self._require_shape("squeeze")
        if dim < 0:
            keep = [i for i, size in enumerate(shape) if size != 1]
        else:
            if dim >= len(shape):
                raise InvalidShape(f"Cannot squeeze dim {dim} of shape {shape}")
            if shape[dim] != 1:
                raise InvalidShape(f"Cannot squeeze dim {dim} of size {shape[dim]} in shape {shape}")
            keep = [i for i in range(len(shape)) if i != dim]
        if not keep:
            return self._derive((1,), (1,))
        return self._derive(tuple(shape[i] for i in keep), tuple(self._strides[i] for i in keep))

    def view(self, *shape: int) -> "TensorView":
        """
        Create a view of this view with a different shape.

        One axis may be -1, in which case its size is computed from the
        element count. The new view has row-major strides.

        Raises
        ------
        InvalidShape
            If the view is shapeless or the new shape is malformed.
        ElementCountMismatch
            If the new shape does not hold the same number of elements.
        InvalidOperation
            If this view is not contiguous.
        """
        current = self._require_shape("view")
        if not self.is_contiguous:
            raise InvalidOperation(f"Cannot view non-contiguous shape {current} without copying")
        count = element_count(current)
        new_shape = resolve_shape(_dims(shape), count)
        if element_count(new_shape) != count:
            raise ElementCountMismatch(f"Shape {current} cannot be viewed as {new_shape}")
        return self._derive(new_shape)

    def _require_shape(self, operation: str) -> tuple[int, ...]:
        if self.shape is None:
            raise InvalidShape(f"Cannot {operation} a shapeless view")
        return self.shape

    def _derive(self, shape: tuple[int, ...], strides: tuple[int, ...] | None = None) -> "TensorView":
        return TensorView(self._buffer.alias(), self._type.with_shape(shape), strides)

    # endregion

    # region Copying

    def numpy(self) -> np.ndarray:
        """
        Get a numpy array sharing memory with this view.

        Shapeless views give the flat buffer. The array follows the view's
        strides, so permuted views give a transposed array.
        """
        flat = self._buffer.as_array()
        if self.shape is None:
            return flat
        byte_strides = tuple(stride * flat.itemsize for stride in self._strides)
        return np.lib.stride_tricks.as_strided(flat, shape=self.shape, strides=byte_strides)

    def __array__(self, dtype=None, copy=None):
        array = self.numpy()
        if dtype is not None:
            array = array.astype(dtype, copy=False)
        return array.copy() if copy else array

    def copy_to(self, destination) -> None:
        """
        Copy the bytes of this view to a destination buffer.

        `element_count * element_size` bytes are copied in row-major order
        of this view's shape.

        Parameters
        ----------
        destination : TensorView | np.ndarray | bytearray | memoryview
            Writable, contiguous destination.

        Raises
        ------
        InvalidOperation
            If this view is shapeless, or the destination is read-only,
            non-contiguous or smaller than the copy.
        """
        if self.shape is None:
            raise InvalidOperation("Cannot copy a shapeless view")
        source = self._raw_bytes()
        target = _writable_bytes(destination)
        if target.size < source.size:
            raise InvalidOperation(
                f"Destination holds {target.size} bytes but {source.size} bytes must be copied"
            )
        target[:source.size] = source

    def to_array(self, dtype=None, truncate: bool = False) -> np.ndarray:
        """
        Copy the view into a new flat array, reinterpreting its bytes.

        Parameters
        ----------
        dtype : Dtype | np.dtype | None
            Element type of the result. Defaults to the view's own type.
        truncate : bool
            What to do when the byte length is not a multiple of the result
            element size. By default this raises; with `truncate=True` the
            trailing bytes are dropped.

        Returns
        -------
        np.ndarray
            One-dimensional array with `nbytes // itemsize` elements.

        Raises
        ------
        InvalidOperation
            If the view is shapeless, or the byte length does not divide
            evenly and `truncate` is False.
        """
        if self.shape is None:
            raise InvalidOperation("Cannot convert a shapeless view to an array")
        target = _numpy_dtype(dtype) or self.dtype.to_numpy()
        raw = self._raw_bytes()
        remainder = raw.size % target.itemsize
        if remainder:
            if not truncate:
                raise InvalidOperation(
                    f"{raw.size} bytes cannot be reinterpreted as whole {target} elements"
                )
            raw = raw[:raw.size - remainder]
        return raw.view(target).copy()

    def _raw_bytes(self) -> np.ndarray:
        return np.ascontiguousarray(self.numpy()).reshape(-1).view(np.uint8)

    # endregion

    # region Feature

    def to_view(self, expected: FeatureType | None = None) -> "TensorView":
        """
        Present this view for a consumer, aliasing the same buffer.

        A shapeless view adopts the expected shape.

        Raises
        ------
        InvalidOperation
            If the expected data type differs from this view's data type.
        """
        if isinstance(expected, ArrayType):
            if expected.dtype not in (Dtype.UNDEFINED, self.dtype):
                raise InvalidOperation(
                    f"Expected {expected.dtype.name.lower()} feature but was given "
                    f"{self.dtype.name.lower()} feature"
                )
            if self.shape is None and expected.shape is not None:
                return TensorView(self._buffer.alias(), self._type.with_shape(expected.shape))
        if self.shape is None:
            return TensorView(self._buffer.alias(), self._type)
        return self._derive(self.shape, self._strides)

    # endregion

    # region Lifetime

    def dispose(self) -> None:
        """
        Release this view's buffer reference.

        Native-backed views created from a prediction output release the
        native handle. Borrowed memory is never freed, and derived views
        never release the source's handle.
        """
        self._buffer.release()

    def __enter__(self) -> "TensorView":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # endregion

    def __repr__(self) -> str:
        return f"TensorView({self._type}, kind={self.kind.value}, strides={self._strides})"


def _writable_bytes(destination) -> np.ndarray:
    if isinstance(destination, TensorView):
        array = destination.buffer.as_array()
    elif isinstance(destination, np.ndarray):
        if not destination.flags.c_contiguous:
            raise InvalidOperation("Cannot copy into a non-contiguous array")
        array = destination.reshape(-1)
    else:
        try:
            array = np.frombuffer(destination, dtype=np.uint8)
        except (TypeError, ValueError) as exc:
            raise InvalidOperation(f"Cannot copy into {type(destination).__name__}") from exc
    if not array.flags.writeable:
        raise InvalidOperation("Cannot copy into a read-only destination")
    return array.view(np.uint8)
