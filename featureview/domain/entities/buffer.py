"""
Buffer ownership variants backing tensor views.

A tensor view wraps exactly one of three buffer kinds:

- `OwnedBuffer`: a contiguous block copied from application data. Releasing
  it drops the reference and the memory is reclaimed by the garbage collector.
- `BorrowedBuffer`: caller memory exposed without a copy. The caller keeps
  ownership and must keep the memory alive while the view is in use.
  Releasing it never frees the memory.
- `NativeBuffer`: memory owned by the inference engine behind a feature
  handle. Releasing the owning buffer invokes the handle release callback.

Each buffer exposes its elements through `as_array()`, a flat typed numpy
array that shares memory with the underlying storage.
"""
from enum import Enum
from typing import Callable

import numpy as np

from featureview.domain.errors import InvalidOperation


class BufferKind(Enum):
    OWNED = "owned"
    BORROWED = "borrowed"
    NATIVE = "native"


class Buffer:
    """Common interface of the buffer variants."""

    kind: BufferKind

    def as_array(self) -> np.ndarray:
        """
        Get the buffer contents as a flat typed array sharing its memory.

        Raises
        ------
        InvalidOperation
            If the buffer has been released.
        """
        raise NotImplementedError

    def alias(self) -> "Buffer":
        """Get a buffer over the same memory that can be released independently."""
        raise NotImplementedError

    def release(self) -> None:
        """Release this reference to the memory. Safe to call more than once."""
        raise NotImplementedError

    @property
    def released(self) -> bool:
        raise NotImplementedError

    @property
    def length(self) -> int:
        """Number of addressable elements."""
        return self.as_array().size

    @property
    def nbytes(self) -> int:
        """Number of addressable bytes."""
        return self.as_array().nbytes


class _ArrayBuffer(Buffer):
    """Buffer over a numpy array held by reference."""

    def __init__(self, array: np.ndarray):
        self._array = array

    def as_array(self) -> np.ndarray:
        if self._array is None:
            raise InvalidOperation(f"Cannot access {self.kind.value} buffer after it has been released")
        return self._array

    def alias(self) -> "Buffer":
        return type(self)._wrap(self.as_array())

    def release(self) -> None:
        self._array = None

    @property
    def released(self) -> bool:
        return self._array is None

    @classmethod
    def _wrap(cls, array: np.ndarray) -> "_ArrayBuffer":
        buffer = cls.__new__(cls)
        _ArrayBuffer.__init__(buffer, array)
        return buffer


class OwnedBuffer(_ArrayBuffer):
    """Contiguous buffer holding a private copy of application data."""

    kind = BufferKind.OWNED

    def __init__(self, data, dtype: np.dtype | None = None):
        """
        Copy data into a new owned buffer.

        Parameters
        ----------
        data : array-like
            Data to copy.
        dtype : np.dtype | None
            Element type. Defaults to the data's own type.
        """
        super().__init__(np.array(data, dtype=dtype, copy=True, order="C").reshape(-1))


class BorrowedBuffer(_ArrayBuffer):
    """Zero-copy buffer over caller-owned memory."""

    kind = BufferKind.BORROWED

    def __init__(self, source, dtype: np.dtype | None = None):
        """
        Borrow memory from an object supporting the buffer protocol.

        Parameters
        ----------
        source : np.ndarray | bytes | bytearray | memoryview | ctypes array
            Caller memory. It must be contiguous, and it must outlive every
            view created over this buffer.
        dtype : np.dtype | None
            Element type used to interpret the memory. Numpy arrays default to
            their own type and other objects default to bytes.

        Raises
        ------
        InvalidOperation
            If the memory is not contiguous, or its size is not a multiple of
            the element size.
        """
        if isinstance(source, np.ndarray):
            if not source.flags.c_contiguous:
                raise InvalidOperation("Cannot borrow a non-contiguous array without copying it")
            array = source.reshape(-1)
        else:
            try:
                array = np.frombuffer(source, dtype=np.uint8)
            except (TypeError, ValueError) as exc:
                raise InvalidOperation(
                    f"Cannot borrow contiguous memory from {type(source).__name__}"
                ) from exc
        if dtype is not None and array.dtype != np.dtype(dtype):
            if array.nbytes % np.dtype(dtype).itemsize != 0:
                raise InvalidOperation(
                    f"Borrowed memory of {array.nbytes} bytes is not a whole number of {np.dtype(dtype)} elements"
                )
            array = array.view(np.uint8).view(dtype)
        super().__init__(array)


class _NativeState:
    """Release state shared by a native buffer and all of its aliases."""

    def __init__(self, data: Callable[[], np.ndarray], release: Callable[[], None]):
        self.data = data
        self.release = release
        self.array: np.ndarray | None = None
        self.released = False


class NativeBuffer(Buffer):
    """
    Buffer over memory owned by the inference engine.

    Only the buffer created with `owner=True` releases the native handle.
    Aliases share its state, so they fail once the owner has been released
    instead of reading freed memory.
    """

    kind = BufferKind.NATIVE

    def __init__(
        self,
        data: Callable[[], np.ndarray],
        release: Callable[[], None],
        owner: bool = True,
    ):
        """
        Parameters
        ----------
        data : Callable[[], np.ndarray]
            Returns the flat typed array over the native memory.
        release : Callable[[], None]
            Releases the native handle.
        owner : bool
            Whether releasing this buffer releases the native handle.
        """
        self._state = _NativeState(data, release)
        self.owner = owner
        self._detached = False

    def as_array(self) -> np.ndarray:
        if self.released:
            raise InvalidOperation("Cannot access native buffer after it has been released")
        if self._state.array is None:
            self._state.array = self._state.data()
        return self._state.array

    def alias(self) -> "NativeBuffer":
        if self.released:
            raise InvalidOperation("Cannot alias native buffer after it has been released")
        alias = NativeBuffer.__new__(NativeBuffer)
        alias._state = self._state
        alias.owner = False
        alias._detached = False
        return alias

    def release(self) -> None:
        if self.owner:
            if not self._state.released:
                self._state.released = True
                self._state.array = None
                self._state.release()
        else:
            self._detached = True

    @property
    def released(self) -> bool:
        return self._state.released or self._detached
