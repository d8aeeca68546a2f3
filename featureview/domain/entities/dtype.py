"""Element data types shared by feature types, views and engines."""
from enum import IntEnum

import numpy as np


class Dtype(IntEnum):
    """
    Feature data type.

    The integer values match the data type codes used by the native
    inference engine, so members can be passed across the boundary as-is.
    """

    UNDEFINED = 0
    UINT8 = 1
    INT16 = 2
    INT32 = 3
    INT64 = 4
    FLOAT32 = 5
    FLOAT64 = 6
    STRING = 7
    SEQUENCE = 8
    DICTIONARY = 9
    INT8 = 10
    UINT16 = 11
    UINT32 = 12
    UINT64 = 13
    FLOAT16 = 14
    BOOL = 15

    @property
    def is_numeric(self) -> bool:
        """Whether elements of this type are stored as fixed-size numbers."""
        return self in _NUMPY_TYPES and self is not Dtype.STRING

    def to_numpy(self) -> np.dtype:
        """
        Get the numpy storage type for this data type.

        Strings are stored as raw UTF-8 bytes.

        Returns
        -------
        np.dtype
            The numpy dtype used to hold elements of this type.

        Raises
        ------
        ValueError
            If the data type has no fixed-size storage (sequences, dictionaries).
        """
        if self not in _NUMPY_TYPES:
            raise ValueError(f"{self.name} has no fixed-size element storage")
        return np.dtype(_NUMPY_TYPES[self])

    @property
    def itemsize(self) -> int:
        """Size of a single element in bytes."""
        return self.to_numpy().itemsize

    @classmethod
    def from_numpy(cls, dtype) -> "Dtype":
        """
        Get the data type that matches a numpy dtype.

        Parameters
        ----------
        dtype : np.dtype | type | str
            Anything accepted by `np.dtype`.

        Returns
        -------
        Dtype
            Matching data type, or `Dtype.UNDEFINED` when there is none.
        """
        return _FROM_NUMPY.get(np.dtype(dtype), cls.UNDEFINED)


_NUMPY_TYPES = {
    Dtype.UINT8: np.uint8,
    Dtype.INT8: np.int8,
    Dtype.INT16: np.int16,
    Dtype.INT32: np.int32,
    Dtype.INT64: np.int64,
    Dtype.UINT16: np.uint16,
    Dtype.UINT32: np.uint32,
    Dtype.UINT64: np.uint64,
    Dtype.FLOAT16: np.float16,
    Dtype.FLOAT32: np.float32,
    Dtype.FLOAT64: np.float64,
    Dtype.BOOL: np.bool_,
    Dtype.STRING: np.uint8,
}

# STRING shares uint8 storage, so the reverse map is built from numeric types only
_FROM_NUMPY = {
    np.dtype(numpy_type): dtype
    for dtype, numpy_type in _NUMPY_TYPES.items()
    if dtype is not Dtype.STRING
}
