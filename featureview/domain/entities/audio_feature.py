"""Audio feature - interleaved floating-point linear PCM samples."""
from collections.abc import Iterable

import numpy as np

from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_type import ArrayType, AudioType, FeatureType
from featureview.domain.entities.shape import DYNAMIC
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation, InvalidShape


class AudioFeature(Feature):
    """
    Audio feature over interleaved float32 samples.

    The feature is presented to models as a `(1, frame_count, channel_count)`
    view aliasing the sample buffer, so no samples are copied.
    """

    def __init__(self, samples: TensorView, sample_rate: int, channel_count: int):
        """
        Parameters
        ----------
        samples : TensorView
            float32 view of interleaved samples.
        sample_rate : int
            Sample rate in Hz.
        channel_count : int
            Number of interleaved channels.

        Raises
        ------
        InvalidOperation
            If the samples are not float32.
        InvalidShape
            If the sample count is not a whole number of frames.
        """
        if samples.dtype is not Dtype.FLOAT32:
            raise InvalidOperation(f"Audio samples must be float32, got {samples.dtype.name.lower()}")
        if samples.shape is None:
            samples = samples.to_view(ArrayType(Dtype.FLOAT32, shape=(DYNAMIC,)))
        if channel_count < 1 or samples.element_count % channel_count != 0:
            raise InvalidShape(
                f"{samples.element_count} samples do not form whole frames of {channel_count} channels"
            )
        self.sample_rate = sample_rate
        self.channel_count = channel_count
        self._samples = samples

    @classmethod
    def from_samples(
        cls,
        sample_buffer,
        sample_rate: int,
        channel_count: int,
        borrow: bool = False,
    ) -> "AudioFeature":
        """
        Create an audio feature from a sample buffer.

        Parameters
        ----------
        sample_buffer : np.ndarray | bytes | bytearray | memoryview
            Interleaved float32 samples.
        borrow : bool
            Whether to wrap the caller's memory instead of copying it.
        """
        if borrow:
            samples = TensorView.borrow(sample_buffer, shape=(DYNAMIC,), dtype=Dtype.FLOAT32)
        else:
            samples = TensorView.from_array(np.asarray(sample_buffer, dtype=np.float32).reshape(-1))
        return cls(samples, sample_rate, channel_count)

    @classmethod
    def from_buffers(
        cls,
        buffers: Iterable,
        sample_rate: int,
        channel_count: int,
    ) -> "AudioFeature":
        """Create an audio feature by concatenating consecutive sample buffers."""
        chunks = [np.asarray(buffer, dtype=np.float32).reshape(-1) for buffer in buffers]
        if not chunks:
            raise InvalidShape("Cannot create an audio feature from no sample buffers")
        return cls.from_samples(np.concatenate(chunks), sample_rate, channel_count)

    @property
    def frame_count(self) -> int:
        return self._samples.element_count // self.channel_count

    @property
    def type(self) -> AudioType:
        return AudioType.create(self.sample_rate, self.channel_count, self.frame_count)

    def to_view(self, expected: FeatureType | None = None) -> TensorView:
        """
        Present the samples as a `(1, frame_count, channel_count)` view.

        Raises
        ------
        InvalidOperation
            If the expected type is not float32, or expects another sample rate.
        InvalidShape
            If the expected type has a different rank or channel count.
        """
        if isinstance(expected, ArrayType):
            if expected.dtype is not Dtype.FLOAT32:
                raise InvalidOperation(
                    f"Expected {expected.dtype.name.lower()} feature but was given float32 audio"
                )
            if expected.shape is not None and expected.dims != 3:
                raise InvalidShape(f"Expected {expected.dims}D feature but was given 3D audio")
            if isinstance(expected, AudioType):
                if expected.sample_rate and expected.sample_rate != self.sample_rate:
                    raise InvalidOperation(
                        f"Expected {expected.sample_rate}Hz audio but was given {self.sample_rate}Hz"
                    )
                if expected.channel_count not in (DYNAMIC, self.channel_count):
                    raise InvalidShape(
                        f"Expected {expected.channel_count} channels but was given {self.channel_count}"
                    )
        return self._samples.view(1, self.frame_count, self.channel_count)

    def dispose(self) -> None:
        self._samples.dispose()
