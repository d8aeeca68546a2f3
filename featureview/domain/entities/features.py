"""
Named feature constructors.

Each input kind has its own constructor, so the caller always states what
kind of feature it is building. No kind is inferred from runtime values.
"""
from collections.abc import Sequence

from featureview.domain.entities.audio_feature import AudioFeature
from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.image_feature import ImageFeature
from featureview.domain.entities.string_feature import StringFeature, TextFeature
from featureview.domain.entities.tensor_view import TensorView


def float_feature(value: float, name: str | None = None) -> TensorView:
    """Create a float32 feature of shape `(1,)`."""
    return TensorView.from_array([value], shape=(1,), dtype=Dtype.FLOAT32, name=name)


def float_array_feature(
    values,
    shape: Sequence[int] | None = None,
    name: str | None = None,
) -> TensorView:
    """Create a float32 array feature, copying `values`."""
    return TensorView.from_array(values, shape=shape, dtype=Dtype.FLOAT32, name=name)


def int_feature(value: int, name: str | None = None) -> TensorView:
    """Create an int32 feature of shape `(1,)`."""
    return TensorView.from_array([value], shape=(1,), dtype=Dtype.INT32, name=name)


def int_array_feature(
    values,
    shape: Sequence[int] | None = None,
    name: str | None = None,
) -> TensorView:
    """Create an int32 array feature, copying `values`."""
    return TensorView.from_array(values, shape=shape, dtype=Dtype.INT32, name=name)


def bool_feature(value: bool, name: str | None = None) -> TensorView:
    """Create a bool feature of shape `(1,)`."""
    return TensorView.from_array([value], shape=(1,), dtype=Dtype.BOOL, name=name)


def string_feature(text: str, name: str | None = None) -> StringFeature:
    return StringFeature(text, name=name)


def text_feature(text: str, name: str | None = None) -> TextFeature:
    return TextFeature(text, name=name)


def image_feature(
    pixel_buffer,
    width: int,
    height: int,
    mean: Sequence[float] | None = None,
    std: Sequence[float] | None = None,
    borrow: bool = False,
) -> ImageFeature:
    """Create an image feature from interleaved uint8 pixels."""
    return ImageFeature.from_pixels(pixel_buffer, width, height, mean=mean, std=std, borrow=borrow)


def audio_feature(
    sample_buffer,
    sample_rate: int,
    channel_count: int,
    borrow: bool = False,
) -> AudioFeature:
    """Create an audio feature from interleaved float32 samples."""
    return AudioFeature.from_samples(sample_buffer, sample_rate, channel_count, borrow=borrow)
