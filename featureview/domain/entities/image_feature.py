"""Image feature - interleaved pixel data with per-channel normalization."""
from collections.abc import Sequence

import numpy as np

from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_type import ArrayType, FeatureType, ImageType
from featureview.domain.entities.shape import DYNAMIC
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation, InvalidShape

_MAX_CHANNELS = 4


def _channel_values(values: Sequence[float] | None, default: float) -> np.ndarray:
    result = np.full(_MAX_CHANNELS, default, dtype=np.float32)
    if values is not None:
        values = np.asarray(values, dtype=np.float32).reshape(-1)[:_MAX_CHANNELS]
        result[:values.size] = values
    return result


class ImageFeature(Feature):
    """
    Image feature over an interleaved `(height, width, channels)` uint8 buffer.

    When presented to a floating-point model input, pixels are scaled to
    `[0, 1]` and then normalized per channel as `(pixel - mean) / std`.
    Integer inputs receive the raw pixel values. Resizing is not supported,
    so the model input size must match the image size.

    Parameters
    ----------
    pixels : TensorView
        uint8 view holding `width * height * channels` elements.
    width : int
        Image width in pixels.
    height : int
        Image height in pixels.
    mean : Sequence[float] | None
        Per-channel mean, defaults to zeros.
    std : Sequence[float] | None
        Per-channel standard deviation, defaults to ones.
    """

    def __init__(
        self,
        pixels: TensorView,
        width: int,
        height: int,
        mean: Sequence[float] | None = None,
        std: Sequence[float] | None = None,
    ):
        if pixels.dtype is not Dtype.UINT8:
            raise InvalidOperation(f"Image pixels must be uint8, got {pixels.dtype.name.lower()}")
        if pixels.shape is None:
            pixels = pixels.to_view(ArrayType(Dtype.UINT8, shape=(DYNAMIC,)))
        count = pixels.element_count
        if width < 1 or height < 1 or count % (width * height) != 0:
            raise InvalidShape(f"{count} pixel values do not form a {width}x{height} image")
        channels = count // (width * height)
        if not 1 <= channels <= _MAX_CHANNELS:
            raise InvalidShape(f"Image with {channels} channels is not supported")
        self.width = width
        self.height = height
        self.channels = channels
        self.mean = _channel_values(mean, 0.0)
        self.std = _channel_values(std, 1.0)
        self._pixels = pixels

    @classmethod
    def from_pixels(
        cls,
        pixel_buffer,
        width: int,
        height: int,
        mean: Sequence[float] | None = None,
        std: Sequence[float] | None = None,
        borrow: bool = False,
    ) -> "ImageFeature":
        """
        Create an image feature from a pixel buffer.

        Parameters
        ----------
        pixel_buffer : np.ndarray | bytes | bytearray | memoryview
            Interleaved uint8 pixel data, row by row from the top.
        borrow : bool
            Whether to wrap the caller's memory instead of copying it. A
            borrowed buffer must outlive the feature.
        """
        if borrow:
            pixels = TensorView.borrow(pixel_buffer, shape=(-1,), dtype=Dtype.UINT8)
        else:
            pixels = TensorView.from_array(np.asarray(pixel_buffer, dtype=np.uint8).reshape(-1))
        return cls(pixels, width, height, mean=mean, std=std)

    @property
    def type(self) -> ImageType:
        return ImageType.create(self.width, self.height, self.channels, Dtype.UINT8)

    @property
    def is_normalized(self) -> bool:
        """Whether a non-trivial mean or std is configured."""
        return bool(np.any(self.mean != 0.0) or np.any(self.std != 1.0))

    def to_view(self, expected: FeatureType | None = None) -> TensorView:
        """
        Lay out the image for an image input type.

        The pixel buffer is aliased without a copy when the expected type is
        interleaved uint8 with the same channel count. Otherwise a converted
        copy is returned.

        Raises
        ------
        InvalidShape
            If the expected size differs from the image size, or the image has
            fewer channels than expected.
        InvalidOperation
            If the expected data type cannot hold pixel values.
        """
        target = expected if isinstance(expected, ImageType) else self.type
        for expected_size, size, axis in ((target.width, self.width, "width"), (target.height, self.height, "height")):
            if expected_size not in (DYNAMIC, size):
                raise InvalidShape(f"Expected image {axis} {expected_size} but image has {axis} {size}")
        channels = self.channels if target.channels == DYNAMIC else target.channels
        if channels > self.channels:
            raise InvalidShape(f"Expected {channels} channels but image has {self.channels}")
        if not target.dtype.is_numeric or target.dtype is Dtype.BOOL:
            raise InvalidOperation(f"Cannot lay out image as {target.dtype.name.lower()} feature")
        if (
            target.dtype is Dtype.UINT8
            and target.interleaved
            and channels == self.channels
            and self._pixels.is_contiguous
        ):
            return self._pixels.view(1, self.height, self.width, self.channels)
        pixels = self._pixels.numpy().reshape(self.height, self.width, self.channels)
        data = pixels[..., :channels]
        if np.issubdtype(target.dtype.to_numpy(), np.floating):
            data = data.astype(np.float32) / 255.0
            data = (data - self.mean[:channels]) / self.std[:channels]
        if not target.interleaved:
            data = data.transpose(2, 0, 1)
        return TensorView.from_array(data[np.newaxis], dtype=target.dtype, name=target.name)

    def dispose(self) -> None:
        self._pixels.dispose()
