"""Feature type entities - describe features without holding any data."""
from dataclasses import dataclass, field

from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.shape import (
    DYNAMIC,
    element_count,
    is_fully_specified,
    normalize_shape,
)
from featureview.domain.errors import InvalidShape


@dataclass(frozen=True)
class FeatureType:
    """
    Name and data type of a feature.

    Feature types are immutable and can be shared freely between views.
    """

    dtype: Dtype
    name: str | None = None

    def __str__(self) -> str:
        prefix = f"{self.name}: " if self.name else ""
        return f"{prefix}{self.dtype.name.lower()}"


@dataclass(frozen=True)
class ArrayType(FeatureType):
    """
    Feature type of a shaped array.

    The shape may be `None` (shapeless) or contain one dynamic axis (-1),
    which is the case for model inputs that accept a variable size.
    """

    shape: tuple[int, ...] | None = None

    def __post_init__(self):
        object.__setattr__(self, "shape", normalize_shape(self.shape))

    @property
    def dims(self) -> int:
        """Number of axes, or 0 when shapeless."""
        return len(self.shape) if self.shape is not None else 0

    @property
    def is_fully_specified(self) -> bool:
        """Whether the shape is known and has no dynamic axis."""
        return is_fully_specified(self.shape)

    @property
    def element_count(self) -> int | None:
        """Number of elements, or `None` if the shape is unknown or dynamic."""
        return element_count(self.shape) if self.is_fully_specified else None

    def with_shape(self, shape) -> "ArrayType":
        """
        Get an array type with the same name and data type but a new shape.

        Specialized types are not preserved since the new shape may no
        longer satisfy their layout.
        """
        return ArrayType(self.dtype, name=self.name, shape=shape)

    def __str__(self) -> str:
        prefix = f"{self.name}: " if self.name else ""
        shape = f"({', '.join(map(str, self.shape))})" if self.shape is not None else "<shapeless>"
        return f"{prefix}{shape} {self.dtype.name.lower()}"


@dataclass(frozen=True)
class ImageType(ArrayType):
    """
    Feature type of an image batch.

    The shape has four axes, either interleaved `(N, H, W, C)` or planar
    `(N, C, H, W)`. When not given explicitly, the layout is inferred the same
    way the engine does it: interleaved when axis 1 is larger than axis 3.
    """

    interleaved: bool | None = field(default=None, compare=False)

    def __post_init__(self):
        super().__post_init__()
        if self.shape is None or len(self.shape) != 4:
            raise InvalidShape(f"Image type requires a 4-axis shape, got {self.shape}")
        if self.interleaved is None:
            object.__setattr__(self, "interleaved", self.shape[1] > self.shape[3])

    @classmethod
    def create(
        cls,
        width: int,
        height: int,
        channels: int = 3,
        dtype: Dtype = Dtype.UINT8,
        interleaved: bool = True,
        name: str | None = None,
    ) -> "ImageType":
        """
        Create an image type for a single image.

        Parameters
        ----------
        width : int
            Image width in pixels.
        height : int
            Image height in pixels.
        channels : int
            Number of channels.
        dtype : Dtype
            Pixel data type.
        interleaved : bool
            Whether channels are the innermost axis.
        name : str | None
            Optional feature name.
        """
        shape = (1, height, width, channels) if interleaved else (1, channels, height, width)
        return cls(dtype, name=name, shape=shape, interleaved=interleaved)

    @property
    def width(self) -> int:
        return self.shape[2 if self.interleaved else 3]

    @property
    def height(self) -> int:
        return self.shape[1 if self.interleaved else 2]

    @property
    def channels(self) -> int:
        return self.shape[3 if self.interleaved else 1]


@dataclass(frozen=True)
class AudioType(ArrayType):
    """
    Feature type of interleaved linear PCM audio.

    The shape is `(1, frame_count, channel_count)`; the sample rate is carried
    alongside since it does not appear in the shape.
    """

    sample_rate: int = 0

    def __post_init__(self):
        super().__post_init__()
        if self.shape is None or len(self.shape) != 3:
            raise InvalidShape(f"Audio type requires a 3-axis shape, got {self.shape}")

    @classmethod
    def create(
        cls,
        sample_rate: int,
        channel_count: int,
        frame_count: int = DYNAMIC,
        name: str | None = None,
    ) -> "AudioType":
        """Create an audio type, with a dynamic frame count by default."""
        return cls(
            Dtype.FLOAT32,
            name=name,
            shape=(1, frame_count, channel_count),
            sample_rate=sample_rate,
        )

    @property
    def frame_count(self) -> int:
        return self.shape[1]

    @property
    def channel_count(self) -> int:
        return self.shape[2]


@dataclass(frozen=True)
class StringType(FeatureType):
    """Feature type of a string, with its length in characters."""

    dtype: Dtype = Dtype.STRING
    length: int = 0

    def __str__(self) -> str:
        prefix = f"{self.name}: " if self.name else ""
        return f"{prefix}string[{self.length}]"


@dataclass(frozen=True)
class TextType(StringType):
    """Feature type of natural-language text."""
