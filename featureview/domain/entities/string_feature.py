"""String and text features."""
import numpy as np

from featureview.domain.entities.buffer import OwnedBuffer
from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_type import ArrayType, FeatureType, StringType, TextType
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation, InvalidShape


class StringFeature(Feature):
    """
    String feature, mainly used with natural language processing models.

    Crosses the engine boundary as UTF-8 bytes in a `(1, byte_count)` view of
    data type `Dtype.STRING`.
    """

    def __init__(self, text: str, name: str | None = None):
        self.text = text
        self.name = name

    @classmethod
    def from_view(cls, view: TensorView) -> "StringFeature":
        """
        Decode a string feature from a `Dtype.STRING` view, such as a model output.

        Raises
        ------
        InvalidOperation
            If the view does not hold string data.
        """
        if view.dtype is not Dtype.STRING:
            raise InvalidOperation(f"Cannot decode a {view.dtype.name.lower()} view as a string")
        raw = np.ascontiguousarray(view.numpy()).tobytes()
        return cls(raw.rstrip(b"\x00").decode("utf-8"), name=view.name)

    @property
    def type(self) -> StringType:
        return StringType(name=self.name, length=len(self.text))

    def to_view(self, expected: FeatureType | None = None) -> TensorView:
        """
        Encode the text as a string view.

        Raises
        ------
        InvalidShape
            If the text is empty.
        InvalidOperation
            If the consumer expects a non-string array.
        """
        if isinstance(expected, ArrayType) and expected.dtype not in (Dtype.STRING, Dtype.UNDEFINED):
            raise InvalidOperation(
                f"Expected {expected.dtype.name.lower()} feature but was given string feature"
            )
        data = np.frombuffer(self.text.encode("utf-8"), dtype=np.uint8)
        if data.size == 0:
            raise InvalidShape("Cannot create a view over an empty string")
        name = expected.name if expected is not None else self.name
        return TensorView(OwnedBuffer(data), ArrayType(Dtype.STRING, name=name, shape=(1, data.size)))

    def __str__(self) -> str:
        return self.text


class TextFeature(StringFeature):
    """Natural-language text feature."""

    @property
    def type(self) -> TextType:
        return TextType(name=self.name, length=len(self.text))
