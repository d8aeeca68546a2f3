"""Feature collection - a read-only list of features disposed together."""
from collections.abc import Iterator, Sequence
from typing import Generic, TypeVar

TFeature = TypeVar("TFeature")


class FeatureCollection(Sequence, Generic[TFeature]):
    """
    Read-only list of features returned by a prediction.

    Disposing the collection disposes every feature in it. The collection can
    be used as a context manager.
    """

    def __init__(self, features: Sequence[TFeature]):
        self._features = list(features)

    def __getitem__(self, index):
        return self._features[index]

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self) -> Iterator[TFeature]:
        return iter(self._features)

    def dispose(self) -> None:
        for feature in self._features:
            if feature is not None:
                feature.dispose()

    def __enter__(self) -> "FeatureCollection[TFeature]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"FeatureCollection({self._features!r})"
