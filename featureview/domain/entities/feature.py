"""Feature entity - a typed unit of data passed to or returned from a prediction."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from featureview.domain.entities.feature_type import FeatureType

if TYPE_CHECKING:
    from featureview.domain.entities.tensor_view import TensorView


class Feature(ABC):
    """
    Abstract base of all features.

    Every feature can present itself as a `TensorView` laid out for a given
    model input type. That view is what crosses the engine boundary.
    """

    @property
    @abstractmethod
    def type(self) -> FeatureType:
        """
        Get the feature type describing this feature's own data.

        Returns
        -------
        FeatureType
            Type of the data held by the feature.
        """
        ...

    @abstractmethod
    def to_view(self, expected: FeatureType | None = None) -> TensorView:
        """
        Present this feature as a tensor view.

        Parameters
        ----------
        expected : FeatureType | None
            Type the consumer expects, typically a model input type. Features
            use it to pick the layout and data type of the view.

        Returns
        -------
        TensorView
            A view the caller disposes. It may alias the feature's own buffer
            when no conversion is needed.
        """
        ...
