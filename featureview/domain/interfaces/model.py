from abc import ABC, abstractmethod

from featureview.domain.entities.feature_type import FeatureType
from featureview.domain.entities.native_feature import NativeFeatureHandle


class Model(ABC):
    """Abstract interface for models that run predictions on native features."""

    @property
    @abstractmethod
    def inputs(self) -> list[FeatureType | None]:
        """
        Input feature types, in model order.

        Entries are None for input types that have no feature type counterpart.
        """
        pass

    @property
    @abstractmethod
    def outputs(self) -> list[FeatureType | None]:
        """Output feature types, in model order."""
        pass

    @property
    @abstractmethod
    def metadata(self) -> dict[str, str]:
        """Metadata embedded in the model graph."""
        pass

    @abstractmethod
    def predict(self, *inputs: NativeFeatureHandle) -> list[NativeFeatureHandle]:
        """
        Run a prediction on native input features.

        Parameters
        ----------
        *inputs : NativeFeatureHandle
            Input features, one per model input. They remain owned by the caller.

        Returns
        -------
        list[NativeFeatureHandle]
            Output features, one per model output. The caller owns them.
        """
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Release the model."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
