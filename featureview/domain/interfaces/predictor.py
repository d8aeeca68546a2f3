"""
Predictor Interface.

A predictor turns input features into an output of its own choosing. Model
predictors are not thread-safe, so a predictor must only be used from one
thread at a time. Wrap it in an `AsyncPredictor` to use it from many threads.
"""
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from featureview.domain.entities.feature import Feature

TOutput = TypeVar("TOutput")


class Predictor(ABC, Generic[TOutput]):
    """Abstract interface for synchronous predictors."""

    @abstractmethod
    def predict(self, *inputs: Feature) -> TOutput:
        """
        Make a prediction on one or more input features.

        Parameters
        ----------
        *inputs : Feature
            Input features.

        Returns
        -------
        TOutput
            Prediction output.
        """
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Release the resources held by the predictor."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
