"""
Prediction Tracker Interface.

This module defines the abstract interface for tracking the progress of a
prediction run. Implementations can provide console output or any other
observability backend.
"""
from abc import ABC, abstractmethod


class PredictionTracker(ABC):
    """
    Abstract interface for tracking prediction progress.

    The lifecycle follows:
    1. on_run_start() - called once at the beginning
    2. on_prediction_end() - called once per request, in submission order
    3. on_run_end() - called once at the end
    """

    @abstractmethod
    def on_run_start(self, total_requests: int, model_name: str | None = None) -> None:
        """
        Called when the run begins.

        Parameters
        ----------
        total_requests : int
            Number of prediction requests that will be submitted.
        model_name : str | None, optional
            Name of the model being run.
        """
        pass

    @abstractmethod
    def on_prediction_end(
        self,
        index: int,
        latency_ms: float,
        error: BaseException | None = None,
    ) -> None:
        """
        Called when a prediction request resolves.

        Parameters
        ----------
        index : int
            Request number (0-indexed).
        latency_ms : float
            Time from submission until the result was collected, in milliseconds.
        error : BaseException | None, optional
            Exception the request resolved with, if it failed or was cancelled.
        """
        pass

    @abstractmethod
    def on_run_end(self) -> None:
        """Called when every request has resolved."""
        pass
