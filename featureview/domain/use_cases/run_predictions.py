"""
Run Predictions Use-Case.

This module provides a use-case for running a batch of prediction requests
through an asynchronous predictor and collecting their results in
submission order.
"""
import logging
import time
from collections.abc import Sequence
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any

from featureview.domain.entities.feature import Feature
from featureview.domain.errors import PredictionFailed
from featureview.domain.interfaces.prediction_tracker import PredictionTracker
from featureview.domain.interfaces.predictor import Predictor

logger = logging.getLogger(__name__)


@dataclass
class PredictionResult:
    """Outcome of a single prediction request."""

    index: int
    output: Any = None
    error: BaseException | None = None
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


class RunPredictions:
    """
    Use-case for running a batch of prediction requests.

    This use-case orchestrates the workflow of:
    1. Submitting every request to the predictor without waiting
    2. Collecting each result in submission order
    3. Reporting progress to the tracker

    Attributes
    ----------
    predictor : Predictor[Future]
        Asynchronous predictor the requests are submitted to.
    requests : Sequence[Sequence[Feature]]
        Input features of each request.
    tracker : PredictionTracker | None
        Optional tracker notified as requests resolve.
    model_name : str | None
        Name of the model, for tracking purposes.
    """

    def __init__(
        self,
        predictor: Predictor[Future],
        requests: Sequence[Sequence[Feature]],
        tracker: PredictionTracker | None = None,
        model_name: str | None = None,
    ) -> None:
        """
        Initialize the RunPredictions use-case.

        Parameters
        ----------
        predictor : Predictor[Future]
            Asynchronous predictor, such as an `AsyncPredictor`.
        requests : Sequence[Sequence[Feature]]
            Input features of each request.
        tracker : PredictionTracker | None, optional
            Tracker notified as requests resolve.
        model_name : str | None, optional
            Name of the model, for tracking purposes.
        """
        self.predictor = predictor
        self.requests = requests
        self.tracker = tracker
        self.model_name = model_name

    def run(self) -> list[PredictionResult]:
        """
        Execute the prediction workflow.

        Failed or cancelled requests do not stop the run; their error is
        recorded in the corresponding result.

        Returns
        -------
        list[PredictionResult]
            One result per request, in submission order.
        """
        if self.tracker is not None:
            self.tracker.on_run_start(len(self.requests), model_name=self.model_name)

        logger.info(f"Submitting {len(self.requests)} prediction requests...")
        submitted = [(time.perf_counter(), self.predictor.predict(*inputs)) for inputs in self.requests]

        results = []
        for index, (start, future) in enumerate(submitted):
            try:
                output, error = future.result(), None
            except (PredictionFailed, CancelledError) as exc:
                output, error = None, exc
                logger.warning(f"Prediction {index} did not complete: {exc}")
            latency_ms = (time.perf_counter() - start) * 1000
            results.append(PredictionResult(index=index, output=output, error=error, latency_ms=latency_ms))
            if self.tracker is not None:
                self.tracker.on_prediction_end(index, latency_ms, error)

        if self.tracker is not None:
            self.tracker.on_run_end()
        failed = sum(1 for result in results if not result.succeeded)
        logger.info(f"Completed {len(results)} predictions ({failed} failed).")
        return results
