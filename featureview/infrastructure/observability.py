"""
Observability module for prediction runs.

This module provides:
- PredictionTracker implementations (ConsoleTracker, SilentTracker)
- TensorFlow logging suppression utilities
- Progress bar integration using tqdm
"""
import logging
import os
import sys

from tqdm import tqdm

from featureview.domain.interfaces.prediction_tracker import PredictionTracker


def suppress_tensorflow_logging() -> None:
    """
    Suppress verbose TensorFlow logging messages.

    This sets the TensorFlow C++ log level and the `tensorflow` and `absl`
    loggers to ERROR, hiding messages such as:
    - "Loaded cuDNN version..."
    - CPU/GPU feature warnings

    Should be called before importing TensorFlow.
    """
    # Set TensorFlow log level via environment variable (before TF import)
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "2"  # 0=ALL, 1=WARNING+, 2=ERROR+, 3=FATAL

    logging.getLogger("tensorflow").setLevel(logging.ERROR)
    logging.getLogger("absl").setLevel(logging.ERROR)

    # TensorFlow keeps its own logger once imported
    tf = sys.modules.get("tensorflow")
    if tf is not None:
        tf.get_logger().setLevel(logging.ERROR)


class ConsoleTracker(PredictionTracker):
    """
    Prediction tracker with a tqdm progress bar.

    Displays:
    - Overall request progress bar
    - Live latency and failure count

    Attributes
    ----------
    show_latency : bool
        Whether to show the latest latency in the progress bar.
    """

    def __init__(self, show_latency: bool = True) -> None:
        """
        Initialize the ConsoleTracker.

        Parameters
        ----------
        show_latency : bool, optional
            Whether to show the latest latency in the progress bar. Default is True.
        """
        self.show_latency = show_latency
        self._pbar: tqdm | None = None
        self._failures = 0
        self._latencies: list[float] = []

    def on_run_start(self, total_requests: int, model_name: str | None = None) -> None:
        """
        Called when the run begins. Initializes the progress bar.

        Parameters
        ----------
        total_requests : int
            Number of prediction requests that will be submitted.
        model_name : str | None, optional
            Name of the model being run.
        """
        self._failures = 0
        self._latencies = []
        desc = "Predicting"
        if model_name:
            desc = f"Predicting with {model_name}"
        self._pbar = tqdm(total=total_requests, desc=desc, unit="prediction", leave=True)

    def on_prediction_end(
        self,
        index: int,
        latency_ms: float,
        error: BaseException | None = None,
    ) -> None:
        """
        Called when a request resolves. Updates the progress bar.

        Parameters
        ----------
        index : int
            Request number (0-indexed).
        latency_ms : float
            Time from submission until the result was collected, in milliseconds.
        error : BaseException | None, optional
            Exception the request resolved with, if any.
        """
        self._latencies.append(latency_ms)
        if error is not None:
            self._failures += 1
            tqdm.write(f"  ✗ Prediction {index} failed: {error}")

        if self._pbar is not None:
            postfix = {"failed": self._failures}
            if self.show_latency:
                postfix["latency"] = f"{latency_ms:.1f}ms"
            self._pbar.set_postfix(postfix)
            self._pbar.update(1)

    def on_run_end(self) -> None:
        """Called when the run completes. Closes the progress bar and prints a summary."""
        if self._pbar is not None:
            self._pbar.close()
            self._pbar = None
        if self._latencies:
            mean = sum(self._latencies) / len(self._latencies)
            tqdm.write(
                f"Completed {len(self._latencies)} predictions "
                f"({self._failures} failed, mean latency {mean:.1f}ms)"
            )


class SilentTracker(PredictionTracker):
    """
    Prediction tracker that produces no output.

    Useful for testing or when running in non-interactive environments
    where progress output is not desired.
    """

    def on_run_start(self, total_requests: int, model_name: str | None = None) -> None:
        """No-op implementation."""
        pass

    def on_prediction_end(
        self,
        index: int,
        latency_ms: float,
        error: BaseException | None = None,
    ) -> None:
        """No-op implementation."""
        pass

    def on_run_end(self) -> None:
        """No-op implementation."""
        pass
