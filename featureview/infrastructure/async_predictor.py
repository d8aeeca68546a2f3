"""
Asynchronous prediction pipeline.

An `AsyncPredictor` wraps a synchronous predictor behind a FIFO queue that
is drained by one dedicated worker thread. Every call to the wrapped
predictor happens on that thread, one request at a time, so a predictor
that is not thread-safe can be shared by any number of callers.

Examples
--------
>>> with to_async(EdgePredictor(model)) as predictor:
...     future = predictor.predict(image_feature(pixels, 224, 224))
...     outputs = future.result()
"""
import asyncio
import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from featureview.domain.entities.feature import Feature
from featureview.domain.errors import PredictionCancelled, PredictionFailed
from featureview.domain.interfaces.predictor import Predictor

logger = logging.getLogger(__name__)

TOutput = TypeVar("TOutput")

# Wakes the worker when it is parked on an empty queue during shutdown
_STOP = object()


class PredictorState(Enum):
    IDLE = "idle"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class PredictionRequest:
    """A single prediction request, consumed exactly once by the worker."""

    inputs: tuple[Feature, ...]
    future: Future = field(default_factory=Future)
    submitted_at: float = field(default_factory=time.perf_counter)


class AsyncPredictor(Predictor[Future], Generic[TOutput]):
    """
    Predictor that runs a wrapped predictor on a dedicated worker thread.

    `predict` only enqueues a request and returns a future. The worker
    completes one request before taking the next, so requests resolve in
    submission order and at most one prediction is in flight.

    A request that fails resolves with `PredictionFailed`, whose cause is the
    exception raised by the wrapped predictor; the worker keeps running.
    Requests still queued when the predictor is disposed, or submitted
    afterwards, resolve with `PredictionCancelled`.

    Parameters
    ----------
    predictor : Predictor[TOutput]
        Synchronous predictor to wrap. The async predictor takes ownership of
        it and disposes it on shutdown.
    """

    def __init__(self, predictor: Predictor[TOutput]):
        self.predictor = predictor
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._state = PredictorState.IDLE
        self._ready = True
        self._worker = threading.Thread(
            target=self._run,
            name=f"{type(predictor).__name__}-worker",
            daemon=True,
        )
        self._worker.start()

    @property
    def ready_for_prediction(self) -> bool:
        """Whether the worker is idle and the predictor accepts requests."""
        with self._lock:
            return self._ready and self._state is PredictorState.IDLE

    @property
    def state(self) -> PredictorState:
        with self._lock:
            return self._state

    def predict(self, *inputs: Feature) -> "Future[TOutput]":
        """
        Submit a prediction request.

        Parameters
        ----------
        *inputs : Feature
            Input features. They must not be modified or disposed until the
            returned future resolves.

        Returns
        -------
        Future[TOutput]
            Future resolving to the wrapped predictor's output.
        """
        request = PredictionRequest(inputs=inputs)
        with self._lock:
            if self._state is PredictorState.IDLE:
                self._queue.put(request)
                return request.future
        _cancel(request, "Predictor has been disposed")
        return request.future

    async def predict_async(self, *inputs: Feature) -> TOutput:
        """Submit a prediction request and await its output from asyncio code."""
        return await asyncio.wrap_future(self.predict(*inputs))

    def _run(self) -> None:
        logger.debug(f"{self._worker.name} started")
        while True:
            request = self._queue.get()
            with self._lock:
                stopping = self._state is not PredictorState.IDLE
            if stopping:
                if request is not _STOP:
                    _cancel(request, "Predictor was disposed before the request started")
                break
            if not request.future.set_running_or_notify_cancel():
                # Cancelled by the caller while queued
                continue
            with self._lock:
                self._ready = False
            try:
                result = self.predictor.predict(*request.inputs)
            except Exception as exc:
                logger.debug(f"Prediction failed after {_elapsed_ms(request):.1f} ms: {exc!r}")
                failure = PredictionFailed(f"Prediction failed: {exc}")
                failure.__cause__ = exc
                outcome = (None, failure)
            else:
                logger.debug(f"Prediction completed in {_elapsed_ms(request):.1f} ms")
                outcome = (result, None)
            with self._lock:
                self._ready = True
            result, failure = outcome
            if failure is not None:
                request.future.set_exception(failure)
            else:
                request.future.set_result(result)
        logger.debug(f"{self._worker.name} stopped")

    def dispose(self) -> None:
        """
        Shut the predictor down.

        Stops dequeueing, resolves every queued request as cancelled, waits
        for the in-flight prediction to complete, then disposes the wrapped
        predictor. Safe to call more than once.
        """
        with self._lock:
            if self._state is not PredictorState.IDLE:
                first = False
            else:
                first = True
                self._state = PredictorState.DRAINING
        if not first:
            self._join()
            return

        cancelled = 0
        while True:
            try:
                request = self._queue.get_nowait()
            except queue.Empty:
                break
            if request is not _STOP and _cancel(request, "Predictor was disposed before the request started"):
                cancelled += 1
        self._queue.put(_STOP)
        self._join()
        self.predictor.dispose()
        with self._lock:
            self._state = PredictorState.STOPPED
        logger.info(f"Async predictor disposed ({cancelled} queued requests cancelled)")

    def _join(self) -> None:
        if threading.current_thread() is not self._worker:
            self._worker.join()


def _elapsed_ms(request: PredictionRequest) -> float:
    # Includes the time spent waiting in the queue
    return (time.perf_counter() - request.submitted_at) * 1000


def _cancel(request: PredictionRequest, reason: str) -> bool:
    # A future the caller already cancelled cannot be resolved again
    if not request.future.set_running_or_notify_cancel():
        return False
    request.future.set_exception(PredictionCancelled(reason))
    return True


def to_async(predictor: Predictor[TOutput]) -> AsyncPredictor[TOutput]:
    """
    Wrap a predictor so it can be used from any thread.

    Parameters
    ----------
    predictor : Predictor[TOutput]
        Synchronous predictor. The async predictor takes ownership of it.

    Returns
    -------
    AsyncPredictor[TOutput]
        Predictor running `predictor` on a dedicated worker thread.
    """
    return AsyncPredictor(predictor)
