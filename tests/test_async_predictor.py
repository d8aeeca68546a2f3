"""Tests for the asynchronous prediction pipeline."""
import asyncio
import logging
import threading
from concurrent.futures import CancelledError

import pytest

from featureview.domain.errors import PredictionCancelled, PredictionFailed
from featureview.infrastructure.async_predictor import PredictorState, to_async

TIMEOUT = 5


class TestOrdering:
    """Tests for request ordering and the worker thread."""

    def test_requests_resolve_in_submission_order(self, recording_predictor):
        """Requests are run and resolved first in, first out."""
        with to_async(recording_predictor) as predictor:
            futures = [predictor.predict(i) for i in range(20)]
            assert [future.result(timeout=TIMEOUT) for future in futures] == list(range(20))
        assert recording_predictor.calls == list(range(20))

    def test_predictions_run_on_one_worker_thread(self, recording_predictor):
        """Every prediction runs on the same thread, which is not the caller's."""
        with to_async(recording_predictor) as predictor:
            for future in [predictor.predict(i) for i in range(5)]:
                future.result(timeout=TIMEOUT)
        assert len(recording_predictor.threads) == 1
        assert threading.get_ident() not in recording_predictor.threads

    def test_predict_async(self, recording_predictor):
        """Requests can be awaited from asyncio code."""
        with to_async(recording_predictor) as predictor:
            async def run():
                return await predictor.predict_async("features")

            assert asyncio.run(run()) == "features"


class TestSingleFlight:
    """Tests for running at most one prediction at a time."""

    def test_one_prediction_in_flight(self, gated_predictor):
        """Queued requests wait while a prediction is running."""
        with to_async(gated_predictor) as predictor:
            futures = [predictor.predict(i) for i in range(3)]
            assert gated_predictor.entered.wait(TIMEOUT)
            assert not predictor.ready_for_prediction
            assert not futures[1].done()
            gated_predictor.gate.set()
            assert [future.result(timeout=TIMEOUT) for future in futures] == [0, 1, 2]
            assert predictor.ready_for_prediction
        assert gated_predictor.max_active == 1

    def test_ready_when_idle(self, recording_predictor):
        with to_async(recording_predictor) as predictor:
            assert predictor.ready_for_prediction
            assert predictor.state is PredictorState.IDLE


class TestFailures:
    """Tests for failed and cancelled requests."""

    def test_failure_is_propagated(self, recording_predictor):
        """A failing request resolves with PredictionFailed caused by the original error."""
        error = ValueError("bad input")
        with to_async(recording_predictor) as predictor:
            future = predictor.predict(error)
            with pytest.raises(PredictionFailed) as exc_info:
                future.result(timeout=TIMEOUT)
            assert exc_info.value.__cause__ is error

    def test_worker_survives_failure(self, recording_predictor):
        """Requests after a failure still run."""
        with to_async(recording_predictor) as predictor:
            failed = predictor.predict(RuntimeError("boom"))
            succeeded = predictor.predict(1)
            assert succeeded.result(timeout=TIMEOUT) == 1
            assert isinstance(failed.exception(timeout=TIMEOUT), PredictionFailed)

    def test_latency_is_logged(self, recording_predictor, caplog):
        """Completed and failed requests log the time since they were submitted."""
        caplog.set_level(logging.DEBUG, logger="featureview.infrastructure.async_predictor")
        with to_async(recording_predictor) as predictor:
            predictor.predict(1).result(timeout=TIMEOUT)
            predictor.predict(ValueError("bad input")).exception(timeout=TIMEOUT)
        messages = [record.getMessage() for record in caplog.records]
        assert any(message.startswith("Prediction completed in ") for message in messages)
        assert any(message.startswith("Prediction failed after ") for message in messages)

    def test_caller_cancelled_request_is_skipped(self, gated_predictor):
        """A request cancelled while queued never reaches the predictor."""
        with to_async(gated_predictor) as predictor:
            first = predictor.predict(0)
            assert gated_predictor.entered.wait(TIMEOUT)
            second = predictor.predict(1)
            assert second.cancel()
            gated_predictor.gate.set()
            assert predictor.predict(2).result(timeout=TIMEOUT) == 2
            assert first.result(timeout=TIMEOUT) == 0
        assert gated_predictor.calls == [0, 2]


class TestDispose:
    """Tests for shutting the predictor down."""

    def test_dispose_cancels_queued_requests(self, gated_predictor):
        """Queued requests are cancelled and the in-flight one completes."""
        predictor = to_async(gated_predictor)
        running = predictor.predict(0)
        assert gated_predictor.entered.wait(TIMEOUT)
        queued = [predictor.predict(1), predictor.predict(2)]

        shutdown = threading.Thread(target=predictor.dispose)
        shutdown.start()
        for future in queued:
            assert isinstance(future.exception(timeout=TIMEOUT), PredictionCancelled)
        assert predictor.state is PredictorState.DRAINING
        assert not gated_predictor.disposed

        gated_predictor.gate.set()
        shutdown.join(TIMEOUT)
        assert not shutdown.is_alive()
        assert not predictor._worker.is_alive()
        assert running.result(timeout=TIMEOUT) == 0
        assert gated_predictor.calls == [0]
        assert gated_predictor.disposed
        assert predictor.state is PredictorState.STOPPED

    def test_predict_after_dispose_is_cancelled(self, recording_predictor):
        """Requests submitted after shutdown resolve immediately as cancelled."""
        predictor = to_async(recording_predictor)
        predictor.dispose()
        assert not predictor._worker.is_alive()
        future = predictor.predict(1)
        assert future.done()
        with pytest.raises(CancelledError):
            future.result()
        assert not predictor.ready_for_prediction
        assert recording_predictor.calls == []

    def test_dispose_is_idempotent(self, recording_predictor):
        predictor = to_async(recording_predictor)
        predictor.dispose()
        predictor.dispose()
        assert not predictor._worker.is_alive()
        assert recording_predictor.disposed
        assert predictor.state is PredictorState.STOPPED
