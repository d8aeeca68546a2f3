"""Pytest configuration and shared fixtures."""
import numpy as np
import pytest
from fixtures.fake_engine import FakeEngine
from fixtures.predictors import GatedPredictor, RecordingPredictor

from featureview.infrastructure.edge_model import EdgeModel


@pytest.fixture
def engine():
    """
    Provide a FakeEngine whose models double a (1, 4) float32 input.

    Returns:
        FakeEngine: A new engine instance.
    """
    return FakeEngine()


@pytest.fixture
def model(engine):
    """
    Provide an EdgeModel loaded on the fake engine.

    The model is disposed after the test.
    """
    model = EdgeModel(engine, b"graph")
    yield model
    model.dispose()


@pytest.fixture
def recording_predictor():
    return RecordingPredictor()


@pytest.fixture
def gated_predictor():
    """
    Provide a predictor that blocks until its gate is opened.

    The gate is opened after the test so no worker thread is left waiting.
    """
    predictor = GatedPredictor()
    yield predictor
    predictor.gate.set()


@pytest.fixture
def cube():
    """A float32 array of shape (2, 3, 4) holding 0..23."""
    return np.arange(24, dtype=np.float32).reshape(2, 3, 4)
