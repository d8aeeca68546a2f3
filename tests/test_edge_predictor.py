"""Tests for EdgePredictor."""
import numpy as np
import pytest
from fixtures.fake_engine import FakeEngine

from featureview.domain.entities.buffer import BufferKind
from featureview.domain.entities.features import float_array_feature, int_array_feature
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation
from featureview.domain.interfaces.engine import FeatureFlags
from featureview.infrastructure.edge_model import EdgeModel
from featureview.infrastructure.edge_predictor import EdgePredictor


def failing(x):
    raise ValueError("runtime error")


class TestEdgePredictor:
    """Tests for predicting with an edge model."""

    def test_predict_returns_output_views(self, engine, model):
        """Outputs are native views over engine memory."""
        predictor = EdgePredictor(model)
        with predictor.predict(float_array_feature([[1, 2, 3, 4]])) as outputs:
            assert len(outputs) == 1
            assert outputs[0].kind is BufferKind.NATIVE
            assert outputs[0].name == "output"
            np.testing.assert_array_equal(outputs[0].numpy(), [[2, 4, 6, 8]])

    def test_input_handles_are_released(self, engine, model):
        """Only the outputs outlive the prediction."""
        outputs = EdgePredictor(model).predict(float_array_feature([[1, 2, 3, 4]]))
        assert engine.live_features == 1
        outputs.dispose()
        assert engine.live_features == 0

    def test_borrowed_input_is_not_copied(self, engine, model):
        data = np.ones((1, 4), dtype=np.float32)
        EdgePredictor(model).predict(TensorView.borrow(data)).dispose()
        assert engine.created[0][3] is FeatureFlags.NONE

    def test_input_type_mismatch_leaks_nothing(self, engine, model):
        """An input that does not match the model type is rejected."""
        with pytest.raises(InvalidOperation):
            EdgePredictor(model).predict(int_array_feature([[1, 2, 3, 4]]))
        assert engine.live_features == 0

    def test_runtime_error_releases_inputs(self):
        """Input handles are released when the model fails."""
        engine = FakeEngine(function=failing)
        predictor = EdgePredictor(EdgeModel(engine, b"graph"))
        with pytest.raises(ValueError):
            predictor.predict(float_array_feature([[1, 2, 3, 4]]))
        assert engine.live_features == 0
        predictor.dispose()

    def test_dispose_disposes_model(self, engine, model):
        with EdgePredictor(model):
            pass
        assert model.disposed
        assert len(engine.released_models) == 1
