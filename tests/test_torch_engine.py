"""Tests for the TorchScript engine."""
import io
import json

import numpy as np
import pytest
import torch

from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature_type import ArrayType
from featureview.domain.entities.features import float_array_feature
from featureview.domain.errors import NativeInteropFailure
from featureview.domain.interfaces.engine import ComputeTarget, ModelOptions
from featureview.infrastructure.edge_model import EdgeModel
from featureview.infrastructure.edge_predictor import EdgePredictor
from featureview.infrastructure.torch.engine import SIGNATURE_FILE, TorchEngine, select_device

SIGNATURE = {
    "inputs": [{"name": "features", "dtype": "float32", "shape": [1, 4]}],
    "outputs": [{"name": "doubled", "dtype": "float32", "shape": [1, 4]}],
    "metadata": {"author": "featureview"},
}


class Doubler(torch.nn.Module):
    def forward(self, x):
        return x * 2


def save_module(signature: dict | None = None) -> bytes:
    """Script a Doubler module and serialize it, with an optional signature."""
    extra_files = {SIGNATURE_FILE: json.dumps(signature)} if signature is not None else {}
    buffer = io.BytesIO()
    torch.jit.save(torch.jit.script(Doubler()), buffer, _extra_files=extra_files)
    return buffer.getvalue()


@pytest.fixture
def torch_model():
    model = EdgeModel(TorchEngine(), save_module(SIGNATURE), ModelOptions(compute_target=ComputeTarget.CPU))
    yield model
    model.dispose()


class TestSelectDevice:
    """Tests for select_device."""

    def test_cpu_target(self):
        assert select_device(ModelOptions(compute_target=ComputeTarget.CPU)) == torch.device("cpu")


class TestTorchEngine:
    """Tests for running TorchScript modules."""

    def test_signature_is_read_from_archive(self, torch_model):
        """Inputs, outputs and metadata come from the embedded signature."""
        assert torch_model.inputs == [ArrayType(Dtype.FLOAT32, name="features", shape=(1, 4))]
        assert torch_model.outputs == [ArrayType(Dtype.FLOAT32, name="doubled", shape=(1, 4))]
        assert torch_model.metadata == {"author": "featureview"}

    def test_predict(self, torch_model):
        predictor = EdgePredictor(torch_model)
        with predictor.predict(float_array_feature([[1, 2, 3, 4]])) as outputs:
            assert outputs[0].name == "doubled"
            np.testing.assert_array_equal(outputs[0].numpy(), [[2, 4, 6, 8]])

    def test_module_without_signature(self):
        """Archives without a signature have no declared features."""
        model = EdgeModel(TorchEngine(), save_module(), ModelOptions(compute_target=ComputeTarget.CPU))
        assert model.inputs == []
        assert model.outputs == []
        with EdgePredictor(model) as predictor:
            with predictor.predict(float_array_feature([1, 2])) as outputs:
                assert outputs[0].name is None
                np.testing.assert_array_equal(outputs[0].numpy(), [2, 4])

    def test_invalid_archive_raises(self):
        with pytest.raises(NativeInteropFailure):
            EdgeModel(TorchEngine(), b"not a torchscript archive")
