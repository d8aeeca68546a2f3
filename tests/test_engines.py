"""Tests for the engine factory and the NatML library engine."""
from unittest.mock import MagicMock, patch

import pytest

from featureview.domain.entities.features import float_array_feature
from featureview.domain.entities.native_feature import NativeFeatureHandle
from featureview.domain.errors import NativeInteropFailure
from featureview.domain.interfaces.engine import NULL_HANDLE, ComputeTarget, ModelOptions
from featureview.infrastructure.configuration import EngineConfiguration
from featureview.infrastructure.edge_model import EdgeModel
from featureview.infrastructure.engines import create_engine, model_options
from featureview.infrastructure.native.ctypes_engine import CTypesEngine


@pytest.fixture
def native_library():
    """Patch ctypes.CDLL so the NatML engine binds to a mock library."""
    library = MagicMock()
    with patch("ctypes.CDLL", return_value=library) as cdll:
        yield cdll, library


class TestCreateEngine:
    """Tests for create_engine and model_options."""

    def test_natml_backend(self, native_library):
        """The natml backend loads the configured shared library."""
        cdll, _ = native_library
        engine = create_engine(EngineConfiguration(backend="natml", library_path="lib/libNatML.so"))
        assert isinstance(engine, CTypesEngine)
        cdll.assert_called_once_with("lib/libNatML.so")

    def test_torch_backend(self):
        from featureview.infrastructure.torch.engine import TorchEngine

        assert isinstance(create_engine(EngineConfiguration(backend="torch")), TorchEngine)

    def test_model_options(self):
        config = EngineConfiguration(compute_target="gpu", compute_device=2)
        assert model_options(config) == ModelOptions(compute_target=ComputeTarget.GPU, compute_device=2)


class TestCTypesEngine:
    """Tests for the NatML engine against a mock library."""

    def test_missing_library_raises(self):
        """A library that cannot be loaded is reported as an interop failure."""
        with pytest.raises(NativeInteropFailure):
            CTypesEngine("/nonexistent/libNatML.so")

    def test_null_model_raises(self, native_library):
        """A model the library does not create gives a null handle."""
        _, library = native_library
        engine = CTypesEngine("libNatML.so")
        assert engine.create_model(b"graph", ModelOptions()) == NULL_HANDLE
        with pytest.raises(NativeInteropFailure):
            EdgeModel(engine, b"graph")

    def test_model_options_are_released(self, native_library):
        """Native model options are created and released around model creation."""
        _, library = native_library
        engine = CTypesEngine("libNatML.so")
        engine.create_model(b"graph", ModelOptions(compute_target=ComputeTarget.CPU))
        library.NMLCreateModelOptions.assert_called_once()
        library.NMLReleaseModelOptions.assert_called_once()
        assert library.NMLModelOptionsSetComputeTarget.call_args.args[1] == int(ComputeTarget.CPU)

    def test_compute_device_is_not_forwarded(self, native_library, caplog):
        """A device index is never passed to NatML, which expects a native device handle."""
        _, library = native_library
        engine = CTypesEngine("libNatML.so")
        engine.create_model(b"graph", ModelOptions(compute_target=ComputeTarget.GPU, compute_device=1))
        library.NMLModelOptionsSetComputeDevice.assert_not_called()
        assert library.NMLModelOptionsSetComputeTarget.call_args.args[1] == int(ComputeTarget.GPU)
        assert "Ignoring compute device 1" in caplog.text

    def test_null_feature_raises(self, native_library):
        """A feature the library does not create raises an interop failure."""
        engine = CTypesEngine("libNatML.so")
        with pytest.raises(NativeInteropFailure):
            NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]]))
