"""Tests for configuration module."""
import pytest

from featureview.domain.interfaces.engine import ComputeTarget
from featureview.infrastructure.configuration import (
    EngineConfiguration,
    PredictionConfiguration,
    parse_compute_target,
)


class TestParseComputeTarget:
    """Tests for parse_compute_target function."""

    def test_single_name(self):
        """Target names are case-insensitive."""
        assert parse_compute_target("gpu") is ComputeTarget.GPU
        assert parse_compute_target("CPU") is ComputeTarget.CPU

    def test_list_of_names_is_combined(self):
        """A list of targets allows any of them."""
        assert parse_compute_target(["cpu", "gpu"]) == ComputeTarget.CPU | ComputeTarget.GPU

    def test_raw_flag_value(self):
        assert parse_compute_target(7) == ComputeTarget.ALL

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="Unknown compute target 'tpu'"):
            parse_compute_target("tpu")


class TestEngineConfiguration:
    """Tests for EngineConfiguration class."""

    def test_defaults(self):
        """The torch backend is used by default on the default target."""
        config = EngineConfiguration()
        assert config.backend == "torch"
        assert config.compute_target is ComputeTarget.DEFAULT
        assert config.compute_device is None

    def test_compute_target_is_parsed(self):
        """String targets are converted to ComputeTarget after init."""
        config = EngineConfiguration(compute_target="npu")
        assert config.compute_target is ComputeTarget.NPU

    def test_unknown_backend_raises(self):
        with pytest.raises(ValueError, match="Unknown engine backend 'onnx'"):
            EngineConfiguration(backend="onnx")

    def test_natml_requires_library_path(self):
        """The natml backend cannot be used without its shared library."""
        with pytest.raises(ValueError, match="library_path"):
            EngineConfiguration(backend="natml")

    def test_load_from_toml(self, tmp_path):
        """Test loading engine configuration from TOML file."""
        config_file = tmp_path / "engine.toml"
        config_file.write_text("""
[engine]
backend = "natml"
library_path = "lib/libNatML.so"
compute_target = ["cpu", "npu"]
compute_device = 1
""")

        config = EngineConfiguration.load(str(config_file))
        assert config.backend == "natml"
        assert config.library_path == "lib/libNatML.so"
        assert config.compute_target == ComputeTarget.CPU | ComputeTarget.NPU
        assert config.compute_device == 1

    def test_load_without_engine_table(self, tmp_path):
        """A file without an [engine] table gives the defaults."""
        config_file = tmp_path / "empty.toml"
        config_file.write_text("")
        assert EngineConfiguration.load(str(config_file)) == EngineConfiguration()

    def test_load_missing_file(self):
        """Test that loading from missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            EngineConfiguration.load("/nonexistent/path/config.toml")


class TestPredictionConfiguration:
    """Tests for PredictionConfiguration class."""

    def test_defaults(self):
        config = PredictionConfiguration(model="model.pt", inputs=["a.npy"])
        assert config.output_dir == "./output"
        assert config.borrow_inputs
        assert config.progress
        assert config.engine == EngineConfiguration()

    def test_engine_dict_is_converted(self):
        config = PredictionConfiguration(model="model.keras", inputs=[], engine={"backend": "tensorflow"})
        assert isinstance(config.engine, EngineConfiguration)
        assert config.engine.backend == "tensorflow"

    def test_load_from_toml(self, tmp_path):
        """Test loading prediction configuration with a nested engine table."""
        config_file = tmp_path / "prediction.toml"
        config_file.write_text("""
[prediction]
model = "models/classifier.pt"
inputs = ["data/a.npy", "data/b.npz"]
output_dir = "results"
borrow_inputs = false
progress = false

[prediction.engine]
backend = "torch"
compute_target = "cpu"
""")

        config = PredictionConfiguration.load(str(config_file))
        assert config.model == "models/classifier.pt"
        assert config.inputs == ["data/a.npy", "data/b.npz"]
        assert config.output_dir == "results"
        assert not config.borrow_inputs
        assert not config.progress
        assert config.engine.compute_target is ComputeTarget.CPU

    def test_load_with_top_level_engine(self, tmp_path):
        """The top-level [engine] table is used when there is no nested one."""
        config_file = tmp_path / "prediction.toml"
        config_file.write_text("""
[engine]
backend = "tensorflow"

[prediction]
model = "models/classifier.keras"
inputs = ["data/a.npy"]
""")

        config = PredictionConfiguration.load(str(config_file))
        assert config.engine.backend == "tensorflow"

    def test_load_missing_model_raises(self, tmp_path):
        """The model path is required."""
        config_file = tmp_path / "prediction.toml"
        config_file.write_text("""
[prediction]
inputs = ["data/a.npy"]
""")
        with pytest.raises(TypeError):
            PredictionConfiguration.load(str(config_file))

    def test_load_missing_file(self):
        with pytest.raises(FileNotFoundError):
            PredictionConfiguration.load("/nonexistent/path/config.toml")
