"""
Engine factory.

Framework-backed engines are imported lazily, so only the framework of the
selected backend has to be installed and loaded.
"""
import logging

from featureview.domain.interfaces.engine import InferenceEngine, ModelOptions
from featureview.infrastructure.configuration import EngineConfiguration
from featureview.infrastructure.observability import suppress_tensorflow_logging

logger = logging.getLogger(__name__)


def create_engine(config: EngineConfiguration) -> InferenceEngine:
    """
    Create the inference engine selected by a configuration.

    Parameters
    ----------
    config : EngineConfiguration
        Engine configuration.

    Returns
    -------
    InferenceEngine
        Engine for the configured backend.
    """
    logger.info(f"Creating {config.backend} engine...")
    if config.backend == "natml":
        from featureview.infrastructure.native.ctypes_engine import CTypesEngine
        return CTypesEngine(config.library_path)
    if config.backend == "tensorflow":
        suppress_tensorflow_logging()
        from featureview.infrastructure.tensorflow.engine import TensorFlowEngine
        return TensorFlowEngine()
    if config.backend == "torch":
        from featureview.infrastructure.torch.engine import TorchEngine
        return TorchEngine()
    raise ValueError(f"Unknown engine backend '{config.backend}'")


def model_options(config: EngineConfiguration) -> ModelOptions:
    """Get the model options described by an engine configuration."""
    return ModelOptions(
        compute_target=config.compute_target,
        compute_device=config.compute_device,
    )
