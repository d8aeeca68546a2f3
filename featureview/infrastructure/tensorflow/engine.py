"""
Keras engine.

Loads `.keras` archives with `keras.models.load_model`. The feature
signature is read from the model's symbolic inputs and outputs. Keras archives
carry no graph metadata, so the model name is the only metadata reported.

Features are always copied into TensorFlow tensors, whatever the copy flag
says.
"""
import logging
import os
import tempfile

import numpy as np
import tensorflow as tf
from tensorflow import keras

from featureview.domain.entities.dtype import Dtype
from featureview.domain.interfaces.engine import ComputeTarget, ModelOptions, NativeFeatureType
from featureview.infrastructure.managed_engine import ManagedEngine, ManagedModel

logger = logging.getLogger(__name__)


def _feature_type(tensor) -> NativeFeatureType:
    # Unknown axes, such as the batch axis, are reported as dynamic
    shape = tuple(-1 if size is None else int(size) for size in tensor.shape)
    dtype = Dtype.from_numpy(np.dtype(tf.as_dtype(tensor.dtype).as_numpy_dtype))
    name = getattr(tensor, "name", None)
    return NativeFeatureType(dtype=dtype, shape=shape, name=name.split(":")[0] if name else None)


def select_device(options: ModelOptions) -> str:
    """Select the TensorFlow device for the requested compute target."""
    if options.compute_target == ComputeTarget.CPU:
        return "/CPU:0"
    if tf.config.list_physical_devices("GPU"):
        return f"/GPU:{options.compute_device or 0}"
    return "/CPU:0"


class TensorFlowEngine(ManagedEngine):
    """Inference engine running Keras models."""

    graph_extensions = (".keras",)

    def _load_model(self, graph: bytes, options: ModelOptions) -> ManagedModel:
        # Keras only loads archives from a path
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "model.keras")
            with open(path, "wb") as f:
                f.write(graph)
            model = keras.models.load_model(path, compile=False)
        device = select_device(options)
        logger.debug(f"Loaded Keras model {model.name} for {device}")
        return ManagedModel(
            runtime=(model, device),
            inputs=[_feature_type(tensor) for tensor in model.inputs],
            outputs=[_feature_type(tensor) for tensor in model.outputs],
            metadata={"name": model.name},
        )

    def _run(self, model: ManagedModel, inputs: list[np.ndarray]) -> list[np.ndarray]:
        runtime, device = model.runtime
        with tf.device(device):
            tensors = [tf.convert_to_tensor(array) for array in inputs]
            result = runtime(tensors if len(tensors) > 1 else tensors[0], training=False)
        if isinstance(result, dict):
            result = list(result.values())
        elif not isinstance(result, (list, tuple)):
            result = [result]
        return [np.asarray(tensor) for tensor in result]
