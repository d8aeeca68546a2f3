"""
TorchScript engine.

Loads TorchScript archives saved with `torch.jit.save`. The feature signature
of the model is read from a `featureview.json` extra file embedded in the
archive:

    {
        "inputs": [{"name": "image", "dtype": "float32", "shape": [1, 3, 224, 224]}],
        "outputs": [{"name": "logits", "dtype": "float32", "shape": [1, 1000]}],
        "metadata": {"labels": "..."}
    }

Archives without a signature load with no declared inputs or outputs, in
which case outputs are unnamed.
"""
import io
import json
import logging

import numpy as np
import torch

from featureview.domain.entities.dtype import Dtype
from featureview.domain.interfaces.engine import ComputeTarget, ModelOptions, NativeFeatureType
from featureview.infrastructure.managed_engine import ManagedEngine, ManagedModel

logger = logging.getLogger(__name__)

SIGNATURE_FILE = "featureview.json"


def _parse_feature_type(entry: dict) -> NativeFeatureType:
    return NativeFeatureType(
        dtype=Dtype[entry["dtype"].upper()],
        shape=tuple(entry.get("shape", ())),
        name=entry.get("name"),
    )


def select_device(options: ModelOptions) -> torch.device:
    """
    Select the torch device for the requested compute target.

    The GPU is used when it is allowed by the compute target and available;
    `compute_device` selects the CUDA device index.
    """
    wants_gpu = options.compute_target in (ComputeTarget.DEFAULT, ComputeTarget.ALL) or bool(
        options.compute_target & ComputeTarget.GPU
    )
    if wants_gpu and torch.cuda.is_available():
        return torch.device("cuda", options.compute_device or 0)
    return torch.device("cpu")


class TorchEngine(ManagedEngine):
    """Inference engine running TorchScript modules."""

    graph_extensions = (".pt",)

    def _load_model(self, graph: bytes, options: ModelOptions) -> ManagedModel:
        device = select_device(options)
        extra_files = {SIGNATURE_FILE: ""}
        module = torch.jit.load(io.BytesIO(graph), map_location=device, _extra_files=extra_files)
        module.eval()
        signature = json.loads(extra_files[SIGNATURE_FILE] or "{}")
        logger.debug(f"Loaded TorchScript module on {device}")
        return ManagedModel(
            runtime=(module, device),
            inputs=[_parse_feature_type(entry) for entry in signature.get("inputs", [])],
            outputs=[_parse_feature_type(entry) for entry in signature.get("outputs", [])],
            metadata={str(key): str(value) for key, value in signature.get("metadata", {}).items()},
        )

    def _run(self, model: ManagedModel, inputs: list[np.ndarray]) -> list[np.ndarray]:
        module, device = model.runtime
        # Shares memory with the input arrays on CPU
        tensors = [torch.from_numpy(array).to(device) for array in inputs]
        with torch.no_grad():
            result = module(*tensors)
        if isinstance(result, torch.Tensor):
            result = [result]
        elif isinstance(result, dict):
            result = list(result.values())
        return [tensor.detach().cpu().numpy() for tensor in result]
