"""
Managed Engine Base.

Engines built on an in-process runtime (TorchScript, Keras) hold their
models and features as Python objects. This module provides the handle
tables that expose those objects through the handle-based engine interface,
so subclasses only implement loading a graph and running it.
"""
import itertools
import logging
import threading
from abc import abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from featureview.domain.entities.dtype import Dtype
from featureview.domain.errors import InvalidOperation
from featureview.domain.interfaces.engine import (
    NULL_HANDLE,
    FeatureFlags,
    InferenceEngine,
    ModelOptions,
    NativeFeatureType,
)

logger = logging.getLogger(__name__)


@dataclass
class ManagedFeature:
    """Feature held by a managed engine: a flat array plus its type."""

    data: np.ndarray
    shape: tuple[int, ...]
    dtype: Dtype
    name: str | None = None

    def array(self) -> np.ndarray:
        """Get the data in its feature shape, sharing memory."""
        return self.data.reshape(self.shape)


@dataclass
class ManagedModel:
    """Model held by a managed engine."""

    runtime: Any
    inputs: list[NativeFeatureType] = field(default_factory=list)
    outputs: list[NativeFeatureType] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


class ManagedEngine(InferenceEngine):
    """
    Base class for engines backed by an in-process runtime.

    Handles are allocated from a shared counter, so a handle is never reused
    for the lifetime of the engine and `0` is never a valid handle.
    """

    def __init__(self) -> None:
        self._next_handle = itertools.count(1)
        self._lock = threading.Lock()
        self._features: dict[int, ManagedFeature] = {}
        self._models: dict[int, ManagedModel] = {}

    @abstractmethod
    def _load_model(self, graph: bytes, options: ModelOptions) -> ManagedModel:
        """
        Deserialize a model graph.

        Parameters
        ----------
        graph : bytes
            Serialized model graph.
        options : ModelOptions
            Model creation options.

        Returns
        -------
        ManagedModel
            Loaded runtime and its signature.
        """
        pass

    @abstractmethod
    def _run(self, model: ManagedModel, inputs: list[np.ndarray]) -> list[np.ndarray]:
        """
        Run the runtime on shaped input arrays.

        Parameters
        ----------
        model : ManagedModel
            Model to run.
        inputs : list[np.ndarray]
            Input arrays in model order.

        Returns
        -------
        list[np.ndarray]
            Output arrays in model order.
        """
        pass

    def _allocate(self) -> int:
        with self._lock:
            return next(self._next_handle)

    # region Features

    def create_feature(
        self,
        data: np.ndarray,
        shape: Sequence[int],
        dtype: Dtype,
        flags: FeatureFlags,
    ) -> int:
        shape = tuple(shape)
        if flags & FeatureFlags.COPY_DATA:
            data = data.copy()
        handle = self._allocate()
        self._features[handle] = ManagedFeature(data=data, shape=shape, dtype=dtype)
        return handle

    def release_feature(self, feature: int) -> None:
        self._features.pop(feature, None)

    def feature_type(self, feature: int) -> NativeFeatureType:
        entry = self._feature(feature)
        return NativeFeatureType(dtype=entry.dtype, shape=entry.shape, name=entry.name)

    def feature_data(self, feature: int) -> np.ndarray:
        return self._feature(feature).data

    def _feature(self, feature: int) -> ManagedFeature:
        try:
            return self._features[feature]
        except KeyError:
            raise InvalidOperation(f"Unknown feature handle {feature}") from None

    def _register_output(self, array: np.ndarray, name: str | None) -> int:
        array = np.ascontiguousarray(array)
        dtype = Dtype.from_numpy(array.dtype)
        if dtype is Dtype.UNDEFINED:
            raise InvalidOperation(f"Model produced an output of unsupported type {array.dtype}")
        # Scalars are reported with a single axis
        shape = array.shape or (1,)
        handle = self._allocate()
        self._features[handle] = ManagedFeature(
            data=array.reshape(-1),
            shape=shape,
            dtype=dtype,
            name=name,
        )
        return handle

    # endregion

    # region Models

    def create_model(self, graph: bytes, options: ModelOptions) -> int:
        try:
            model = self._load_model(graph, options)
        except Exception as exc:
            logger.error(f"Failed to load {type(self).__name__} model: {exc}")
            return NULL_HANDLE
        handle = self._allocate()
        self._models[handle] = model
        return handle

    def release_model(self, model: int) -> None:
        self._models.pop(model, None)

    def model_input_types(self, model: int) -> list[NativeFeatureType]:
        return list(self._model(model).inputs)

    def model_output_types(self, model: int) -> list[NativeFeatureType]:
        return list(self._model(model).outputs)

    def model_metadata(self, model: int) -> dict[str, str]:
        return dict(self._model(model).metadata)

    def predict(self, model: int, inputs: Sequence[int]) -> list[int]:
        entry = self._model(model)
        arrays = [self._feature(handle).array() for handle in inputs]
        results = self._run(entry, arrays)
        names = [output.name for output in entry.outputs]
        names += [None] * (len(results) - len(names))
        return [self._register_output(result, name) for result, name in zip(results, names)]

    def _model(self, model: int) -> ManagedModel:
        try:
            return self._models[model]
        except KeyError:
            raise InvalidOperation(f"Unknown model handle {model}") from None

    # endregion
