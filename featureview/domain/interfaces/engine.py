"""
Inference Engine Interface.

This module defines the boundary to the inference engine that actually runs
models. The engine is handle-based: models and features are created by the
engine and referred to by integer handles until they are released. A handle
of `0` is a null handle and signals failure.

Engines are not thread-safe per model handle. All calls for a given model
must be made from one thread at a time.
"""
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import IntFlag

import numpy as np

from featureview.domain.entities.dtype import Dtype

NULL_HANDLE = 0


class FeatureFlags(IntFlag):
    """
    Flags passed when creating a native feature.

    Without `COPY_DATA` the engine may read directly from the caller's memory
    for the lifetime of the feature.
    """

    NONE = 0
    COPY_DATA = 1 << 0


class ComputeTarget(IntFlag):
    """Hardware the engine may use to run a model."""

    DEFAULT = 0
    CPU = 1 << 0
    GPU = 1 << 1
    NPU = 1 << 2
    ALL = CPU | GPU | NPU


@dataclass(frozen=True)
class ModelOptions:
    """
    Options used when creating a model.

    `compute_device` is a device index. Engines that cannot select a device
    by index ignore it.
    """

    compute_target: ComputeTarget = ComputeTarget.DEFAULT
    compute_device: int | None = None


@dataclass(frozen=True)
class NativeFeatureType:
    """Feature type as reported by the engine, before marshalling."""

    dtype: Dtype
    shape: tuple[int, ...] = field(default_factory=tuple)
    name: str | None = None


class InferenceEngine(ABC):
    """
    Abstract interface of a handle-based inference engine.

    Implementations wrap a native library or an in-process runtime. The
    domain only ever talks to engines through this interface.
    """

    #: Graph file extensions the engine can load.
    graph_extensions: tuple[str, ...] = ()

    @abstractmethod
    def create_feature(
        self,
        data: np.ndarray,
        shape: Sequence[int],
        dtype: Dtype,
        flags: FeatureFlags,
    ) -> int:
        """
        Create a native feature over a flat, contiguous buffer.

        Parameters
        ----------
        data : np.ndarray
            Flat contiguous array holding at least `prod(shape)` elements.
        shape : Sequence[int]
            Fully specified feature shape.
        dtype : Dtype
            Feature data type.
        flags : FeatureFlags
            Without `FeatureFlags.COPY_DATA` the engine may read `data`
            directly until the feature is released.

        Returns
        -------
        int
            Feature handle, or `NULL_HANDLE` on failure.
        """
        pass

    @abstractmethod
    def release_feature(self, feature: int) -> None:
        """
        Release a native feature.

        Parameters
        ----------
        feature : int
            Feature handle.
        """
        pass

    @abstractmethod
    def feature_type(self, feature: int) -> NativeFeatureType:
        """
        Get the type of a native feature.

        Parameters
        ----------
        feature : int
            Feature handle.

        Returns
        -------
        NativeFeatureType
            Data type and shape of the feature.
        """
        pass

    @abstractmethod
    def feature_data(self, feature: int) -> np.ndarray:
        """
        Get the data of a native feature.

        Parameters
        ----------
        feature : int
            Feature handle.

        Returns
        -------
        np.ndarray
            Flat typed array sharing memory with the feature. It is only valid
            until the feature is released.
        """
        pass

    @abstractmethod
    def create_model(self, graph: bytes, options: ModelOptions) -> int:
        """
        Create a model from serialized graph data.

        Parameters
        ----------
        graph : bytes
            Serialized model graph.
        options : ModelOptions
            Model creation options.

        Returns
        -------
        int
            Model handle, or `NULL_HANDLE` on failure.
        """
        pass

    @abstractmethod
    def release_model(self, model: int) -> None:
        """
        Release a model.

        Parameters
        ----------
        model : int
            Model handle.
        """
        pass

    @abstractmethod
    def model_input_types(self, model: int) -> list[NativeFeatureType]:
        """Get the input feature types of a model."""
        pass

    @abstractmethod
    def model_output_types(self, model: int) -> list[NativeFeatureType]:
        """Get the output feature types of a model."""
        pass

    @abstractmethod
    def model_metadata(self, model: int) -> dict[str, str]:
        """Get the metadata embedded in a model graph."""
        pass

    @abstractmethod
    def predict(self, model: int, inputs: Sequence[int]) -> list[int]:
        """
        Run a prediction.

        Parameters
        ----------
        model : int
            Model handle.
        inputs : Sequence[int]
            Input feature handles, one per model input.

        Returns
        -------
        list[int]
            Output feature handles, one per model output. The caller owns them
            and must release them.
        """
        pass
