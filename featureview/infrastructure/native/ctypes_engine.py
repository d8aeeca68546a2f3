"""
NatML shared library engine.

Binds the NatML C API through `ctypes`. Models and features are opaque
pointers owned by the library; their integer addresses are used as handles.
"""
import ctypes
import logging
import math
from collections.abc import Sequence

import numpy as np

from featureview.domain.entities.dtype import Dtype
from featureview.domain.errors import InvalidOperation, NativeInteropFailure
from featureview.domain.interfaces.engine import (
    NULL_HANDLE,
    FeatureFlags,
    InferenceEngine,
    ModelOptions,
    NativeFeatureType,
)

logger = logging.getLogger(__name__)

_NAME_BUFFER_SIZE = 2048
_METADATA_BUFFER_SIZE = 8192


class CTypesEngine(InferenceEngine):
    """
    Inference engine backed by the NatML shared library.

    Features created without `FeatureFlags.COPY_DATA` read directly from the
    caller's array, so the engine keeps a reference to that array until the
    feature is released.

    Only the compute target of `ModelOptions` is forwarded. NatML selects a
    specific device through a native device handle rather than an index, so
    `compute_device` is ignored.

    Parameters
    ----------
    library_path : str
        Path to the NatML shared library.
    """

    graph_extensions = (".mlmodel", ".onnx", ".tflite")

    def __init__(self, library_path: str):
        try:
            self._native = ctypes.CDLL(library_path)
        except OSError as exc:
            raise NativeInteropFailure(f"Failed to load NatML library from {library_path}") from exc
        self._bind()
        self._keepalive: dict[int, np.ndarray] = {}
        logger.info(f"Loaded NatML library from {library_path}")

    def _bind(self) -> None:
        native = self._native
        handle = ctypes.c_void_p
        out_handle = ctypes.POINTER(ctypes.c_void_p)

        # Model options
        native.NMLCreateModelOptions.argtypes = [out_handle]
        native.NMLCreateModelOptions.restype = None
        native.NMLReleaseModelOptions.argtypes = [handle]
        native.NMLReleaseModelOptions.restype = None
        native.NMLModelOptionsSetComputeTarget.argtypes = [handle, ctypes.c_int32]
        native.NMLModelOptionsSetComputeTarget.restype = None

        # Model
        native.NMLCreateModel.argtypes = [
            ctypes.c_void_p,  # graph buffer
            ctypes.c_int32,   # graph size
            handle,           # model options
            out_handle,       # model
        ]
        native.NMLCreateModel.restype = None
        native.NMLReleaseModel.argtypes = [handle]
        native.NMLReleaseModel.restype = None
        native.NMLModelGetMetadataCount.argtypes = [handle]
        native.NMLModelGetMetadataCount.restype = ctypes.c_int32
        native.NMLModelGetMetadataKey.argtypes = [handle, ctypes.c_int32, ctypes.c_char_p, ctypes.c_int32]
        native.NMLModelGetMetadataKey.restype = None
        native.NMLModelGetMetadataValue.argtypes = [handle, ctypes.c_char_p, ctypes.c_char_p, ctypes.c_int32]
        native.NMLModelGetMetadataValue.restype = None
        native.NMLModelGetInputFeatureCount.argtypes = [handle]
        native.NMLModelGetInputFeatureCount.restype = ctypes.c_int32
        native.NMLModelGetInputFeatureType.argtypes = [handle, ctypes.c_int32, out_handle]
        native.NMLModelGetInputFeatureType.restype = None
        native.NMLModelGetOutputFeatureCount.argtypes = [handle]
        native.NMLModelGetOutputFeatureCount.restype = ctypes.c_int32
        native.NMLModelGetOutputFeatureType.argtypes = [handle, ctypes.c_int32, out_handle]
        native.NMLModelGetOutputFeatureType.restype = None
        native.NMLModelPredict.argtypes = [handle, ctypes.POINTER(ctypes.c_void_p), ctypes.POINTER(ctypes.c_void_p)]
        native.NMLModelPredict.restype = None

        # Feature
        native.NMLCreateArrayFeature.argtypes = [
            ctypes.c_void_p,                  # data
            ctypes.POINTER(ctypes.c_int32),   # shape
            ctypes.c_int32,                   # dims
            ctypes.c_int32,                   # dtype
            ctypes.c_int32,                   # flags
            out_handle,                       # feature
        ]
        native.NMLCreateArrayFeature.restype = None
        native.NMLReleaseFeature.argtypes = [handle]
        native.NMLReleaseFeature.restype = None
        native.NMLFeatureGetType.argtypes = [handle, out_handle]
        native.NMLFeatureGetType.restype = None
        native.NMLFeatureGetData.argtypes = [handle]
        native.NMLFeatureGetData.restype = ctypes.c_void_p

        # Feature type
        native.NMLReleaseFeatureType.argtypes = [handle]
        native.NMLReleaseFeatureType.restype = None
        native.NMLFeatureTypeGetName.argtypes = [handle, ctypes.c_char_p, ctypes.c_int32]
        native.NMLFeatureTypeGetName.restype = None
        native.NMLFeatureTypeGetDataType.argtypes = [handle]
        native.NMLFeatureTypeGetDataType.restype = ctypes.c_int32
        native.NMLFeatureTypeGetDimensions.argtypes = [handle]
        native.NMLFeatureTypeGetDimensions.restype = ctypes.c_int32
        native.NMLFeatureTypeGetShape.argtypes = [handle, ctypes.POINTER(ctypes.c_int32), ctypes.c_int32]
        native.NMLFeatureTypeGetShape.restype = None

    # region Features

    def create_feature(
        self,
        data: np.ndarray,
        shape: Sequence[int],
        dtype: Dtype,
        flags: FeatureFlags,
    ) -> int:
        native_shape = (ctypes.c_int32 * len(shape))(*shape)
        feature = ctypes.c_void_p()
        self._native.NMLCreateArrayFeature(
            data.ctypes.data_as(ctypes.c_void_p),
            native_shape,
            len(shape),
            int(dtype),
            int(flags),
            ctypes.byref(feature),
        )
        handle = feature.value or NULL_HANDLE
        if handle != NULL_HANDLE and not flags & FeatureFlags.COPY_DATA:
            self._keepalive[handle] = data
        return handle

    def release_feature(self, feature: int) -> None:
        self._native.NMLReleaseFeature(ctypes.c_void_p(feature))
        self._keepalive.pop(feature, None)

    def feature_type(self, feature: int) -> NativeFeatureType:
        feature_type = ctypes.c_void_p()
        self._native.NMLFeatureGetType(ctypes.c_void_p(feature), ctypes.byref(feature_type))
        if not feature_type.value:
            raise NativeInteropFailure(f"Failed to get type of native feature {feature:#x}")
        try:
            return self._read_type(feature_type)
        finally:
            self._native.NMLReleaseFeatureType(feature_type)

    def feature_data(self, feature: int) -> np.ndarray:
        feature_type = self.feature_type(feature)
        if not feature_type.dtype.is_numeric and feature_type.dtype is not Dtype.STRING:
            raise InvalidOperation(f"Cannot read data of {feature_type.dtype.name.lower()} feature")
        pointer = self._native.NMLFeatureGetData(ctypes.c_void_p(feature))
        if not pointer:
            raise NativeInteropFailure(f"Native feature {feature:#x} has no data")
        dtype = feature_type.dtype.to_numpy()
        count = math.prod(feature_type.shape)
        raw = (ctypes.c_uint8 * (count * dtype.itemsize)).from_address(pointer)
        return np.ctypeslib.as_array(raw).view(dtype)

    def _read_type(self, feature_type: ctypes.c_void_p) -> NativeFeatureType:
        name = ctypes.create_string_buffer(_NAME_BUFFER_SIZE)
        self._native.NMLFeatureTypeGetName(feature_type, name, _NAME_BUFFER_SIZE)
        try:
            dtype = Dtype(self._native.NMLFeatureTypeGetDataType(feature_type))
        except ValueError:
            dtype = Dtype.UNDEFINED
        dims = self._native.NMLFeatureTypeGetDimensions(feature_type)
        shape = (ctypes.c_int32 * dims)()
        self._native.NMLFeatureTypeGetShape(feature_type, shape, dims)
        return NativeFeatureType(
            dtype=dtype,
            shape=tuple(shape),
            name=name.value.decode("utf-8") or None,
        )

    # endregion

    # region Models

    def create_model(self, graph: bytes, options: ModelOptions) -> int:
        if options.compute_device is not None:
            logger.warning(f"Ignoring compute device {options.compute_device}, NatML only selects a compute target")
        native_options = ctypes.c_void_p()
        self._native.NMLCreateModelOptions(ctypes.byref(native_options))
        try:
            self._native.NMLModelOptionsSetComputeTarget(native_options, int(options.compute_target))
            buffer = (ctypes.c_uint8 * len(graph)).from_buffer_copy(graph)
            model = ctypes.c_void_p()
            self._native.NMLCreateModel(buffer, len(graph), native_options, ctypes.byref(model))
        finally:
            self._native.NMLReleaseModelOptions(native_options)
        return model.value or NULL_HANDLE

    def release_model(self, model: int) -> None:
        self._native.NMLReleaseModel(ctypes.c_void_p(model))

    def model_input_types(self, model: int) -> list[NativeFeatureType]:
        count = self._native.NMLModelGetInputFeatureCount(ctypes.c_void_p(model))
        return [
            self._model_feature_type(self._native.NMLModelGetInputFeatureType, model, index)
            for index in range(count)
        ]

    def model_output_types(self, model: int) -> list[NativeFeatureType]:
        count = self._native.NMLModelGetOutputFeatureCount(ctypes.c_void_p(model))
        return [
            self._model_feature_type(self._native.NMLModelGetOutputFeatureType, model, index)
            for index in range(count)
        ]

    def _model_feature_type(self, getter, model: int, index: int) -> NativeFeatureType:
        feature_type = ctypes.c_void_p()
        getter(ctypes.c_void_p(model), index, ctypes.byref(feature_type))
        if not feature_type.value:
            raise NativeInteropFailure(f"Failed to get type of model feature {index}")
        try:
            return self._read_type(feature_type)
        finally:
            self._native.NMLReleaseFeatureType(feature_type)

    def model_metadata(self, model: int) -> dict[str, str]:
        metadata = {}
        buffer = ctypes.create_string_buffer(_METADATA_BUFFER_SIZE)
        for index in range(self._native.NMLModelGetMetadataCount(ctypes.c_void_p(model))):
            self._native.NMLModelGetMetadataKey(ctypes.c_void_p(model), index, buffer, _METADATA_BUFFER_SIZE)
            key = buffer.value
            self._native.NMLModelGetMetadataValue(ctypes.c_void_p(model), key, buffer, _METADATA_BUFFER_SIZE)
            if buffer.value:
                metadata[key.decode("utf-8")] = buffer.value.decode("utf-8")
        return metadata

    def predict(self, model: int, inputs: Sequence[int]) -> list[int]:
        output_count = self._native.NMLModelGetOutputFeatureCount(ctypes.c_void_p(model))
        native_inputs = (ctypes.c_void_p * len(inputs))(*inputs)
        native_outputs = (ctypes.c_void_p * output_count)()
        self._native.NMLModelPredict(ctypes.c_void_p(model), native_inputs, native_outputs)
        return [output or NULL_HANDLE for output in native_outputs]

    # endregion
