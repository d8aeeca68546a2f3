"""Tests for native feature handles and feature type marshalling."""
import numpy as np
import pytest

from featureview.domain.entities.buffer import BufferKind
from featureview.domain.entities.dtype import Dtype
from featureview.domain.entities.feature_type import ArrayType, ImageType
from featureview.domain.entities.features import float_array_feature
from featureview.domain.entities.native_feature import NativeFeatureHandle, to_feature_type
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.errors import InvalidOperation, InvalidShape, NativeInteropFailure
from featureview.domain.interfaces.engine import NULL_HANDLE, FeatureFlags, NativeFeatureType


class TestToFeatureType:
    """Tests for marshalling engine feature types."""

    def test_array_type(self):
        feature_type = to_feature_type(NativeFeatureType(Dtype.FLOAT32, (1, 4), "input"))
        assert feature_type == ArrayType(Dtype.FLOAT32, name="input", shape=(1, 4))

    def test_four_axes_become_image_type(self):
        """Four-axis features are marshalled as images."""
        feature_type = to_feature_type(NativeFeatureType(Dtype.FLOAT32, (1, 3, 224, 224), "image"))
        assert isinstance(feature_type, ImageType)
        assert not feature_type.interleaved

    def test_empty_shape_is_shapeless(self):
        feature_type = to_feature_type(NativeFeatureType(Dtype.INT32))
        assert feature_type.shape is None

    @pytest.mark.parametrize("shape", [(-1, -1, 8), (-1, -1, -1, 3)])
    def test_several_dynamic_axes_are_shapeless(self, shape):
        """Types with more than one unknown axis lose their shape, and are never images."""
        feature_type = to_feature_type(NativeFeatureType(Dtype.FLOAT32, shape, "input"))
        assert feature_type == ArrayType(Dtype.FLOAT32, name="input")
        assert type(feature_type) is ArrayType

    def test_strings_are_marshalled_as_arrays(self):
        """String types keep their data type but are not specialized."""
        feature_type = to_feature_type(NativeFeatureType(Dtype.STRING, (1, 8)))
        assert type(feature_type) is ArrayType
        assert feature_type.dtype is Dtype.STRING

    @pytest.mark.parametrize("dtype", [Dtype.UNDEFINED, Dtype.SEQUENCE, Dtype.DICTIONARY])
    def test_unsupported_types_are_none(self, dtype):
        assert to_feature_type(NativeFeatureType(dtype, (1,))) is None


class TestCreate:
    """Tests for creating engine features from features."""

    def test_owned_feature_is_copied(self, engine):
        """Features over owned buffers ask the engine to copy."""
        feature = float_array_feature([[1, 2, 3, 4]])
        with NativeFeatureHandle.create(engine, feature) as handle:
            _, shape, dtype, flags = engine.created[-1]
            assert flags is FeatureFlags.COPY_DATA
            assert shape == (1, 4)
            assert dtype is Dtype.FLOAT32
            assert not np.shares_memory(handle.data, feature.numpy())

    def test_borrowed_feature_is_not_copied(self, engine):
        """Borrowed memory is handed to the engine as-is."""
        data = np.arange(4, dtype=np.float32).reshape(1, 4)
        with NativeFeatureHandle.create(engine, TensorView.borrow(data)) as handle:
            assert engine.created[-1][3] is FeatureFlags.NONE
            assert np.shares_memory(handle.data, data)

    def test_non_contiguous_view_is_materialized(self, engine):
        """Permuted views are copied into row-major order."""
        data = np.arange(4, dtype=np.float32).reshape(4, 1)
        feature = TensorView.borrow(data).permute(1, 0)
        with NativeFeatureHandle.create(engine, feature) as handle:
            assert engine.created[-1][3] is FeatureFlags.COPY_DATA
            np.testing.assert_array_equal(handle.data, [0, 1, 2, 3])

    def test_feature_survives_handle(self, engine):
        """Creating a handle does not dispose the source feature."""
        feature = float_array_feature([[1, 2, 3, 4]])
        NativeFeatureHandle.create(engine, feature).dispose()
        assert not feature.released
        assert feature[0, 3] == 4

    def test_shapeless_feature_adopts_expected_shape(self, engine):
        feature = TensorView.shapeless(np.zeros(4, dtype=np.float32))
        expected = ArrayType(Dtype.FLOAT32, shape=(1, 4))
        with NativeFeatureHandle.create(engine, feature, expected) as handle:
            assert handle.shape == (1, 4)

    def test_shapeless_feature_without_expected_shape_raises(self, engine):
        feature = TensorView.shapeless(np.zeros(4, dtype=np.float32))
        with pytest.raises(InvalidShape):
            NativeFeatureHandle.create(engine, feature)
        assert engine.created == []

    def test_null_handle_raises(self, engine, monkeypatch):
        """A null handle from the engine is reported as an interop failure."""
        monkeypatch.setattr(engine, "create_feature", lambda *args: NULL_HANDLE)
        with pytest.raises(NativeInteropFailure):
            NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]]))

    def test_wrapping_null_handle_raises(self, engine):
        with pytest.raises(NativeInteropFailure):
            NativeFeatureHandle(engine, NULL_HANDLE)


class TestLifetime:
    """Tests for releasing handles and handing them to views."""

    def test_dispose_releases_once(self, engine):
        handle = NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]]))
        handle.dispose()
        handle.dispose()
        assert engine.released_features == [handle.handle]
        assert engine.live_features == 0

    def test_type_reports_engine_type(self, engine):
        with NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]])) as handle:
            assert handle.type == ArrayType(Dtype.FLOAT32, shape=(1, 4))

    def test_to_view_takes_ownership(self, engine):
        """The view releases the handle and the handle no longer does."""
        handle = NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]]))
        view = handle.to_view()
        handle.dispose()
        assert engine.released_features == []
        assert view.kind is BufferKind.NATIVE
        assert view[0, 2] == 3
        view.dispose()
        assert engine.released_features == [handle.handle]

    def test_derived_view_does_not_release(self, engine):
        """Only the view returned by to_view owns the handle."""
        view = NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]])).to_view()
        flat = view.flatten()
        flat.dispose()
        assert engine.released_features == []
        view.dispose()
        assert len(engine.released_features) == 1
        with pytest.raises(InvalidOperation):
            view.numpy()

    def test_to_view_twice_raises(self, engine):
        handle = NativeFeatureHandle.create(engine, float_array_feature([[1, 2, 3, 4]]))
        handle.to_view().dispose()
        with pytest.raises(InvalidOperation):
            handle.to_view()
