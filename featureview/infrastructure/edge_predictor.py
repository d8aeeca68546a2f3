"""Edge predictor - runs an edge model on features and returns raw output views."""
from featureview.domain.entities.feature import Feature
from featureview.domain.entities.feature_collection import FeatureCollection
from featureview.domain.entities.native_feature import NativeFeatureHandle
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.interfaces.predictor import Predictor
from featureview.infrastructure.edge_model import EdgeModel


class EdgePredictor(Predictor[FeatureCollection[TensorView]]):
    """
    Predictor returning the raw outputs of an edge model.

    Input features are converted against the model's input types, and
    outputs are returned as tensor views over engine memory. Disposing an
    output view releases its native feature.

    Parameters
    ----------
    model : EdgeModel
        Model to run. The predictor takes ownership of it.
    """

    def __init__(self, model: EdgeModel):
        self.model = model

    def predict(self, *inputs: Feature) -> FeatureCollection[TensorView]:
        """
        Make a prediction on one or more input features.

        Parameters
        ----------
        *inputs : Feature
            Input features, in model order.

        Returns
        -------
        FeatureCollection[TensorView]
            Output views, in model order. The caller must dispose them.
        """
        expected = self.model.inputs
        handles: list[NativeFeatureHandle] = []
        try:
            for index, feature in enumerate(inputs):
                feature_type = expected[index] if index < len(expected) else None
                handles.append(NativeFeatureHandle.create(self.model.engine, feature, feature_type))
            outputs = self.model.predict(*handles)
        finally:
            for handle in handles:
                handle.dispose()

        views: list[TensorView] = []
        try:
            for output in outputs:
                views.append(output.to_view())
        except Exception:
            for view in views:
                view.dispose()
            for output in outputs:
                output.dispose()
            raise
        return FeatureCollection(views)

    def dispose(self) -> None:
        """Dispose the model."""
        self.model.dispose()
