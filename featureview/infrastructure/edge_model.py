"""
Edge Model Implementation.

An edge model runs on-device through an inference engine. It owns the
engine's model handle and the marshalled input and output feature types.
"""
import logging
import os
import time

from featureview.domain.entities.feature_type import FeatureType
from featureview.domain.entities.native_feature import NativeFeatureHandle, to_feature_type
from featureview.domain.errors import InvalidOperation, NativeInteropFailure
from featureview.domain.interfaces.engine import NULL_HANDLE, InferenceEngine, ModelOptions
from featureview.domain.interfaces.model import Model

logger = logging.getLogger(__name__)


class EdgeModel(Model):
    """
    Model executed on-device by an inference engine.

    Models are not thread-safe: `predict` must not be called from more than
    one thread at a time. Use an `AsyncPredictor` to share a model between
    threads.

    Parameters
    ----------
    engine : InferenceEngine
        Engine that runs the model.
    graph : bytes
        Serialized model graph in a format the engine accepts.
    options : ModelOptions | None
        Model creation options.

    Raises
    ------
    NativeInteropFailure
        If the engine fails to create the model.
    """

    def __init__(self, engine: InferenceEngine, graph: bytes, options: ModelOptions | None = None):
        options = options or ModelOptions()
        handle = engine.create_model(graph, options)
        if handle == NULL_HANDLE:
            raise NativeInteropFailure(f"{type(engine).__name__} failed to create model")
        try:
            self._inputs = [to_feature_type(t) for t in engine.model_input_types(handle)]
            self._outputs = [to_feature_type(t) for t in engine.model_output_types(handle)]
            self._metadata = engine.model_metadata(handle)
        except Exception:
            engine.release_model(handle)
            raise
        self.engine = engine
        self.name: str | None = None
        self.last_latency_ms: float | None = None
        self._handle = handle
        self._disposed = False
        logger.debug(f"Created model with {len(self._inputs)} inputs and {len(self._outputs)} outputs")

    @classmethod
    def from_file(
        cls,
        engine: InferenceEngine,
        path: str,
        options: ModelOptions | None = None,
    ) -> "EdgeModel":
        """
        Create a model from a graph file.

        Parameters
        ----------
        engine : InferenceEngine
            Engine that runs the model.
        path : str
            Path to the graph file.
        options : ModelOptions | None
            Model creation options.

        Raises
        ------
        ValueError
            If the file extension is not a graph format the engine accepts.
        FileNotFoundError
            If no file exists at `path`.
        """
        if not path.endswith(tuple(engine.graph_extensions)):
            raise ValueError(
                f"Graph path must end with one of {', '.join(engine.graph_extensions)}. "
                f"Got: '{path}'"
            )
        if not os.path.exists(path):
            raise FileNotFoundError(f"Model graph not found at {path}")

        logger.info(f"Loading model graph from {path}...")
        with open(path, "rb") as f:
            graph = f.read()
        model = cls(engine, graph, options)
        model.name = os.path.splitext(os.path.basename(path))[0]
        return model

    @property
    def inputs(self) -> list[FeatureType | None]:
        return list(self._inputs)

    @property
    def outputs(self) -> list[FeatureType | None]:
        return list(self._outputs)

    @property
    def metadata(self) -> dict[str, str]:
        return dict(self._metadata)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def predict(self, *inputs: NativeFeatureHandle) -> list[NativeFeatureHandle]:
        """
        Run a prediction on native input features.

        Parameters
        ----------
        *inputs : NativeFeatureHandle
            Input features, one per model input. They remain owned by the caller.

        Returns
        -------
        list[NativeFeatureHandle]
            Output features, one per model output. The caller owns them.

        Raises
        ------
        InvalidOperation
            If the model has been disposed or the number of inputs is wrong.
        NativeInteropFailure
            If the engine returns a null output.
        """
        if self._disposed:
            raise InvalidOperation("Cannot predict with a model that has been disposed")
        if self._inputs and len(inputs) != len(self._inputs):
            raise InvalidOperation(f"Model expects {len(self._inputs)} inputs but was given {len(inputs)}")

        start = time.perf_counter()
        outputs = self.engine.predict(self._handle, [feature.handle for feature in inputs])
        self.last_latency_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Prediction completed in {self.last_latency_ms:.2f}ms")

        if NULL_HANDLE in outputs:
            for output in outputs:
                if output != NULL_HANDLE:
                    self.engine.release_feature(output)
            raise NativeInteropFailure(f"Engine returned a null output for model {self.name or self._handle}")
        return [NativeFeatureHandle(self.engine, output) for output in outputs]

    def dispose(self) -> None:
        """Release the model. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        self.engine.release_model(self._handle)

    def __str__(self) -> str:
        lines = [type(self).__name__ if self.name is None else f"{type(self).__name__} {self.name}"]
        lines += [f"Input: {feature_type}" for feature_type in self._inputs]
        lines += [f"Output: {feature_type}" for feature_type in self._outputs]
        return "\n".join(lines)
