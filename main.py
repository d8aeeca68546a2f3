import argparse
import logging
import os

import numpy as np

from featureview.domain.entities.feature_collection import FeatureCollection
from featureview.domain.entities.tensor_view import TensorView
from featureview.domain.use_cases.run_predictions import PredictionResult, RunPredictions
from featureview.infrastructure.async_predictor import to_async
from featureview.infrastructure.configuration import PredictionConfiguration
from featureview.infrastructure.edge_model import EdgeModel
from featureview.infrastructure.edge_predictor import EdgePredictor
from featureview.infrastructure.engines import create_engine, model_options
from featureview.infrastructure.logging import setup_logging
from featureview.infrastructure.observability import ConsoleTracker, SilentTracker

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run predictions on saved arrays with specified configuration file."
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config",
        default="configuration.toml",
        help="Path to prediction configuration TOML file (default: configuration.toml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log prediction latencies and engine details",
    )
    return parser.parse_args(argv)


def load_inputs(path: str, borrow: bool) -> list[TensorView]:
    """
    Load the input features of one request.

    Parameters
    ----------
    path : str
        Path to an `.npy` file holding a single input, or an `.npz` file
        holding one array per model input, in model order.
    borrow : bool
        Whether to view the loaded arrays without copying them.

    Returns
    -------
    list[TensorView]
        Input features of the request.
    """
    create = TensorView.borrow if borrow else TensorView.from_array
    if path.endswith(".npz"):
        with np.load(path) as archive:
            return [create(archive[key]) for key in archive.files]
    return [create(np.load(path))]


def save_outputs(results: list[PredictionResult], inputs: list[str], output_dir: str) -> list[str]:
    """
    Save prediction outputs as `.npy` files.

    Each output is saved as "<input name>_output-<index>.npy". Failed
    requests are skipped.

    Parameters
    ----------
    results : list[PredictionResult]
        Results of the prediction run.
    inputs : list[str]
        Input paths, in the same order as the results.
    output_dir : str
        Directory for output files.

    Returns
    -------
    list[str]
        Paths of the saved files.
    """
    os.makedirs(output_dir, exist_ok=True)

    saved = []
    for result, input_path in zip(results, inputs):
        if not result.succeeded:
            continue
        stem = os.path.splitext(os.path.basename(input_path))[0]
        outputs: FeatureCollection[TensorView] = result.output
        with outputs:
            for index, view in enumerate(outputs):
                path = os.path.join(output_dir, f"{stem}_output-{index}.npy")
                np.save(path, np.array(view, copy=True))
                saved.append(path)

    logger.info(f"Saved {len(saved)} outputs to {output_dir}")
    return saved


def main(config_path: str = None, verbose: bool = False):
    # 1. Setup Logging
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    # 2. Load Configuration
    if config_path is None:
        config_path = "configuration.toml"
    config = PredictionConfiguration.load(config_path)

    # 3. Instantiate concrete dependencies (outer layer responsibility)
    engine = create_engine(config.engine)
    model = EdgeModel.from_file(engine, config.model, model_options(config.engine))
    logger.info(f"Loaded model:\n{model}")
    tracker = ConsoleTracker() if config.progress else SilentTracker()
    requests = [load_inputs(path, config.borrow_inputs) for path in config.inputs]

    # 4. Run predictions on the worker thread
    with to_async(EdgePredictor(model)) as predictor:
        results = RunPredictions(
            predictor=predictor,
            requests=requests,
            tracker=tracker,
            model_name=model.name,
        ).run()

        # 5. Save outputs before the model releases their memory
        save_outputs(results, config.inputs, config.output_dir)

    return results


if __name__ == "__main__":
    args = parse_args()
    main(config_path=args.config, verbose=args.verbose)
