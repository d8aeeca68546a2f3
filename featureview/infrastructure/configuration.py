import os
import tomllib
from dataclasses import dataclass, field

from featureview.domain.interfaces.engine import ComputeTarget

BACKENDS = ("natml", "torch", "tensorflow")


def _read_toml(config_path: str) -> dict:
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_path, "rb") as f:
        return tomllib.load(f)


def parse_compute_target(value: str | int | list[str]) -> ComputeTarget:
    """
    Parse a compute target from its configuration value.

    Parameters
    ----------
    value : str | int | list[str]
        A target name such as "gpu", a list of names combined together,
        or the raw flag value.

    Returns
    -------
    ComputeTarget
        Parsed compute target.

    Raises
    ------
    ValueError
        If a target name is unknown.
    """
    if isinstance(value, int):
        return ComputeTarget(value)
    names = [value] if isinstance(value, str) else value
    target = ComputeTarget.DEFAULT
    for name in names:
        try:
            target |= ComputeTarget[name.upper()]
        except KeyError:
            raise ValueError(
                f"Unknown compute target '{name}'. "
                f"Expected one of: {', '.join(t.name.lower() for t in ComputeTarget)}"
            ) from None
    return target


@dataclass
class EngineConfiguration:
    """Configuration for the inference engine."""

    backend: str = "torch"
    library_path: str | None = None  # Required by the natml backend
    compute_target: ComputeTarget = ComputeTarget.DEFAULT
    compute_device: int | None = None  # Device index, used by the torch and tensorflow backends

    def __post_init__(self):
        """Validate the backend and normalize the compute target.

        After this method executes, self.compute_target is always a ComputeTarget.
        """
        if self.backend not in BACKENDS:
            raise ValueError(
                f"Unknown engine backend '{self.backend}'. Expected one of: {', '.join(BACKENDS)}"
            )
        if self.backend == "natml" and not self.library_path:
            raise ValueError("The natml backend requires 'library_path'")
        if not isinstance(self.compute_target, ComputeTarget):
            self.compute_target = parse_compute_target(self.compute_target)

    @classmethod
    def load(cls, config_path: str) -> "EngineConfiguration":
        """
        Load engine configuration from a TOML file.

        Parameters
        ----------
        config_path : str
            Filesystem path to a TOML file containing an "engine" table.

        Returns
        -------
        EngineConfiguration
            Instance populated from the "engine" table.

        Raises
        ------
        FileNotFoundError
            If no file exists at `config_path`.
        """
        data = _read_toml(config_path)
        return cls(**data.get("engine", {}))


@dataclass
class PredictionConfiguration:
    """Configuration for a batch prediction run."""

    model: str
    inputs: list[str]
    output_dir: str = "./output"
    borrow_inputs: bool = True
    progress: bool = True
    engine: EngineConfiguration = field(default_factory=EngineConfiguration)

    def __post_init__(self):
        if isinstance(self.engine, dict):
            self.engine = EngineConfiguration(**self.engine)

    @classmethod
    def load(cls, config_path: str) -> "PredictionConfiguration":
        """
        Load prediction configuration from a TOML file.

        The file should contain a [prediction] table. Engine settings are read
        from a nested [prediction.engine] table, or from a top-level [engine]
        table when there is none.

        Parameters
        ----------
        config_path : str
            Filesystem path to a TOML file.

        Returns
        -------
        PredictionConfiguration
            Instance populated from the "prediction" table.

        Raises
        ------
        FileNotFoundError
            If no file exists at `config_path`.
        """
        data = _read_toml(config_path)

        prediction_data = dict(data.get("prediction", {}))
        prediction_data.setdefault("engine", data.get("engine", {}))
        return cls(**prediction_data)
