"""True end-to-end test that runs main.py as a subprocess."""
import io
import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import torch

from featureview.infrastructure.torch.engine import SIGNATURE_FILE


class Scaler(torch.nn.Module):
    def forward(self, x):
        return x * 3


def write_model(path: Path) -> None:
    """Save a TorchScript module tripling a (1, 4) float32 input."""
    signature = {
        "inputs": [{"name": "features", "dtype": "float32", "shape": [1, 4]}],
        "outputs": [{"name": "scaled", "dtype": "float32", "shape": [1, 4]}],
    }
    buffer = io.BytesIO()
    torch.jit.save(torch.jit.script(Scaler()), buffer, _extra_files={SIGNATURE_FILE: json.dumps(signature)})
    path.write_bytes(buffer.getvalue())


def test_main_with_test_configuration(tmp_path):
    """
    End-to-end test: Run main.py with a generated configuration file.

    This test verifies that the complete pipeline runs without errors when
    launched from command line, and that one output file is written per input.
    """
    # Get paths
    project_root = Path(__file__).parent.parent
    main_script = project_root / "main.py"
    assert main_script.exists(), f"main.py not found at {main_script}"

    # Generate model, inputs and configuration
    model_path = tmp_path / "scaler.pt"
    write_model(model_path)
    inputs = []
    for i in range(3):
        input_path = tmp_path / f"sample-{i}.npy"
        np.save(input_path, np.full((1, 4), i, dtype=np.float32))
        inputs.append(str(input_path))
    output_dir = tmp_path / "output"
    config_path = tmp_path / "configuration.toml"
    config_path.write_text(f"""
[prediction]
model = {json.dumps(str(model_path))}
inputs = {json.dumps(inputs)}
output_dir = {json.dumps(str(output_dir))}
progress = false

[prediction.engine]
backend = "torch"
compute_target = "cpu"
""")

    # Run main.py with the configuration
    result = subprocess.run(
        [sys.executable, str(main_script), "-c", str(config_path)],
        cwd=str(project_root),
        capture_output=True,
        text=True,
        timeout=300
    )

    # Print output for debugging if test fails
    if result.returncode != 0:
        print("STDOUT:", result.stdout)
        print("STDERR:", result.stderr)

    # Assert successful execution
    assert result.returncode == 0, (
        f"main.py exited with code {result.returncode}\n"
        f"STDERR: {result.stderr}"
    )
    for i in range(3):
        output = np.load(output_dir / f"sample-{i}_output-0.npy")
        np.testing.assert_array_equal(output, np.full((1, 4), 3 * i, dtype=np.float32))
