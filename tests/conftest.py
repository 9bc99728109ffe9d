"""Pytest configuration and shared fixtures for openscpca-tools tests."""

import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
import yaml

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Import mock data generators
from tests.fixtures import (
    create_cell_table,
    create_mock_adata,
    create_reference_profiles,
)


# ============================================================================
# Mock Data Fixtures
# ============================================================================


@pytest.fixture
def cell_table() -> pd.DataFrame:
    """Cell table with two labelings and a numeric clustering."""
    return create_cell_table()


@pytest.fixture
def labels_obs() -> pd.DataFrame:
    """Tiny hand-checkable labeling pair."""
    return pd.DataFrame(
        {
            "a": ["T", "T", "T", "B", "B", np.nan],
            "b": ["x", "x", "y", "y", "y", "y"],
        },
        index=[f"cell-{i}" for i in range(6)],
    )


@pytest.fixture
def harmonization_yaml(tmp_path) -> Path:
    """Harmonization map in the ``{harmonized: [originals]}`` layout."""
    config = {
        "name": "test_map",
        "unknown_label": "Unknown",
        "labels": {
            "T cell": ["T-cells", "t cell"],
            "B cell": ["B-cells"],
            "Monocyte": ["CD14+ monocyte"],
        },
    }
    path = tmp_path / "harmonization.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)
    return path


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


# ============================================================================
# AnnData Fixtures
# ============================================================================


@pytest.fixture
def mock_adata():
    """Mock ScPCA-style AnnData with 200 cells and 40 genes."""
    return create_mock_adata()


@pytest.fixture
def small_adata():
    """Small AnnData for quick tests."""
    return create_mock_adata(n_cells=40, n_genes=20)


@pytest.fixture
def reference_profiles(mock_adata) -> pd.DataFrame:
    """Reference profiles keyed by gene symbol, built from mock_adata."""
    return create_reference_profiles(mock_adata)


@pytest.fixture
def adata_path(tmp_path, mock_adata) -> Path:
    """mock_adata written to an H5AD file."""
    path = tmp_path / "SCPCL000001_processed_rna.h5ad"
    mock_adata.write_h5ad(path)
    return path


@pytest.fixture
def reference_path(tmp_path, reference_profiles) -> Path:
    """reference_profiles written to a TSV file."""
    path = tmp_path / "reference_profiles.tsv"
    reference_profiles.to_csv(path, sep="\t")
    return path


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def module_dir(tmp_path) -> Path:
    """Analysis module directory with two small shell scripts."""
    module = tmp_path / "analyses" / "test-module"
    scripts = module / "scripts"
    scripts.mkdir(parents=True)
    (module / "results").mkdir()

    (scripts / "01_prepare.sh").write_text(
        "#!/bin/bash\nset -euo pipefail\necho prepared > \"$2\"\n"
    )
    (scripts / "02_summarize.sh").write_text(
        "#!/bin/bash\nset -euo pipefail\ncat \"$2\" > \"$4\"\n"
    )
    return module


@pytest.fixture
def module_config(tmp_path, module_dir) -> Path:
    """Module run configuration chaining the two scripts."""
    config = {
        "module": {
            "name": "test-module",
            "path": "analyses/test-module",
        },
        "global": {
            "results_dir": "results",
        },
        "steps": {
            "prepare": {
                "name": "Prepare",
                "script": "scripts/01_prepare.sh",
                "outputs": {"prepared": "{global.results_dir}/prepared.txt"},
                "args": {"output": "{steps.prepare.outputs.prepared}"},
            },
            "summarize": {
                "name": "Summarize",
                "script": "scripts/02_summarize.sh",
                "depends_on": ["prepare"],
                "inputs": {"prepared": "{steps.prepare.outputs.prepared}"},
                "outputs": {"summary": "{global.results_dir}/summary.txt"},
                "args": {
                    "input": "{steps.summarize.inputs.prepared}",
                    "output": "{steps.summarize.outputs.summary}",
                },
            },
        },
    }

    path = tmp_path / "module.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f, sort_keys=False)

    return path
