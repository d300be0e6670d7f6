"""Pytest configuration and shared fixtures for tcga-explorer tests."""

import sys
from pathlib import Path

import pytest
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tcga_explorer.pipeline import ArtifactStore, PipelineConfig, RetryPolicy, WorkUnit

# Import mock data generators
from tests.fixtures import create_mock_clinical, create_mock_counts, write_cohort


# ============================================================================
# Mock Data Fixtures
# ============================================================================


@pytest.fixture
def mock_counts() -> pd.DataFrame:
    """Create a count matrix with 20 tumour and 6 normal samples on two plates."""
    return create_mock_counts()


@pytest.fixture
def mock_clinical(mock_counts) -> pd.DataFrame:
    """Create a survival table matching ``mock_counts``."""
    return create_mock_clinical(list(mock_counts.columns))


@pytest.fixture
def brca_unit() -> WorkUnit:
    return WorkUnit(unit_id="BRCA")


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    """Empty artifact store rooted in a temporary directory."""
    return ArtifactStore(tmp_path / "artifacts")


# ============================================================================
# Cohort Fixtures
# ============================================================================


@pytest.fixture
def cohort_dir(tmp_path: Path) -> Path:
    """Directory with BRCA and LUAD mock cohorts."""
    data_dir = tmp_path / "data"
    write_cohort(data_dir, "BRCA", seed=1)
    write_cohort(data_dir, "LUAD", seed=2)
    return data_dir


def _source_templates(cohort_dir: Path) -> dict:
    return {
        "expression": str(cohort_dir / "TCGA-{indication}.htseq_counts.tsv.gz"),
        "clinical": str(cohort_dir / "TCGA-{indication}.survival.tsv"),
    }


@pytest.fixture
def pipeline_config(tmp_path: Path, cohort_dir: Path) -> PipelineConfig:
    """Configuration for a two-cohort run over local mock files."""
    return PipelineConfig(
        output_dir=tmp_path / "results",
        indications=("BRCA", "LUAD"),
        sources=_source_templates(cohort_dir),
        retry=RetryPolicy(max_attempts=1, backoff_seconds=0),
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_pipeline_config(tmp_path: Path, cohort_dir: Path) -> Path:
    """Create sample pipeline configuration file."""
    import yaml

    config = {
        "pipeline": {
            "output_dir": "results",
            "log_file": "logs/pipeline_log.txt",
            "indications": ["BRCA", "LUAD"],
            "sources": _source_templates(cohort_dir),
            "download_data": True,
            "apply_combat": True,
            "deseq2_normalize": True,
            "perform_de_analysis": True,
            "perform_cell_composition": True,
            "build_survival_models": True,
            "n_workers": 1,
            "retry": {"max_attempts": 1, "backoff_seconds": 0},
        },
    }

    path = tmp_path / "pipeline.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path
