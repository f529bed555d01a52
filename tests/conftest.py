"""Shared pytest fixtures for fedridge tests."""

import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest

# Add src directory to path for imports without installation
_src_path = str(Path(__file__).parent.parent / "src")
if _src_path not in sys.path:
    sys.path.insert(0, _src_path)

from fedridge.config import RunConfig  # noqa: E402
from fedridge.data import generate_synthetic_site  # noqa: E402
from fedridge.federated.privacy import RegionOfInterest  # noqa: E402

ROI_KEYS = ("Left-Hippocampus", "Right-Hippocampus")


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def roi_keys():
    """Ordered ROI keys of a two-feature run."""
    return list(ROI_KEYS)


@pytest.fixture
def run_config():
    """Run configuration for two ROIs."""
    return RunConfig(
        initial_learning_rate=2e-4,
        max_iterations=500,
        tolerance=1e-3,
        roi_keys=ROI_KEYS,
        epsilon=1.0,
    )


@pytest.fixture
def rois():
    """ROI descriptors bounded to [0, 1]."""
    return [RegionOfInterest(key=key, min=0.0, max=1.0) for key in ROI_KEYS]


@pytest.fixture
def site_data():
    """Noise-free rows of three sites sharing the coefficients [0.8, -0.4]."""
    return {
        f"site_{name}": generate_synthetic_site(
            [0.8, -0.4], num_samples=num_samples, noise_std=0.0, seed=index
        )
        for index, (name, num_samples) in enumerate([("a", 120), ("b", 80), ("c", 100)])
    }


@pytest.fixture
def rng():
    """Seeded generator for reproducible tests."""
    return np.random.default_rng(1234)


def _make_result(gradient, objective, r2, m_vals, site_id=None):
    result = {
        "gradient": dict(gradient),
        "objective": objective,
        "r2": r2,
        "previousAggregateMVals": dict(m_vals),
    }
    if site_id is not None:
        result["siteId"] = site_id
    return result


@pytest.fixture
def make_result():
    """Factory for wire-form local results."""
    return _make_result
