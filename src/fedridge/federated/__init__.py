"""
Decentralized Ridge Regression

Sites fit a shared coefficient vector against their private data and report
only gradients and objective values; the aggregator merges them into the
next model until the aggregate gradient vanishes or the iteration cap is hit.

Components:
    - local_step / LocalSite: One site's regression statistics
    - remote_step / RemoteAggregator: Round state machine
    - FederatedRun: In-process orchestration for simulations
    - privacy / average: Laplace-noised simple average of ROI values

Usage:
    from fedridge.federated import FederatedRun, LocalSite

    sites = [LocalSite("site_a", x_a, y_a, config), LocalSite("site_b", x_b, y_b, config)]
    state = FederatedRun(config, sites).run()
"""

from fedridge.federated.aggregator import RemoteAggregator
from fedridge.federated.average import compute_local_average, compute_remote_average
from fedridge.federated.client import LocalRequest, LocalSite, compute_regression, local_step
from fedridge.federated.privacy import (
    RegionOfInterest,
    add_noise,
    calculate_laplace_scale,
    calculate_sensitivity,
)
from fedridge.federated.server import FederatedRun, RemoteRequest, remote_step
from fedridge.federated.state import (
    BestFit,
    HistoryEntry,
    LocalResult,
    ModelState,
    OutcomeKind,
    RoundOutcome,
    RunStatus,
)

__all__ = [
    "BestFit",
    "FederatedRun",
    "HistoryEntry",
    "LocalRequest",
    "LocalResult",
    "LocalSite",
    "ModelState",
    "OutcomeKind",
    "RegionOfInterest",
    "RemoteAggregator",
    "RemoteRequest",
    "RoundOutcome",
    "RunStatus",
    "add_noise",
    "calculate_laplace_scale",
    "calculate_sensitivity",
    "compute_local_average",
    "compute_regression",
    "compute_remote_average",
    "local_step",
    "remote_step",
]
