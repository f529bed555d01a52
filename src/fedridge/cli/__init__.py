"""
fedridge - Command Line Interface.

Runs in-process federated ridge-regression simulations and the noisy
simple-average mode, and manages their YAML configurations.

Usage:
    fedridge run simulation.yaml
    fedridge average simulation.yaml
    fedridge validate simulation.yaml
    fedridge generate --type simulation --output simulation.yaml
"""

from fedridge.cli.main import app, main

__all__ = ["app", "main"]
