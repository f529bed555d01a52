"""
CLI for fedridge.

Provides a rich command-line interface with:
- Progress bars for federated runs
- Colored output for status and errors
- Round-by-round result tables
- Configuration validation and templates

Usage:
    fedridge run simulation.yaml
    fedridge average simulation.yaml
    fedridge validate simulation.yaml
    fedridge generate --type simulation
    fedridge version
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from fedridge import __version__
from fedridge.config import ConfigLoader, SimulationConfig, load_simulation_config
from fedridge.data import generate_synthetic_site, load_site_data
from fedridge.errors import ConfigurationError, FedRidgeError
from fedridge.federated.average import compute_remote_average
from fedridge.federated.client import LocalSite
from fedridge.federated.server import FederatedRun
from fedridge.federated.state import ModelState

# Initialize Rich console
console = Console()

# Create Typer app
app = typer.Typer(
    name="fedridge",
    help="fedridge - Decentralized Ridge Regression",
    add_completion=True,
    rich_markup_mode="rich",
)


# =============================================================================
# Utility Functions
# =============================================================================


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            show_time=True,
            show_path=verbose,
            rich_tracebacks=True,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
    )


def create_progress() -> Progress:
    """Create a Rich progress bar with standard columns."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def print_header() -> None:
    """Print the CLI header banner."""
    header = Text()
    header.append("fedridge", style="bold blue")
    header.append(" v", style="dim")
    header.append(__version__, style="cyan")

    console.print(
        Panel(
            header,
            subtitle="Decentralized Ridge Regression",
            border_style="blue",
        )
    )


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green][+][/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red][-][/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow][!][/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue][*][/blue] {message}")


# =============================================================================
# Commands
# =============================================================================


@app.command()
def run(
    config_path: Path = typer.Argument(
        ...,
        help="Path to simulation configuration YAML file",
        exists=True,
        readable=True,
    ),
    output_path: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Override the JSON results path from config",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Validate config and show what would be executed",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    log_file: Path | None = typer.Option(
        None,
        "--log-file",
        "-l",
        help="Path to log file",
    ),
) -> None:
    """
    Run a federated ridge-regression simulation.

    Builds the configured sites, coordinates rounds until the model
    converges or the iteration cap is reached, and reports every iteration.
    """
    print_header()
    setup_logging(verbose, log_file)

    try:
        with console.status("[bold blue]Loading configuration..."):
            config = load_simulation_config(config_path)

        print_success(f"Loaded configuration: {config.name}")
        if not verbose:
            logging.getLogger().setLevel(config.output.log_level)

        _display_simulation_summary(config)

        if dry_run:
            print_info("Dry run mode - no rounds will be executed")
            return

        state = _execute_run(config, output_path)
        _display_run_results(state, list(config.run.roi_keys))

    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1) from e
    except (FedRidgeError, FileNotFoundError, RuntimeError) as e:
        print_error(f"Run failed: {e}")
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        print_warning("Run interrupted by user")
        raise typer.Abort() from None


@app.command()
def average(
    config_path: Path = typer.Argument(
        ...,
        help="Path to simulation configuration YAML file",
        exists=True,
        readable=True,
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        "-s",
        help="Seed the privacy noise (reproducible demos only)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
) -> None:
    """
    Compute the differentially private average of every ROI.

    Each site perturbs its per-ROI means with Laplace noise calibrated to
    the configured bounds; the means are then averaged across sites.
    """
    print_header()
    setup_logging(verbose)

    try:
        config = load_simulation_config(config_path)
        if not config.rois:
            raise ConfigurationError("The average mode needs 'rois' with value bounds")
        if config.run.epsilon is None:
            raise ConfigurationError("The average mode needs 'run.epsilon'")

        rois = [roi.to_region() for roi in config.rois]
        noise_rng = np.random.default_rng(seed) if seed is not None else None

        site_results = [
            site.compute_average(rois, rng=noise_rng) for site in _build_sites(config)
        ]
        averages = compute_remote_average(site_results, config.run.roi_keys)

    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1) from e
    except (FedRidgeError, FileNotFoundError) as e:
        print_error(f"Average failed: {e}")
        raise typer.Exit(1) from e

    table = Table(title=f"Noisy ROI Averages (epsilon={config.run.epsilon})")
    table.add_column("Site", style="cyan")
    table.add_column("Samples", style="white", justify="right")
    for key in config.run.roi_keys:
        table.add_column(key, style="green", justify="right")

    for result in site_results:
        table.add_row(
            result["site_id"],
            str(result["sample_size"]),
            *(f"{result['averages'][key]:.4f}" for key in config.run.roi_keys),
        )
    table.add_row(
        "[bold]all sites[/bold]",
        str(sum(result["sample_size"] for result in site_results)),
        *(f"[bold]{averages[key]:.4f}[/bold]" for key in config.run.roi_keys),
    )

    console.print()
    console.print(table)
    print_success(f"Averaged {len(averages)} ROIs across {len(site_results)} sites")


@app.command()
def validate(
    config_path: Path = typer.Argument(
        ...,
        help="Path to configuration YAML file",
        exists=True,
        readable=True,
    ),
    config_type: str = typer.Option(
        "simulation",
        "--type",
        "-t",
        help="Configuration type: simulation, run",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed validation output",
    ),
) -> None:
    """
    Validate a configuration file.

    Checks the configuration file for syntax errors and validates
    all fields against the schema.
    """
    print_header()

    loader = ConfigLoader()

    try:
        with console.status(f"[bold blue]Validating {config_type} configuration..."):
            if config_type == "simulation":
                config: Any = loader.load_simulation(config_path)
                label = config.name
            elif config_type == "run":
                config = loader.load_run(config_path)
                label = ", ".join(config.roi_keys)
            else:
                print_error(f"Unknown configuration type: {config_type}")
                raise typer.Exit(1)

        print_success(f"Configuration is valid: {label}")

        if verbose:
            _display_config_details(config, config_type)

    except ConfigurationError as e:
        print_error(f"Validation failed: {e}")
        raise typer.Exit(1) from e


@app.command()
def generate(
    config_type: str = typer.Option(
        "simulation",
        "--type",
        "-t",
        help="Configuration type to generate: simulation, run",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path (default: stdout)",
    ),
) -> None:
    """
    Generate a configuration template.

    Creates a template configuration file that can be customized
    for your own sites and ROIs.
    """
    print_header()

    loader = ConfigLoader()
    if config_type == "simulation":
        config_content = loader.generate_simulation_template()
    elif config_type == "run":
        config_content = loader.generate_run_template()
    else:
        print_error(f"Unknown configuration type: {config_type}")
        raise typer.Exit(1)

    if output:
        output.write_text(config_content, encoding="utf-8")
        print_success(f"Configuration template written to: {output}")
    else:
        console.print(Panel(config_content, title=f"{config_type.title()} Template"))


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"fedridge version [cyan]{__version__}[/cyan]")
    console.print(f"Python {sys.version.split()[0]} on {sys.platform}")


# =============================================================================
# Helper Functions
# =============================================================================


def _build_sites(config: SimulationConfig) -> list[LocalSite]:
    """Load or generate every configured site's rows."""
    roi_keys = list(config.run.roi_keys)

    coefficients = config.true_coefficients
    if coefficients is None:
        coefficients = np.random.default_rng(config.seed).uniform(-1.0, 1.0, len(roi_keys)).tolist()

    sites = []
    for index, site in enumerate(config.sites):
        if site.data_path:
            x_rows, y_rows = load_site_data(site.data_path, roi_keys, site.response_column)
        else:
            x_rows, y_rows = generate_synthetic_site(
                coefficients,
                num_samples=site.num_samples,
                noise_std=site.noise_std,
                seed=config.seed + index + 1,
            )
        sites.append(LocalSite(site.site_id, x_rows, y_rows, config.run))

    return sites


def _display_simulation_summary(config: SimulationConfig) -> None:
    """Display a summary of the simulation configuration."""
    console.print()

    summary = Table(title="Simulation Summary", show_header=False, box=None)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Name", config.name)
    if config.description:
        summary.add_row("Description", config.description)
    summary.add_row("ROI keys", ", ".join(config.run.roi_keys))
    summary.add_row("Learning rate", f"{config.run.initial_learning_rate:g}")
    summary.add_row("Max iterations", str(config.run.max_iterations))
    summary.add_row("Tolerance", f"{config.run.tolerance:g}")
    summary.add_row("Ridge lambda", f"{config.run.ridge_lambda:g}")
    summary.add_row("Normalization", config.run.normalization.value)
    console.print(summary)

    sites_table = Table(title="Sites", show_header=True)
    sites_table.add_column("Site", style="yellow")
    sites_table.add_column("Source", style="cyan")
    sites_table.add_column("Samples", style="green", justify="right")

    for site in config.sites:
        if site.data_path:
            sites_table.add_row(site.site_id, site.data_path, "-")
        else:
            sites_table.add_row(site.site_id, "synthetic", str(site.num_samples))

    console.print(sites_table)
    console.print()


def _display_config_details(config: Any, config_type: str) -> None:
    """Display detailed configuration information."""
    console.print()

    table = Table(title=f"{config_type.title()} Configuration Details")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    data = config.model_dump(mode="json")
    for key, value in data.items():
        if isinstance(value, list):
            table.add_row(key, f"[{len(value)} items]")
        else:
            table.add_row(key, str(value))

    console.print(table)


def _execute_run(config: SimulationConfig, output_path: Path | None) -> ModelState:
    """Execute a federated run with progress tracking."""
    console.print()
    print_info("Starting federated run...")

    with console.status("[bold blue]Preparing sites..."):
        sites = _build_sites(config)

    federated_run = FederatedRun(config.run, sites, rng=np.random.default_rng(config.seed))

    with create_progress() as progress:
        task = progress.add_task("[bold]Fitting...", total=config.run.max_iterations)

        def on_event(event: str, data: dict[str, Any]) -> None:
            if event == "round_completed" and data["outcome"] == "continue":
                progress.update(
                    task,
                    advance=1,
                    description=f"[bold]Objective {data['objective']:.4g}",
                )
            elif event == "run_completed":
                progress.update(task, completed=config.run.max_iterations)

        federated_run.add_callback(on_event)
        state = federated_run.run()

    console.print()
    if state.status.value == "converged":
        print_success(f"Converged after {state.iteration_count} iterations")
    else:
        print_warning(f"Stopped at the iteration cap ({state.iteration_count} iterations)")

    target = output_path or config.output.output_path
    if target:
        saved = federated_run.save_results(target)
        print_info(f"Results saved to: {saved}")

    return state


def _display_run_results(state: ModelState, roi_keys: list[str], max_rows: int = 20) -> None:
    """Display the fitted coefficients and the tail of the history."""
    coefficients = Table(title="Fitted Coefficients")
    coefficients.add_column("ROI", style="cyan")
    coefficients.add_column("Coefficient", style="green", justify="right")
    coefficients.add_column("Gradient", style="white", justify="right")
    for key in roi_keys:
        coefficients.add_row(key, f"{state.m_vals[key]:.6f}", f"{state.gradient[key]:.3e}")
    console.print(coefficients)

    history = Table(title="Iterations")
    history.add_column("#", style="cyan", justify="right")
    history.add_column("Objective", style="green", justify="right")
    history.add_column("r^2", style="green", justify="right")
    history.add_column("Learning rate", style="white", justify="right")

    for entry in state.history[-max_rows:]:
        history.add_row(
            str(entry.iteration),
            f"{entry.objective:.6g}",
            f"{entry.r2:.4f}",
            f"{entry.learning_rate:.3e}",
        )

    console.print(history)
    if len(state.history) > max_rows:
        print_info(f"Showing the last {max_rows} of {len(state.history)} iterations")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
