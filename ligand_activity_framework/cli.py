"""
Command-line interface for the Ligand Activity Framework.

Usage:
    python -m ligand_activity_framework --config configs/demo.yaml
    laf --config configs/demo.yaml --workers 4
"""

import sys
from pathlib import Path

import click

from . import __version__
from .errors import LigandActivityError
from .pipeline import LigandActivityPipeline, PipelineConfig


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Path to YAML configuration file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default=None,
    help="Override output directory from config",
)
@click.option(
    "--workers",
    "-w",
    type=int,
    default=None,
    help="Worker threads for propagation and scoring",
)
@click.option(
    "--verbose/--quiet",
    "-v/-q",
    default=True,
    help="Enable/disable verbose output",
)
@click.version_option(version=__version__, prog_name="ligand-activity-framework")
def main(config: str, output: str, workers: int, verbose: bool) -> None:
    """
    Ligand Activity Framework - ligand activity inference pipeline

    Build the interaction network, compute ligand-target potentials, rank
    ligands against the configured expression data and write TSV results.

    Example:
        python -m ligand_activity_framework --config configs/demo.yaml
    """
    click.echo(f"Ligand Activity Framework v{__version__}")
    click.echo("=" * 50)

    config_path = Path(config)
    click.echo(f"Loading config: {config_path}")

    try:
        pipeline_config = PipelineConfig.from_yaml(str(config_path))

        # Apply overrides
        if output:
            pipeline_config.output_dir = output
        if workers is not None:
            pipeline_config.n_workers = workers
        pipeline_config.verbose = verbose

        pipeline = LigandActivityPipeline(pipeline_config)
        result = pipeline.run()

        click.echo("")
        click.echo(result.summary)
        click.echo("Pipeline completed successfully!")
        if pipeline_config.output_dir:
            click.echo(f"Results: {pipeline_config.output_dir}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except LigandActivityError as e:
        click.echo(f"Pipeline failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
