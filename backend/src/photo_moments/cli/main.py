"""
photo-moments CLI: curate photo moments from the command line.

Usage:
    photo-moments curate <input.json> [-o OUTPUT] [--sub-clusters] [--min-confidence X]
    photo-moments init
    photo-moments version
"""

from __future__ import annotations

import json
import logging

import click

from photo_moments import __version__


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Group photos into moments and pick the best shot of each."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


@cli.command()
def version() -> None:
    """Print the installed version."""
    click.echo(f"photo-moments {__version__}")


@cli.command()
def init() -> None:
    """Create ~/.photo-moments/ with a default configuration."""
    from photo_moments.config import get_default_config
    from photo_moments.paths import ensure_data_home, get_data_home

    data_home = ensure_data_home()
    click.echo(f"Data directory: {data_home}")

    config_path = get_data_home() / "config.json"
    if config_path.exists():
        click.echo(f"Config already exists: {config_path}")
    else:
        config_path.write_text(json.dumps(get_default_config(), indent=2), encoding="utf-8")
        click.echo(f"Config created: {config_path}")

    click.echo("Initialization complete.")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", "output_file", default=None, help="Output JSON (default: <input>.moments.json)")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="Config file to use")
@click.option("--sub-clusters/--no-sub-clusters", default=None, help="Find near-duplicate and pose groups")
@click.option("--min-confidence", default=0.0, type=click.FloatRange(0.0, 1.0), help="Drop moments below this ranking confidence")
@click.option("--format", "format_style", default="detailed", type=click.Choice(["detailed", "simple"]), help="Output format")
@click.option("--no-progress", is_flag=True, default=False, help="Hide the progress bar")
def curate(
    input_file: str,
    output_file: str | None,
    config_path: str | None,
    sub_clusters: bool | None,
    min_confidence: float,
    format_style: str,
    no_progress: bool,
) -> None:
    """Cluster and rank analyzed photos.

    Reads photo records from INPUT_FILE, groups them into moments, ranks each
    moment's photos and writes the annotated moments as JSON.
    """
    from photo_moments import curate_photo_records
    from photo_moments.criteria import ConfigurationError

    try:
        result = curate_photo_records(
            input_file,
            output_file,
            config_path=config_path,
            enable_sub_clustering=sub_clusters,
            min_confidence=min_confidence,
            format_style=format_style,
            show_progress=not no_progress,
        )
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(2)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    if result["moments"] == 0:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
