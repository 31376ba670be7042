"""CLI entry point for py-flowpath."""

import time
from typing import Optional

import click

from .config import settings
from .core.directionalizer import DirectionalizeOptions
from .core.exceptions import DirectionalizeError
from .datasource.geopackage import GeoPackageDataSource
from .engine import CycleCheckEngine, DirectionalizeEngine
from .utils.logging import configure_logging


@click.group()
@click.option("--log-level", default=None, help="Log level (default from settings).")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"], case_sensitive=False),
    default=None,
    help="Log output format (default from settings).",
)
def cli(log_level: Optional[str], log_format: Optional[str]) -> None:
    """Flowpath network processing tools."""
    configure_logging(log_level or settings.log_level, log_format or settings.log_format)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("output_path", type=click.Path(dir_okay=False))
@click.option("--crs", default=None, help="CRS of the input coordinates, overrides the dataset CRS.")
@click.option("--short-segment", type=float, default=None, help="Short junction edge length threshold.")
@click.option("--angle-diff", type=float, default=None, help="Degrees needed to reverse a loop path.")
def directionalize(
    input_path: str,
    output_path: str,
    crs: Optional[str],
    short_segment: Optional[float],
    angle_diff: Optional[float],
) -> None:
    """Directionalize the flowpaths of INPUT_PATH into OUTPUT_PATH (GeoPackage)."""
    start = time.perf_counter()
    options = DirectionalizeOptions.from_settings(settings)
    if crs:
        options.source_crs = crs
    if short_segment is not None:
        options.short_segment = short_segment
    if angle_diff is not None:
        options.angle_diff = angle_diff

    GeoPackageDataSource.prepare_output(input_path, output_path)
    try:
        with GeoPackageDataSource(output_path) as source:
            result = DirectionalizeEngine(source, options).do_work()
    except DirectionalizeError as ex:
        raise click.ClickException(str(ex)) from ex

    click.echo(f"Flipped {len(result.features_to_flip)} of {len(result.processed_features)} flowpaths")
    if result.sink_warnings or result.source_warnings:
        click.echo(
            f"Potential sink errors: {len(result.sink_warnings)}, "
            f"potential source errors: {len(result.source_warnings)}"
        )
    click.echo(f"Processing Time: {time.perf_counter() - start:.3f} seconds")


@cli.command()
@click.argument("dataset", type=click.Path(exists=True, dir_okay=False))
def cyclecheck(dataset: str) -> None:
    """Check the flowpaths of DATASET (GeoPackage) for directed cycles."""
    start = time.perf_counter()
    try:
        with GeoPackageDataSource(dataset, process="cycles") as source:
            CycleCheckEngine(source).do_work()
    except DirectionalizeError as ex:
        raise click.ClickException(str(ex)) from ex
    click.echo("No cycles found")
    click.echo(f"Processing Time: {time.perf_counter() - start:.3f} seconds")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
