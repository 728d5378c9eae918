"""Lookup CLI command: interactive enrichment of an arbitrary coordinate."""

import asyncio
from datetime import datetime

import click
from rich.console import Console

from cli.utils import format_coordinate, get_components
from providers import create_geocoder, create_poi_search
from tracking.enrichment import EnrichmentPipeline
from tracking.models import LocationFix

console = Console()


@click.command()
@click.argument("latitude", type=click.FloatRange(-90.0, 90.0))
@click.argument("longitude", type=click.FloatRange(-180.0, 180.0))
@click.option(
    "--radius", type=click.FloatRange(min=0, min_open=True), default=None, help="POI search radius in meters"
)
@click.pass_obj
def lookup(obj, latitude: float, longitude: float, radius: float):
    """Name the place at LATITUDE LONGITUDE without recording it."""
    c = get_components((obj or {}).get("config_path"))
    config = c["config_model"]
    radius_m = radius if radius is not None else config.enrichment.interactive_radius_m

    pipeline = EnrichmentPipeline(create_geocoder(config), create_poi_search(config))
    fix = LocationFix(latitude, longitude, datetime.now().astimezone(), horizontal_accuracy_m=0.0)

    with console.status("Looking up place..."):
        result = asyncio.run(pipeline.enrich(fix, radius_m=radius_m))

    console.print(f"[cyan bold]{result.place_name}[/] ({result.category})")
    console.print(f"[dim]{format_coordinate(latitude, longitude)} | {result.source_stage} | radius {radius_m:.0f}m[/]")
