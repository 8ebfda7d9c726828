"""Command-line interface for AttributionNav."""

import asyncio
import json
from datetime import datetime
from pathlib import Path

import click

from attributionnav import __version__
from attributionnav.attribution.engine import AttributionEngine
from attributionnav.core.config import Settings
from attributionnav.core.exceptions import AttributionNavError
from attributionnav.logging.config import configure_logging
from attributionnav.storage.sql_repository import SQLAttributionRepository

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _run(settings: Settings, operation):
    """Run ``operation(engine, repository)`` against a fresh repository."""

    async def runner():
        repository = SQLAttributionRepository(settings)
        try:
            await repository.create_schema()
            engine = AttributionEngine(repository, settings=settings)
            return await operation(engine, repository)
        finally:
            await repository.dispose()

    try:
        return asyncio.run(runner())
    except AttributionNavError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=__version__, prog_name="attributionnav")
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read settings from this .env file",
)
@click.pass_context
def cli(ctx: click.Context, env_file: Path | None) -> None:
    """Multi-touch marketing attribution."""
    try:
        settings = Settings.from_env(env_file)
    except AttributionNavError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(settings)
    ctx.obj = settings


@cli.command("init-db")
@click.pass_obj
def init_db(settings: Settings) -> None:
    """Create the attribution tables."""

    async def operation(engine, repository):
        return repository.database_url

    url = _run(settings, operation)
    click.echo(f"Schema ready at {url.split('@')[-1]}")


@cli.command()
@click.option("--start", "start_date", type=click.DateTime(DATE_FORMATS), required=True)
@click.option("--end", "end_date", type=click.DateTime(DATE_FORMATS), required=True)
@click.option("--epochs", type=click.IntRange(min=1), default=None, help="Training iterations")
@click.pass_obj
def train(
    settings: Settings, start_date: datetime, end_date: datetime, epochs: int | None
) -> None:
    """Train the data-driven model on journeys in a date range."""

    async def operation(engine, repository):
        return await engine.train_data_driven_model(start_date, end_date, epochs=epochs)

    parameters = _run(settings, operation)
    _echo_json(
        {
            "version": parameters.version,
            "trained_at": parameters.trained_at.isoformat(),
            "provenance": parameters.provenance.model_dump(mode="json"),
        }
    )


@cli.command()
@click.option("--start", "start_date", type=click.DateTime(DATE_FORMATS), required=True)
@click.option("--end", "end_date", type=click.DateTime(DATE_FORMATS), required=True)
@click.option("--model", "-m", "model_type", default=None, help="Model used for channel ROI")
@click.pass_obj
def insights(
    settings: Settings, start_date: datetime, end_date: datetime, model_type: str | None
) -> None:
    """Show attribution insights for a date range."""

    async def operation(engine, repository):
        return await engine.get_insights(start_date, end_date, model_type=model_type)

    _echo_json(_run(settings, operation).model_dump(mode="json"))


@cli.command()
@click.argument("conversion_id")
@click.option(
    "--model",
    "-m",
    "model_types",
    multiple=True,
    help="Model to compare (repeatable, default first_touch, last_touch, linear)",
)
@click.pass_obj
def compare(settings: Settings, conversion_id: str, model_types: tuple[str, ...]) -> None:
    """Compare attribution models on one stored conversion."""

    async def operation(engine, repository):
        if model_types:
            return await engine.compare_models(conversion_id, model_types)
        return await engine.compare_models(conversion_id)

    results = _run(settings, operation)
    _echo_json(
        {
            model_type: {
                "result_id": result.result_id,
                "conversion_value": str(result.conversion_value),
                "credits": {
                    tp.touchpoint_id: {"channel": tp.channel, "credit": tp.credit}
                    for tp in result.touchpoints
                },
            }
            for model_type, result in results.items()
        }
    )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
