"""CLI entry point for ddaloop."""

import sys
from pathlib import Path

import click
from loguru import logger


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path),
              default=None, help="Path to config.yaml (default ~/.ddaloop/config.yaml)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path, verbose: bool) -> None:
    """ddaloop: LLM-driven dynamic difficulty adjustment loop."""
    from ddaloop.config.settings import Settings

    settings = Settings.load(config_path)
    _configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


def _metrics_options(func):
    options = [
        click.option("--distance", type=float, default=0.0, help="Distance traveled"),
        click.option("--deaths", type=int, default=0, help="Death count"),
        click.option("--run-time", type=float, default=0.0, help="Total run time (s)"),
        click.option("--avg-gap", type=float, default=None,
                     help="Average seconds between deaths (default: run time / deaths)"),
        click.option("--coins", type=int, default=0, help="Coins collected"),
        click.option("--jumps", type=int, default=0, help="Jump count"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _snapshot(distance, deaths, run_time, avg_gap, coins, jumps):
    from ddaloop.engine.metrics import MetricsSnapshot

    if avg_gap is None:
        avg_gap = run_time / deaths if deaths else run_time
    return MetricsSnapshot(
        distance_traveled=distance,
        death_count=deaths,
        total_run_time=run_time,
        avg_time_between_deaths=avg_gap,
        coins_collected=coins,
        jumps_count=jumps,
    )


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the JSON-lines bridge on stdin/stdout."""
    import asyncio

    from ddaloop.server.__main__ import main as server_main

    asyncio.run(server_main(ctx.obj["settings"]))


@main.command()
@_metrics_options
@click.pass_context
def classify(ctx: click.Context, **kwargs) -> None:
    """Classify a metrics snapshot into a performance symptom."""
    from ddaloop.engine.analyzer import DDAAnalyzer

    analyzer = DDAAnalyzer(ctx.obj["settings"].analyzer)
    metrics = _snapshot(**kwargs)
    click.echo(f"  death rate:    {analyzer.classify_death_rate(metrics).label}")
    click.echo(f"  survival time: {analyzer.classify_survival_time(metrics).label}")
    click.echo(f"Symptom: {analyzer.classify(metrics).label}")


@main.command()
@_metrics_options
@click.pass_context
def prompt(ctx: click.Context, **kwargs) -> None:
    """Print the prompt that would be sent for a metrics snapshot."""
    from ddaloop.engine.analyzer import DDAAnalyzer
    from ddaloop.engine.policy import LLMPolicyEngine
    from ddaloop.engine.profile import DifficultyProfile, build_schema

    settings = ctx.obj["settings"]
    metrics = _snapshot(**kwargs)
    symptom = DDAAnalyzer(settings.analyzer).classify(metrics)
    policy = LLMPolicyEngine(
        DifficultyProfile(build_schema(settings.variables)), config=settings.policy,
    )
    click.echo(policy.build_prompt(metrics, symptom))


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective configuration."""
    from ddaloop.engine.profile import build_schema

    settings = ctx.obj["settings"]
    llm = settings.llm
    click.echo(f"Provider: {llm.get_provider().value}")
    click.echo(f"Model: {llm.get_model()}")
    click.echo(f"API key: {'configured' if llm.get_api_key() else 'missing'}")
    trigger = settings.trigger
    click.echo(
        f"Trigger: enabled={trigger.enabled} "
        f"deaths>={trigger.deaths_before_first_adjustment} "
        f"cooldown={trigger.min_seconds_between_adjustments}s"
    )
    click.echo(f"Session logs: {settings.session_log_dir}")
    click.echo("Variables:")
    for spec in build_schema(settings.variables):
        click.echo(f"  {spec.name}: {spec.default} in [{spec.min}, {spec.max}]")
