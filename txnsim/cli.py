from __future__ import annotations

import json
import logging
from pathlib import Path

import click
import structlog


def configure_logging(log_level: str | None = None) -> str:
    """Set up structlog; without an explicit level, ``Settings.log_level`` applies."""
    from txnsim.config.settings import Settings

    level = (log_level or Settings().log_level).upper()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
    )
    return level


@click.group()  # type: ignore[misc]
@click.option("--log-level", default=None, help="Minimum log level (defaults to TXNSIM_LOG_LEVEL or INFO)")  # type: ignore[misc]
def cli(log_level: str | None) -> None:
    """txnsim: agent-based synthetic financial transaction simulator."""
    configure_logging(log_level)


@cli.command()  # type: ignore[misc]
@click.option("--steps", default=720, help="Number of simulation steps")  # type: ignore[misc]
@click.option("--clients", default=2_000, help="Number of clients")  # type: ignore[misc]
@click.option("--merchants", default=200, help="Number of merchants")  # type: ignore[misc]
@click.option("--banks", default=5, help="Number of banks")  # type: ignore[misc]
@click.option("--seed", default=42, help="Random seed")  # type: ignore[misc]
@click.option("--transfer-limit", default=200_000.0, help="Maximum amount per transfer chunk")  # type: ignore[misc]
@click.option("--multiplier", default=1.0, help="Scale factor applied to step target counts")  # type: ignore[misc]
@click.option(  # type: ignore[misc]
    "--max-transactions", default=0, help="Stop once this many transactions are recorded (0 = no cap)"
)
@click.option(  # type: ignore[misc]
    "--profiles",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Aggregated step profile table (CSV or parquet); synthetic profiles if omitted",
)
@click.option("--name", default="txnsim", help="Simulation name used in output file names")  # type: ignore[misc]
@click.option("--output-dir", default="outputs", help="Output directory")  # type: ignore[misc]
@click.option("--raw-log/--no-raw-log", default=True, help="Write the CSV raw transaction log")  # type: ignore[misc]
def simulate(
    steps: int,
    clients: int,
    merchants: int,
    banks: int,
    seed: int,
    transfer_limit: float,
    multiplier: float,
    max_transactions: int,
    profiles: str | None,
    name: str,
    output_dir: str,
    raw_log: bool,
) -> None:
    """Simulate clients acting step by step and write the resulting transactions."""
    from txnsim.config.settings import Settings, SimulationConfig
    from txnsim.output.sinks import RawLogWriter, TransactionSink
    from txnsim.simulation.orchestrator import SimulationOrchestrator
    from txnsim.simulation.profiles import StepsProfiles

    settings = Settings(
        output_dir=Path(output_dir),
        simulation_name=name,
        simulation=SimulationConfig(
            nb_steps=steps,
            nb_clients=clients,
            nb_merchants=merchants,
            nb_banks=banks,
            seed=seed,
            transfer_limit=transfer_limit,
            multiplier=multiplier,
            max_transactions=max_transactions,
        ),
    )
    settings.ensure_dirs()

    steps_profiles = None
    if profiles is not None:
        steps_profiles = StepsProfiles.load(
            profiles,
            multiplier=multiplier,
            nb_steps=steps,
            steps_per_hour=settings.simulation.steps_per_hour,
        )

    extra_sinks: list[TransactionSink] = []
    writer = None
    if raw_log:
        writer = RawLogWriter(settings.output_dir / f"{name}_rawLog.csv")
        extra_sinks.append(writer)

    orchestrator = SimulationOrchestrator(settings, steps_profiles, extra_sinks=extra_sinks)
    try:
        transactions = orchestrator.run()
    finally:
        if writer is not None:
            writer.close()

    validation = orchestrator.validate()
    click.echo(f"\nValidation: {json.dumps(validation, indent=2, default=str)}")

    orchestrator.save(validation)
    click.echo(f"\nData saved to {output_dir}/")
    click.echo(f"  Clients: {clients}")
    click.echo(f"  Transactions: {transactions.height}")
    click.echo(f"  Steps with transactions: {orchestrator.steps_participated}")
    if orchestrator.aborted:
        click.echo("  Run stopped early")


def run_simulation() -> None:
    cli(["simulate"])


if __name__ == "__main__":
    cli()
