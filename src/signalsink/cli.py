# src/signalsink/cli.py
"""signalsink Command Line Interface.

Operator tooling around the exporter: validate a settings file and send a
probe batch to the configured endpoints.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import TYPE_CHECKING

import typer
import yaml
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from signalsink import __version__
from signalsink.contracts.config import RuntimeExporterConfig
from signalsink.contracts.enums import MetricKind, Signal
from signalsink.contracts.errors import ConfigurationError, DeliveryDropped
from signalsink.contracts.telemetry import (
    AnyValue,
    InstrumentationScope,
    LogData,
    LogRecord,
    Metric,
    MetricData,
    NumberDataPoint,
    Resource,
    ResourceGroup,
    ScopeGroup,
    Span,
    TraceData,
    make_attributes,
)
from signalsink.core.config import ExporterSettings, load_settings, resolve_config

if TYPE_CHECKING:
    from signalsink.exporter.exporter import MonitoringExporter

__all__ = ["app"]

app = typer.Typer(
    name="signalsink",
    help="signalsink: HTTP export sink for traces, metrics and logs.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"signalsink version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """signalsink: HTTP export sink for traces, metrics and logs."""
    from signalsink.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _load_or_exit(settings: str) -> tuple[ExporterSettings, RuntimeExporterConfig]:
    """Load settings and resolve runtime config, exiting 1 with a readable error."""
    settings_path = Path(settings).expanduser()
    try:
        loaded = load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None
    except ValueError as e:
        # Unset ${VAR} reference
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        config = RuntimeExporterConfig.from_settings(loaded)
    except ConfigurationError as e:
        typer.echo(f"Endpoint error: {e}", err=True)
        if e.empty_inputs:
            typer.echo(f"  Empty inputs: {', '.join(e.empty_inputs)}", err=True)
        raise typer.Exit(1) from None
    return loaded, config


@app.command()
def check(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    show_config: bool = typer.Option(
        False,
        "--show-config",
        help="Also print the resolved settings (header values redacted).",
    ),
) -> None:
    """Validate a settings file and show where each signal is sent."""
    loaded, config = _load_or_exit(settings)

    typer.echo("Configuration valid.")
    for signal in Signal:
        url = config.endpoints.for_signal(signal)
        typer.echo(f"  {signal.value}: {url or 'absent'}")
    typer.echo(f"  timeout: {config.timeout}s")
    # Header values may carry credentials
    if config.headers:
        typer.echo(f"  headers: {', '.join(sorted(config.headers))}")
    if show_config:
        typer.echo("")
        typer.echo(yaml.safe_dump(resolve_config(loaded), sort_keys=False).rstrip())


def _probe_batch(signal: Signal) -> TraceData | MetricData | LogData:
    """One tiny batch per signal, stamped with the current time."""
    now = time.time_ns()
    resource = Resource(attributes=make_attributes({"service.name": "signalsink-probe"}))
    scope = InstrumentationScope(name="signalsink.cli", version=__version__)

    match signal:
        case Signal.TRACES:
            span = Span(name="probe", start_time_unix_nano=now, end_time_unix_nano=now)
            return TraceData(resource_groups=(ResourceGroup(resource, (ScopeGroup(scope, (span,)),)),))
        case Signal.METRICS:
            metric = Metric(
                name="signalsink.probe",
                kind=MetricKind.GAUGE,
                data_points=(NumberDataPoint(time_unix_nano=now, value=1),),
            )
            return MetricData(resource_groups=(ResourceGroup(resource, (ScopeGroup(scope, (metric,)),)),))
        case Signal.LOGS:
            record = LogRecord(time_unix_nano=now, severity_text="INFO", body=AnyValue.string("signalsink probe"))
            return LogData(resource_groups=(ResourceGroup(resource, (ScopeGroup(scope, (record,)),)),))


def _send_probe(exporter: MonitoringExporter, signal: Signal) -> None:
    batch = _probe_batch(signal)
    match signal:
        case Signal.TRACES:
            exporter.export_traces(batch)
        case Signal.METRICS:
            exporter.export_metrics(batch)
        case Signal.LOGS:
            exporter.export_logs(batch)


@app.command()
def probe(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    signal: list[Signal] | None = typer.Option(
        None,
        "--signal",
        help="Signal to probe (repeatable). Defaults to every configured signal.",
    ),
    timeout: float = typer.Option(
        30.0,
        "--timeout",
        "-t",
        help="Seconds to wait for delivery.",
    ),
) -> None:
    """Send one synthetic batch per signal and report the outcome."""
    from signalsink.exporter.exporter import MonitoringExporter

    _, config = _load_or_exit(settings)
    configured = config.endpoints.configured_signals()
    selected = signal or list(configured)

    missing = [s.value for s in selected if s not in configured]
    if missing:
        typer.echo(f"Error: no endpoint configured for: {', '.join(missing)}", err=True)
        raise typer.Exit(1)

    drops: list[DeliveryDropped] = []
    with MonitoringExporter(config, on_drop=drops.append) as exporter:
        for s in selected:
            _send_probe(exporter, s)
        flushed = exporter.flush(timeout)

    typer.echo(json.dumps(exporter.health_metrics, indent=2))

    for dropped in drops:
        typer.echo(f"Dropped {dropped.signal.value} batch after {dropped.attempts} attempt(s): {dropped.reason}", err=True)
    if not flushed:
        typer.echo(f"Error: delivery did not finish within {timeout}s", err=True)
        raise typer.Exit(1)
    if drops:
        raise typer.Exit(1)
    typer.echo("Probe delivered.")


if __name__ == "__main__":
    app()
