"""Output renderer: rich table formatter, JSON formatter, format dispatch."""

import dataclasses
import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from evmaudit.classify import required_features
from evmaudit.models import AuditReport, AuditRun, HardFork

logger = logging.getLogger(__name__)

_OK = "[green]yes[/green]"
_NO = "[red]no[/red]"

_HISTORY_HEADERS = [
    "When (UTC)",
    "Chain ID",
    "RPC URL",
    "Hard fork",
    "Coverage %",
    "Duration s",
]


def render(
    report: AuditReport,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Dispatch output to the appropriate formatter.

    Args:
        report: Audit report to render.
        fmt: Output format — ``"table"`` or ``"json"``.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    if fmt == "table":
        render_table(report, file=file, width=width)
    elif fmt == "json":
        render_json(report, file=file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


# ---------------------------------------------------------------------------
# Table (rich) formatter
# ---------------------------------------------------------------------------


def render_table(
    report: AuditReport,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render *report* as a series of ``rich`` tables to *file*.

    Sections: connection and chain id, hard fork, feature probes, RPC
    coverage, gas, ERC-4337 EntryPoint, deployment (if attempted),
    integration readiness, recommendations.
    """
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    _render_connection(console, report)
    _render_probes(console, report)
    _render_coverage(console, report)
    _render_gas(console, report)
    if report.entry_points:
        _render_entry_points(console, report)
    if report.deployment is not None:
        _render_deployment(console, report)
    if report.readiness is not None:
        _render_readiness(console, report)
    _render_recommendations(console, report)


def _render_connection(console: Console, report: AuditReport) -> None:
    chain = report.chain
    console.print(f"\n[bold]EVM compatibility audit — chain {chain.chain_id}[/bold]")
    console.print(f"  RPC URL: {escape(chain.rpc_url)}")
    if chain.known_chain:
        console.print(f"  Chain ID {chain.chain_id} is already used by {chain.known_chain}")
    else:
        console.print(f"  Chain ID {chain.chain_id} appears to be unique")
    console.print(f"  Block: {chain.block_number}")
    if chain.account:
        console.print(f"  Account: {chain.account} ({_fmt(chain.balance)} ETH)")

    fork = report.hard_fork
    status = _OK if fork is HardFork.SHANGHAI else _NO
    required = ", ".join(required_features(fork)) or "—"
    console.print(f"  Hard fork: [bold]{fork.value.upper()}[/bold] (requires {required})")
    console.print(f"  Shanghai compatible: {status}\n")


def _render_probes(console: Console, report: AuditReport) -> None:
    """One row per probe, followed by the folded flag per feature."""
    table = Table(title="Feature probes")
    table.add_column("Feature")
    table.add_column("Method")
    table.add_column("Source")
    table.add_column("Result")
    table.add_column("Detail")

    for probe in report.probes:
        detail = probe.error_message if not probe.succeeded else probe.value
        table.add_row(
            probe.feature,
            probe.method,
            probe.source,
            _OK if probe.succeeded else _NO,
            _fmt(detail),
        )
    console.print(table)

    flags = Table(title="Feature flags")
    flags.add_column("Feature")
    flags.add_column("Supported")
    for feature, supported in report.flags.items():
        flags.add_row(feature, _OK if supported else _NO)
    console.print(flags)


def _render_coverage(console: Console, report: AuditReport) -> None:
    coverage = report.coverage
    table = Table(
        title=f"RPC coverage — {coverage.supported}/{coverage.total} "
        f"({coverage.score}%)"
    )
    table.add_column("Method")
    table.add_column("Supported")
    table.add_column("Error")
    for check in coverage.checks:
        table.add_row(
            check.method,
            _OK if check.supported else _NO,
            _fmt(check.error_message),
        )
    console.print(table)


def _render_gas(console: Console, report: AuditReport) -> None:
    table = Table(title="Gas")
    table.add_column("Field")
    table.add_column("Wei", justify="right")
    for name, value in report.gas.items():
        table.add_row(name, _fmt(value))
    console.print(table)


def _render_entry_points(console: Console, report: AuditReport) -> None:
    table = Table(title="ERC-4337 EntryPoint")
    table.add_column("Version")
    table.add_column("Address")
    table.add_column("Deployed")
    for check in report.entry_points:
        deployed = _OK if check.deployed else _NO
        if check.error_message:
            deployed = f"{deployed} ({escape(check.error_message)})"
        table.add_row(check.version, check.address, deployed)
    console.print(table)


def _render_deployment(console: Console, report: AuditReport) -> None:
    deployment = report.deployment
    assert deployment is not None
    table = Table(title="Probe contracts")
    table.add_column("Opcode")
    table.add_column("Address")
    for opcode, address in deployment.addresses.items():
        table.add_row(opcode, address)
    console.print(table)
    if deployment.error_message:
        console.print(f"  Deployment errors: {escape(deployment.error_message)}")


def _render_readiness(console: Console, report: AuditReport) -> None:
    readiness = report.readiness
    assert readiness is not None
    console.print(
        f"\n[bold]Integration readiness:[/bold] {readiness.level} "
        f"({readiness.overall_score}%)"
    )
    console.print(
        f"  RPC {readiness.rpc_score}%, finality {readiness.finality_score}%, "
        f"transactions {readiness.transaction_score}%"
    )

    table = Table(title="Provider readiness")
    table.add_column("Provider")
    table.add_column("Score", justify="right")
    table.add_column("Level")
    for provider in readiness.providers:
        table.add_row(provider.name, f"{provider.score}%", provider.level)
    console.print(table)


def _render_recommendations(console: Console, report: AuditReport) -> None:
    console.print("\n[bold]Recommendations[/bold]")
    if not report.recommendations:
        console.print("  None.")
        return
    for index, rec in enumerate(report.recommendations, start=1):
        console.print(f"  {index}. {escape(rec)}")


# ---------------------------------------------------------------------------
# Multi-report views
# ---------------------------------------------------------------------------


def render_comparison(
    reports: list[tuple[str, AuditReport]],
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render one summary row per audited endpoint.

    Args:
        reports: ``(label, report)`` pairs in audit order.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).
    """
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    table = Table(title=f"Comparison — {len(reports)} endpoints")
    table.add_column("Chain")
    table.add_column("Chain ID", justify="right")
    table.add_column("Hard fork")
    table.add_column("Features", justify="right")
    table.add_column("Coverage", justify="right")
    table.add_column("Readiness")
    table.add_column("ERC-4337")

    for label, report in reports:
        supported = sum(1 for s in report.flags.values() if s)
        readiness = report.readiness
        table.add_row(
            escape(label),
            str(report.chain.chain_id),
            report.hard_fork.value.upper(),
            f"{supported}/{len(report.flags)}",
            f"{report.coverage.score}%",
            f"{readiness.level} ({readiness.overall_score}%)" if readiness else "—",
            _OK if report.erc4337_supported else _NO,
        )
    console.print(table)

    shanghai = [label for label, r in reports if r.hard_fork is HardFork.SHANGHAI]
    console.print(
        f"  {len(shanghai)}/{len(reports)} Shanghai compatible"
        + (f": {escape(', '.join(shanghai))}" if shanghai else "")
    )


def render_history(
    runs: list[AuditRun],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render stored audit runs as a table or a JSON array.

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    out = file or sys.stdout
    if fmt == "json":
        payload = []
        for run in runs:
            row = dataclasses.asdict(run)
            row["timestamp"] = run.timestamp.isoformat()
            payload.append(row)
        json.dump(payload, out, indent=2, default=str)
        out.write("\n")  # type: ignore[union-attr]
        return
    if fmt != "table":
        raise ValueError(f"Unknown output format: {fmt!r}")

    console = Console(file=out, highlight=False, width=width)
    table = Table(title=f"Audit history — {len(runs)} runs")
    for header in _HISTORY_HEADERS:
        table.add_column(header)
    for run in runs:
        table.add_row(
            run.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(run.chain_id),
            escape(run.rpc_url),
            run.hard_fork,
            str(run.coverage_score),
            f"{run.duration_seconds:.1f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


def render_json(report: AuditReport, *, file: object | None = None) -> None:
    """Render *report* as JSON to *file*.

    Args:
        report: Audit report to render.
        file: Writable file object (default: ``sys.stdout``).
    """
    out = file or sys.stdout
    json.dump(report_to_dict(report), out, indent=2, default=str)
    out.write("\n")  # type: ignore[union-attr]


def report_to_dict(report: AuditReport) -> dict:
    """Convert an ``AuditReport`` to plain JSON-compatible data."""
    payload = dataclasses.asdict(report)
    payload["hard_fork"] = report.hard_fork.value
    payload["timestamp"] = report.timestamp.isoformat()
    return payload


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` becomes ``"—"``, everything else is stringified with rich
    markup escaped (node error messages often contain brackets).
    """
    if value is None:
        return "—"
    return escape(str(value))


def render_to_string(report: AuditReport, fmt: str, *, width: int = 200) -> str:
    """Render to a string instead of stdout — useful for testing.

    Args:
        report: Audit report to render.
        fmt: Output format — ``"table"`` or ``"json"``.
        width: Console width for table rendering (default: 200).

    Returns:
        The rendered output as a string.
    """
    buf = StringIO()
    render(report, fmt, file=buf, width=width)
    return buf.getvalue()
