"""CLI entry point for the evm-audit tool."""

import logging
import sys
import time

import click

from evmaudit.auditor import run_audit, signer_address
from evmaudit.config import AuditConfig, ConfigError, load_config, resolve_chain
from evmaudit.models import AuditReport, AuditRun
from evmaudit.output import render, render_comparison, render_history
from evmaudit.persistence import (
    audit_history,
    init_db,
    save_audit_run,
    save_feature_flags,
    write_report,
)
from evmaudit.rpc import AuditConnectionError

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")


@click.command()
@click.option(
    "--rpc-url",
    "-u",
    envvar="RPC_URL",
    default=None,
    help="JSON-RPC endpoint to audit.",
)
@click.option(
    "--chain",
    "-n",
    default=None,
    help="Audit a named chain preset, or 'all' for every configured chain.",
)
@click.option(
    "--private-key",
    envvar="PRIVATE_KEY",
    default=None,
    help="Signing key for the probe-contract deployment (funded account).",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.evmaudit/config.yaml).",
)
@click.option(
    "--report-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for JSON report files (overrides config).",
)
@click.option(
    "--no-save",
    is_flag=True,
    default=False,
    help="Do not write the report file or the audit history.",
)
@click.option(
    "--history",
    is_flag=True,
    default=False,
    help="List stored audit runs instead of auditing.",
)
@click.option(
    "--chain-id",
    type=int,
    default=None,
    help="With --history, only list runs for this chain id.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging.")
def main(
    rpc_url: str | None,
    chain: str | None,
    private_key: str | None,
    output_format: str,
    config_path: str | None,
    report_dir: str | None,
    no_save: bool,
    history: bool,
    chain_id: int | None,
    verbose: bool,
) -> None:
    """Audit the EVM compatibility of JSON-RPC endpoints."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if private_key:
        cfg.private_key = private_key
    if report_dir:
        cfg.report_dir = report_dir

    if history:
        _show_history(cfg, chain_id, output_format)
        return

    try:
        signer_address(cfg.private_key)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    try:
        targets = _targets(cfg, rpc_url, chain)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Auditing %d endpoint(s)", len(targets))

    reports: list[tuple[str, AuditReport]] = []
    for name, url in targets:
        report = _run_one(name, url, output_format, cfg, save=not no_save)
        if report is not None:
            reports.append((name, report))

    if output_format == "table" and len(reports) > 1:
        render_comparison(reports)

    if not reports:
        sys.exit(1)


def _targets(
    cfg: AuditConfig,
    rpc_url: str | None,
    chain: str | None,
) -> list[tuple[str, str]]:
    """Resolve the command-line selection into ``(label, url)`` pairs.

    Raises:
        ValueError: If no endpoint was given or the chain name is unknown.
    """
    if chain:
        if chain.lower() == "all":
            return sorted(cfg.chains.items())
        return [(chain.lower(), resolve_chain(cfg, chain))]
    url = rpc_url or cfg.rpc_url
    if not url:
        raise ValueError(
            "No endpoint given: pass --rpc-url, --chain, set RPC_URL, "
            "or set rpc_url in the config file"
        )
    return [(url, url)]


def _run_one(
    name: str,
    rpc_url: str,
    output_format: str,
    cfg: AuditConfig,
    *,
    save: bool,
) -> AuditReport | None:
    """Audit one endpoint and run the full pipeline.

    Pipeline: audit → render → persist history → write report file.

    Args:
        name: Chain label (or the URL itself) used in messages.
        rpc_url: Endpoint to audit.
        output_format: Output format (``"table"`` or ``"json"``).
        cfg: Loaded ``AuditConfig`` instance.
        save: Persist the run and write the JSON report.

    Returns:
        The report, or ``None`` if the endpoint could not be audited.
    """
    try:
        t0 = time.monotonic()
        report = run_audit(rpc_url, cfg)
        duration = time.monotonic() - t0
    except AuditConnectionError as exc:
        click.echo(f"Error: {name}: {exc}", err=True)
        return None
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        return None

    render(report, output_format)

    if not save:
        return report

    conn = init_db(cfg.db_path)
    try:
        audit_run = AuditRun(
            rpc_url=rpc_url,
            chain_id=report.chain.chain_id,
            hard_fork=report.hard_fork.value,
            coverage_score=report.coverage.score,
            duration_seconds=duration,
            meta={"chain": name} if name != rpc_url else {},
        )
        run_id = save_audit_run(conn, audit_run)
        save_feature_flags(conn, report.flags, run_id)
    finally:
        conn.close()

    path = write_report(report, cfg.report_dir)
    if output_format == "table":
        click.echo(f"Report saved to {path}")
    return report


def _show_history(cfg: AuditConfig, chain_id: int | None, output_format: str) -> None:
    """List stored audit runs, newest first."""
    conn = init_db(cfg.db_path)
    try:
        runs = audit_history(conn, chain_id=chain_id)
    finally:
        conn.close()
    logger.debug("Loaded %d audit run(s) from %s", len(runs), cfg.db_path)
    render_history(runs, output_format)
