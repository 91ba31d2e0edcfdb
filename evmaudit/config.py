"""YAML configuration file loading and chain presets."""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".evmaudit"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_DB_PATH = str(DEFAULT_CONFIG_DIR / "evmaudit.db")
DEFAULT_REPORT_DIR = "."

# Public endpoints audited by ``--chain``; the config file may add or override.
CHAIN_PRESETS: dict[str, str] = {
    "ethereum": "https://eth.llamarpc.com",
    "bsc": "https://bsc-dataseed1.binance.org",
    "bsc-testnet": "https://data-seed-prebsc-1-s1.binance.org:8545",
    "polygon": "https://polygon-rpc.com",
    "arbitrum": "https://arb1.arbitrum.io/rpc",
    "mfev": "https://rpc.mfevscan.com",
}


@dataclass
class AuditConfig:
    """Top-level configuration for the evm-audit tool.

    All fields have defaults so a bare ``--rpc-url`` audit works without
    any config file.

    Attributes:
        rpc_url: JSON-RPC endpoint to audit when none is given on the
            command line.
        private_key: Hex signing key for the probe-contract deployment.
            ``None`` skips the deployment probe.
        probe_timeout: Per-request HTTP timeout in seconds, applied
            uniformly to every RPC call.
        finality_wait_seconds: Delay between the two latest-block reads of
            the finality check.
        assume_typed_transactions: Treat EIP-2718 as supported whenever the
            connection succeeds, instead of probing ``eth_createAccessList``.
        contract_probe_opcodes: Opcodes to execute in deployed probe
            contracts.
        deploy_gas_limit: Gas limit for each probe-contract deployment.
        receipt_timeout: Seconds to wait for a deployment receipt.
        report_dir: Directory for JSON report files.
        db_path: Path to the SQLite audit-history database.
        chains: Chain name -> RPC URL, merged over ``CHAIN_PRESETS``.
    """

    rpc_url: str | None = None
    private_key: str | None = None
    probe_timeout: float = 10.0
    finality_wait_seconds: float = 2.0
    assume_typed_transactions: bool = False
    contract_probe_opcodes: list[str] = field(default_factory=lambda: ["PUSH0"])
    deploy_gas_limit: int = 200_000
    receipt_timeout: float = 120.0
    report_dir: str = DEFAULT_REPORT_DIR
    db_path: str = DEFAULT_DB_PATH
    chains: dict[str, str] = field(default_factory=lambda: dict(CHAIN_PRESETS))


# Top-level YAML keys copied straight onto AuditConfig fields.
_SCALAR_KEYS = frozenset(f.name for f in fields(AuditConfig)) - {"chains"}


def load_config(path: Path | str | None = None) -> AuditConfig:
    """Load configuration from a YAML file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.evmaudit/config.yaml``) is tried.  If the
            default file doesn't exist, an ``AuditConfig`` with all defaults
            is returned silently.

    Returns:
        A populated ``AuditConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML or has an unexpected
            structure.
    """
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return AuditConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file: all defaults.
        return AuditConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


def resolve_chain(config: AuditConfig, name: str) -> str:
    """Return the RPC URL registered for chain *name*.

    Raises:
        ValueError: If *name* is not a known chain.
    """
    url = config.chains.get(name.lower())
    if url is None:
        known = ", ".join(sorted(config.chains))
        raise ValueError(f"Unknown chain {name!r}. Known chains: {known}")
    return url


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> AuditConfig:
    """Map raw YAML dict to an ``AuditConfig``, ignoring unknown keys."""
    kwargs: dict[str, object] = {k: v for k, v in raw.items() if k in _SCALAR_KEYS}

    opcodes = kwargs.get("contract_probe_opcodes")
    if opcodes is not None:
        if not isinstance(opcodes, list):
            raise ConfigError(
                f"contract_probe_opcodes must be a list in {source}, "
                f"got {type(opcodes).__name__}"
            )
        kwargs["contract_probe_opcodes"] = [str(op).upper() for op in opcodes]

    chains = raw.get("chains")
    if chains is not None:
        if not isinstance(chains, dict):
            raise ConfigError(
                f"chains must be a mapping of name to RPC URL in {source}"
            )
        merged = dict(CHAIN_PRESETS)
        merged.update({str(k).lower(): str(v) for k, v in chains.items()})
        kwargs["chains"] = merged

    unknown = set(raw) - _SCALAR_KEYS - {"chains"}
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(unknown)),
        )

    return AuditConfig(**kwargs)
