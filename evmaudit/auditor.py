"""Audit pipeline: connect, probe, classify, score and recommend."""

import logging
import time
from collections.abc import Callable, Sequence

from eth_account import Account
from web3 import Web3

from evmaudit.chain import check_entry_points, known_chain_name
from evmaudit.classify import build_feature_flags, classify_hard_fork
from evmaudit.config import AuditConfig
from evmaudit.coverage import check_rpc_coverage
from evmaudit.models import (
    AuditReport,
    ChainInfo,
    DeploymentOutcome,
    EntryPointCheck,
    FeatureFlags,
    HardFork,
    IntegrationReadiness,
    ProbeResult,
    RpcCoverage,
)
from evmaudit.probes import probe_feature, registered_features
from evmaudit.probes.contract import build_runtime, run_contract_probes
from evmaudit.readiness import assess_readiness, measure_finality
from evmaudit.rpc import (
    PROBE_ERRORS,
    AuditConnectionError,
    connect,
    request,
    to_int,
)

logger = logging.getLogger(__name__)

# Features a Solidity 0.8.20+ (evm_version=shanghai) deployment relies on.
SHANGHAI_TOOLCHAIN_FEATURES = [
    "EIP-1559",
    "EIP-3855",
    "EIP-1344",
    "EIP-2718",
    "EIP-3198",
    "EIP-3651",
]

# Coverage score below which missing methods are flagged.
MIN_COVERAGE_SCORE = 80

# Provider readiness thresholds below which integration work is suggested.
FIREBLOCKS_MIN_SCORE = 80
EXCHANGES_MIN_SCORE = 85
READY_RPC_SCORE = 90


def run_audit(
    rpc_url: str,
    config: AuditConfig,
    *,
    w3: Web3 | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> AuditReport:
    """Audit one JSON-RPC endpoint and return its compatibility report.

    Probes run sequentially and are never retried; a failed probe is
    evidence that the feature is missing.

    Args:
        rpc_url: Endpoint to audit.
        config: Loaded configuration (timeouts, signing key, opcodes).
        w3: An already-connected ``Web3`` instance.  If ``None``, one is
            opened with ``rpc.connect``.
        sleep: Sleep function used by the finality check.

    Returns:
        The finished ``AuditReport``.

    Raises:
        AuditConnectionError: If the endpoint is unreachable or cannot
            report its chain id and block height.
        ValueError: If the config names an unknown probe opcode or the
            signing key is malformed.  Both are checked before the
            endpoint is contacted.
    """
    for opcode in config.contract_probe_opcodes:
        build_runtime(opcode)
    account = signer_address(config.private_key)

    if w3 is None:
        w3 = connect(rpc_url, timeout=config.probe_timeout)

    chain = _chain_info(w3, rpc_url, account)
    logger.info(
        "Auditing chain %d at block %d (%s)",
        chain.chain_id,
        chain.block_number,
        rpc_url,
    )

    probes = _run_feature_probes(w3, config)
    entry_points = check_entry_points(w3)

    deployment: DeploymentOutcome | None = None
    contract_results: list[ProbeResult] = []
    if config.private_key and config.contract_probe_opcodes:
        contract_results, deployment = run_contract_probes(
            w3,
            config.private_key,
            config.contract_probe_opcodes,
            gas_limit=config.deploy_gas_limit,
            receipt_timeout=config.receipt_timeout,
        )
    else:
        logger.info("No signing key configured; skipping contract probes")

    all_results = [*probes, *contract_results]
    flags = build_feature_flags(all_results)
    hard_fork = classify_hard_fork(flags)
    logger.info("Classified hard fork: %s", hard_fork.value)

    coverage = check_rpc_coverage(w3)
    gas = _gas_info(w3, probes)
    finality = measure_finality(w3, config.finality_wait_seconds, sleep=sleep)
    readiness = assess_readiness(coverage, finality)

    recommendations = build_recommendations(
        flags,
        hard_fork,
        coverage,
        deployment=deployment,
        contract_results=contract_results,
        readiness=readiness,
        entry_points=entry_points,
    )

    return AuditReport(
        chain=chain,
        probes=tuple(all_results),
        flags=flags,
        hard_fork=hard_fork,
        coverage=coverage,
        gas=gas,
        deployment=deployment,
        readiness=readiness,
        entry_points=tuple(entry_points),
        recommendations=tuple(recommendations),
    )


def build_recommendations(
    flags: FeatureFlags,
    hard_fork: HardFork,
    coverage: RpcCoverage,
    *,
    deployment: DeploymentOutcome | None = None,
    contract_results: Sequence[ProbeResult] = (),
    readiness: IntegrationReadiness | None = None,
    entry_points: Sequence[EntryPointCheck] = (),
) -> list[str]:
    """Turn audit findings into plain-text recommendations."""
    recs: list[str] = []

    missing = [f for f in SHANGHAI_TOOLCHAIN_FEATURES if not flags.get(f, False)]
    if missing:
        recs.append(
            "Missing features for Shanghai-targeted Solidity builds: "
            + ", ".join(missing)
        )

    if hard_fork is not HardFork.SHANGHAI:
        recs.append(
            f"Upgrade to the Shanghai EVM (detected: {hard_fork.value}); "
            "until then compile with evm_version=paris or older"
        )

    if not flags.get("EIP-1559", False):
        recs.append("Enable EIP-1559 base fees for modern gas pricing")

    if coverage.score < MIN_COVERAGE_SCORE:
        unsupported = [c.method for c in coverage.checks if not c.supported]
        recs.append(
            f"Implement missing RPC methods ({coverage.score}% coverage): "
            + ", ".join(unsupported)
        )

    if deployment is not None and deployment.error_message:
        recs.append(f"Probe contract deployment failed: {deployment.error_message}")

    failed = sorted({r.feature for r in contract_results if not r.succeeded})
    if failed:
        recs.append(
            "Opcodes failed inside deployed contracts ("
            + ", ".join(failed)
            + "); eth_call probes for these are unreliable on this chain"
        )

    if entry_points and not any(c.deployed for c in entry_points):
        latest = entry_points[-1]
        recs.append(
            f"No ERC-4337 EntryPoint found; deploy EntryPoint {latest.version} "
            f"at {latest.address} to support smart-contract accounts"
        )

    if readiness is not None:
        if readiness.overall_score >= 90:
            recs.append("Chain is ready for wallet and exchange integrations")
        else:
            recs.append(
                f"Integration readiness is {readiness.level} "
                f"({readiness.overall_score}%); test integrations before production"
            )
        scores = {p.name: p.score for p in readiness.providers}
        if scores.get("fireblocks", 100) < FIREBLOCKS_MIN_SCORE:
            recs.append(
                "Improve RPC stability and finality for Fireblocks integration"
            )
        if scores.get("exchanges", 100) < EXCHANGES_MIN_SCORE:
            recs.append(
                "Enhance transaction support and log retrieval for exchange integration"
            )
        if readiness.rpc_score < READY_RPC_SCORE:
            recs.append(
                "Implement missing essential RPC methods for full compatibility"
            )

    return recs


def signer_address(private_key: str | None) -> str | None:
    """Return the address for *private_key*, or ``None`` when no key is set.

    Raises:
        ValueError: If *private_key* is not a valid secp256k1 key.
    """
    if not private_key:
        return None
    try:
        return Account.from_key(private_key).address
    except ValueError as exc:
        raise ValueError(
            "Invalid private key: expected 32 bytes of hex (64 hex digits, "
            f"optional 0x prefix): {exc}"
        ) from exc


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _chain_info(w3: Web3, rpc_url: str, account: str | None) -> ChainInfo:
    """Read chain id, height and (optionally) the signer's balance.

    Raises:
        AuditConnectionError: If chain id or block height is unavailable.
    """
    try:
        chain_id = to_int(request(w3, "eth_chainId"))
        block_number = to_int(request(w3, "eth_blockNumber"))
    except PROBE_ERRORS as exc:
        raise AuditConnectionError(
            f"Endpoint {rpc_url} did not report chain id / block height: {exc}"
        ) from exc

    balance = None
    if account:
        try:
            wei = to_int(request(w3, "eth_getBalance", [account, "latest"]))
            balance = str(Web3.from_wei(wei, "ether"))
        except PROBE_ERRORS as exc:
            logger.warning("Could not read balance of %s: %s", account, exc)

    return ChainInfo(
        rpc_url=rpc_url,
        chain_id=chain_id,
        block_number=block_number,
        account=account,
        balance=balance,
        known_chain=known_chain_name(chain_id),
    )


def _run_feature_probes(w3: Web3, config: AuditConfig) -> list[ProbeResult]:
    """Run every registered feature probe, in table order."""
    results: list[ProbeResult] = []
    for feature in registered_features():
        if feature == "EIP-2718" and config.assume_typed_transactions:
            results.append(
                ProbeResult(feature=feature, method="assumed", succeeded=True)
            )
            continue
        results.append(probe_feature(w3, feature))
    supported = sum(1 for r in results if r.succeeded)
    logger.info("Feature probes: %d/%d succeeded", supported, len(results))
    return results


def _gas_info(w3: Web3, probes: Sequence[ProbeResult]) -> dict[str, int | None]:
    """Collect gas-price figures; unavailable values are ``None``."""
    by_feature = {r.feature: r for r in probes}

    def probed(feature: str) -> int | None:
        result = by_feature.get(feature)
        if result is None or not result.succeeded or not isinstance(result.value, int):
            return None
        return result.value

    def fetch(method: str) -> int | None:
        try:
            return to_int(request(w3, method))
        except PROBE_ERRORS as exc:
            logger.debug("%s unavailable: %s", method, exc)
            return None

    return {
        "gas_price": fetch("eth_gasPrice"),
        "base_fee_per_gas": probed("EIP-1559"),
        "max_priority_fee_per_gas": fetch("eth_maxPriorityFeePerGas"),
        "blob_base_fee": probed("EIP-4844"),
    }
