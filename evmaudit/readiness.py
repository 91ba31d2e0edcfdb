"""Integration readiness: finality, transaction support, per-provider scores."""

import logging
import time
from collections.abc import Callable

from web3 import Web3

from evmaudit.models import IntegrationReadiness, ProviderReadiness, RpcCoverage
from evmaudit.rpc import PROBE_ERRORS, request, to_int

logger = logging.getLogger(__name__)

# (minimum score, label), checked top to bottom.
READINESS_LEVELS: list[tuple[int, str]] = [
    (90, "Production Ready"),
    (80, "Mostly Ready"),
    (60, "Partially Ready"),
]
NOT_READY = "Not Ready"


def readiness_level(score: int) -> str:
    """Return the readiness label for a 0-100 *score*."""
    for threshold, label in READINESS_LEVELS:
        if score >= threshold:
            return label
    return NOT_READY


def finality_score(first_block: int, second_block: int) -> int:
    """Score block progression between two reads of the latest block.

    An unchanged head scores 100, a chain that advanced 80, and a head
    that moved backwards (a reorg or an inconsistent load balancer) 60.
    """
    if second_block == first_block:
        return 100
    if second_block > first_block:
        return 80
    return 60


def measure_finality(
    w3: Web3,
    wait_seconds: float,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Read the latest block twice, *wait_seconds* apart, and score it.

    Returns 0 if either read fails.
    """
    try:
        first = to_int(request(w3, "eth_blockNumber"))
        sleep(wait_seconds)
        second = to_int(request(w3, "eth_blockNumber"))
    except PROBE_ERRORS as exc:
        logger.debug("Finality check failed: %s", exc)
        return 0
    logger.debug("Finality check: block %d -> %d", first, second)
    return finality_score(first, second)


def _mean(*scores: int) -> int:
    return int(sum(scores) / len(scores) + 0.5)


def assess_readiness(
    coverage: RpcCoverage,
    finality: int,
) -> IntegrationReadiness:
    """Combine coverage and finality into integration readiness scores.

    The transaction score is 100 when ``eth_estimateGas`` answered during
    the coverage check, else 0.

    Args:
        coverage: Result of the RPC coverage check.
        finality: Score from ``measure_finality``.

    Returns:
        Overall and per-provider readiness.
    """
    rpc = coverage.score
    tx = 100 if coverage.is_supported("eth_estimateGas") else 0
    overall = _mean(rpc, finality, tx)

    def provider(name: str, score: int, requirements: dict[str, bool]) -> ProviderReadiness:
        return ProviderReadiness(
            name=name,
            score=score,
            level=readiness_level(score),
            requirements=requirements,
        )

    providers = (
        provider(
            "fireblocks",
            _mean(rpc, finality),
            {
                "essential_rpc": rpc >= 90,
                "stable_finality": finality >= 80,
                "transaction_support": tx >= 80,
            },
        ),
        provider(
            "metamask",
            _mean(rpc, tx),
            {
                "essential_rpc": rpc >= 85,
                "transaction_support": tx >= 80,
                "gas_estimation": tx >= 80,
            },
        ),
        provider(
            "walletconnect",
            _mean(rpc, finality),
            {
                "essential_rpc": rpc >= 85,
                "stable_finality": finality >= 70,
                "transaction_support": tx >= 70,
            },
        ),
        provider(
            "exchanges",
            overall,
            {
                "essential_rpc": rpc >= 95,
                "stable_finality": finality >= 90,
                "transaction_support": tx >= 90,
                "log_retrieval": coverage.is_supported("eth_getLogs"),
            },
        ),
        provider(
            "bridges",
            _mean(rpc, tx),
            {
                "essential_rpc": rpc >= 90,
                "transaction_support": tx >= 85,
                "gas_estimation": tx >= 80,
            },
        ),
    )

    return IntegrationReadiness(
        rpc_score=rpc,
        finality_score=finality,
        transaction_score=tx,
        overall_score=overall,
        level=readiness_level(overall),
        providers=providers,
    )
