"""Standard JSON-RPC method coverage check."""

import logging
from collections.abc import Sequence

from web3 import Web3

from evmaudit.models import MethodCheck, RpcCoverage
from evmaudit.rpc import PROBE_ERRORS, ZERO_ADDRESS, request

logger = logging.getLogger(__name__)

_ZERO_HASH = "0x" + "00" * 32

# Methods wallets and exchanges rely on, with harmless parameters.
STANDARD_METHODS: list[tuple[str, list]] = [
    ("eth_chainId", []),
    ("eth_blockNumber", []),
    ("eth_getBalance", [ZERO_ADDRESS, "latest"]),
    ("eth_gasPrice", []),
    ("eth_estimateGas", [{"to": ZERO_ADDRESS, "data": "0x"}]),
    ("eth_call", [{"to": ZERO_ADDRESS, "data": "0x"}, "latest"]),
    ("eth_sendRawTransaction", ["0x"]),
    ("eth_getTransactionReceipt", [_ZERO_HASH]),
    ("eth_getLogs", [{"fromBlock": "latest", "toBlock": "latest", "topics": []}]),
    ("eth_getBlockByNumber", ["latest", False]),
    ("eth_getBlockByHash", [_ZERO_HASH, False]),
    ("eth_getTransactionByHash", [_ZERO_HASH]),
    ("eth_getTransactionCount", [ZERO_ADDRESS, "latest"]),
    ("eth_feeHistory", ["0x4", "latest", [25, 75]]),
]


def check_method(w3: Web3, method: str, params: list) -> MethodCheck:
    """Issue *method* once; it is supported only if the call returns without error.

    Any JSON-RPC error counts against the method, including rejections of
    the placeholder payload.
    """
    try:
        request(w3, method, params)
    except PROBE_ERRORS as exc:
        logger.debug("%s failed: %s", method, exc)
        return MethodCheck(
            method=method,
            supported=False,
            error_message=str(exc) or type(exc).__name__,
        )
    return MethodCheck(method=method, supported=True)


def coverage_score(checks: Sequence[MethodCheck]) -> RpcCoverage:
    """Summarise method checks into a percentage score (rounded half up)."""
    total = len(checks)
    supported = sum(1 for c in checks if c.supported)
    score = int(100 * supported / total + 0.5) if total else 0
    return RpcCoverage(
        score=score,
        supported=supported,
        total=total,
        checks=tuple(checks),
    )


def check_rpc_coverage(
    w3: Web3,
    methods: Sequence[tuple[str, list]] = STANDARD_METHODS,
) -> RpcCoverage:
    """Check every method in *methods* in order and score the result."""
    checks = [check_method(w3, method, params) for method, params in methods]
    coverage = coverage_score(checks)
    logger.info(
        "RPC coverage: %d/%d methods (%d%%)",
        coverage.supported,
        coverage.total,
        coverage.score,
    )
    return coverage
