"""JSON-RPC connection helpers built on web3.py."""

import logging
from typing import Any

from web3 import Web3
from web3.exceptions import Web3Exception

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class RPCError(Exception):
    """A JSON-RPC error object returned by the endpoint.

    Attributes:
        method: The method that failed.
        code: JSON-RPC error code, if the endpoint sent one.
    """

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code


class AuditConnectionError(Exception):
    """Raised when the endpoint cannot be reached at all."""


# Everything a single RPC call can fail with: JSON-RPC errors, reverts and
# other web3 errors, web3 v6 ``ValueError`` errors, and transport failures
# (``requests`` exceptions and socket timeouts are ``OSError`` subclasses).
PROBE_ERRORS: tuple[type[BaseException], ...] = (
    RPCError,
    Web3Exception,
    ValueError,
    OSError,
)


def connect(rpc_url: str, timeout: float = 10.0) -> Web3:
    """Open an HTTP connection to *rpc_url* and verify it answers.

    Args:
        rpc_url: HTTP(S) JSON-RPC endpoint.
        timeout: Per-request timeout in seconds for every later call.

    Returns:
        A connected ``Web3`` instance.

    Raises:
        AuditConnectionError: If the endpoint does not answer
            ``eth_blockNumber``.
    """
    logger.info("Connecting to %s", rpc_url)
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    try:
        block_number = w3.eth.block_number
    except PROBE_ERRORS as exc:
        logger.error("Connection to %s failed: %s", rpc_url, exc)
        raise AuditConnectionError(f"Cannot connect to {rpc_url}: {exc}") from exc
    logger.debug("Connected to %s at block %d", rpc_url, block_number)
    return w3


def request(w3: Web3, method: str, params: list | None = None) -> Any:
    """Issue a raw JSON-RPC request and return its ``result``.

    Used for methods web3.py has no wrapper for, and wherever the exact
    wire method name matters.

    Raises:
        RPCError: If the response carries a JSON-RPC ``error`` object.
    """
    response = w3.provider.make_request(method, params or [])
    error = response.get("error")
    if error:
        if isinstance(error, dict):
            raise RPCError(method, str(error.get("message", error)), error.get("code"))
        raise RPCError(method, str(error))
    return response.get("result")


def to_int(value: Any) -> int:
    """Convert a hex-quantity string (``"0x1a"``) or int to ``int``.

    Raises:
        ValueError: If *value* is missing or not a quantity.
    """
    if value is None:
        raise ValueError("Expected a quantity, got null")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"Expected a quantity, got {type(value).__name__}")
    if isinstance(value, str):
        return int(value, 16)
    return int(value)
