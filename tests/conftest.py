"""Shared fixtures: a scripted JSON-RPC endpoint behind a mocked Web3."""

from unittest.mock import MagicMock

import pytest

METHOD_NOT_FOUND = {"code": -32601, "message": "the method does not exist"}
ENTRY_POINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"


class FakeEndpoint:
    """Answers ``make_request`` calls from a method -> handler table.

    A handler may be:

    * a plain value, returned as the JSON-RPC ``result``;
    * a dict with an ``"error"`` key, returned as an error response;
    * an exception instance, raised as a transport failure;
    * a callable taking the params list and returning any of the above.

    Methods without a handler answer "method not found".
    """

    def __init__(self, handlers: dict) -> None:
        self.handlers = handlers
        self.calls: list[tuple[str, list]] = []

    def make_request(self, method: str, params: list) -> dict:
        self.calls.append((method, params))
        handler = self.handlers.get(method, {"error": METHOD_NOT_FOUND})
        if callable(handler):
            handler = handler(params)
        if isinstance(handler, Exception):
            raise handler
        if isinstance(handler, dict) and "error" in handler:
            return {"jsonrpc": "2.0", "id": 1, "error": handler["error"]}
        return {"jsonrpc": "2.0", "id": 1, "result": handler}


@pytest.fixture
def make_w3():
    """Factory fixture: ``make_w3(handlers)`` -> mocked ``Web3``.

    The ``FakeEndpoint`` is reachable as ``w3.endpoint`` for call
    assertions.
    """

    def factory(handlers: dict) -> MagicMock:
        endpoint = FakeEndpoint(handlers)
        w3 = MagicMock()
        w3.provider.make_request.side_effect = endpoint.make_request
        w3.endpoint = endpoint
        return w3

    return factory


def _invalid_opcode(params: list) -> dict | str:
    if params[0].get("data") == "0x5f":
        return {"error": {"code": -32000, "message": "invalid opcode: PUSH0"}}
    return "0x"


def _entry_point_code(params: list) -> str:
    if params[0] == ENTRY_POINT_V07:
        return "0x6080604052"
    return "0x"


@pytest.fixture
def shanghai_handlers() -> dict:
    """A healthy post-Shanghai chain: base fee 1 gwei, every method answers.

    Only the v0.7 ERC-4337 EntryPoint is deployed.
    """
    return {
        "eth_chainId": "0x38",
        "eth_blockNumber": "0x100",
        "eth_getBlockByNumber": {"number": "0x100", "baseFeePerGas": hex(10**9)},
        "eth_getBlockByHash": None,
        "eth_call": "0x",
        "eth_createAccessList": {"accessList": [], "gasUsed": "0x5208"},
        "eth_blobBaseFee": "0x1",
        "eth_getBalance": hex(2 * 10**18),
        "eth_gasPrice": hex(2 * 10**9),
        "eth_maxPriorityFeePerGas": hex(10**9),
        "eth_estimateGas": "0x5208",
        "eth_sendRawTransaction": "0x" + "ab" * 32,
        "eth_getCode": _entry_point_code,
        "eth_getTransactionReceipt": None,
        "eth_getLogs": [],
        "eth_getTransactionByHash": None,
        "eth_getTransactionCount": "0x0",
        "eth_feeHistory": {"oldestBlock": "0xfd", "baseFeePerGas": []},
    }


@pytest.fixture
def istanbul_handlers(shanghai_handlers: dict) -> dict:
    """A legacy chain: no base fee, PUSH0 rejected, no access lists."""
    handlers = dict(shanghai_handlers)
    handlers["eth_getBlockByNumber"] = {"number": "0x100"}
    handlers["eth_call"] = _invalid_opcode
    handlers["eth_createAccessList"] = {"error": METHOD_NOT_FOUND}
    del handlers["eth_blobBaseFee"]
    del handlers["eth_maxPriorityFeePerGas"]
    return handlers
