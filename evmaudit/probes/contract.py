"""Deployed probe contracts: execute real opcodes on chain.

For each opcode a tiny contract is assembled by hand.  Its runtime runs
the opcode, stores one word and returns it; its init code copies the
runtime out with ``CODECOPY`` and uses only pre-Shanghai opcodes, so the
deployment itself succeeds on any chain and only the later ``eth_call``
exercises the opcode under test.
"""

import logging
from dataclasses import dataclass

from eth_account import Account
from web3 import Web3

from evmaudit.models import DeploymentOutcome, ProbeResult
from evmaudit.rpc import PROBE_ERRORS, request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpcodeSpec:
    """An opcode under test.

    Attributes:
        name: Mnemonic (e.g. ``"PUSH0"``).
        feature: EIP that introduced the opcode.
        body: Runtime bytecode that leaves exactly one word on the stack
            and executes the opcode.
    """

    name: str
    feature: str
    body: str


OPCODES: dict[str, OpcodeSpec] = {
    spec.name: spec
    for spec in (
        OpcodeSpec("PUSH0", "EIP-3855", "5f"),
        OpcodeSpec("BASEFEE", "EIP-3198", "48"),
        OpcodeSpec("RETURNDATASIZE", "EIP-211", "3d"),
        # SHL(shift=1, value=1) -> 2
        OpcodeSpec("SHL", "EIP-145", "600160011b"),
        # SHR(shift=1, value=4) -> 2
        OpcodeSpec("SHR", "EIP-145", "600460011c"),
        # MCOPY(dst=0x20, src=0, len=0x20), then PUSH1 0x2a
        OpcodeSpec("MCOPY", "EIP-5656", "602060006020" "5e" "602a"),
    )
}

# PUSH1 0x00 MSTORE PUSH1 0x20 PUSH1 0x00 RETURN
_RETURN_WORD = "600052" "60206000f3"

# Length of the init-code prefix built by ``build_init_code``.
_INIT_PREFIX_LEN = 12


def build_runtime(opcode: str) -> str:
    """Return the runtime bytecode (hex, no ``0x``) probing *opcode*.

    Raises:
        ValueError: If *opcode* has no probe body.
    """
    spec = OPCODES.get(opcode.upper())
    if spec is None:
        known = ", ".join(OPCODES)
        raise ValueError(f"Unknown probe opcode {opcode!r}. Known opcodes: {known}")
    return spec.body + _RETURN_WORD


def build_init_code(runtime: str) -> str:
    """Wrap *runtime* in init code that returns it as the contract code.

    Layout: ``PUSH1 len PUSH1 12 PUSH1 0 CODECOPY PUSH1 len PUSH1 0 RETURN``
    followed by the runtime.
    """
    size = len(runtime) // 2
    if size > 0xFF:
        raise ValueError(f"Runtime too large for PUSH1 length: {size} bytes")
    length = f"{size:02x}"
    prefix = f"60{length}60{_INIT_PREFIX_LEN:02x}600039" f"60{length}6000f3"
    return "0x" + prefix + runtime


def deploy(
    w3: Web3,
    private_key: str,
    init_code: str,
    *,
    gas_limit: int,
    receipt_timeout: float,
) -> str:
    """Sign and send a contract-creation transaction, wait for the receipt.

    Returns:
        The deployed contract address.

    Raises:
        RuntimeError: If the creation transaction was mined but reverted.
        Any of ``rpc.PROBE_ERRORS`` for RPC or timeout failures.
    """
    account = Account.from_key(private_key)
    tx: dict = {
        "from": account.address,
        "data": init_code,
        "nonce": w3.eth.get_transaction_count(account.address, "pending"),
        "gas": gas_limit,
        "chainId": w3.eth.chain_id,
        "value": 0,
    }
    latest = w3.eth.get_block("latest")
    base_fee = latest.get("baseFeePerGas")
    if base_fee:
        priority = w3.eth.max_priority_fee
        tx["maxPriorityFeePerGas"] = priority
        tx["maxFeePerGas"] = base_fee * 2 + priority
    else:
        tx["gasPrice"] = w3.eth.gas_price

    signed = w3.eth.account.sign_transaction(tx, private_key)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info("Probe contract deployment sent: %s", tx_hash.hex())

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=receipt_timeout)
    if receipt["status"] != 1:
        raise RuntimeError(f"Deployment transaction {tx_hash.hex()} reverted")
    address = receipt["contractAddress"]
    logger.info("Probe contract mined at %s", address)
    return address


def execute(w3: Web3, opcode: str, address: str) -> ProbeResult:
    """Call a deployed probe contract; never raises for RPC failures."""
    spec = OPCODES[opcode.upper()]
    try:
        value = request(w3, "eth_call", [{"to": address, "data": "0x"}, "latest"])
    except PROBE_ERRORS as exc:
        logger.debug("Contract probe %s at %s failed: %s", spec.name, address, exc)
        return ProbeResult(
            feature=spec.feature,
            method="eth_call",
            succeeded=False,
            error_message=str(exc) or type(exc).__name__,
            source="contract",
        )
    return ProbeResult(
        feature=spec.feature,
        method="eth_call",
        succeeded=True,
        value=value,
        source="contract",
    )


def run_contract_probes(
    w3: Web3,
    private_key: str,
    opcodes: list[str],
    *,
    gas_limit: int = 200_000,
    receipt_timeout: float = 120.0,
) -> tuple[list[ProbeResult], DeploymentOutcome]:
    """Deploy one probe contract per opcode and execute each.

    Opcodes whose contract fails to deploy produce no evidence; the
    deployment error is recorded in the returned ``DeploymentOutcome``.

    Returns:
        ``(results, outcome)``: contract-sourced probe results in opcode
        order, and the deployment summary.
    """
    results: list[ProbeResult] = []
    addresses: dict[str, str] = {}
    errors: list[str] = []

    for opcode in opcodes:
        init_code = build_init_code(build_runtime(opcode))
        try:
            address = deploy(
                w3,
                private_key,
                init_code,
                gas_limit=gas_limit,
                receipt_timeout=receipt_timeout,
            )
        except (RuntimeError, *PROBE_ERRORS) as exc:
            logger.warning("Probe contract for %s failed to deploy: %s", opcode, exc)
            errors.append(f"{opcode}: {exc}")
            continue
        addresses[opcode.upper()] = address
        results.append(execute(w3, opcode, address))

    outcome = DeploymentOutcome(
        deployed=bool(addresses),
        addresses=addresses,
        error_message="; ".join(errors) or None,
    )
    return results, outcome
