"""Chain identity checks: known chain ids and ERC-4337 EntryPoint contracts."""

import logging

from web3 import Web3

from evmaudit.models import EntryPointCheck
from evmaudit.rpc import PROBE_ERRORS, request

logger = logging.getLogger(__name__)

# Chain ids already claimed by public networks.
KNOWN_CHAIN_IDS: dict[int, str] = {
    1: "Ethereum Mainnet",
    5: "Goerli",
    10: "Optimism",
    56: "BNB Smart Chain",
    137: "Polygon",
    250: "Fantom",
    324: "zkSync Era",
    1101: "Polygon zkEVM",
    8453: "Base",
    42161: "Arbitrum One",
    43114: "Avalanche C-Chain",
    59144: "Linea",
    81457: "Blast",
    84532: "Base Sepolia",
    534352: "Scroll",
    7777777: "Zora",
    11155111: "Sepolia",
    11155420: "Optimism Sepolia",
}

# Canonical EntryPoint deployments, checked in this order.
ENTRY_POINTS: list[tuple[str, str]] = [
    ("v0.6", "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"),
    ("v0.7", "0x0000000071727De22E5E9d8BAf0edAc6f37da032"),
]


def known_chain_name(chain_id: int) -> str | None:
    """Return the public network using *chain_id*, or ``None`` if it is unclaimed."""
    return KNOWN_CHAIN_IDS.get(chain_id)


def check_entry_points(
    w3: Web3,
    entry_points: list[tuple[str, str]] = ENTRY_POINTS,
) -> list[EntryPointCheck]:
    """Look for ERC-4337 EntryPoint code at each canonical address.

    An address counts as deployed when ``eth_getCode`` returns non-empty
    code.  RPC failures are recorded on the check, never raised.

    Args:
        w3: A connected ``Web3`` instance.
        entry_points: ``(version, address)`` pairs to check.

    Returns:
        One ``EntryPointCheck`` per pair, in input order.
    """
    checks: list[EntryPointCheck] = []
    for version, address in entry_points:
        try:
            code = request(w3, "eth_getCode", [address, "latest"])
        except PROBE_ERRORS as exc:
            logger.debug("eth_getCode(%s) failed: %s", address, exc)
            checks.append(
                EntryPointCheck(
                    version=version,
                    address=address,
                    deployed=False,
                    error_message=str(exc) or type(exc).__name__,
                )
            )
            continue
        deployed = isinstance(code, str) and code not in ("", "0x", "0x0")
        checks.append(EntryPointCheck(version=version, address=address, deployed=deployed))

    found = [c.version for c in checks if c.deployed]
    logger.info("ERC-4337 EntryPoint: %s", ", ".join(found) if found else "not found")
    return checks
