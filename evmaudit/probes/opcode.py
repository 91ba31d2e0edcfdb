"""Opcode pre-filter probes: send an opcode byte as ``eth_call`` data.

These probes are cheap but unreliable.  Calling the zero address runs no
code at all, so a node may accept the call whether or not it knows the
opcode, or reject it for unrelated reasons.  Evidence from a deployed probe
contract (``probes.contract``) overrides them.
"""

from web3 import Web3

from evmaudit.probes import FeatureProbe
from evmaudit.rpc import ZERO_ADDRESS, request


class OpcodeCallProbe(FeatureProbe):
    """Probe an EIP by ``eth_call``-ing each of its opcode bytes.

    The probe succeeds only if every call returns without error.

    Args:
        feature: EIP identifier (e.g. ``"EIP-3855"``).
        payloads: Hex call-data strings, one per opcode, issued in order.
    """

    method = "eth_call"

    def __init__(self, feature: str, payloads: list[str]) -> None:
        self.feature = feature
        self.payloads = list(payloads)

    def check(self, w3: Web3) -> tuple[bool, str | None]:
        result = None
        for data in self.payloads:
            result = request(
                w3, self.method, [{"to": ZERO_ADDRESS, "data": data}, "latest"]
            )
        return True, result

    def __repr__(self) -> str:
        return f"OpcodeCallProbe({self.feature!r}, {self.payloads!r})"
