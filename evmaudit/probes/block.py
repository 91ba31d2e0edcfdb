"""Block- and chain-level probes: base fee, chain id, typed txs, blob fee."""

from web3 import Web3

from evmaudit.probes import FeatureProbe
from evmaudit.rpc import ZERO_ADDRESS, request, to_int


class BaseFeeProbe(FeatureProbe):
    """EIP-1559: the latest block carries a positive ``baseFeePerGas``."""

    feature = "EIP-1559"
    method = "eth_getBlockByNumber"

    def check(self, w3: Web3) -> tuple[bool, int | None]:
        block = request(w3, self.method, ["latest", False])
        if not isinstance(block, dict):
            return False, None
        raw = block.get("baseFeePerGas")
        if raw is None:
            return False, None
        base_fee = to_int(raw)
        return base_fee > 0, base_fee


class ChainIdProbe(FeatureProbe):
    """EIP-1344: ``eth_chainId`` returns a positive id."""

    feature = "EIP-1344"
    method = "eth_chainId"

    def check(self, w3: Web3) -> tuple[bool, int]:
        chain_id = to_int(request(w3, self.method))
        return chain_id > 0, chain_id


class TypedTransactionProbe(FeatureProbe):
    """EIP-2718 / EIP-2930: the node can build an access list.

    ``eth_createAccessList`` only exists on nodes that understand
    access-list (type 1) transactions.
    """

    feature = "EIP-2718"
    method = "eth_createAccessList"

    def check(self, w3: Web3) -> tuple[bool, None]:
        request(w3, self.method, [{"to": ZERO_ADDRESS, "data": "0x"}, "latest"])
        return True, None


class BlobBaseFeeProbe(FeatureProbe):
    """EIP-4844: the node reports a blob base fee."""

    feature = "EIP-4844"
    method = "eth_blobBaseFee"

    def check(self, w3: Web3) -> tuple[bool, int]:
        return True, to_int(request(w3, self.method))
