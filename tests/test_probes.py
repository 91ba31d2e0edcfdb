"""Tests for the feature-probe registry and the RPC-level probes."""

import pytest

from evmaudit.probes import (
    FeatureProbe,
    get_probe,
    probe_feature,
    registered_features,
)
from evmaudit.probes.block import (
    BaseFeeProbe,
    BlobBaseFeeProbe,
    ChainIdProbe,
    TypedTransactionProbe,
)
from evmaudit.probes.opcode import OpcodeCallProbe
from evmaudit.rpc import ZERO_ADDRESS

_INVALID_OPCODE = {"error": {"code": -32000, "message": "invalid opcode: PUSH0"}}


class TestFeatureProbeABC:
    """FeatureProbe is abstract and cannot be instantiated directly."""

    def test_cannot_instantiate(self) -> None:
        with pytest.raises(TypeError, match="abstract method"):
            FeatureProbe()  # type: ignore[abstract]

    def test_subclass_must_implement_check(self) -> None:
        class Incomplete(FeatureProbe):
            feature = "EIP-0"
            method = "eth_x"

        with pytest.raises(TypeError, match="abstract method"):
            Incomplete()  # type: ignore[abstract]

    def test_run_captures_value_errors(self, make_w3) -> None:
        class Broken(FeatureProbe):
            feature = "EIP-0"
            method = "eth_x"

            def check(self, w3):
                raise ValueError("bad quantity")

        result = Broken().run(make_w3({}))

        assert result.succeeded is False
        assert result.error_message == "bad quantity"


class TestRegistry:
    def test_report_order(self) -> None:
        assert registered_features() == [
            "EIP-1559",
            "EIP-1344",
            "EIP-3198",
            "EIP-3651",
            "EIP-3855",
            "EIP-211",
            "EIP-145",
            "EIP-2718",
            "EIP-4844",
            "EIP-5656",
        ]

    @pytest.mark.parametrize(
        ("feature", "expected_cls"),
        [
            ("EIP-1559", BaseFeeProbe),
            ("EIP-1344", ChainIdProbe),
            ("EIP-3855", OpcodeCallProbe),
            ("EIP-2718", TypedTransactionProbe),
            ("EIP-4844", BlobBaseFeeProbe),
        ],
    )
    def test_get_probe(self, feature: str, expected_cls: type) -> None:
        probe = get_probe(feature)
        assert isinstance(probe, expected_cls)
        assert probe.feature == feature

    def test_unknown_feature_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown feature 'EIP-9999'"):
            get_probe("EIP-9999")

    def test_probe_feature_unknown_raises(self, make_w3) -> None:
        with pytest.raises(ValueError):
            probe_feature(make_w3({}), "EIP-9999")


class TestBaseFeeProbe:
    """EIP-1559 is detected from the latest block's baseFeePerGas."""

    def test_positive_base_fee(self, make_w3) -> None:
        w3 = make_w3({"eth_getBlockByNumber": {"baseFeePerGas": hex(10**9)}})

        result = probe_feature(w3, "EIP-1559")

        assert result.succeeded is True
        assert result.value == 10**9
        assert result.method == "eth_getBlockByNumber"
        assert w3.endpoint.calls == [("eth_getBlockByNumber", ["latest", False])]

    def test_missing_base_fee(self, make_w3) -> None:
        w3 = make_w3({"eth_getBlockByNumber": {"number": "0x1"}})

        result = probe_feature(w3, "EIP-1559")

        assert result.succeeded is False
        assert result.error_message is None

    def test_zero_base_fee(self, make_w3) -> None:
        w3 = make_w3({"eth_getBlockByNumber": {"baseFeePerGas": "0x0"}})

        assert probe_feature(w3, "EIP-1559").succeeded is False

    def test_null_block(self, make_w3) -> None:
        w3 = make_w3({"eth_getBlockByNumber": None})

        assert probe_feature(w3, "EIP-1559").succeeded is False


class TestChainIdProbe:
    def test_positive_chain_id(self, make_w3) -> None:
        result = probe_feature(make_w3({"eth_chainId": "0x38"}), "EIP-1344")

        assert result.succeeded is True
        assert result.value == 56

    def test_zero_chain_id(self, make_w3) -> None:
        assert probe_feature(make_w3({"eth_chainId": "0x0"}), "EIP-1344").succeeded is False

    def test_timeout_is_a_failed_probe(self, make_w3) -> None:
        w3 = make_w3({"eth_chainId": TimeoutError("read timed out")})

        result = probe_feature(w3, "EIP-1344")

        assert result.succeeded is False
        assert "timed out" in result.error_message


class TestOpcodeCallProbe:
    """eth_call pre-filter probes succeed iff every call returns."""

    def test_push0_accepted(self, make_w3) -> None:
        w3 = make_w3({"eth_call": "0x"})

        result = probe_feature(w3, "EIP-3855")

        assert result.succeeded is True
        assert w3.endpoint.calls == [
            ("eth_call", [{"to": ZERO_ADDRESS, "data": "0x5f"}, "latest"])
        ]

    def test_push0_rejected(self, make_w3) -> None:
        w3 = make_w3({"eth_call": _INVALID_OPCODE})

        result = probe_feature(w3, "EIP-3855")

        assert result.succeeded is False
        assert result.error_message == "invalid opcode: PUSH0"
        assert result.source == "rpc"

    def test_shift_probe_sends_both_opcodes(self, make_w3) -> None:
        w3 = make_w3({"eth_call": "0x"})

        assert probe_feature(w3, "EIP-145").succeeded is True
        assert [params[0]["data"] for _, params in w3.endpoint.calls] == [
            "0x1b",
            "0x1c",
        ]

    def test_shift_probe_fails_if_either_fails(self, make_w3) -> None:
        def shr_missing(params: list):
            if params[0]["data"] == "0x1c":
                return {"error": {"code": -32000, "message": "invalid opcode"}}
            return "0x"

        w3 = make_w3({"eth_call": shr_missing})

        assert probe_feature(w3, "EIP-145").succeeded is False

    def test_mcopy_uses_0x5e(self, make_w3) -> None:
        w3 = make_w3({"eth_call": "0x"})

        probe_feature(w3, "EIP-5656")

        assert w3.endpoint.calls[0][1][0]["data"] == "0x5e"

    def test_repr(self) -> None:
        assert repr(OpcodeCallProbe("EIP-211", ["0x3d"])) == (
            "OpcodeCallProbe('EIP-211', ['0x3d'])"
        )


class TestTypedTransactionProbe:
    def test_access_list_supported(self, make_w3) -> None:
        w3 = make_w3({"eth_createAccessList": {"accessList": []}})

        assert probe_feature(w3, "EIP-2718").succeeded is True

    def test_method_missing(self, make_w3) -> None:
        result = probe_feature(make_w3({}), "EIP-2718")

        assert result.succeeded is False
        assert result.method == "eth_createAccessList"


class TestBlobBaseFeeProbe:
    def test_reports_fee(self, make_w3) -> None:
        result = probe_feature(make_w3({"eth_blobBaseFee": "0x1"}), "EIP-4844")

        assert result.succeeded is True
        assert result.value == 1

    def test_method_missing(self, make_w3) -> None:
        assert probe_feature(make_w3({}), "EIP-4844").succeeded is False


class TestProbeNeverRaises:
    """RPC-level failures of any kind become failed results."""

    @pytest.mark.parametrize(
        "failure",
        [
            {"error": {"code": -32603, "message": "internal error"}},
            TimeoutError(),
            ConnectionResetError("reset by peer"),
        ],
    )
    @pytest.mark.parametrize("feature", registered_features())
    def test_failure_captured(self, make_w3, feature: str, failure: object) -> None:
        handlers = {
            method: failure
            for method in (
                "eth_getBlockByNumber",
                "eth_chainId",
                "eth_call",
                "eth_createAccessList",
                "eth_blobBaseFee",
            )
        }

        result = probe_feature(make_w3(handlers), feature)

        assert result.feature == feature
        assert result.succeeded is False
        assert result.error_message

    @pytest.mark.parametrize("malformed", [{"chainId": "0x38"}, ["0x38"], True])
    @pytest.mark.parametrize(
        ("feature", "method"),
        [
            ("EIP-1344", "eth_chainId"),
            ("EIP-4844", "eth_blobBaseFee"),
        ],
    )
    def test_malformed_quantity_captured(
        self, make_w3, feature: str, method: str, malformed: object
    ) -> None:
        result = probe_feature(make_w3({method: malformed}), feature)

        assert result.succeeded is False
        assert "Expected a quantity" in result.error_message

    def test_malformed_base_fee_captured(self, make_w3) -> None:
        w3 = make_w3({"eth_getBlockByNumber": {"baseFeePerGas": {"value": 1}}})

        result = probe_feature(w3, "EIP-1559")

        assert result.succeeded is False
        assert "Expected a quantity" in result.error_message
