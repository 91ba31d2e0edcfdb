"""Tests for evmaudit.classify — flag folding and hard-fork classification."""

import pytest

from evmaudit.classify import (
    HARD_FORK_RULES,
    build_feature_flags,
    classify_hard_fork,
    required_features,
)
from evmaudit.models import HardFork, ProbeResult


def _result(feature: str, succeeded: bool, source: str = "rpc") -> ProbeResult:
    return ProbeResult(
        feature=feature,
        method="eth_call",
        succeeded=succeeded,
        source=source,  # type: ignore[arg-type]
    )


class TestBuildFeatureFlags:
    """Folding probe results into one flag per feature."""

    def test_one_flag_per_feature_in_order(self) -> None:
        flags = build_feature_flags(
            [_result("EIP-1559", True), _result("EIP-3855", False)]
        )

        assert flags == {"EIP-1559": True, "EIP-3855": False}
        assert list(flags) == ["EIP-1559", "EIP-3855"]

    def test_same_source_results_are_anded(self) -> None:
        flags = build_feature_flags(
            [
                _result("EIP-145", True, "contract"),
                _result("EIP-145", False, "contract"),
            ]
        )

        assert flags["EIP-145"] is False

    def test_contract_overrides_rpc_negative(self) -> None:
        """Scenario C: eth_call accepted PUSH0, the deployed contract did not."""
        flags = build_feature_flags(
            [_result("EIP-3855", True), _result("EIP-3855", False, "contract")]
        )

        assert flags["EIP-3855"] is False

    def test_contract_overrides_rpc_positive(self) -> None:
        flags = build_feature_flags(
            [_result("EIP-3855", False), _result("EIP-3855", True, "contract")]
        )

        assert flags["EIP-3855"] is True

    def test_disagreement_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("INFO", logger="evmaudit.classify")

        build_feature_flags(
            [_result("EIP-3855", True), _result("EIP-3855", False, "contract")]
        )

        assert "using contract result" in caplog.text

    def test_empty(self) -> None:
        assert build_feature_flags([]) == {}


class TestClassifyHardFork:
    """Newest satisfied tier wins; otherwise unknown."""

    def test_shanghai_dominates_lower_tiers(self) -> None:
        assert classify_hard_fork({"EIP-3855": True}) is HardFork.SHANGHAI

    def test_shanghai_ignores_missing_base_fee(self) -> None:
        flags = {"EIP-3855": True, "EIP-1559": False, "EIP-1344": False}
        assert classify_hard_fork(flags) is HardFork.SHANGHAI

    def test_london_requires_both(self) -> None:
        assert (
            classify_hard_fork({"EIP-1559": True, "EIP-3198": True})
            is HardFork.LONDON
        )
        assert (
            classify_hard_fork({"EIP-1559": True, "EIP-3198": False})
            is HardFork.UNKNOWN
        )

    def test_berlin(self) -> None:
        flags = {"EIP-2718": True, "EIP-1344": True, "EIP-1559": False}
        assert classify_hard_fork(flags) is HardFork.BERLIN

    def test_istanbul(self) -> None:
        assert classify_hard_fork({"EIP-1344": True}) is HardFork.ISTANBUL

    def test_all_false_is_unknown(self) -> None:
        flags = {feature: False for _, req in HARD_FORK_RULES for feature in req}
        assert classify_hard_fork(flags) is HardFork.UNKNOWN

    def test_empty_is_unknown(self) -> None:
        assert classify_hard_fork({}) is HardFork.UNKNOWN

    @pytest.mark.parametrize("fork", [fork for fork, _ in HARD_FORK_RULES])
    def test_label_never_exceeds_evidence(self, fork: HardFork) -> None:
        flags = {feature: True for feature in required_features(fork)}

        label = classify_hard_fork(flags)

        assert label is fork
        assert all(flags.get(f, False) for f in required_features(label))


class TestScenarios:
    """End-to-end folding and classification of typical chains."""

    def test_modern_chain(self) -> None:
        results = [
            ProbeResult("EIP-1559", "eth_getBlockByNumber", True, value=10**9),
            _result("EIP-3855", True),
        ]

        flags = build_feature_flags(results)

        assert flags["EIP-1559"] is True
        assert flags["EIP-3855"] is True
        assert classify_hard_fork(flags) is HardFork.SHANGHAI

    @pytest.mark.parametrize(
        ("chain_id_ok", "expected"),
        [(True, HardFork.ISTANBUL), (False, HardFork.UNKNOWN)],
    )
    def test_legacy_chain(self, chain_id_ok: bool, expected: HardFork) -> None:
        results = [
            ProbeResult("EIP-1559", "eth_getBlockByNumber", False),
            _result("EIP-3855", False),
            ProbeResult("EIP-1344", "eth_chainId", chain_id_ok),
        ]

        flags = build_feature_flags(results)

        assert flags["EIP-1559"] is False
        assert flags["EIP-3855"] is False
        assert classify_hard_fork(flags) is expected

    def test_rpc_prefilter_contradicted_by_contract(self) -> None:
        results = [
            _result("EIP-3855", True),
            _result("EIP-3855", False, "contract"),
            ProbeResult("EIP-1344", "eth_chainId", True),
        ]

        assert classify_hard_fork(build_feature_flags(results)) is not HardFork.SHANGHAI


class TestRequiredFeatures:
    def test_known(self) -> None:
        assert required_features(HardFork.LONDON) == ("EIP-1559", "EIP-3198")

    def test_unknown_has_none(self) -> None:
        assert required_features(HardFork.UNKNOWN) == ()
