"""Fold probe evidence into feature flags and classify the hard fork."""

import logging
from collections.abc import Iterable

from evmaudit.models import FeatureFlags, HardFork, ProbeResult

logger = logging.getLogger(__name__)

# Newest tier first; the first tier whose features are all true wins.
HARD_FORK_RULES: list[tuple[HardFork, tuple[str, ...]]] = [
    (HardFork.SHANGHAI, ("EIP-3855",)),
    (HardFork.LONDON, ("EIP-1559", "EIP-3198")),
    (HardFork.BERLIN, ("EIP-2718",)),
    (HardFork.ISTANBUL, ("EIP-1344",)),
]


def build_feature_flags(results: Iterable[ProbeResult]) -> FeatureFlags:
    """Fold probe results into a feature-flag mapping.

    Results for the same feature from the same source are AND-ed together
    (e.g. separate SHL and SHR contract probes both count towards
    EIP-145).  Contract-execution evidence replaces RPC-level evidence for
    the same feature.

    Args:
        results: Probe results in any order.

    Returns:
        A new ``FeatureFlags`` dict; features are ordered by first
        appearance in *results*.
    """
    by_source: dict[str, dict[str, bool]] = {"rpc": {}, "contract": {}}
    order: list[str] = []

    for result in results:
        if result.feature not in order:
            order.append(result.feature)
        seen = by_source[result.source]
        seen[result.feature] = seen.get(result.feature, True) and result.succeeded

    flags: FeatureFlags = {}
    for feature in order:
        if feature in by_source["contract"]:
            contract_flag = by_source["contract"][feature]
            rpc_flag = by_source["rpc"].get(feature)
            if rpc_flag is not None and rpc_flag != contract_flag:
                logger.info(
                    "%s: eth_call probe says %s, deployed contract says %s; "
                    "using contract result",
                    feature,
                    rpc_flag,
                    contract_flag,
                )
            flags[feature] = contract_flag
        else:
            flags[feature] = by_source["rpc"][feature]
    return flags


def classify_hard_fork(flags: FeatureFlags) -> HardFork:
    """Return the newest hard fork whose required features are all true.

    Missing features count as false.  A higher tier wins even when a lower
    tier's requirements are not met.
    """
    for fork, required in HARD_FORK_RULES:
        if all(flags.get(feature, False) for feature in required):
            return fork
    return HardFork.UNKNOWN


def required_features(fork: HardFork) -> tuple[str, ...]:
    """Return the features *fork* requires (empty for ``UNKNOWN``)."""
    for candidate, required in HARD_FORK_RULES:
        if candidate is fork:
            return required
    return ()
