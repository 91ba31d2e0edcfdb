"""Feature-probe registry and abstract FeatureProbe base class."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from evmaudit.models import ProbeResult
from evmaudit.rpc import PROBE_ERRORS

if TYPE_CHECKING:
    from web3 import Web3

logger = logging.getLogger(__name__)


class FeatureProbe(ABC):
    """Abstract base class for all RPC-level feature probes.

    Each probe issues one or more read-only calls and turns the response
    into evidence for a single EIP.

    Attributes:
        feature: EIP identifier the probe reports on.
        method: JSON-RPC method name(s) the probe issues.
    """

    feature: str
    method: str

    @abstractmethod
    def check(self, w3: Web3) -> tuple[bool, str | int | None]:
        """Issue the probe's calls.

        Args:
            w3: A connected ``Web3`` instance.

        Returns:
            ``(succeeded, value)`` where *value* is whatever the endpoint
            returned that is worth reporting.

        Raises:
            Any of ``rpc.PROBE_ERRORS``; ``run`` records them as failures.
        """

    def run(self, w3: Web3) -> ProbeResult:
        """Execute the probe, capturing any RPC failure into the result."""
        try:
            succeeded, value = self.check(w3)
        except PROBE_ERRORS as exc:
            logger.debug("Probe %s (%s) failed: %s", self.feature, self.method, exc)
            return ProbeResult(
                feature=self.feature,
                method=self.method,
                succeeded=False,
                error_message=str(exc) or type(exc).__name__,
            )
        logger.debug("Probe %s (%s) -> %s", self.feature, self.method, succeeded)
        return ProbeResult(
            feature=self.feature,
            method=self.method,
            succeeded=succeeded,
            value=value,
        )


def _build_registry() -> dict[str, FeatureProbe]:
    """Build the feature-id -> probe mapping, in report order.

    Imports are deferred to avoid circular imports and to keep the
    registry definition in one place.
    """
    from evmaudit.probes.block import (
        BaseFeeProbe,
        BlobBaseFeeProbe,
        ChainIdProbe,
        TypedTransactionProbe,
    )
    from evmaudit.probes.opcode import OpcodeCallProbe

    probes: list[FeatureProbe] = [
        BaseFeeProbe(),
        ChainIdProbe(),
        OpcodeCallProbe("EIP-3198", ["0x48"]),
        OpcodeCallProbe("EIP-3651", ["0x41"]),
        OpcodeCallProbe("EIP-3855", ["0x5f"]),
        OpcodeCallProbe("EIP-211", ["0x3d"]),
        OpcodeCallProbe("EIP-145", ["0x1b", "0x1c"]),
        TypedTransactionProbe(),
        BlobBaseFeeProbe(),
        OpcodeCallProbe("EIP-5656", ["0x5e"]),
    ]
    return {probe.feature: probe for probe in probes}


def get_probe(feature: str) -> FeatureProbe:
    """Look up the probe for *feature*.

    Args:
        feature: EIP identifier (e.g. ``"EIP-3855"``).

    Returns:
        The matching ``FeatureProbe`` instance.

    Raises:
        ValueError: If *feature* is not in the probe table.
    """
    registry = _build_registry()
    probe = registry.get(feature)
    if probe is None:
        known = ", ".join(registry)
        raise ValueError(f"Unknown feature {feature!r}. Known features: {known}")
    return probe


def probe_feature(w3: Web3, feature: str) -> ProbeResult:
    """Run the probe for *feature* against *w3*.

    Never raises for RPC-level failures; those are recorded in the
    returned ``ProbeResult``.
    """
    return get_probe(feature).run(w3)


def registered_features() -> list[str]:
    """Return all probed feature ids in report order."""
    return list(_build_registry())
