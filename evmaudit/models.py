"""Data models: ProbeResult, HardFork, AuditReport and AuditRun dataclasses."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal

# EIP identifier (e.g. "EIP-3855") -> whether the chain supports it.
FeatureFlags = dict[str, bool]


class HardFork(str, Enum):
    """Coarse EVM hard-fork label, ordered oldest to newest.

    ``UNKNOWN`` sorts below every named fork.
    """

    UNKNOWN = "unknown"
    ISTANBUL = "istanbul"
    BERLIN = "berlin"
    LONDON = "london"
    SHANGHAI = "shanghai"

    @property
    def tier(self) -> int:
        return _FORK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, HardFork):
            return NotImplemented
        return self.tier < other.tier

    def __le__(self, other: object) -> bool:
        if not isinstance(other, HardFork):
            return NotImplemented
        return self.tier <= other.tier

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, HardFork):
            return NotImplemented
        return self.tier > other.tier

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, HardFork):
            return NotImplemented
        return self.tier >= other.tier


_FORK_ORDER = [
    HardFork.UNKNOWN,
    HardFork.ISTANBUL,
    HardFork.BERLIN,
    HardFork.LONDON,
    HardFork.SHANGHAI,
]


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe against the endpoint.

    Attributes:
        feature: EIP identifier the probe provides evidence for.
        method: JSON-RPC method (or methods, ``+``-joined) that was issued.
        succeeded: Whether the probe's success predicate held.
        value: Returned value, if any (hex string, int or ``None``).
        error_message: Error text when the call failed.
        source: ``"rpc"`` for RPC-level probes, ``"contract"`` for
            execution of a deployed probe contract.
    """

    feature: str
    method: str
    succeeded: bool
    value: str | int | None = None
    error_message: str | None = None
    source: Literal["rpc", "contract"] = "rpc"


@dataclass(frozen=True)
class ChainInfo:
    """Connection metadata captured when the audit starts.

    Attributes:
        rpc_url: Endpoint that was audited.
        chain_id: Chain id reported by ``eth_chainId``.
        block_number: Latest block height at connect time.
        account: Address derived from the signing key, if one was given.
        balance: Account balance in ether (decimal string), if known.
        known_chain: Name of the public network that already uses
            ``chain_id``, if any.
    """

    rpc_url: str
    chain_id: int
    block_number: int
    account: str | None = None
    balance: str | None = None
    known_chain: str | None = None


@dataclass(frozen=True)
class EntryPointCheck:
    """Whether an ERC-4337 EntryPoint contract is deployed at its canonical address."""

    version: str
    address: str
    deployed: bool
    error_message: str | None = None


@dataclass(frozen=True)
class MethodCheck:
    """Whether one standard JSON-RPC method answered without error."""

    method: str
    supported: bool
    error_message: str | None = None


@dataclass(frozen=True)
class RpcCoverage:
    """RPC-method coverage summary.

    Attributes:
        score: Percentage (0-100) of methods that responded.
        supported: Number of methods that responded.
        total: Number of methods checked.
        checks: Per-method outcomes in the order they were issued.
    """

    score: int
    supported: int
    total: int
    checks: tuple[MethodCheck, ...] = ()

    def is_supported(self, method: str) -> bool:
        return any(c.method == method and c.supported for c in self.checks)


@dataclass(frozen=True)
class DeploymentOutcome:
    """Result of deploying the on-chain probe contract(s).

    Attributes:
        deployed: Whether at least one probe contract was mined successfully.
        addresses: Opcode name -> deployed contract address.
        error_message: Deployment failure text, if any deployment failed.
    """

    deployed: bool
    addresses: dict[str, str] = field(default_factory=dict)
    error_message: str | None = None


@dataclass(frozen=True)
class ProviderReadiness:
    """Readiness of the chain for one integration provider."""

    name: str
    score: int
    level: str
    requirements: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class IntegrationReadiness:
    """Wallet / exchange integration readiness scores.

    Attributes:
        rpc_score: RPC coverage score.
        finality_score: Block-progression stability score.
        transaction_score: Gas-estimation support score.
        overall_score: Rounded mean of the three scores above.
        level: Readiness level label for ``overall_score``.
        providers: Per-provider readiness.
    """

    rpc_score: int
    finality_score: int
    transaction_score: int
    overall_score: int
    level: str
    providers: tuple[ProviderReadiness, ...] = ()


@dataclass(frozen=True)
class AuditReport:
    """Everything learned about an endpoint in one audit run.

    Built once by ``auditor.run_audit`` and never mutated afterwards.
    """

    chain: ChainInfo
    probes: tuple[ProbeResult, ...]
    flags: FeatureFlags
    hard_fork: HardFork
    coverage: RpcCoverage
    gas: dict[str, int | None] = field(default_factory=dict)
    deployment: DeploymentOutcome | None = None
    readiness: IntegrationReadiness | None = None
    entry_points: tuple[EntryPointCheck, ...] = ()
    recommendations: tuple[str, ...] = ()
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )

    @property
    def erc4337_supported(self) -> bool:
        return any(check.deployed for check in self.entry_points)


@dataclass
class AuditRun:
    """History record for a single audit execution.

    Attributes:
        rpc_url: Endpoint that was audited.
        chain_id: Chain id reported by the endpoint.
        hard_fork: Classified hard-fork label.
        coverage_score: RPC coverage percentage.
        duration_seconds: Wall-clock duration of the audit.
        id: UUID assigned at persist time; None until persisted.
        timestamp: When the audit ran (UTC).
        meta: Optional extra information about the run.
    """

    rpc_url: str
    chain_id: int
    hard_fork: str
    coverage_score: int
    duration_seconds: float
    id: str | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )
    meta: dict = field(default_factory=dict)
