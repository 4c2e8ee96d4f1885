"""OEE result model — what the compute service returns for one calculation.

Every output scalar is a ``TrackedMetric`` carrying its formula, inputs and
confidence. Results are frozen. A newer calculation replaces a result and
never mutates it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from oee_engine.assumptions.provenance import ValueSource
from oee_engine.validation.issues import ValidationResult

_FROZEN = ConfigDict(frozen=True)


class Confidence(str, Enum):
    HIGH = "High"  # all inputs explicit
    MEDIUM = "Medium"  # mix of explicit and inferred
    LOW = "Low"  # significant defaults

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    # str would otherwise order these alphabetically
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Confidence):
            return NotImplemented
        return self.rank >= other.rank


_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TrackedMetric(BaseModel):
    model_config = _FROZEN

    name_key: str
    value: float
    unit_key: str
    formula_key: str
    formula_params: dict[str, float] = Field(default_factory=dict)
    confidence: Confidence


class CoreMetrics(BaseModel):
    model_config = _FROZEN

    availability: TrackedMetric
    performance: TrackedMetric
    quality: TrackedMetric
    oee: TrackedMetric

    def is_consistent(self, tolerance: float = 1e-6) -> bool:
        """Whether oee matches A × P × Q. The service guarantees this."""
        product = self.availability.value * self.performance.value * self.quality.value
        return abs(self.oee.value - product) <= tolerance

    def limiting_factor(self) -> str:
        """Name of the lowest of availability / performance / quality."""
        components = {
            "availability": self.availability.value,
            "performance": self.performance.value,
            "quality": self.quality.value,
        }
        return min(components, key=components.get)  # type: ignore[arg-type]


class ExtendedMetrics(BaseModel):
    model_config = _FROZEN

    teep: Optional[TrackedMetric] = None  # only when all_time was supplied
    utilization: TrackedMetric
    mtbf: Optional[TrackedMetric] = None
    mttr: Optional[TrackedMetric] = None
    scrap_rate: TrackedMetric
    rework_rate: TrackedMetric
    net_operating_time: TrackedMetric


# ---------------------------------------------------------------------------
# Loss tree
# ---------------------------------------------------------------------------


class LossTreeNode(BaseModel):
    model_config = _FROZEN

    category_key: str
    description_key: str
    duration: float  # seconds
    percentage_of_planned: float
    percentage_of_parent: Optional[float] = None
    children: list[LossTreeNode] = Field(default_factory=list)
    source: ValueSource = ValueSource.EXPLICIT


class LossTree(BaseModel):
    model_config = _FROZEN

    root: LossTreeNode
    planned_time: float  # seconds


# ---------------------------------------------------------------------------
# Economics
# ---------------------------------------------------------------------------


class EconomicImpact(BaseModel):
    """A money estimate with uncertainty bounds, not an accounting figure."""

    model_config = _FROZEN

    description_key: str
    low_estimate: float
    central_estimate: float
    high_estimate: float
    currency: str
    assumptions: list[str] = Field(default_factory=list)


class EconomicAnalysis(BaseModel):
    model_config = _FROZEN

    throughput_loss: EconomicImpact
    material_waste: EconomicImpact
    rework_cost: EconomicImpact
    opportunity_cost: EconomicImpact
    total_impact: EconomicImpact


# ---------------------------------------------------------------------------
# Assumption ledger
# ---------------------------------------------------------------------------


class ImpactLevel(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


class LedgerWarningSeverity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class AssumptionEntry(BaseModel):
    model_config = _FROZEN

    assumption_key: str
    description_key: str
    value: Any = None
    source: str  # "explicit" | "inferred" | "default"
    timestamp: datetime
    impact: ImpactLevel
    related_assumptions: list[str] = Field(default_factory=list)


class LedgerWarning(BaseModel):
    model_config = _FROZEN

    code: str
    message_key: str
    params: Any = None
    severity: LedgerWarningSeverity
    related_assumptions: list[str] = Field(default_factory=list)


class ThresholdRecord(BaseModel):
    model_config = _FROZEN

    threshold_key: str
    value: float
    unit_key: str
    rationale_key: str


class SourceStatistics(BaseModel):
    model_config = _FROZEN

    explicit_count: int = 0
    inferred_count: int = 0
    default_count: int = 0
    total_count: int = 0
    explicit_percentage: float = 0.0
    inferred_percentage: float = 0.0
    default_percentage: float = 0.0


class AssumptionLedger(BaseModel):
    """Audit record of one calculation. Read-only on the client."""

    model_config = _FROZEN

    analysis_timestamp: datetime
    assumptions: list[AssumptionEntry] = Field(default_factory=list)
    warnings: list[LedgerWarning] = Field(default_factory=list)
    thresholds: list[ThresholdRecord] = Field(default_factory=list)
    source_statistics: SourceStatistics = Field(default_factory=SourceStatistics)
    metadata: dict[str, str] = Field(default_factory=dict)

    def assumptions_from(self, source: ValueSource | str) -> list[AssumptionEntry]:
        wanted = (source.value if isinstance(source, ValueSource) else source).lower()
        return [a for a in self.assumptions if a.source.lower() == wanted]

    def warnings_at(self, severity: LedgerWarningSeverity) -> list[LedgerWarning]:
        return [w for w in self.warnings if w.severity is severity]


# ---------------------------------------------------------------------------
# Aggregate root
# ---------------------------------------------------------------------------


class OeeResult(BaseModel):
    model_config = _FROZEN

    core_metrics: CoreMetrics
    extended_metrics: ExtendedMetrics
    loss_tree: LossTree
    economic_analysis: Optional[EconomicAnalysis] = None
    ledger: AssumptionLedger
    validation: ValidationResult = Field(default_factory=ValidationResult)
