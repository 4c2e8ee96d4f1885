"""Derived analysis models — sensitivity, leverage, temporal scrap and multi-machine aggregation.

Each analysis is optional and requested on its own. The client surfaces
these payloads as the service returns them. The only logic here is ordering
helpers for display.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from oee_engine.assumptions.inputs import AnalysisWindow
from oee_engine.results.models import Confidence, OeeResult

_FROZEN = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Sensitivity
# ---------------------------------------------------------------------------


class SensitivityImpact(str, Enum):
    CRITICAL = "Critical"  # >5 points of OEE swing
    HIGH = "High"  # 2-5
    MEDIUM = "Medium"  # 0.5-2
    LOW = "Low"  # <0.5


class MetricChanges(BaseModel):
    model_config = _FROZEN

    availability_delta: float = 0.0
    performance_delta: float = 0.0
    quality_delta: float = 0.0


class SensitivityResult(BaseModel):
    model_config = _FROZEN

    parameter_key: str
    baseline_value: float
    variation_percent: float
    varied_value: float
    baseline_oee: float
    varied_oee: float
    oee_delta: float  # absolute percentage points
    impact_level: SensitivityImpact
    metric_changes: MetricChanges = Field(default_factory=MetricChanges)


class SensitivityAnalysis(BaseModel):
    model_config = _FROZEN

    baseline_oee: float
    results: list[SensitivityResult] = Field(default_factory=list)
    most_sensitive_parameter: str = ""
    least_sensitive_parameter: str = ""

    def ranked(self) -> list[SensitivityResult]:
        """Results ordered by absolute OEE swing, largest first."""
        return sorted(self.results, key=lambda r: abs(r.oee_delta), reverse=True)


# ---------------------------------------------------------------------------
# Leverage
# ---------------------------------------------------------------------------


class LeverageImpact(BaseModel):
    """Theoretical gain if a loss category were eliminated entirely."""

    model_config = _FROZEN

    category_key: str
    oee_opportunity_points: float
    throughput_gain_units: int
    sensitivity_score: float


class LeverageResponse(BaseModel):
    model_config = _FROZEN

    leverage_impacts: list[LeverageImpact] = Field(default_factory=list)
    baseline_oee: float

    def ranked(self) -> list[LeverageImpact]:
        return sorted(self.leverage_impacts, key=lambda i: i.oee_opportunity_points, reverse=True)


# ---------------------------------------------------------------------------
# Temporal scrap
# ---------------------------------------------------------------------------


class ScrapEvent(BaseModel):
    model_config = _FROZEN

    timestamp: datetime
    units: int
    reason: Optional[str] = None
    notes: Optional[str] = None


class TemporalScrapData(BaseModel):
    model_config = _FROZEN

    events: list[ScrapEvent] = Field(default_factory=list)
    analysis_window: AnalysisWindow


class StartupWindowConfig(BaseModel):
    """How the startup phase is delimited. Set exactly one field."""

    model_config = _FROZEN

    fixed_duration: Optional[float] = None  # seconds from window start
    percentage_of_total: Optional[float] = None  # 0.10 for the first 10%
    dynamic_threshold: Optional[float] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> StartupWindowConfig:
        chosen = [v for v in (self.fixed_duration, self.percentage_of_total, self.dynamic_threshold) if v is not None]
        if len(chosen) != 1:
            raise ValueError("StartupWindowConfig needs exactly one of fixed_duration, percentage_of_total, dynamic_threshold")
        return self

    @classmethod
    def fixed(cls, seconds: float) -> StartupWindowConfig:
        return cls(fixed_duration=seconds)

    @classmethod
    def percentage(cls, fraction: float) -> StartupWindowConfig:
        return cls(percentage_of_total=fraction)


class ScrapByPhase(BaseModel):
    model_config = _FROZEN

    startup_events: list[ScrapEvent] = Field(default_factory=list)
    steady_state_events: list[ScrapEvent] = Field(default_factory=list)


class TemporalScrapAnalysis(BaseModel):
    model_config = _FROZEN

    total_scrap: int
    startup_scrap: int
    steady_state_scrap: int
    startup_window_duration: float  # seconds
    startup_scrap_percentage: float
    startup_scrap_time_loss: float  # seconds
    steady_state_scrap_time_loss: float  # seconds
    scrap_by_phase: ScrapByPhase = Field(default_factory=ScrapByPhase)


# ---------------------------------------------------------------------------
# Multi-machine aggregation
# ---------------------------------------------------------------------------


class AggregationMethod(str, Enum):
    SIMPLE_AVERAGE = "SimpleAverage"
    PRODUCTION_WEIGHTED = "ProductionWeighted"
    TIME_WEIGHTED = "TimeWeighted"
    MINIMUM = "Minimum"  # conservative, serial line
    MULTIPLICATIVE = "Multiplicative"  # perfectly coupled serial line


class MachineOeeData(BaseModel):
    model_config = _FROZEN

    machine_id: str
    machine_name: Optional[str] = None
    result: OeeResult
    sequence_position: Optional[int] = None
    is_bottleneck: bool = False

    @property
    def oee(self) -> float:
        return self.result.core_metrics.oee.value


class SystemMetrics(BaseModel):
    model_config = _FROZEN

    avg_availability: float = 0.0
    avg_performance: float = 0.0
    avg_quality: float = 0.0
    total_planned_time: float = 0.0  # seconds
    total_downtime: float = 0.0  # seconds
    total_production: int = 0
    total_good_units: int = 0
    best_machine_id: str = ""
    worst_machine_id: str = ""


class BottleneckInfo(BaseModel):
    model_config = _FROZEN

    machine_id: str
    oee: float
    throughput_impact: float  # % of system throughput
    recommended_action_key: str


class BottleneckAnalysis(BaseModel):
    model_config = _FROZEN

    primary_bottlenecks: list[BottleneckInfo] = Field(default_factory=list)
    system_capacity_limit: Optional[float] = None  # units/hour
    potential_throughput_gain: float = 0.0


class SystemOeeAnalysis(BaseModel):
    model_config = _FROZEN

    system_oee: float
    aggregation_method: AggregationMethod
    machines: list[MachineOeeData] = Field(default_factory=list)
    system_metrics: SystemMetrics = Field(default_factory=SystemMetrics)
    bottleneck_analysis: BottleneckAnalysis = Field(default_factory=BottleneckAnalysis)
    confidence: Confidence = Confidence.LOW


class MethodComparison(BaseModel):
    model_config = _FROZEN

    method: str
    system_oee: float
    use_case: str


class MethodComparisonResponse(BaseModel):
    model_config = _FROZEN

    comparisons: dict[str, MethodComparison] = Field(default_factory=dict)
    recommended_method: str

    def spread(self) -> float:
        """Distance between the most and least optimistic method."""
        values = [c.system_oee for c in self.comparisons.values()]
        return max(values) - min(values) if values else 0.0
