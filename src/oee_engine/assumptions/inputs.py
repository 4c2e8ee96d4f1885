"""OEE analysis input model — the unit of submission to the compute service.

Every scalar that feeds a metric is an ``InputValue``. Thresholds are plain
configuration and carry no provenance. All models are frozen. Edits go
through ``model_copy(update=...)``, so an input that has been submitted
cannot change afterwards.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from oee_engine.assumptions.provenance import InputValue, SourceCounts, count_sources

_FROZEN = ConfigDict(frozen=True)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class MachineState(str, Enum):
    RUNNING = "Running"
    STOPPED = "Stopped"
    SETUP = "Setup"
    STARVED = "Starved"
    BLOCKED = "Blocked"
    MAINTENANCE = "Maintenance"
    UNKNOWN = "Unknown"


class ReasonCode(BaseModel):
    """Hierarchical reason, e.g. ``["Mechanical", "Bearing Failure"]``."""

    model_config = _FROZEN

    path: tuple[str, ...]
    is_failure: bool = False

    @property
    def label(self) -> str:
        return " > ".join(self.path)


class AnalysisWindow(BaseModel):
    model_config = _FROZEN

    start: datetime
    end: datetime

    @property
    def span_seconds(self) -> float:
        """Signed end - start in seconds. Naive datetimes are taken as UTC."""
        return (_as_utc(self.end) - _as_utc(self.start)).total_seconds()

    @property
    def duration(self) -> float:
        """Window length in seconds, never negative."""
        return max(self.span_seconds, 0.0)


class MachineContext(BaseModel):
    model_config = _FROZEN

    machine_id: str
    line_id: Optional[str] = None
    product_id: Optional[str] = None
    shift_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class TimeAllocation(BaseModel):
    model_config = _FROZEN

    state: MachineState
    duration: InputValue[float]  # seconds
    reason: Optional[ReasonCode] = None
    notes: Optional[str] = None


class TimeModel(BaseModel):
    model_config = _FROZEN

    planned_production_time: InputValue[float]  # seconds
    allocations: tuple[TimeAllocation, ...] = ()
    all_time: Optional[InputValue[float]] = None  # calendar seconds; enables TEEP

    @property
    def allocated_seconds(self) -> float:
        return sum(a.duration.value for a in self.allocations)

    def seconds_in(self, state: MachineState) -> float:
        return sum(a.duration.value for a in self.allocations if a.state == state)


# ---------------------------------------------------------------------------
# Counts and cycle times
# ---------------------------------------------------------------------------


class ProductionSummary(BaseModel):
    model_config = _FROZEN

    total_units: InputValue[StrictInt]
    good_units: InputValue[StrictInt]
    scrap_units: InputValue[StrictInt]
    reworked_units: InputValue[StrictInt]

    @property
    def parts_sum(self) -> int:
        return self.good_units.value + self.scrap_units.value + self.reworked_units.value


class CycleTimeModel(BaseModel):
    model_config = _FROZEN

    ideal_cycle_time: InputValue[float]  # seconds per unit, theoretical minimum
    average_cycle_time: Optional[InputValue[float]] = None  # observed mean


# ---------------------------------------------------------------------------
# Downtime
# ---------------------------------------------------------------------------


class DowntimeRecord(BaseModel):
    model_config = _FROZEN

    duration: InputValue[float]  # seconds
    reason: ReasonCode
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


class DowntimeCollection(BaseModel):
    model_config = _FROZEN

    records: tuple[DowntimeRecord, ...] = ()

    @property
    def total_seconds(self) -> float:
        return sum(r.duration.value for r in self.records)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.records if r.reason.is_failure)


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class ThresholdConfiguration(BaseModel):
    """Boundaries used to categorize losses."""

    model_config = _FROZEN

    micro_stoppage_threshold: float = 30.0  # seconds
    small_stop_threshold: float = 300.0  # seconds
    speed_loss_threshold: float = 0.05  # ratio below ideal
    high_scrap_rate_threshold: float = 0.20
    low_utilization_threshold: float = 0.30

    @classmethod
    def defaults(cls) -> ThresholdConfiguration:
        return cls()

    @classmethod
    def strict(cls) -> ThresholdConfiguration:
        return cls(
            micro_stoppage_threshold=15.0,
            small_stop_threshold=180.0,
            speed_loss_threshold=0.02,
            high_scrap_rate_threshold=0.10,
            low_utilization_threshold=0.50,
        )

    @classmethod
    def lenient(cls) -> ThresholdConfiguration:
        return cls(
            micro_stoppage_threshold=60.0,
            small_stop_threshold=600.0,
            speed_loss_threshold=0.10,
            high_scrap_rate_threshold=0.30,
            low_utilization_threshold=0.20,
        )


# ---------------------------------------------------------------------------
# Economics
# ---------------------------------------------------------------------------

EstimateRange = tuple[float, float, float]  # (low, central, high)


class EconomicParameters(BaseModel):
    model_config = _FROZEN

    unit_price: EstimateRange
    marginal_contribution: EstimateRange
    material_cost: EstimateRange
    labor_cost_per_hour: EstimateRange
    currency: str = "USD"

    @classmethod
    def from_point_estimates(
        cls,
        unit_price: float,
        marginal_contribution: float,
        material_cost: float,
        labor_cost_per_hour: float,
        currency: str = "USD",
        uncertainty: float = 0.10,
    ) -> EconomicParameters:
        """Spread single values into ±uncertainty ranges."""

        def spread(v: float) -> EstimateRange:
            return (v * (1 - uncertainty), v, v * (1 + uncertainty))

        return cls(
            unit_price=spread(unit_price),
            marginal_contribution=spread(marginal_contribution),
            material_cost=spread(material_cost),
            labor_cost_per_hour=spread(labor_cost_per_hour),
            currency=currency,
        )


# ---------------------------------------------------------------------------
# Aggregate root
# ---------------------------------------------------------------------------


class OeeInput(BaseModel):
    """Complete input for one OEE analysis."""

    model_config = _FROZEN

    window: AnalysisWindow
    machine: MachineContext
    time_model: TimeModel
    production: ProductionSummary
    cycle_time: CycleTimeModel
    downtimes: DowntimeCollection = Field(default_factory=DowntimeCollection)
    thresholds: ThresholdConfiguration = Field(default_factory=ThresholdConfiguration)

    def input_values(self) -> Iterator[InputValue]:
        """Every provenance-tagged scalar in the input."""
        tm = self.time_model
        yield tm.planned_production_time
        if tm.all_time is not None:
            yield tm.all_time
        for allocation in tm.allocations:
            yield allocation.duration
        p = self.production
        yield from (p.total_units, p.good_units, p.scrap_units, p.reworked_units)
        yield self.cycle_time.ideal_cycle_time
        if self.cycle_time.average_cycle_time is not None:
            yield self.cycle_time.average_cycle_time
        for record in self.downtimes.records:
            yield record.duration

    def source_counts(self) -> SourceCounts:
        return count_sources(self.input_values())
