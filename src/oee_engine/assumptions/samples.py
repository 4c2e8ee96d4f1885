"""Reference scenarios: realistic inputs for demos and tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from oee_engine.assumptions.inputs import (
    AnalysisWindow,
    CycleTimeModel,
    DowntimeCollection,
    DowntimeRecord,
    EconomicParameters,
    MachineContext,
    MachineState,
    OeeInput,
    ProductionSummary,
    ReasonCode,
    ThresholdConfiguration,
    TimeAllocation,
    TimeModel,
)
from oee_engine.assumptions.provenance import explicit

SHIFT_SECONDS = 28_800  # 8h
BEARING_FAILURE = ReasonCode(path=["Mechanical", "Bearing Failure"], is_failure=True)


def _shift_window(day: datetime | None = None) -> AnalysisWindow:
    day = day or datetime.now(timezone.utc)
    start = day.replace(hour=8, minute=0, second=0, microsecond=0)
    return AnalysisWindow(start=start, end=start + timedelta(seconds=SHIFT_SECONDS))


def _counts(total: int, good: int, scrap: int, rework: int) -> ProductionSummary:
    return ProductionSummary(
        total_units=explicit(total),
        good_units=explicit(good),
        scrap_units=explicit(scrap),
        reworked_units=explicit(rework),
    )


def _allocations(running: float, stopped: float, reason: ReasonCode, notes: str) -> tuple[TimeAllocation, ...]:
    return (
        TimeAllocation(state=MachineState.RUNNING, duration=explicit(running)),
        TimeAllocation(state=MachineState.STOPPED, duration=explicit(stopped), reason=reason, notes=notes),
    )


def standard_shift(day: datetime | None = None) -> OeeInput:
    """8h shift, 7h running, 1000 units (950/30/20), ideal cycle 25.2s."""
    window = _shift_window(day)
    return OeeInput(
        window=window,
        machine=MachineContext(machine_id="M-001", line_id="Line-A", product_id="WIDGET-X", shift_id="SHIFT-1"),
        time_model=TimeModel(
            planned_production_time=explicit(SHIFT_SECONDS),
            allocations=_allocations(25_200, 3_600, BEARING_FAILURE, "Main spindle bearing replacement required"),
            all_time=explicit(86_400),
        ),
        production=_counts(1000, 950, 30, 20),
        cycle_time=CycleTimeModel(ideal_cycle_time=explicit(25.2), average_cycle_time=explicit(26.5)),
        downtimes=DowntimeCollection(
            records=[
                DowntimeRecord(
                    duration=explicit(3_600),
                    reason=BEARING_FAILURE,
                    timestamp=window.start + timedelta(hours=4),
                    notes="Main spindle bearing replacement required",
                )
            ]
        ),
        thresholds=ThresholdConfiguration.defaults(),
    )


def world_class_shift(day: datetime | None = None) -> OeeInput:
    """High availability, performance and quality (OEE above 85%)."""
    base = standard_shift(day)
    changeover = ReasonCode(path=["Setup", "Product Changeover"], is_failure=False)
    return base.model_copy(
        update={
            "time_model": base.time_model.model_copy(
                update={"allocations": _allocations(27_000, 1_800, changeover, "Planned changeover")}
            ),
            "production": _counts(1050, 1040, 8, 2),
            "cycle_time": CycleTimeModel(ideal_cycle_time=explicit(25.2), average_cycle_time=explicit(25.7)),
            "downtimes": DowntimeCollection(
                records=[DowntimeRecord(duration=explicit(1_800), reason=changeover, timestamp=base.window.start)]
            ),
        }
    )


def problematic_shift(day: datetime | None = None) -> OeeInput:
    """Multiple breakdowns, heavy scrap and slow cycles (OEE below 60%)."""
    base = standard_shift(day)
    breakdowns = ReasonCode(path=["Mechanical", "Multiple Breakdowns"], is_failure=True)
    return base.model_copy(
        update={
            "time_model": base.time_model.model_copy(
                update={
                    "allocations": _allocations(
                        21_600, 7_200, breakdowns, "Multiple equipment failures throughout shift"
                    )
                }
            ),
            "production": _counts(850, 720, 100, 30),
            "cycle_time": CycleTimeModel(ideal_cycle_time=explicit(25.2), average_cycle_time=explicit(30.5)),
            "downtimes": DowntimeCollection(
                records=[
                    DowntimeRecord(
                        duration=explicit(4_800),
                        reason=ReasonCode(path=["Mechanical", "Hydraulic Failure"], is_failure=True),
                        timestamp=base.window.start,
                        notes="Hydraulic system failure",
                    ),
                    DowntimeRecord(
                        duration=explicit(2_400),
                        reason=ReasonCode(path=["Electrical", "Control Panel"], is_failure=True),
                        timestamp=base.window.start,
                        notes="Control panel malfunction",
                    ),
                ]
            ),
        }
    )


def sample_economic_parameters() -> EconomicParameters:
    return EconomicParameters(
        unit_price=(45.0, 50.0, 55.0),
        marginal_contribution=(20.0, 25.0, 30.0),
        material_cost=(15.0, 18.0, 22.0),
        labor_cost_per_hour=(35.0, 40.0, 45.0),
        currency="USD",
    )


@dataclass
class SampleScenario:
    name: str
    description: str
    input: Callable[[], OeeInput]
    economic: Callable[[], EconomicParameters]


SAMPLE_SCENARIOS: dict[str, SampleScenario] = {
    "standard": SampleScenario(
        "Standard Shift", "Typical 8-hour shift with moderate performance",
        standard_shift, sample_economic_parameters,
    ),
    "world_class": SampleScenario(
        "World-Class Performance", "High availability, performance, and quality (OEE > 85%)",
        world_class_shift, sample_economic_parameters,
    ),
    "problematic": SampleScenario(
        "Problematic Shift", "Multiple issues requiring attention (OEE < 60%)",
        problematic_shift, sample_economic_parameters,
    ),
}
