"""Input validation rules — mathematical coherence of an ``OeeInput``.

We validate logic, not realism. Impossible numbers are flagged. Merely
unlikely numbers are left alone. Every rule is a pure function that
returns its own ``ValidationResult``. ``validate_input`` runs them all in a
fixed order. Issues are advisory and never block a calculation.
"""

from __future__ import annotations

import math

from oee_engine.assumptions.inputs import (
    AnalysisWindow,
    CycleTimeModel,
    DowntimeCollection,
    MachineContext,
    MachineState,
    OeeInput,
    ProductionSummary,
    ThresholdConfiguration,
    TimeModel,
)
from oee_engine.assumptions.provenance import SourceCounts
from oee_engine.validation.issues import ValidationIssue, ValidationResult

ALLOCATION_GAP_RATIO = 0.95  # flag when less than this share of planned time is accounted for
SLOW_CYCLE_RATIO = 1.5
DOWNTIME_TOLERANCE_SECONDS = 60.0
HIGH_DEFAULT_PERCENTAGE = 30.0

RATIO_THRESHOLDS = ("speed_loss_threshold", "high_scrap_rate_threshold", "low_utilization_threshold")
DURATION_THRESHOLDS = ("micro_stoppage_threshold", "small_stop_threshold")


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


def validate_window(window: AnalysisWindow) -> ValidationResult:
    result = ValidationResult()
    if window.span_seconds <= 0:
        result.add_issue(ValidationIssue.fatal(
            "INVALID_ANALYSIS_WINDOW",
            "validation.error.invalid_analysis_window",
            {"start": window.start.isoformat(), "end": window.end.isoformat()},
            field_path="window",
        ))
    return result


def validate_machine(machine: MachineContext) -> ValidationResult:
    result = ValidationResult()
    if not machine.machine_id.strip():
        result.add_issue(ValidationIssue.fatal(
            "MISSING_MACHINE_ID", "validation.error.missing_machine_id", {}, field_path="machine.machine_id",
        ))
    return result


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


def validate_time_allocations(time_model: TimeModel) -> ValidationResult:
    """Allocations must fit inside planned production time."""
    result = ValidationResult()
    planned = float(time_model.planned_production_time.value)
    allocated = time_model.allocated_seconds

    if allocated > planned:
        result.add_issue(ValidationIssue.warning(
            "TIME_ALLOCATION_EXCEEDS_PLANNED",
            "validation.warning.time_allocation_exceeds_planned",
            {
                "allocated_seconds": allocated,
                "planned_seconds": planned,
                "excess_seconds": allocated - planned,
            },
            field_path="time_model.allocations",
        ))
    elif time_model.allocations and planned > 0 and allocated / planned < ALLOCATION_GAP_RATIO:
        result.add_issue(ValidationIssue.info(
            "TIME_ALLOCATION_GAP",
            "validation.info.time_allocation_gap",
            {
                "allocated_seconds": allocated,
                "planned_seconds": planned,
                "gap_seconds": planned - allocated,
                "gap_percentage": round((1 - allocated / planned) * 100),
            },
            field_path="time_model.allocations",
        ))
    return result


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------


def validate_production_counts(production: ProductionSummary) -> ValidationResult:
    """good + scrap + reworked should equal total."""
    result = ValidationResult()
    fields = {
        "total_units": production.total_units.value,
        "good_units": production.good_units.value,
        "scrap_units": production.scrap_units.value,
        "reworked_units": production.reworked_units.value,
    }

    for name, value in fields.items():
        if value < 0:
            result.add_issue(ValidationIssue.fatal(
                "NEGATIVE_COUNT",
                "validation.error.negative_count",
                {"field": name, "value": value},
                field_path=f"production.{name}",
            ))

    total = fields["total_units"]
    parts_sum = production.parts_sum
    if parts_sum != total:
        result.add_issue(ValidationIssue.warning(
            "PRODUCTION_COUNT_MISMATCH",
            "validation.warning.production_count_mismatch",
            {**fields, "parts_sum": parts_sum, "difference": parts_sum - total},
            field_path="production",
        ))

    if total == 0:
        result.add_issue(ValidationIssue.info(
            "ZERO_PRODUCTION", "validation.info.zero_production", {}, field_path="production.total_units",
        ))
    return result


# ---------------------------------------------------------------------------
# Cycle time
# ---------------------------------------------------------------------------


def validate_cycle_times(cycle_time: CycleTimeModel) -> ValidationResult:
    result = ValidationResult()
    ideal = float(cycle_time.ideal_cycle_time.value)

    if ideal <= 0:
        result.add_issue(ValidationIssue.fatal(
            "ZERO_CYCLE_TIME",
            "validation.error.zero_cycle_time",
            {"ideal_seconds": ideal},
            field_path="cycle_time.ideal_cycle_time",
        ))
        return result

    if cycle_time.average_cycle_time is None:
        return result

    average = float(cycle_time.average_cycle_time.value)
    if average < ideal:
        # Faster than the theoretical minimum is suspicious, not invalid
        result.add_issue(ValidationIssue.info(
            "CYCLE_TIME_BELOW_IDEAL",
            "validation.info.cycle_time_below_ideal",
            {"ideal_seconds": ideal, "average_seconds": average, "difference_seconds": ideal - average},
            field_path="cycle_time.average_cycle_time",
        ))
    elif average / ideal > SLOW_CYCLE_RATIO:
        result.add_issue(ValidationIssue.info(
            "CYCLE_TIME_SIGNIFICANTLY_HIGHER",
            "validation.info.cycle_time_significantly_higher",
            {"ideal_seconds": ideal, "average_seconds": average, "ratio": round(average / ideal * 100)},
            field_path="cycle_time.average_cycle_time",
        ))
    return result


# ---------------------------------------------------------------------------
# Downtime
# ---------------------------------------------------------------------------


def validate_downtime_records(downtimes: DowntimeCollection, time_model: TimeModel) -> ValidationResult:
    """Recorded downtime should roughly match the Stopped allocation."""
    result = ValidationResult()
    if not downtimes.records:
        return result

    records_sum = downtimes.total_seconds
    stopped = time_model.seconds_in(MachineState.STOPPED)
    difference = records_sum - stopped
    if abs(difference) > DOWNTIME_TOLERANCE_SECONDS:
        result.add_issue(ValidationIssue.info(
            "DOWNTIME_RECORD_MISMATCH",
            "validation.info.downtime_record_mismatch",
            {"records_sum_seconds": records_sum, "stopped_time_seconds": stopped, "difference_seconds": difference},
            field_path="downtimes",
        ))
    return result


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


def validate_thresholds(thresholds: ThresholdConfiguration) -> ValidationResult:
    """Ratios must be in [0, 1]; durations must not be negative."""
    result = ValidationResult()

    for name in RATIO_THRESHOLDS:
        value = getattr(thresholds, name)
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            result.add_issue(ValidationIssue.fatal(
                "THRESHOLD_OUT_OF_RANGE",
                "validation.error.threshold_out_of_range",
                {"field": name, "value": value, "min": 0.0, "max": 1.0},
                field_path=f"thresholds.{name}",
            ))

    for name in DURATION_THRESHOLDS:
        value = getattr(thresholds, name)
        if math.isnan(value) or value < 0:
            result.add_issue(ValidationIssue.fatal(
                "NEGATIVE_THRESHOLD",
                "validation.error.negative_threshold",
                {"field": name, "value": value},
                field_path=f"thresholds.{name}",
            ))
    return result


# ---------------------------------------------------------------------------
# Provenance
# ---------------------------------------------------------------------------


def check_input_source_quality(counts: SourceCounts) -> ValidationResult:
    result = ValidationResult()
    if counts.total_count and counts.default_percentage > HIGH_DEFAULT_PERCENTAGE:
        result.add_issue(ValidationIssue.info(
            "HIGH_DEFAULT_USAGE",
            "validation.info.high_default_usage",
            {
                "default_count": counts.default_count,
                "total_inputs": counts.total_count,
                "default_percentage": round(counts.default_percentage),
            },
        ))
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def validate_input(oee_input: OeeInput) -> ValidationResult:
    """Run every rule against *oee_input*.

    Returns:
        ValidationResult whose ``is_valid`` is False only when a Fatal
        issue was found. Nothing here prevents submission.
    """
    result = ValidationResult()
    for partial in (
        validate_window(oee_input.window),
        validate_machine(oee_input.machine),
        validate_time_allocations(oee_input.time_model),
        validate_production_counts(oee_input.production),
        validate_cycle_times(oee_input.cycle_time),
        validate_downtime_records(oee_input.downtimes, oee_input.time_model),
        validate_thresholds(oee_input.thresholds),
        check_input_source_quality(oee_input.source_counts()),
    ):
        result.merge(partial)
    return result
