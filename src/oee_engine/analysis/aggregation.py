"""System OEE preview — local aggregation of per-machine results.

Pure functions. The service owns the authoritative ``SystemOeeAnalysis``;
these reproduce only the system OEE figure for each method, so a UI can
show why a chosen method differs from the alternatives without a round
trip. Weighted methods fall back to the simple average when no machine
carries a usable weight.
"""

from __future__ import annotations

import math
from typing import Callable, Sequence

from oee_engine.analysis.models import AggregationMethod, MachineOeeData

USE_CASE_KEYS: dict[AggregationMethod, str] = {
    AggregationMethod.SIMPLE_AVERAGE: "aggregation.use_case.independent_machines",
    AggregationMethod.PRODUCTION_WEIGHTED: "aggregation.use_case.mixed_volume",
    AggregationMethod.TIME_WEIGHTED: "aggregation.use_case.mixed_schedules",
    AggregationMethod.MINIMUM: "aggregation.use_case.serial_line_conservative",
    AggregationMethod.MULTIPLICATIVE: "aggregation.use_case.serial_line_coupled",
}


def _simple_average(machines: Sequence[MachineOeeData]) -> float:
    return sum(m.oee for m in machines) / len(machines)


def _weighted(machines: Sequence[MachineOeeData], weight_of: Callable[[MachineOeeData], float]) -> float:
    weighted_sum = 0.0
    total_weight = 0.0
    for machine in machines:
        weight = weight_of(machine)
        if weight <= 0 or math.isnan(weight):
            continue
        weighted_sum += machine.oee * weight
        total_weight += weight
    if total_weight > 0:
        return weighted_sum / total_weight
    return _simple_average(machines)


def _production_weight(machine: MachineOeeData) -> float:
    return machine.result.core_metrics.quality.formula_params.get("total_count", 0.0)


def _time_weight(machine: MachineOeeData) -> float:
    return machine.result.core_metrics.availability.formula_params.get("planned_time_seconds", 0.0)


def preview_system_oee(machines: Sequence[MachineOeeData], method: AggregationMethod) -> float:
    """System OEE for *machines* under *method*.

    Returns:
        Aggregated OEE in [0, 1], or 0.0 for an empty fleet.
    """
    if not machines:
        return 0.0

    method = AggregationMethod(method)
    if method is AggregationMethod.SIMPLE_AVERAGE:
        return _simple_average(machines)
    if method is AggregationMethod.PRODUCTION_WEIGHTED:
        return _weighted(machines, _production_weight)
    if method is AggregationMethod.TIME_WEIGHTED:
        return _weighted(machines, _time_weight)
    if method is AggregationMethod.MINIMUM:
        return min(m.oee for m in machines)
    return math.prod(m.oee for m in machines)


def preview_all_methods(machines: Sequence[MachineOeeData]) -> dict[AggregationMethod, float]:
    """Run every aggregation method, in declaration order."""
    return {method: preview_system_oee(machines, method) for method in AggregationMethod}
