"""Shared fixtures: sample inputs and an in-process fake of the OEE compute service.

The fake implements the service's HTTP contract with simple formulas
(A = running / planned, P = ideal × total / running, Q = good / total) so the
client and session can be exercised end to end through ``httpx.ASGITransport``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from oee_engine.analysis.aggregation import USE_CASE_KEYS, preview_system_oee
from oee_engine.analysis.models import (
    AggregationMethod,
    BottleneckAnalysis,
    BottleneckInfo,
    LeverageImpact,
    LeverageResponse,
    MachineOeeData,
    MetricChanges,
    ScrapByPhase,
    SensitivityAnalysis,
    SensitivityImpact,
    SensitivityResult,
    StartupWindowConfig,
    SystemOeeAnalysis,
    TemporalScrapAnalysis,
    TemporalScrapData,
)
from oee_engine.assumptions.inputs import EconomicParameters, MachineState, OeeInput
from oee_engine.assumptions.samples import standard_shift
from oee_engine.client.api_client import OeeApiClient
from oee_engine.results.models import (
    AssumptionEntry,
    AssumptionLedger,
    Confidence,
    CoreMetrics,
    EconomicAnalysis,
    EconomicImpact,
    ExtendedMetrics,
    ImpactLevel,
    LossTree,
    LossTreeNode,
    OeeResult,
    SourceStatistics,
    ThresholdRecord,
    TrackedMetric,
)
from oee_engine.validation.issues import Severity
from oee_engine.validation.rules import validate_input

PREFIX = "/api/v1/calculus/engineer/oee"
BASE_URL = f"http://testserver{PREFIX}"


# ---------------------------------------------------------------------------
# Fake formulas
# ---------------------------------------------------------------------------


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _oee_parts(planned: float, running: float, ideal: float, total: float, good: float) -> tuple[float, float, float]:
    return _ratio(running, planned), _ratio(ideal * total, running), _ratio(good, total)


def _metric(name: str, value: float, params: dict[str, float], unit: str = "units.percentage") -> TrackedMetric:
    return TrackedMetric(
        name_key=f"metrics.{name}",
        value=value,
        unit_key=unit,
        formula_key=f"formulas.{name}",
        formula_params=params,
        confidence=Confidence.HIGH,
    )


def _node(key: str, duration: float, planned: float, parent: float | None, children=None) -> LossTreeNode:
    return LossTreeNode(
        category_key=f"loss.{key}",
        description_key=f"loss.{key}.description",
        duration=duration,
        percentage_of_planned=_ratio(duration, planned) * 100,
        percentage_of_parent=None if parent is None else _ratio(duration, parent) * 100,
        children=children or [],
    )


def _loss_tree(oee_input: OeeInput, planned: float, running: float, ideal: float, total: float, good: float) -> LossTree:
    availability_loss = max(planned - running, 0.0)
    state_children = [
        _node(f"state.{state.value.lower()}", oee_input.time_model.seconds_in(state), planned, availability_loss)
        for state in MachineState
        if state is not MachineState.RUNNING and oee_input.time_model.seconds_in(state) > 0
    ]
    if sum(c.duration for c in state_children) > availability_loss:
        state_children = []
    performance_loss = max(running - ideal * total, 0.0)
    quality_loss = ideal * max(total - good, 0.0)
    root = _node(
        "planned_time",
        planned,
        planned,
        None,
        children=[
            _node("availability", availability_loss, planned, planned, state_children),
            _node("performance", performance_loss, planned, planned),
            _node("quality", quality_loss, planned, planned),
        ],
    )
    return LossTree(root=root, planned_time=planned)


def _impact(key: str, base: float, params: EconomicParameters) -> EconomicImpact:
    low, central, high = params.marginal_contribution
    return EconomicImpact(
        description_key=f"economics.{key}",
        low_estimate=base * low,
        central_estimate=base * central,
        high_estimate=base * high,
        currency=params.currency,
    )


def _economics(lost_units: float, scrap: float, rework: float, slow_units: float, params: EconomicParameters) -> EconomicAnalysis:
    parts = [
        _impact("throughput_loss", lost_units, params),
        _impact("material_waste", scrap, params),
        _impact("rework_cost", rework, params),
        _impact("opportunity_cost", slow_units, params),
    ]
    total = EconomicImpact(
        description_key="economics.total_impact",
        low_estimate=sum(p.low_estimate for p in parts),
        central_estimate=sum(p.central_estimate for p in parts),
        high_estimate=sum(p.high_estimate for p in parts),
        currency=params.currency,
    )
    return EconomicAnalysis(
        throughput_loss=parts[0], material_waste=parts[1], rework_cost=parts[2], opportunity_cost=parts[3],
        total_impact=total,
    )


def compute_result(oee_input: OeeInput, economic_parameters: EconomicParameters | None = None) -> OeeResult:
    """What the real service would return, using textbook OEE formulas."""
    tm = oee_input.time_model
    planned = float(tm.planned_production_time.value)
    running = tm.seconds_in(MachineState.RUNNING)
    ideal = float(oee_input.cycle_time.ideal_cycle_time.value)
    p = oee_input.production
    total, good = float(p.total_units.value), float(p.good_units.value)
    scrap, rework = float(p.scrap_units.value), float(p.reworked_units.value)
    availability, performance, quality = _oee_parts(planned, running, ideal, total, good)
    now = datetime.now(timezone.utc)
    counts = oee_input.source_counts()

    core = CoreMetrics(
        availability=_metric("availability", availability, {
            "planned_time_seconds": planned,
            "downtime_seconds": planned - running,
            "operating_time_seconds": running,
        }),
        performance=_metric("performance", performance, {
            "ideal_cycle_time_seconds": ideal,
            "total_count": total,
            "operating_time_seconds": running,
            "ideal_production_time": ideal * total,
        }),
        quality=_metric("quality", quality, {"good_count": good, "total_count": total}),
        oee=_metric("oee", availability * performance * quality, {
            "availability": availability, "performance": performance, "quality": quality,
        }),
    )
    all_time = float(tm.all_time.value) if tm.all_time is not None else None
    utilization = _ratio(planned, all_time) if all_time else 1.0
    extended = ExtendedMetrics(
        teep=_metric("teep", core.oee.value * utilization, {"utilization": utilization}) if all_time else None,
        utilization=_metric("utilization", utilization, {"planned_time_seconds": planned}),
        scrap_rate=_metric("scrap_rate", _ratio(scrap, total), {"scrap_count": scrap, "total_count": total}),
        rework_rate=_metric("rework_rate", _ratio(rework, total), {"rework_count": rework, "total_count": total}),
        net_operating_time=_metric("net_operating_time", ideal * total, {}, unit="units.seconds"),
    )
    ledger = AssumptionLedger(
        analysis_timestamp=now,
        assumptions=[
            AssumptionEntry(
                assumption_key="assumptions.planned_production_time",
                description_key="assumptions.planned_production_time.description",
                value=planned,
                source=tm.planned_production_time.source_type,
                timestamp=now,
                impact=ImpactLevel.CRITICAL,
            ),
            AssumptionEntry(
                assumption_key="assumptions.ideal_cycle_time",
                description_key="assumptions.ideal_cycle_time.description",
                value=ideal,
                source=oee_input.cycle_time.ideal_cycle_time.source_type,
                timestamp=now,
                impact=ImpactLevel.HIGH,
            ),
        ],
        thresholds=[
            ThresholdRecord(
                threshold_key="thresholds.micro_stoppage",
                value=oee_input.thresholds.micro_stoppage_threshold,
                unit_key="units.seconds",
                rationale_key="thresholds.micro_stoppage.rationale",
            )
        ],
        source_statistics=SourceStatistics(
            explicit_count=counts.explicit_count,
            inferred_count=counts.inferred_count,
            default_count=counts.default_count,
            total_count=counts.total_count,
            explicit_percentage=counts.explicit_percentage,
            inferred_percentage=counts.inferred_percentage,
            default_percentage=counts.default_percentage,
        ),
        metadata={"engine": "fake"},
    )
    economics = None
    if economic_parameters is not None:
        economics = _economics(
            _ratio(planned - running, ideal), scrap, rework, _ratio(max(running - ideal * total, 0.0), ideal),
            economic_parameters,
        )
    return OeeResult(
        core_metrics=core,
        extended_metrics=extended,
        loss_tree=_loss_tree(oee_input, planned, running, ideal, total, good),
        economic_analysis=economics,
        ledger=ledger,
        validation=validate_input(oee_input),
    )


def _impact_level(points: float) -> SensitivityImpact:
    points = abs(points)
    if points > 5:
        return SensitivityImpact.CRITICAL
    if points > 2:
        return SensitivityImpact.HIGH
    if points > 0.5:
        return SensitivityImpact.MEDIUM
    return SensitivityImpact.LOW


def compute_sensitivity(oee_input: OeeInput, variation: float) -> SensitivityAnalysis:
    planned = float(oee_input.time_model.planned_production_time.value)
    running = oee_input.time_model.seconds_in(MachineState.RUNNING)
    ideal = float(oee_input.cycle_time.ideal_cycle_time.value)
    total = float(oee_input.production.total_units.value)
    good = float(oee_input.production.good_units.value)
    base = dict(planned=planned, running=running, ideal=ideal, total=total, good=good)
    a0, p0, q0 = _oee_parts(**base)
    baseline = a0 * p0 * q0
    factor = 1 + variation / 100

    results = []
    for key in ("planned", "ideal", "good"):
        varied = {**base, key: base[key] * factor}
        a, p, q = _oee_parts(**varied)
        delta = (a * p * q - baseline) * 100
        results.append(SensitivityResult(
            parameter_key=f"parameters.{key}",
            baseline_value=base[key],
            variation_percent=variation,
            varied_value=varied[key],
            baseline_oee=baseline * 100,
            varied_oee=a * p * q * 100,
            oee_delta=delta,
            impact_level=_impact_level(delta),
            metric_changes=MetricChanges(
                availability_delta=(a - a0) * 100, performance_delta=(p - p0) * 100, quality_delta=(q - q0) * 100,
            ),
        ))
    ordered = sorted(results, key=lambda r: abs(r.oee_delta))
    return SensitivityAnalysis(
        baseline_oee=baseline * 100,
        results=results,
        most_sensitive_parameter=ordered[-1].parameter_key,
        least_sensitive_parameter=ordered[0].parameter_key,
    )


def compute_leverage(oee_input: OeeInput) -> LeverageResponse:
    core = compute_result(oee_input).core_metrics
    a, p, q = core.availability.value, core.performance.value, core.quality.value
    baseline = a * p * q
    total = float(oee_input.production.total_units.value)
    impacts = []
    for key, eliminated in (("availability", p * q), ("performance", a * q), ("quality", a * p)):
        points = (eliminated - baseline) * 100
        impacts.append(LeverageImpact(
            category_key=f"loss.{key}",
            oee_opportunity_points=points,
            throughput_gain_units=int(total * _ratio(eliminated - baseline, baseline)),
            sensitivity_score=points / 100,
        ))
    return LeverageResponse(leverage_impacts=impacts, baseline_oee=baseline * 100)


def compute_temporal_scrap(
    data: TemporalScrapData, ideal_cycle_time: float, startup: StartupWindowConfig | None,
) -> TemporalScrapAnalysis:
    window = data.analysis_window
    if startup is not None and startup.fixed_duration is not None:
        startup_seconds = startup.fixed_duration
    elif startup is not None and startup.percentage_of_total is not None:
        startup_seconds = window.duration * startup.percentage_of_total
    else:
        startup_seconds = 1800.0
    cutoff = window.start + timedelta(seconds=startup_seconds)
    startup_events = [e for e in data.events if e.timestamp < cutoff]
    steady_events = [e for e in data.events if e.timestamp >= cutoff]
    startup_scrap = sum(e.units for e in startup_events)
    steady_scrap = sum(e.units for e in steady_events)
    total = startup_scrap + steady_scrap
    return TemporalScrapAnalysis(
        total_scrap=total,
        startup_scrap=startup_scrap,
        steady_state_scrap=steady_scrap,
        startup_window_duration=startup_seconds,
        startup_scrap_percentage=_ratio(startup_scrap, total) * 100,
        startup_scrap_time_loss=startup_scrap * ideal_cycle_time,
        steady_state_scrap_time_loss=steady_scrap * ideal_cycle_time,
        scrap_by_phase=ScrapByPhase(startup_events=startup_events, steady_state_events=steady_events),
    )


def compute_system(machines: list[MachineOeeData], method: AggregationMethod) -> SystemOeeAnalysis:
    worst = min(machines, key=lambda m: m.oee)
    return SystemOeeAnalysis(
        system_oee=preview_system_oee(machines, method),
        aggregation_method=method,
        machines=machines,
        bottleneck_analysis=BottleneckAnalysis(
            primary_bottlenecks=[BottleneckInfo(
                machine_id=worst.machine_id,
                oee=worst.oee,
                throughput_impact=(1 - worst.oee) * 100,
                recommended_action_key="bottleneck.action.reduce_downtime",
            )],
        ),
        confidence=min(m.result.core_metrics.oee.confidence for m in machines),
    )


# ---------------------------------------------------------------------------
# Fake service
# ---------------------------------------------------------------------------


def build_fake_service() -> FastAPI:
    """FastAPI app speaking the compute-service contract.

    ``app.state.failures`` maps an endpoint suffix (e.g. ``"/leverage"``) to
    ``(status, body)``; a str body is sent as plain text. ``app.state.calls``
    records every endpoint suffix hit.
    """
    app = FastAPI()
    app.state.failures = {}
    app.state.calls = []

    @app.middleware("http")
    async def inject_failures(request: Request, call_next):
        suffix = request.url.path[len(PREFIX):]
        app.state.calls.append(suffix)
        failure = app.state.failures.get(suffix)
        if failure is not None:
            status, body = failure
            if isinstance(body, str):
                return PlainTextResponse(body, status_code=status)
            return JSONResponse(body, status_code=status)
        return await call_next(request)

    def _validated(raw: dict[str, Any]) -> OeeInput | JSONResponse:
        oee_input = OeeInput.model_validate(raw)
        validation = validate_input(oee_input)
        if validation.has_fatal_errors():
            return JSONResponse(
                {
                    "code": "VALIDATION_FAILED",
                    "message_key": "validation.failed",
                    "params": {"issues": [i.model_dump(mode="json") for i in validation.by_severity(Severity.FATAL)]},
                },
                status_code=400,
            )
        return oee_input

    def _economics(body: dict[str, Any]) -> EconomicParameters | None:
        raw = body.get("economic_parameters")
        return EconomicParameters.model_validate(raw) if raw else None

    @app.post(f"{PREFIX}/calculate")
    async def calculate(request: Request):
        oee_input = _validated((await request.json())["input"])
        if isinstance(oee_input, JSONResponse):
            return oee_input
        return {"result": compute_result(oee_input).model_dump(mode="json")}

    @app.post(f"{PREFIX}/calculate-with-economics")
    async def calculate_with_economics(request: Request):
        body = await request.json()
        oee_input = _validated(body["input"])
        if isinstance(oee_input, JSONResponse):
            return oee_input
        return {"result": compute_result(oee_input, _economics(body)).model_dump(mode="json")}

    @app.post(f"{PREFIX}/calculate-full")
    async def calculate_full(request: Request):
        body = await request.json()
        oee_input = _validated(body["input"])
        if isinstance(oee_input, JSONResponse):
            return oee_input
        response: dict[str, Any] = {"result": compute_result(oee_input, _economics(body)).model_dump(mode="json")}
        if body.get("include_sensitivity"):
            variation = body.get("sensitivity_variation") or 10.0
            response["sensitivity_analysis"] = compute_sensitivity(oee_input, variation).model_dump(mode="json")
        if body.get("include_temporal_scrap"):
            scrap = int(oee_input.production.scrap_units.value)
            response["temporal_scrap_analysis"] = TemporalScrapAnalysis(
                total_scrap=scrap,
                startup_scrap=0,
                steady_state_scrap=scrap,
                startup_window_duration=1800.0,
                startup_scrap_percentage=0.0,
                startup_scrap_time_loss=0.0,
                steady_state_scrap_time_loss=scrap * float(oee_input.cycle_time.ideal_cycle_time.value),
            ).model_dump(mode="json")
        return response

    @app.post(f"{PREFIX}/sensitivity")
    async def sensitivity(request: Request):
        body = await request.json()
        oee_input = OeeInput.model_validate(body["input"])
        return {"analysis": compute_sensitivity(oee_input, body["variation_percent"]).model_dump(mode="json")}

    @app.post(f"{PREFIX}/leverage")
    async def leverage(request: Request):
        oee_input = OeeInput.model_validate((await request.json())["input"])
        return compute_leverage(oee_input).model_dump(mode="json")

    @app.post(f"{PREFIX}/temporal-scrap")
    async def temporal_scrap(request: Request):
        body = await request.json()
        startup = body.get("startup_config")
        analysis = compute_temporal_scrap(
            TemporalScrapData.model_validate(body["scrap_data"]),
            body["ideal_cycle_time"],
            StartupWindowConfig.model_validate(startup) if startup else None,
        )
        return {"analysis": analysis.model_dump(mode="json")}

    @app.post(f"{PREFIX}/system/aggregate")
    async def system_aggregate(request: Request):
        body = await request.json()
        machines = [MachineOeeData.model_validate(m) for m in body["machines"]]
        method = AggregationMethod(body["aggregation_method"])
        return {"analysis": compute_system(machines, method).model_dump(mode="json")}

    @app.post(f"{PREFIX}/system/compare-methods")
    async def system_compare(request: Request):
        machines = [MachineOeeData.model_validate(m) for m in (await request.json())["machines"]]
        return {
            "comparisons": {
                method.value: {
                    "method": method.value,
                    "system_oee": preview_system_oee(machines, method),
                    "use_case": USE_CASE_KEYS[method],
                }
                for method in AggregationMethod
            },
            "recommended_method": AggregationMethod.TIME_WEIGHTED.value,
        }

    return app


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shift_day() -> datetime:
    return datetime(2024, 3, 4, tzinfo=timezone.utc)


@pytest.fixture
def standard_input(shift_day) -> OeeInput:
    return standard_shift(shift_day)


@pytest.fixture
def fake_service() -> FastAPI:
    return build_fake_service()


@pytest.fixture
def api_client(fake_service) -> OeeApiClient:
    return OeeApiClient(BASE_URL, transport=httpx.ASGITransport(app=fake_service))


@pytest.fixture
def result_factory():
    return compute_result
