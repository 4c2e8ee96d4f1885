"""Async client for the OEE compute service.

Thin transport over the service's JSON endpoints. Each call opens its own
``httpx.AsyncClient`` with its own timeout and resolves to an
``ApiSuccess`` or ``ApiFailure``: HTTP errors, timeouts, connection failures
and malformed bodies are all classified into an ``ApiError`` here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config.settings import settings
from oee_engine.analysis.models import (
    AggregationMethod,
    LeverageResponse,
    MachineOeeData,
    MethodComparisonResponse,
    SensitivityAnalysis,
    StartupWindowConfig,
    SystemOeeAnalysis,
    TemporalScrapAnalysis,
    TemporalScrapData,
)
from oee_engine.assumptions.inputs import EconomicParameters, OeeInput
from oee_engine.client.errors import ApiError, ApiFailure, ApiResponse, ApiSuccess
from oee_engine.results.models import OeeResult

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class CalculateResponse(BaseModel):
    result: OeeResult


class CalculateFullResponse(BaseModel):
    result: OeeResult
    sensitivity_analysis: Optional[SensitivityAnalysis] = None
    temporal_scrap_analysis: Optional[TemporalScrapAnalysis] = None


class SensitivityResponse(BaseModel):
    analysis: SensitivityAnalysis


class TemporalScrapResponse(BaseModel):
    analysis: TemporalScrapAnalysis


class SystemAggregateResponse(BaseModel):
    analysis: SystemOeeAnalysis


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class OeeApiClient:
    """Typed wrapper around the ``/calculus/engineer/oee`` endpoints.

    Args:
        base_url: Service root; defaults to ``settings.oee_api_base_url``.
        timeout: Per-call timeout in seconds.
        headers: Extra headers merged over ``Content-Type: application/json``.
        max_retries: Extra attempts on transport errors (0 disables retry).
        retry_delay: Initial backoff in seconds, doubled per attempt.
        transport: Optional httpx transport, e.g. ``ASGITransport`` in tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.oee_api_base_url).rstrip("/")
        self.timeout = settings.oee_api_timeout_seconds if timeout is None else timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.max_retries = settings.oee_api_max_retries if max_retries is None else max_retries
        self.retry_delay = settings.oee_api_retry_delay_seconds if retry_delay is None else retry_delay
        self._transport = transport

    # -- transport ------------------------------------------------------------

    async def _send(self, url: str, body: dict[str, Any]) -> httpx.Response:
        """POST with exponential backoff on transport errors only."""
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout), transport=self._transport,
                ) as client:
                    return await client.post(url, json=body, headers=self.headers)
            except httpx.TransportError as exc:
                if attempt + 1 >= attempts:
                    raise
                wait = self.retry_delay * 2 ** attempt
                logger.warning(
                    "OEE request to %s failed (attempt %d/%d): %s, retrying in %.1fs",
                    url, attempt + 1, attempts, str(exc)[:200], wait,
                )
                await asyncio.sleep(wait)
        raise RuntimeError("unreachable")

    @staticmethod
    def _parse_error(resp: httpx.Response) -> ApiError:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return ApiError.parse_failed(resp.status_code, resp.reason_phrase)
        message_key = data.get("message_key") or "api.error.unknown"
        try:
            return ApiError(
                code=data.get("code") or f"HTTP_{resp.status_code}",
                message_key=message_key,
                params=data.get("params") or {},
                message=data.get("message") or message_key or resp.reason_phrase,
                status_code=resp.status_code,
            )
        except ValidationError:
            logger.debug("Error body from %s does not match the error schema", resp.url)
            return ApiError.parse_failed(resp.status_code, resp.reason_phrase)

    async def _post(self, path: str, body: dict[str, Any], response_model: type[M]) -> ApiResponse[M]:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._send(url, body)
        except httpx.TimeoutException as exc:
            logger.warning("OEE request to %s timed out after %.1fs", url, self.timeout)
            return ApiFailure(ApiError.timeout(str(exc) or None))
        except httpx.TransportError as exc:
            logger.warning("OEE request to %s failed: %s", url, exc)
            return ApiFailure(ApiError.network(str(exc) or type(exc).__name__))
        except Exception as exc:
            logger.exception("Unexpected error calling %s", url)
            return ApiFailure(ApiError.unknown(str(exc)))

        if resp.is_error:
            error = self._parse_error(resp)
            logger.info("OEE service rejected %s: %s (%s)", path, error.code, resp.status_code)
            return ApiFailure(error)

        try:
            return ApiSuccess(response_model.model_validate(resp.json()))
        except (ValueError, ValidationError) as exc:
            logger.warning("Unexpected response body from %s: %s", path, str(exc)[:200])
            return ApiFailure(ApiError.unknown(f"Malformed response from {path}"))

    # -- endpoints ------------------------------------------------------------

    async def calculate(self, oee_input: OeeInput) -> ApiResponse[OeeResult]:
        response = await self._post("/calculate", {"input": _dump(oee_input)}, CalculateResponse)
        return ApiSuccess(response.data.result) if isinstance(response, ApiSuccess) else response

    async def calculate_with_economics(
        self, oee_input: OeeInput, economic_parameters: EconomicParameters,
    ) -> ApiResponse[OeeResult]:
        body = {"input": _dump(oee_input), "economic_parameters": _dump(economic_parameters)}
        response = await self._post("/calculate-with-economics", body, CalculateResponse)
        return ApiSuccess(response.data.result) if isinstance(response, ApiSuccess) else response

    async def calculate_full(
        self,
        oee_input: OeeInput,
        economic_parameters: EconomicParameters | None = None,
        *,
        include_sensitivity: bool = False,
        sensitivity_variation: float | None = None,
        include_temporal_scrap: bool = False,
    ) -> ApiResponse[CalculateFullResponse]:
        """Core metrics plus the bundled sensitivity and temporal-scrap analyses."""
        body = build_calculate_full_body(
            oee_input,
            economic_parameters,
            include_sensitivity=include_sensitivity,
            sensitivity_variation=sensitivity_variation,
            include_temporal_scrap=include_temporal_scrap,
        )
        return await self._post("/calculate-full", body, CalculateFullResponse)

    async def analyze_sensitivity(
        self, oee_input: OeeInput, variation_percent: float = 10.0,
    ) -> ApiResponse[SensitivityAnalysis]:
        body = {"input": _dump(oee_input), "variation_percent": variation_percent}
        response = await self._post("/sensitivity", body, SensitivityResponse)
        return ApiSuccess(response.data.analysis) if isinstance(response, ApiSuccess) else response

    async def analyze_leverage(self, oee_input: OeeInput) -> ApiResponse[LeverageResponse]:
        return await self._post("/leverage", {"input": _dump(oee_input)}, LeverageResponse)

    async def analyze_temporal_scrap(
        self,
        scrap_data: TemporalScrapData,
        ideal_cycle_time: float,
        startup_config: StartupWindowConfig | None = None,
    ) -> ApiResponse[TemporalScrapAnalysis]:
        body: dict[str, Any] = {"scrap_data": _dump(scrap_data), "ideal_cycle_time": ideal_cycle_time}
        if startup_config is not None:
            body["startup_config"] = _dump(startup_config)
        response = await self._post("/temporal-scrap", body, TemporalScrapResponse)
        return ApiSuccess(response.data.analysis) if isinstance(response, ApiSuccess) else response

    async def aggregate_system(
        self, machines: Sequence[MachineOeeData], aggregation_method: AggregationMethod,
    ) -> ApiResponse[SystemOeeAnalysis]:
        body = {
            "machines": [_dump(m) for m in machines],
            "aggregation_method": AggregationMethod(aggregation_method).value,
        }
        response = await self._post("/system/aggregate", body, SystemAggregateResponse)
        return ApiSuccess(response.data.analysis) if isinstance(response, ApiSuccess) else response

    async def compare_methods(self, machines: Sequence[MachineOeeData]) -> ApiResponse[MethodComparisonResponse]:
        body = {"machines": [_dump(m) for m in machines]}
        return await self._post("/system/compare-methods", body, MethodComparisonResponse)


def build_calculate_full_body(
    oee_input: OeeInput,
    economic_parameters: EconomicParameters | None = None,
    *,
    include_sensitivity: bool = False,
    sensitivity_variation: float | None = None,
    include_temporal_scrap: bool = False,
) -> dict[str, Any]:
    """Request body for ``/calculate-full``. Also the cache key source."""
    body: dict[str, Any] = {
        "input": _dump(oee_input),
        "include_sensitivity": include_sensitivity,
        "include_temporal_scrap": include_temporal_scrap,
    }
    if economic_parameters is not None:
        body["economic_parameters"] = _dump(economic_parameters)
    if sensitivity_variation is not None:
        body["sensitivity_variation"] = sensitivity_variation
    return body
