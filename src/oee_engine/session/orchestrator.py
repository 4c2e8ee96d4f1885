"""OEE analysis session — owns the editable input and the calculation lifecycle.

One session holds one analysis: the current ``OeeInput``, optional economic
parameters, which derived analyses to request, and a state machine::

    Idle | Success | Error --calculate()--> Loading --ok--> Success
                                                    --fail--> Error
    any --reset()--> Idle

Edits never touch the calculation state; they only mark the session dirty.
Each ``calculate()`` call takes a new epoch. A response that comes back
after a newer ``calculate()`` or a ``reset()`` is discarded (last write wins).
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from oee_engine.assumptions.inputs import EconomicParameters, OeeInput
from oee_engine.client.api_client import CalculateFullResponse, OeeApiClient, build_calculate_full_body
from oee_engine.client.errors import ApiError, ApiFailure
from oee_engine.session.cache import ResultCache
from oee_engine.session.state import CalculationState, Error, Idle, Loading, SessionConfig, Success
from oee_engine.validation.issues import ValidationResult
from oee_engine.validation.rules import validate_input

logger = logging.getLogger(__name__)


class OeeSession:
    """Mutable analysis session bound to one compute client.

    Args:
        client: Compute-service client (``OeeApiClient`` or anything with the
            same ``calculate_full`` / ``analyze_leverage`` coroutines).
        config: Initial analysis flags; ``reset()`` returns to these.
        initial_input: Input to start with.
        initial_economic_params: Economic parameters to start with.
        cache: Optional response cache shared between sessions.
        on_success: Called with the ``/calculate-full`` response once per
            applied success.
        on_error: Called with the ``ApiError`` once per applied failure.
    """

    def __init__(
        self,
        client: OeeApiClient,
        *,
        config: SessionConfig | None = None,
        initial_input: OeeInput | None = None,
        initial_economic_params: EconomicParameters | None = None,
        cache: ResultCache | None = None,
        on_success: Callable[[CalculateFullResponse], Any] | None = None,
        on_error: Callable[[ApiError], Any] | None = None,
    ):
        self.client = client
        self.cache = cache
        self.on_success = on_success
        self.on_error = on_error

        self._initial_config = config or SessionConfig()
        self.config = dataclasses.replace(self._initial_config)
        self.input: Optional[OeeInput] = initial_input
        self.economic_params: Optional[EconomicParameters] = initial_economic_params
        self.calculation: CalculationState = Idle()
        self.is_dirty = False
        self.last_calculated_at: Optional[datetime] = None
        self._epoch = 0

    # -- derived state --------------------------------------------------------

    @property
    def has_result(self) -> bool:
        return isinstance(self.calculation, Success)

    @property
    def has_error(self) -> bool:
        return isinstance(self.calculation, Error)

    @property
    def is_loading(self) -> bool:
        return isinstance(self.calculation, Loading)

    # -- edits ----------------------------------------------------------------

    def set_input(self, oee_input: OeeInput | None) -> None:
        self.input = oee_input
        self.is_dirty = True

    def update_input(self, **changes: Any) -> None:
        """Replace top-level input fields, e.g. ``update_input(production=...)``."""
        if self.input is None:
            logger.debug("update_input ignored: no input set")
            return
        unknown = set(changes) - set(OeeInput.model_fields)
        if unknown:
            raise ValueError(f"Unknown OeeInput fields: {sorted(unknown)}")
        self.input = self.input.model_copy(update=changes)
        self.is_dirty = True

    def set_economic_params(self, params: EconomicParameters | None) -> None:
        self.economic_params = params
        self.is_dirty = True

    def toggle_sensitivity(self) -> None:
        self.config.include_sensitivity = not self.config.include_sensitivity
        self.is_dirty = True

    def toggle_temporal_scrap(self) -> None:
        self.config.include_temporal_scrap = not self.config.include_temporal_scrap
        self.is_dirty = True

    def toggle_leverage(self) -> None:
        self.config.include_leverage = not self.config.include_leverage
        self.is_dirty = True

    def set_sensitivity_variation(self, variation: float) -> None:
        self.config.sensitivity_variation = variation
        self.is_dirty = True

    def validate(self) -> ValidationResult:
        """Local advisory checks on the current input. Never blocks calculate()."""
        if self.input is None:
            return ValidationResult()
        return validate_input(self.input)

    def reset(self) -> None:
        self._epoch += 1
        self.input = None
        self.economic_params = None
        self.config = dataclasses.replace(self._initial_config)
        self.calculation = Idle()
        self.is_dirty = False
        self.last_calculated_at = None

    # -- lifecycle ------------------------------------------------------------

    def _is_stale(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.debug("Discarding stale OEE response (epoch %d, current %d)", epoch, self._epoch)
            return True
        return False

    def _fail(self, error: ApiError) -> CalculationState:
        self.calculation = Error(error=error)
        logger.info("OEE calculation failed: %s (%s)", error.code, error.message_key)
        if self.on_error is not None:
            self.on_error(error)
        return self.calculation

    async def calculate(self) -> CalculationState:
        """Run core + requested analyses for the current input.

        Returns:
            The session state after this call was applied, or the current
            state unchanged when there was no input or the response went stale.
        """
        if self.input is None:
            logger.debug("calculate() ignored: no input set")
            return self.calculation

        self._epoch += 1
        epoch = self._epoch
        oee_input = self.input
        economic_params = self.economic_params
        config = dataclasses.replace(self.config)
        self.calculation = Loading()
        logger.info("Calculating OEE for machine %s", oee_input.machine.machine_id)

        try:
            body = build_calculate_full_body(
                oee_input,
                economic_params,
                include_sensitivity=config.include_sensitivity,
                sensitivity_variation=config.sensitivity_variation,
                include_temporal_scrap=config.include_temporal_scrap,
            )
            full = self.cache.get(body) if self.cache is not None else None
            if full is None:
                response = await self.client.calculate_full(
                    oee_input,
                    economic_params,
                    include_sensitivity=config.include_sensitivity,
                    sensitivity_variation=config.sensitivity_variation,
                    include_temporal_scrap=config.include_temporal_scrap,
                )
                if self._is_stale(epoch):
                    return self.calculation
                if isinstance(response, ApiFailure):
                    return self._fail(response.error)
                full = response.data
                if self.cache is not None:
                    self.cache.put(body, full)
        except Exception as exc:
            logger.exception("Unexpected error during OEE calculation")
            if self._is_stale(epoch):
                return self.calculation
            return self._fail(ApiError.unknown(str(exc)))

        leverage = None
        if config.include_leverage:
            try:
                leverage_response = await self.client.analyze_leverage(oee_input)
            except Exception:
                logger.warning("Leverage analysis raised, continuing without it", exc_info=True)
                leverage_response = None
            if self._is_stale(epoch):
                return self.calculation
            if isinstance(leverage_response, ApiFailure):
                logger.warning(
                    "Leverage analysis failed, continuing without it: %s", leverage_response.error.code,
                )
            elif leverage_response is not None:
                leverage = leverage_response.data

        self.calculation = Success(
            result=full.result,
            sensitivity=full.sensitivity_analysis,
            temporal_scrap=full.temporal_scrap_analysis,
            leverage=leverage,
        )
        self.is_dirty = False
        self.last_calculated_at = datetime.now(timezone.utc)
        logger.info("OEE calculation complete: oee=%.4f", full.result.core_metrics.oee.value)
        if self.on_success is not None:
            self.on_success(full)
        return self.calculation
