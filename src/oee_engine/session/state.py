"""Calculation lifecycle states and session configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from config.settings import settings
from oee_engine.analysis.models import LeverageResponse, SensitivityAnalysis, TemporalScrapAnalysis
from oee_engine.client.errors import ApiError
from oee_engine.results.models import OeeResult


@dataclass(frozen=True)
class Idle:
    status: str = field(default="idle", init=False)


@dataclass(frozen=True)
class Loading:
    status: str = field(default="loading", init=False)


@dataclass(frozen=True)
class Success:
    result: OeeResult
    sensitivity: Optional[SensitivityAnalysis] = None
    temporal_scrap: Optional[TemporalScrapAnalysis] = None
    leverage: Optional[LeverageResponse] = None  # None also when the leverage call failed
    status: str = field(default="success", init=False)


@dataclass(frozen=True)
class Error:
    error: ApiError
    status: str = field(default="error", init=False)


CalculationState = Union[Idle, Loading, Success, Error]


@dataclass
class SessionConfig:
    """Which optional analyses a calculation requests."""

    include_sensitivity: bool = field(default_factory=lambda: settings.default_include_sensitivity)
    include_temporal_scrap: bool = field(default_factory=lambda: settings.default_include_temporal_scrap)
    include_leverage: bool = field(default_factory=lambda: settings.default_include_leverage)
    sensitivity_variation: float = field(default_factory=lambda: settings.default_sensitivity_variation)
