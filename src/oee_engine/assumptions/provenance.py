"""Value provenance — every scalar input knows where it came from.

An ``InputValue`` pairs a raw value with exactly one source tag:

- ``Explicit``: the analyst entered it.
- ``Inferred``: it was derived from other inputs.
- ``Default``: a system fallback was used.

The compute service expects the externally tagged encoding
``{"Explicit": 100}``. That is what ``model_dump`` produces, and
``model_validate`` accepts it back.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

from pydantic import BaseModel, ConfigDict, model_serializer, model_validator

T = TypeVar("T")
U = TypeVar("U")


class ValueSource(str, Enum):
    EXPLICIT = "Explicit"
    INFERRED = "Inferred"
    DEFAULT = "Default"


_TAGS = {s.value for s in ValueSource}


class InputValue(BaseModel, Generic[T]):
    """A value tagged with its provenance."""

    model_config = ConfigDict(frozen=True)

    source: ValueSource
    value: T

    @model_validator(mode="before")
    @classmethod
    def _decode_tagged(cls, data: Any) -> Any:
        if isinstance(data, InputValue) and not isinstance(data, cls):
            # revalidate against this parametrization, e.g. explicit("7") into InputValue[int]
            return {"source": data.source, "value": data.value}
        if isinstance(data, dict) and "source" not in data:
            tags = [key for key in data if key in _TAGS]
            if len(data) != 1 or len(tags) != 1:
                raise ValueError(
                    f"InputValue needs exactly one of {sorted(_TAGS)}, got {sorted(data)}"
                )
            tag = tags[0]
            return {"source": tag, "value": data[tag]}
        return data

    @model_serializer(mode="plain")
    def _encode_tagged(self) -> dict[str, Any]:
        return {self.source.value: self.value}

    @property
    def source_type(self) -> str:
        """Lower-case source label as recorded in ledgers."""
        return self.source.value.lower()

    def is_explicit(self) -> bool:
        return self.source is ValueSource.EXPLICIT

    def is_inferred(self) -> bool:
        return self.source is ValueSource.INFERRED

    def is_default(self) -> bool:
        return self.source is ValueSource.DEFAULT

    def map(self, fn: Callable[[T], U]) -> InputValue[U]:
        """Transform the value, keeping the tag."""
        return InputValue(source=self.source, value=fn(self.value))


def wrap(value: T, source: ValueSource | str) -> InputValue[T]:
    return InputValue(source=ValueSource(source), value=value)


def unwrap(input_value: InputValue[T]) -> T:
    return input_value.value


def explicit(value: T) -> InputValue[T]:
    """The constructor used when a literal user entry is captured."""
    return InputValue(source=ValueSource.EXPLICIT, value=value)


def inferred(value: T) -> InputValue[T]:
    return InputValue(source=ValueSource.INFERRED, value=value)


def default(value: T) -> InputValue[T]:
    return InputValue(source=ValueSource.DEFAULT, value=value)


# ---------------------------------------------------------------------------
# Source statistics
# ---------------------------------------------------------------------------


@dataclass
class SourceCounts:
    """How many inputs came from each source."""

    explicit_count: int
    inferred_count: int
    default_count: int

    @property
    def total_count(self) -> int:
        return self.explicit_count + self.inferred_count + self.default_count

    def _pct(self, count: int) -> float:
        if self.total_count == 0:
            return 0.0
        return round(count / self.total_count * 100, 1)

    @property
    def explicit_percentage(self) -> float:
        return self._pct(self.explicit_count)

    @property
    def inferred_percentage(self) -> float:
        return self._pct(self.inferred_count)

    @property
    def default_percentage(self) -> float:
        return self._pct(self.default_count)


def count_sources(values: Iterable[InputValue[Any]]) -> SourceCounts:
    counts = {source: 0 for source in ValueSource}
    for iv in values:
        counts[iv.source] += 1
    return SourceCounts(
        explicit_count=counts[ValueSource.EXPLICIT],
        inferred_count=counts[ValueSource.INFERRED],
        default_count=counts[ValueSource.DEFAULT],
    )
