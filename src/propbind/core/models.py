from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ValueSnapshot:
    """
    One immutable, fully merged view of all sources at a point in time.

    Equality only looks at the values, so two loads of unchanged sources
    compare equal even though their generation and timestamp differ.
    """

    values: Mapping[str, str]
    generation: int = field(default=0, compare=False)
    loaded_at: datetime = field(default_factory=_utc_now, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.values, MappingProxyType):
            object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def with_generation(self, generation: int) -> ValueSnapshot:
        return dataclasses.replace(self, generation=generation)


@dataclass(frozen=True, slots=True)
class ReloadEvent:
    source: Any
