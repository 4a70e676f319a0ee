from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from propbind.core.models import ValueSnapshot


class SourceFetcher(Protocol):
    async def fetch(self, uri: str) -> Mapping[str, str]:
        """
        Return the flat key-value content of one source.

        Raises SourceUnreachable when the source cannot be fetched or read.
        """


class SourceLoader(Protocol):
    async def load(
        self,
        sources: Sequence[str],
        overrides: Optional[Mapping[str, object]] = None,
    ) -> ValueSnapshot:
        """Fetch every source in order and merge them; earlier sources and overrides win."""
