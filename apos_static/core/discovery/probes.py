"""Piece endpoint discovery strategies."""

from collections.abc import Iterable, Sequence
from typing import Protocol

import structlog

from apos_static.core.discovery.content_api import ContentApiClient

logger = structlog.get_logger(__name__)

# Collection names common enough to try on APIs without a root index
DEFAULT_HEURISTICS: tuple[str, ...] = ("article", "news", "product", "blog", "event")


class CandidateProbe(Protocol):
    """A source of candidate piece endpoints plus a test for each one."""

    name: str

    async def list_candidates(self) -> list[str]: ...

    async def is_valid_collection(self, key: str) -> bool: ...


class _ApiProbe:
    """Shared validity test: a paginated list whose items carry ``_url``."""

    name = "api"

    def __init__(self, api: ContentApiClient, locale: str | None = None) -> None:
        self.api = api
        self.locale = locale

    async def is_valid_collection(self, key: str) -> bool:
        return await self.api.is_piece_endpoint(key, self.locale)


class RootIndexProbe(_ApiProbe):
    """Candidates enumerated from the ``/api/v1/`` root index."""

    name = "root_index"

    async def list_candidates(self) -> list[str]:
        return await self.api.list_root_candidates()


class HeuristicProbe(_ApiProbe):
    """Candidates from a fixed list of common collection names."""

    name = "heuristics"

    def __init__(
        self,
        api: ContentApiClient,
        locale: str | None = None,
        names: Iterable[str] = DEFAULT_HEURISTICS,
    ) -> None:
        super().__init__(api, locale)
        self.names = list(names)

    async def list_candidates(self) -> list[str]:
        return list(self.names)


class PieceTypeDiscovery:
    """
    Run candidate probes in order and keep every endpoint that passes.

    Later probes only test candidates earlier probes did not already accept,
    and every probe runs even when an earlier one found endpoints.
    """

    def __init__(self, probes: Sequence[CandidateProbe]) -> None:
        self.probes = list(probes)

    @classmethod
    def for_api(cls, api: ContentApiClient, locale: str | None = None) -> "PieceTypeDiscovery":
        """Build the default two-phase discovery: root index, then heuristics."""
        return cls([RootIndexProbe(api, locale), HeuristicProbe(api, locale)])

    async def discover(self) -> list[str]:
        """
        Discover piece endpoint names.

        Returns:
            Accepted endpoint names, in discovery order, without duplicates
        """
        found: list[str] = []
        for probe in self.probes:
            candidates = await probe.list_candidates()
            for key in candidates:
                if key in found:
                    continue
                if await probe.is_valid_collection(key):
                    found.append(key)
            logger.debug("probe_finished", probe=probe.name, candidates=len(candidates))

        logger.info("piece_types_discovered", piece_types=found)
        return found
