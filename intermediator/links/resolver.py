from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from intermediator.json_logger import JsonLogger, log_event
from intermediator.links.store import ProductLink, ProductLinkStore


@dataclass(frozen=True)
class LinkTarget:
    id: str
    name: str


@dataclass(frozen=True)
class LinkResult:
    linked: bool
    target: Optional[LinkTarget] = None
    match: Optional[str] = None  # "exact" | "contains"


UNLINKED = LinkResult(linked=False)


def _fuzzy_rank(link: ProductLink) -> tuple[int, float, int]:
    # Shortest stored name first, then the most recently updated, then the oldest id.
    return (len(link.plus_name), -link.updated_at.timestamp(), link.id)


def _target(link: ProductLink) -> LinkTarget:
    return LinkTarget(id=link.saboritte_id, name=link.saboritte_name)


class ProductLinkResolver:
    """Resolve a Plus product name to its linked Saboritte product.

    Exact, case-sensitive match on ``plus_name`` wins; otherwise any link whose
    stored name contains the query (case-insensitively) is a candidate and the
    best ranked one is returned. Read-only.
    """

    def __init__(self, store: ProductLinkStore, *, logger: JsonLogger | None = None) -> None:
        self.store = store
        self.logger = logger

    async def resolve(self, name: str | None) -> LinkResult:
        query = (name or "").strip()
        if not query:
            return UNLINKED

        exact = await self.store.first_with_name(query)
        if exact is not None:
            return LinkResult(linked=True, target=_target(exact), match="exact")

        folded = query.casefold()
        candidates = [link for link in await self.store.all_links() if folded in link.plus_name.casefold()]
        if not candidates:
            self._log("unlinked", query=query)
            return UNLINKED

        best = min(candidates, key=_fuzzy_rank)
        self._log(
            "fuzzy match",
            query=query,
            plus_name=best.plus_name,
            saboritte_id=best.saboritte_id,
            candidates=len(candidates),
        )
        return LinkResult(linked=True, target=_target(best), match="contains")

    def _log(self, message: str, **fields: object) -> None:
        if self.logger is None:
            return
        log_event(logger=self.logger, phase="resolve", message=message, **fields)
