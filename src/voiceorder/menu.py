"""Menu vocabulary snapshot.

The snapshot is fetched from the Order Service once per call and never
changes for the lifetime of that call, so a menu edit mid-call does not
alter what the caller's earlier or later utterances can match.
"""

import logging
import time
from dataclasses import dataclass, field
from functools import cached_property

from voiceorder.textmatch import normalize_phrase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    aliases: tuple[str, ...] = ()
    price: float = 0.0
    category: str = ""

    @property
    def terms(self) -> tuple[str, ...]:
        """Canonical name plus aliases, normalized and de-duplicated."""
        seen = []
        for term in (self.name, *self.aliases):
            norm = normalize_phrase(term)
            if norm and norm not in seen:
                seen.append(norm)
        return tuple(seen)


@dataclass(frozen=True)
class MenuSnapshot:
    items: tuple[MenuItem, ...] = ()
    fetched_at: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.items)

    def get(self, item_id: str) -> MenuItem | None:
        return self._by_id.get(str(item_id))

    def resolves(self, item_id: str) -> bool:
        return str(item_id) in self._by_id

    @cached_property
    def _by_id(self) -> dict[str, MenuItem]:
        return {item.id: item for item in self.items}

    @cached_property
    def vocabulary(self) -> tuple[tuple[tuple[str, ...], str, MenuItem], ...]:
        """(term tokens, term, item) triples, longest term first.

        Ties keep menu order so matching stays deterministic.
        """
        entries = []
        for index, item in enumerate(self.items):
            for term in item.terms:
                entries.append((tuple(term.split()), term, item, index))
        entries.sort(key=lambda e: (-len(e[0]), -len(e[1]), e[3]))
        return tuple((tokens, term, item) for tokens, term, item, _ in entries)

    def names(self, limit: int | None = None) -> list[str]:
        names = [item.name for item in self.items]
        return names[:limit] if limit is not None else names

    @classmethod
    def from_payload(cls, payload: list[dict]) -> "MenuSnapshot":
        """Build a snapshot from the Order Service's menu listing.

        Items flagged unavailable are left out; entries without an id or name
        are skipped with a warning.
        """
        items = []
        for raw in payload or []:
            if not isinstance(raw, dict):
                continue
            available = raw.get("isAvailable", raw.get("is_available", True))
            if available is False:
                continue
            item_id = raw.get("id")
            name = (raw.get("name") or "").strip()
            if item_id is None or not name:
                logger.warning("Skipping malformed menu entry: %r", raw)
                continue
            aliases = raw.get("aliases") or []
            if isinstance(aliases, str):
                aliases = [a.strip() for a in aliases.split(",")]
            try:
                price = float(raw.get("price") or 0)
            except (TypeError, ValueError):
                price = 0.0
            items.append(MenuItem(
                id=str(item_id),
                name=name,
                aliases=tuple(a for a in aliases if a),
                price=price,
                category=raw.get("category") or "",
            ))
        return cls(items=tuple(items))
