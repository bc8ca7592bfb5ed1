# history.py — append-only event history with LIFO undo
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from state import ScoreChange, SessionSnapshot


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass(frozen=True)
class HistoryEntry:
    description: str
    score_changes: Tuple[ScoreChange, ...]
    # state BEFORE the event; undo restores exactly this
    pre_state: SessionSnapshot
    created_at: str = field(default="", compare=False)

    def delta_for(self, player_id: int) -> int:
        return sum(sc.delta for sc in self.score_changes if sc.user_id == player_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "scoreChanges": [sc.to_dict() for sc in self.score_changes],
            "preState": self.pre_state.to_dict(),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            description=str(data.get("description") or ""),
            score_changes=tuple(ScoreChange.from_dict(sc) for sc in data.get("scoreChanges") or []),
            pre_state=SessionSnapshot.from_dict(data.get("preState") or {}),
            created_at=str(data.get("createdAt") or ""),
        )


class HistoryStore:
    """
    Oldest-first list of committed events. Only push() and undo() mutate it,
    both at the tail.
    """
    def __init__(self, entries: Optional[Sequence[HistoryEntry]] = None):
        self._entries: List[HistoryEntry] = list(entries or [])

    def push(
        self,
        description: str,
        score_changes: Sequence[ScoreChange],
        pre_state: SessionSnapshot,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            description=description,
            score_changes=tuple(score_changes),
            pre_state=pre_state,
            created_at=_now_iso(),
        )
        self._entries.append(entry)
        return entry

    def undo(self) -> Optional[HistoryEntry]:
        """Pop the newest entry; None when there is nothing to undo."""
        if not self._entries:
            return None
        return self._entries.pop()

    def peek(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries = []

    def entries(self) -> List[HistoryEntry]:
        """Oldest first (insertion order)."""
        return list(self._entries)

    def newest_first(self) -> List[HistoryEntry]:
        return list(reversed(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))

    # ---- persistence ----
    def export_state(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    def import_state(self, data: Any) -> None:
        if not isinstance(data, list):
            return
        loaded: List[HistoryEntry] = []
        for raw in data:
            try:
                loaded.append(HistoryEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                # skip a corrupt entry instead of losing the whole history
                print(f"[HistoryStore.import_state] skipped entry: {e!r}")
        self._entries = loaded
