# state.py — players, score changes and the immutable session snapshot
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_PLAYER_COUNT = 4

Claims = Dict[int, Dict[int, int]]
EscalationMap = Dict[int, Dict[int, int]]


# ----------------------------- Helpers -----------------------------

def _int_keys(raw: Any) -> Dict[int, int]:
    """JSON object keys come back as strings; claims/escalation keys are seat ids."""
    out: Dict[int, int] = {}
    if not isinstance(raw, dict):
        return out
    for k, v in raw.items():
        try:
            out[int(k)] = int(v)
        except (TypeError, ValueError):
            continue
    return out


def nested_from_json(raw: Any) -> Dict[int, Dict[int, int]]:
    out: Dict[int, Dict[int, int]] = {}
    if not isinstance(raw, dict):
        return out
    for k, row in raw.items():
        try:
            out[int(k)] = _int_keys(row)
        except (TypeError, ValueError):
            continue
    return out


def nested_to_json(data: Dict[int, Dict[int, int]]) -> Dict[str, Dict[str, int]]:
    return {str(k): {str(o): int(v) for o, v in row.items()} for k, row in data.items()}


# ----------------------------- Entities -----------------------------

@dataclass
class Player:
    id: int
    name: str
    # amount currently owed to this player by each opponent (not yet cashed out)
    claims: Dict[int, int] = field(default_factory=dict)

    def copy(self) -> "Player":
        return Player(id=self.id, name=self.name, claims=dict(self.claims))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": int(self.id),
            "name": str(self.name),
            "claims": {str(o): int(v) for o, v in self.claims.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or f"Player {data['id']}"),
            claims=_int_keys(data.get("claims")),
        )


def default_players(count: int = DEFAULT_PLAYER_COUNT, names: Optional[List[str]] = None) -> List[Player]:
    """Seat ids run 1..count in table order."""
    names = list(names or [])
    players: List[Player] = []
    for i in range(count):
        pid = i + 1
        name = names[i] if i < len(names) and names[i] else f"Player {pid}"
        players.append(Player(id=pid, name=name, claims={}))
    return players


@dataclass(frozen=True)
class ScoreChange:
    """One signed adjustment to a player's running total."""
    user_id: int
    delta: int

    def to_dict(self) -> Dict[str, int]:
        return {"userId": int(self.user_id), "delta": int(self.delta)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreChange":
        # older blobs used "change" for the delta
        delta = data.get("delta", data.get("change", 0))
        return cls(user_id=int(data["userId"]), delta=int(delta))


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Full engine-relevant state at one instant. Captured before every event
    and restored verbatim by undo, so every container here is a private copy.
    """
    players: Tuple[Player, ...]
    escalation: EscalationMap
    last_winner_id: Optional[int]
    dealer_id: int
    dealer_streak: int

    @classmethod
    def capture(
        cls,
        players: List[Player],
        escalation: EscalationMap,
        last_winner_id: Optional[int],
        dealer_id: int,
        dealer_streak: int,
    ) -> "SessionSnapshot":
        return cls(
            players=tuple(p.copy() for p in players),
            escalation=copy.deepcopy(escalation),
            last_winner_id=last_winner_id,
            dealer_id=int(dealer_id),
            dealer_streak=int(dealer_streak),
        )

    # ---- read helpers used by the engine ----
    @property
    def seat_order(self) -> List[int]:
        return [p.id for p in self.players]

    def claims(self) -> Claims:
        return {p.id: dict(p.claims) for p in self.players}

    def name_of(self, player_id: int) -> str:
        for p in self.players:
            if p.id == player_id:
                return p.name
        return f"#{player_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "players": [p.to_dict() for p in self.players],
            "escalation": nested_to_json(self.escalation),
            "last_winner_id": self.last_winner_id,
            "dealer_id": self.dealer_id,
            "dealer_streak": self.dealer_streak,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSnapshot":
        lw = data.get("last_winner_id")
        return cls(
            players=tuple(Player.from_dict(p) for p in data.get("players") or []),
            escalation=nested_from_json(data.get("escalation")),
            last_winner_id=int(lw) if lw is not None else None,
            dealer_id=int(data.get("dealer_id", 1) or 1),
            dealer_streak=max(1, int(data.get("dealer_streak", 1) or 1)),
        )
