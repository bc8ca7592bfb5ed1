# events.py — operator-declared events (one variant per action) + input parsing
# NO state here: the engine resolves these against a SessionSnapshot.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Tuple, Union

__all__ = [
    "InvalidEvent",
    "SelfDraw",
    "DirectWin",
    "MultiHit",
    "Special",
    "CustomPayout",
    "Forfeit",
    "Event",
    "parse_amount",
]

SpecialAction = Literal["collect", "pay"]

MULTI_HIT_MIN_WINNERS = 2
MULTI_HIT_MAX_WINNERS = 3


class InvalidEvent(ValueError):
    """Malformed operator input. Raised before any state is touched; re-prompt."""


@dataclass(frozen=True)
class SelfDraw:
    """Zimo: winner collects from every other player."""
    winner_id: int
    value: int


@dataclass(frozen=True)
class DirectWin:
    """Win off a single discarder."""
    winner_id: int
    loser_id: int
    value: int


@dataclass(frozen=True)
class MultiHit:
    """One discard, 2-3 winners. winner_ids order matters: the first drives the dealer."""
    loser_id: int
    winner_ids: Tuple[int, ...]
    values: Dict[int, int] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.winner_ids, tuple):
            object.__setattr__(self, "winner_ids", tuple(self.winner_ids))


@dataclass(frozen=True)
class Special:
    """Flat side-payment with every other player; never touches claims."""
    actor_id: int
    action: SpecialAction
    amount: int


@dataclass(frozen=True)
class CustomPayout:
    """Zha hu: the actor pays each opponent an operator-chosen amount."""
    actor_id: int
    payouts: Dict[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Forfeit:
    """Current winner gives up the claim on one loser (needs 3+ consecutive hits)."""
    loser_id: int


Event = Union[SelfDraw, DirectWin, MultiHit, Special, CustomPayout, Forfeit]


def parse_amount(raw: Any, *, allow_zero: bool = False, label: str = "amount") -> int:
    """
    Turn operator text (numpad / text box) into an int.

    Raises InvalidEvent for non-numeric input, and for values <= 0 unless
    allow_zero (custom payouts accept 0 = "this player gets nothing").
    """
    if isinstance(raw, bool):
        raise InvalidEvent(f"{label} must be a number, got {raw!r}")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw if raw is not None else "").strip()
        try:
            value = int(text, 10)
        except ValueError:
            raise InvalidEvent(f"{label} must be a whole number, got {raw!r}") from None

    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidEvent(f"{label} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def event_kind(event: Optional[Event]) -> str:
    """Short label for logs and the history feed."""
    return {
        SelfDraw: "self_draw",
        DirectWin: "direct_win",
        MultiHit: "multi_hit",
        Special: "special",
        CustomPayout: "custom_payout",
        Forfeit: "forfeit",
    }.get(type(event), "unknown")
