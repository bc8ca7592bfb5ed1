# dealer.py — dealer seat + consecutive-win streak bookkeeping
from __future__ import annotations

from typing import Any, Dict, List


class DealerTracker:
    """
    Exactly one dealer at all times; streak counts rounds the seat has kept
    the deal (starts at 1).

    Seat order is owned by the session (the players list) and passed in,
    so a reseat never has to touch this object.
    """

    def __init__(self, dealer_id: int = 1, streak: int = 1):
        self.dealer_id: int = int(dealer_id)
        self.streak: int = max(1, int(streak))

    # ============================================================
    # BONUS
    # ============================================================
    def bonus(self) -> int:
        """Dealer bonus added per paying pair: 1, 3, 5, ... as the streak grows."""
        return 2 * self.streak - 1

    def is_dealer(self, player_id: int) -> bool:
        return player_id == self.dealer_id

    # ============================================================
    # TRANSITIONS
    # ============================================================
    def record_win(self, winner_id: int, seat_order: List[int]) -> None:
        """Dealer keeps the deal on a win, otherwise the deal passes to the next seat."""
        if winner_id == self.dealer_id:
            self.streak += 1
            return
        self.dealer_id = self.next_seat(seat_order)
        self.streak = 1

    def next_seat(self, seat_order: List[int]) -> int:
        if self.dealer_id not in seat_order:
            raise KeyError(f"DealerTracker: dealer {self.dealer_id!r} not seated")
        idx = seat_order.index(self.dealer_id)
        return seat_order[(idx + 1) % len(seat_order)]

    def bump(self) -> None:
        """House-rule override: count an irregular round as a kept deal."""
        self.streak += 1

    def select(self, dealer_id: int, seat_order: List[int]) -> None:
        if dealer_id not in seat_order:
            raise KeyError(f"DealerTracker: cannot seat dealer {dealer_id!r}")
        if dealer_id == self.dealer_id:
            return
        self.dealer_id = int(dealer_id)
        self.streak = 1

    def reset(self, seat_order: List[int]) -> None:
        self.dealer_id = seat_order[0]
        self.streak = 1

    # ============================================================
    # STATE PERSISTENCE
    # ============================================================
    def export_state(self) -> Dict[str, Any]:
        return {"dealer_id": self.dealer_id, "streak": self.streak}

    def import_state(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            return
        try:
            self.dealer_id = int(data.get("dealer_id", self.dealer_id))
        except (TypeError, ValueError):
            pass
        try:
            self.streak = max(1, int(data.get("streak", self.streak)))
        except (TypeError, ValueError):
            pass
