# ledger.py — unsettled claims matrix + per-pair escalation ("la") counts
from __future__ import annotations

import copy
from typing import Dict, Iterable, List

from state import Claims, EscalationMap, Player


class ScoreLedger:
    """
    Who is owed how much by whom, not yet cashed out.

    The matrix lives on the Player objects themselves (Player.claims) so the
    persisted `users` blob and the ledger never drift apart. This class only
    adds id checks and the read/write primitives the session manager needs.
    """
    def __init__(self, players: List[Player]):
        self._players = players

    def _player(self, player_id: int) -> Player:
        for p in self._players:
            if p.id == player_id:
                return p
        raise KeyError(f"ScoreLedger: unknown player id {player_id!r}")

    def _check_pair(self, player_id: int, opponent_id: int) -> Player:
        if player_id == opponent_id:
            raise ValueError(f"ScoreLedger: self-claim on player {player_id!r}")
        self._player(opponent_id)
        return self._player(player_id)

    # ---- primitives ----
    def get(self, player_id: int, opponent_id: int) -> int:
        return int(self._check_pair(player_id, opponent_id).claims.get(opponent_id, 0))

    def set(self, player_id: int, opponent_id: int, value: int) -> None:
        p = self._check_pair(player_id, opponent_id)
        if value:
            p.claims[opponent_id] = int(value)
        else:
            p.claims.pop(opponent_id, None)

    # ---- row helpers ----
    def row(self, player_id: int) -> Dict[int, int]:
        return dict(self._player(player_id).claims)

    def has_active(self, player_id: int) -> bool:
        return any(v > 0 for v in self._player(player_id).claims.values())

    def clear_row(self, player_id: int) -> None:
        self._player(player_id).claims.clear()

    def clear_all(self) -> None:
        for p in self._players:
            p.claims.clear()

    def apply_patch(self, patch: Claims) -> None:
        for player_id, cells in patch.items():
            for opponent_id, value in cells.items():
                self.set(player_id, opponent_id, value)

    def snapshot(self) -> Claims:
        return {p.id: dict(p.claims) for p in self._players}

    def restore(self, claims: Claims) -> None:
        """Replace every row from a snapshot; players missing from it end up empty."""
        for p in self._players:
            p.claims = dict(claims.get(p.id, {}))


class EscalationTracker:
    """
    Consecutive hits of winner over loser since that winner's row was last
    reset. Zero counts are dropped so a reset row is genuinely empty.
    """
    def __init__(self, player_ids: Iterable[int], counts: EscalationMap | None = None):
        self._ids = set(int(x) for x in player_ids)
        self._counts: EscalationMap = {}
        if counts:
            self.restore(counts)

    def set_player_ids(self, player_ids: Iterable[int]) -> None:
        self._ids = set(int(x) for x in player_ids)

    def _check_pair(self, winner_id: int, loser_id: int) -> None:
        if winner_id not in self._ids:
            raise KeyError(f"EscalationTracker: unknown player id {winner_id!r}")
        if loser_id not in self._ids:
            raise KeyError(f"EscalationTracker: unknown player id {loser_id!r}")
        if winner_id == loser_id:
            raise ValueError(f"EscalationTracker: self-pair on player {winner_id!r}")

    def get(self, winner_id: int, loser_id: int) -> int:
        self._check_pair(winner_id, loser_id)
        return int(self._counts.get(winner_id, {}).get(loser_id, 0))

    def set(self, winner_id: int, loser_id: int, value: int) -> None:
        self._check_pair(winner_id, loser_id)
        if value > 0:
            self._counts.setdefault(winner_id, {})[loser_id] = int(value)
            return
        row = self._counts.get(winner_id)
        if row is not None:
            row.pop(loser_id, None)
            if not row:
                del self._counts[winner_id]

    def increment(self, winner_id: int, loser_id: int) -> int:
        value = self.get(winner_id, loser_id) + 1
        self.set(winner_id, loser_id, value)
        return value

    def reset_row(self, winner_id: int) -> None:
        self._counts.pop(winner_id, None)

    def reset_all(self) -> None:
        self._counts = {}

    def apply_patch(self, patch: EscalationMap) -> None:
        for winner_id, cells in patch.items():
            for loser_id, value in cells.items():
                self.set(winner_id, loser_id, value)

    def snapshot(self) -> EscalationMap:
        return copy.deepcopy(self._counts)

    def restore(self, counts: EscalationMap) -> None:
        self._counts = {}
        for winner_id, row in counts.items():
            for loser_id, value in row.items():
                self.set(int(winner_id), int(loser_id), int(value))
