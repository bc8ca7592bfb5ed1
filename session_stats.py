# session_stats.py — totals, leaderboard, per-player stats and payout settlement

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from history import HistoryEntry
from state import Player


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _safe_float(x, default: float = 0.0) -> float:
    try:
        return float(x)
    except Exception:
        return default


# ---------- Totals ----------

def total_scores(players: Sequence[Player], history: Sequence[HistoryEntry]) -> Dict[int, int]:
    """Running total per player: the sum of every delta in history."""
    totals = {p.id: 0 for p in players}
    for entry in history:
        for sc in entry.score_changes:
            if sc.user_id in totals:
                totals[sc.user_id] += sc.delta
    return totals


def score_trajectory(players: Sequence[Player], history: Sequence[HistoryEntry]) -> List[Dict[str, Any]]:
    """
    Cumulative totals after each event, oldest first:

      [{"round": 1, "Player 1": 12, "Player 2": -4, ...}, ...]

    Only players touched by an event get a value for that round.
    """
    cumulative = {p.id: 0 for p in players}
    names = {p.id: p.name for p in players}
    points: List[Dict[str, Any]] = []
    for idx, entry in enumerate(history):
        point: Dict[str, Any] = {"round": idx + 1}
        for sc in entry.score_changes:
            if sc.user_id not in cumulative:
                continue
            cumulative[sc.user_id] += sc.delta
            point[names[sc.user_id]] = cumulative[sc.user_id]
        points.append(point)
    return points


# ---------- Player stats ----------

def player_stats(players: Sequence[Player], history: Sequence[HistoryEntry]) -> Dict[int, Dict[str, Any]]:
    """
    Per-player performance over the session.

      - wins:            events with a positive delta
      - total:           running total
      - average:         total / events played (rounded half up)
      - best / worst:    largest and smallest single delta
      - consistency:     std-dev of deltas about the rounded average (lower = steadier)
      - win_pct:         wins / all events, in percent
    """
    totals = total_scores(players, history)
    rounds: Dict[int, List[int]] = {p.id: [] for p in players}
    for entry in history:
        for sc in entry.score_changes:
            if sc.user_id in rounds:
                rounds[sc.user_id].append(sc.delta)

    n_events = len(history)
    stats: Dict[int, Dict[str, Any]] = {}
    for p in players:
        deltas = rounds[p.id]
        wins = sum(1 for d in deltas if d > 0)
        row: Dict[str, Any] = {
            "name": p.name,
            "wins": wins,
            "total": totals[p.id],
            "average": 0,
            "best": 0,
            "worst": 0,
            "consistency": 0,
            "win_pct": 0,
            "events": len(deltas),
        }
        if deltas:
            mean = _round_half_up(totals[p.id] / len(deltas))
            variance = sum((d - mean) ** 2 for d in deltas) / len(deltas)
            row.update(
                average=mean,
                best=max(deltas),
                worst=min(deltas),
                consistency=_round_half_up(math.sqrt(variance)),
                win_pct=_round_half_up(wins / n_events * 100) if n_events else 0,
            )
        stats[p.id] = row
    return stats


def leaderboard(players: Sequence[Player], history: Sequence[HistoryEntry]) -> List[Dict[str, Any]]:
    """Players ranked by total, highest first (ties keep seat order)."""
    totals = total_scores(players, history)
    ranked = sorted(players, key=lambda p: totals[p.id], reverse=True)
    return [{"rank": i + 1, "id": p.id, "name": p.name, "total": totals[p.id]} for i, p in enumerate(ranked)]


# ---------- Payout settlement ----------

def settle_payouts(
    totals: Mapping[int, int],
    divisor: Any = 1,
    adjustments: Optional[Mapping[int, Any]] = None,
) -> Dict[int, float]:
    """
    Convert fan totals into money: total / divisor, plus a signed per-player
    adjustment (table fee, rounding) that the divisor does not touch.
    An invalid divisor (non-numeric or <= 0) pays 0 before adjustments.
    """
    d = _safe_float(divisor, 0.0)
    valid = d > 0
    adjustments = adjustments or {}

    out: Dict[int, float] = {}
    for pid, total in totals.items():
        base = (total / d) if valid else 0.0
        out[pid] = round(base + _safe_float(adjustments.get(pid, 0.0), 0.0), 2)
    return out
