# session_manager.py — session orchestration with export/load helpers
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from dealer import DealerTracker
from engine import ResetNotice, Resolution, ScoringEngine
from events import (
    CustomPayout,
    DirectWin,
    Event,
    Forfeit,
    MultiHit,
    SelfDraw,
    Special,
    event_kind,
)
from history import HistoryEntry, HistoryStore
from ledger import EscalationTracker, ScoreLedger
from state import (
    DEFAULT_PLAYER_COUNT,
    Player,
    SessionSnapshot,
    default_players,
    nested_from_json,
    nested_to_json,
)

# Logical keys of the persisted session (one blob each)
KEY_USERS = "users"
KEY_HISTORY = "history"
KEY_DEALER = "dealerId"
KEY_STREAK = "consecutiveWins"
KEY_WINNER = "currentWinnerId"
KEY_LA_COUNTS = "laCounts"
KEY_POP = "popOnNewWinner"

STATE_KEYS = (KEY_USERS, KEY_HISTORY, KEY_DEALER, KEY_STREAK, KEY_WINNER, KEY_LA_COUNTS, KEY_POP)

ConfirmFn = Callable[[ResetNotice], bool]
PersistFn = Callable[[Dict[str, Any]], None]


class SessionManager:
    """
    One scoring session: seats, claims, la counts, dealer, history.

    This object is *pure logic*: no Streamlit, no Supabase calls.
    After every committed change it hands export_state() to the optional
    `persist` callback (see db.save_state); a failing callback is logged
    and never rolls the in-memory state back.
    """
    def __init__(
        self,
        player_names: Optional[Sequence[str]] = None,
        player_count: int = DEFAULT_PLAYER_COUNT,
        pop_on_new_winner: bool = True,
        persist: Optional[PersistFn] = None,
        engine: Optional[ScoringEngine] = None,
    ):
        if player_names:
            player_count = len(player_names)
        self._players: List[Player] = default_players(player_count, list(player_names or []))
        self.ledger = ScoreLedger(self._players)
        self.escalation = EscalationTracker(self.seat_order)
        self.dealer = DealerTracker(dealer_id=self._players[0].id, streak=1)
        self.history = HistoryStore()
        self.engine = engine or ScoringEngine()

        self.last_winner_id: Optional[int] = None
        self.pop_on_new_winner: bool = bool(pop_on_new_winner)
        self._persist = persist

    # ============================================================
    #  Read side
    # ============================================================
    @property
    def players(self) -> List[Player]:
        return [p.copy() for p in self._players]

    @property
    def seat_order(self) -> List[int]:
        return [p.id for p in self._players]

    @property
    def dealer_id(self) -> int:
        return self.dealer.dealer_id

    @property
    def dealer_streak(self) -> int:
        return self.dealer.streak

    def name_of(self, player_id: int) -> str:
        for p in self._players:
            if p.id == player_id:
                return p.name
        raise KeyError(f"SessionManager: unknown player id {player_id!r}")

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot.capture(
            self._players,
            self.escalation.snapshot(),
            self.last_winner_id,
            self.dealer.dealer_id,
            self.dealer.streak,
        )

    def preview(self, event: Event) -> Optional[Resolution]:
        """Resolve without committing (for score previews in the UI)."""
        return self.engine.resolve(self.snapshot(), event, self.pop_on_new_winner)

    def can_forfeit(self, loser_id: int) -> bool:
        return self.engine.can_forfeit(self.snapshot(), loser_id)

    def forfeit_candidates(self) -> List[int]:
        """Losers the current winner may forfeit against right now."""
        snap = self.snapshot()
        return [pid for pid in self.seat_order if self.engine.can_forfeit(snap, pid)]

    # ============================================================
    #  Events
    # ============================================================
    def declare(self, event: Event, confirm: Optional[ConfirmFn] = None) -> Optional[Resolution]:
        """
        Resolve + commit one event.

        - InvalidEvent propagates (nothing changed, caller re-prompts)
        - None = precondition not met, or the operator declined the reset notice
        """
        pre_state = self.snapshot()
        resolution = self.engine.resolve(pre_state, event, self.pop_on_new_winner)
        if resolution is None:
            return None

        if resolution.reset_notice and confirm is not None:
            if not confirm(resolution.reset_notice):
                return None

        self._commit(resolution)
        self.history.push(resolution.description, resolution.score_changes, pre_state)
        print(f"[SessionManager.declare] {event_kind(event)}: {resolution.description}")
        self._save()
        return resolution

    def _commit(self, resolution: Resolution) -> None:
        self.ledger.apply_patch(resolution.ledger_patch)
        self.escalation.apply_patch(resolution.escalation_patch)
        self.dealer.dealer_id = resolution.dealer_id
        self.dealer.streak = resolution.dealer_streak
        self.last_winner_id = resolution.last_winner_id

    # ---- one helper per operator trigger ----
    def self_draw(self, winner_id: int, value: int, confirm: Optional[ConfirmFn] = None) -> Optional[Resolution]:
        return self.declare(SelfDraw(winner_id=winner_id, value=value), confirm)

    def direct_win(
        self, winner_id: int, loser_id: int, value: int, confirm: Optional[ConfirmFn] = None
    ) -> Optional[Resolution]:
        return self.declare(DirectWin(winner_id=winner_id, loser_id=loser_id, value=value), confirm)

    def multi_hit(
        self,
        loser_id: int,
        winner_ids: Sequence[int],
        values: Mapping[int, int],
        confirm: Optional[ConfirmFn] = None,
    ) -> Optional[Resolution]:
        event = MultiHit(loser_id=loser_id, winner_ids=tuple(winner_ids), values=dict(values))
        return self.declare(event, confirm)

    def special(self, actor_id: int, action: str, amount: int) -> Optional[Resolution]:
        return self.declare(Special(actor_id=actor_id, action=action, amount=amount))  # type: ignore[arg-type]

    def custom_payout(self, actor_id: int, payouts: Mapping[int, int]) -> Optional[Resolution]:
        return self.declare(CustomPayout(actor_id=actor_id, payouts=dict(payouts)))

    def forfeit(self, loser_id: int) -> Optional[Resolution]:
        return self.declare(Forfeit(loser_id=loser_id))

    # ============================================================
    #  Undo / reset
    # ============================================================
    def undo(self) -> Optional[HistoryEntry]:
        """Step back exactly one event. No-op (None) on an empty history."""
        entry = self.history.undo()
        if entry is None:
            return None
        self._restore(entry.pre_state)
        print(f"[SessionManager.undo] reverted: {entry.description}")
        self._save()
        return entry

    def _restore(self, snap: SessionSnapshot) -> None:
        self.ledger.restore({p.id: dict(p.claims) for p in snap.players})
        self.escalation.restore(snap.escalation)
        self.dealer.dealer_id = snap.dealer_id
        self.dealer.streak = snap.dealer_streak
        self.last_winner_id = snap.last_winner_id

    def reset(self) -> None:
        """Start the session over. Irreversible: nothing goes to history."""
        self.ledger.clear_all()
        self.escalation.reset_all()
        self.history.clear()
        self.dealer.reset(self.seat_order)
        self.last_winner_id = None
        self._save()

    # ============================================================
    #  Dealer / table controls (not history events)
    # ============================================================
    def select_dealer(self, dealer_id: int) -> None:
        self.dealer.select(dealer_id, self.seat_order)
        self._save()

    def bump_streak(self) -> None:
        self.dealer.bump()
        self._save()

    def set_pop_on_new_winner(self, on: bool) -> None:
        self.pop_on_new_winner = bool(on)
        self._save()

    def reseat(self, order: Sequence[int]) -> None:
        """Reorder seats; ids (and therefore claims, history) are untouched."""
        order = [int(x) for x in order]
        if sorted(order) != sorted(self.seat_order):
            raise ValueError(f"reseat() needs a permutation of {self.seat_order}, got {order}")
        by_id = {p.id: p for p in self._players}
        self._players[:] = [by_id[pid] for pid in order]
        self._save()

    def rename(self, names: Mapping[int, str]) -> None:
        by_id = {p.id: p for p in self._players}
        for pid, name in names.items():
            if pid not in by_id:
                raise KeyError(f"rename(): unknown player id {pid!r}")
            clean = str(name or "").strip()
            if clean:
                by_id[pid].name = clean
        self._save()

    # ============================================================
    #  Persistence helpers, used by db.save_state / db.load_state
    # ============================================================
    def _save(self) -> None:
        if self._persist is None:
            return
        try:
            self._persist(self.export_state())
        except Exception as e:
            print(f"[SessionManager._save] persist suppressed: {e!r}")

    def export_state(self) -> Dict[str, Any]:
        """
        Serialize the session, one entry per logical storage key:

          {
            "users":            [{"id", "name", "claims"}, ...]  (seat order),
            "history":          [HistoryEntry.to_dict(), ...]    (oldest first),
            "dealerId":         int,
            "consecutiveWins":  int,
            "currentWinnerId":  int | None,
            "laCounts":         {"winnerId": {"loserId": count}},
            "popOnNewWinner":   bool,
          }
        """
        return {
            KEY_USERS: [p.to_dict() for p in self._players],
            KEY_HISTORY: self.history.export_state(),
            KEY_DEALER: self.dealer.dealer_id,
            KEY_STREAK: self.dealer.streak,
            KEY_WINNER: self.last_winner_id,
            KEY_LA_COUNTS: nested_to_json(self.escalation.snapshot()),
            KEY_POP: self.pop_on_new_winner,
        }

    def import_state(self, data: Dict[str, Any]) -> None:
        """
        Restore from a dict shaped like export_state(). Missing or corrupt keys
        keep their current (default) value.
        """
        if not isinstance(data, dict):
            return

        raw_users = data.get(KEY_USERS)
        if isinstance(raw_users, list) and raw_users:
            try:
                loaded = [Player.from_dict(u) for u in raw_users]
                if len({p.id for p in loaded}) == len(loaded):
                    self._players[:] = loaded
                    self.escalation.set_player_ids(self.seat_order)
                else:
                    print("[SessionManager.import_state] duplicate player ids; keeping defaults")
            except (KeyError, TypeError, ValueError) as e:
                print(f"[SessionManager.import_state] users import suppressed: {e!r}")

        if KEY_HISTORY in data:
            self.history.import_state(data.get(KEY_HISTORY))

        self.dealer.import_state({
            "dealer_id": data.get(KEY_DEALER, self.dealer.dealer_id),
            "streak": data.get(KEY_STREAK, self.dealer.streak),
        })
        if self.dealer.dealer_id not in self.seat_order:
            self.dealer.reset(self.seat_order)

        if KEY_WINNER in data:
            lw = data.get(KEY_WINNER)
            try:
                self.last_winner_id = int(lw) if lw is not None else None
            except (TypeError, ValueError):
                self.last_winner_id = None

        if KEY_LA_COUNTS in data:
            try:
                self.escalation.restore(nested_from_json(data.get(KEY_LA_COUNTS)))
            except (KeyError, ValueError) as e:
                print(f"[SessionManager.import_state] laCounts import suppressed: {e!r}")
                self.escalation.reset_all()

        if KEY_POP in data:
            self.pop_on_new_winner = bool(data.get(KEY_POP))

    def attach_persist(self, persist: Optional[PersistFn]) -> None:
        self._persist = persist
