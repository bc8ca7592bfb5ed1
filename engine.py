# engine.py — win resolution for the four-seat scoring session
#
# RULES (house rules, operator-declared fan values are ground truth):
# - Dealer bonus: 2 * streak - 1, added per paying pair when winner OR payer is dealer
# - La (escalation): repeat hit on the same payer -> P + round(P * 0.5) + new amount
# - Takeover: a new winner picks up floor(Q / 2) of what the payer had on them
# - Pop on new winner: everyone else's uncollected claims are wiped
# - Payer's claim against the winner is always cleared (collected)
# - Score delta per payer = growth of the claim (claim == total collected on the chain)
#
# The engine is PURE: it reads a SessionSnapshot and returns a Resolution.
# SessionManager commits the patches.

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dealer import DealerTracker
from events import (
    CustomPayout,
    DirectWin,
    Event,
    Forfeit,
    InvalidEvent,
    MULTI_HIT_MAX_WINNERS,
    MULTI_HIT_MIN_WINNERS,
    MultiHit,
    SelfDraw,
    Special,
    parse_amount,
)
from state import Claims, EscalationMap, ScoreChange, SessionSnapshot


@dataclass
class ResetNotice:
    """Claims about to be wiped by a takeover, shown to the operator before commit."""
    winner_ids: Tuple[int, ...]
    cleared: Claims = field(default_factory=dict)

    def __bool__(self) -> bool:
        return any(self.cleared.values())


@dataclass
class Resolution:
    """Returned from each resolved event to drive the commit + history + UI."""
    description: str
    score_changes: List[ScoreChange]
    ledger_patch: Claims
    escalation_patch: EscalationMap
    dealer_id: int
    dealer_streak: int
    last_winner_id: Optional[int]
    reset_notice: Optional[ResetNotice] = None

    @property
    def total_delta(self) -> int:
        return sum(sc.delta for sc in self.score_changes)

    def delta_for(self, player_id: int) -> int:
        return sum(sc.delta for sc in self.score_changes if sc.user_id == player_id)


@dataclass
class _Hit:
    winner_id: int
    loser_id: int
    value: int
    prior: int = 0
    final: int = 0

    @property
    def gain(self) -> int:
        return self.final - self.prior


class ScoringEngine:
    """
    Stateless resolver. One public entry point, resolve(), dispatching on the
    event variant. Every read happens against the snapshot passed in, so a
    multi-hit's winners all see the same pre-event claims.
    """

    # ============================================================
    # TUNABLES
    # ============================================================
    LA_RATE: float = 0.5              # repeat hit compounds the prior claim by 50%
    TAKEOVER_CARRY_DIVISOR: int = 2   # new winner carries half of the payer's claim
    FORFEIT_MIN_HITS: int = 3         # forfeit unlocks at 3 consecutive hits

    # ============================================================
    # ENTRY POINT
    # ============================================================
    def resolve(
        self,
        snapshot: SessionSnapshot,
        event: Event,
        pop_on_new_winner: bool = True,
    ) -> Optional[Resolution]:
        """
        Resolve one declared event.

        Raises InvalidEvent for malformed input. Returns None when a
        precondition is not met (forfeit below the threshold), which callers
        treat as a silent no-op.
        """
        if isinstance(event, SelfDraw):
            return self._resolve_self_draw(snapshot, event, pop_on_new_winner)
        if isinstance(event, DirectWin):
            return self._resolve_direct_win(snapshot, event, pop_on_new_winner)
        if isinstance(event, MultiHit):
            return self._resolve_multi_hit(snapshot, event, pop_on_new_winner)
        if isinstance(event, Special):
            return self._resolve_special(snapshot, event)
        if isinstance(event, CustomPayout):
            return self._resolve_custom_payout(snapshot, event)
        if isinstance(event, Forfeit):
            return self._resolve_forfeit(snapshot, event)
        raise InvalidEvent(f"Unsupported event type: {type(event).__name__}")

    # ============================================================
    # BUILDING BLOCKS
    # ============================================================
    def la_bonus(self, prior: int) -> int:
        """round(prior * 0.5) with halves rounding up."""
        return int(math.floor(prior * self.LA_RATE + 0.5))

    def takeover_carry(self, owed_to_loser: int) -> int:
        return owed_to_loser // self.TAKEOVER_CARRY_DIVISOR

    def pair_amount(self, dealer: DealerTracker, winner_id: int, loser_id: int, value: int) -> int:
        """Declared value plus the dealer bonus when the dealer sits on either side."""
        if dealer.is_dealer(winner_id) or dealer.is_dealer(loser_id):
            return value + dealer.bonus()
        return value

    def _score_hit(
        self,
        claims: Claims,
        dealer: DealerTracker,
        hit: _Hit,
        new_winner: bool,
    ) -> None:
        base = self.pair_amount(dealer, hit.winner_id, hit.loser_id, hit.value)
        hit.prior = claims[hit.winner_id].get(hit.loser_id, 0)

        if hit.prior > 0:
            hit.final = hit.prior + self.la_bonus(hit.prior) + base
            return

        owed_to_loser = claims[hit.loser_id].get(hit.winner_id, 0)
        if new_winner and owed_to_loser > 0:
            hit.final = self.takeover_carry(owed_to_loser) + base
        else:
            hit.final = base

    @staticmethod
    def _has_active(claims: Claims, player_id: int) -> bool:
        return any(v > 0 for v in claims.get(player_id, {}).values())

    @staticmethod
    def _require_seated(snapshot: SessionSnapshot, *player_ids: Optional[int]) -> None:
        seated = set(snapshot.seat_order)
        for pid in player_ids:
            if pid is None:
                raise InvalidEvent("A player selection is required.")
            if pid not in seated:
                raise KeyError(f"ScoringEngine: unknown player id {pid!r}")

    @staticmethod
    def _diff(before: Dict[int, Dict[int, int]], after: Dict[int, Dict[int, int]]) -> Dict[int, Dict[int, int]]:
        """Cells that changed, with 0 meaning 'cleared'."""
        patch: Dict[int, Dict[int, int]] = {}
        for pid in set(before) | set(after):
            b_row = before.get(pid, {})
            a_row = after.get(pid, {})
            for opp in set(b_row) | set(a_row):
                if b_row.get(opp, 0) != a_row.get(opp, 0):
                    patch.setdefault(pid, {})[opp] = a_row.get(opp, 0)
        return patch

    # ============================================================
    # WIN-TYPE EVENTS
    # ============================================================
    def _resolve_hits(
        self,
        snapshot: SessionSnapshot,
        hits: List[_Hit],
        new_winner: bool,
        pop_on_new_winner: bool,
        description: str,
    ) -> Resolution:
        claims_before = snapshot.claims()
        esc_before = snapshot.escalation
        dealer = DealerTracker(snapshot.dealer_id, snapshot.dealer_streak)

        for hit in hits:
            self._score_hit(claims_before, dealer, hit, new_winner)

        winner_ids: List[int] = []
        for hit in hits:
            if hit.winner_id not in winner_ids:
                winner_ids.append(hit.winner_id)
        opponents: Dict[int, set] = {w: set() for w in winner_ids}
        for hit in hits:
            opponents[hit.winner_id].add(hit.loser_id)
        collected = {(hit.loser_id, hit.winner_id) for hit in hits}

        claims_after = copy.deepcopy(claims_before)
        esc_after = copy.deepcopy(esc_before)
        notice: Optional[ResetNotice] = None

        # ---- takeover: wipe everyone else's chain ----
        if new_winner and pop_on_new_winner:
            notice = ResetNotice(winner_ids=tuple(winner_ids))
            for pid in snapshot.seat_order:
                row = claims_after.get(pid, {})
                for opp in list(row.keys()):
                    if pid in opponents and opp in opponents[pid]:
                        continue
                    if row[opp] and (pid, opp) not in collected:
                        notice.cleared.setdefault(pid, {})[opp] = row[opp]
                    del row[opp]
            esc_after = {w: esc_after[w] for w in winner_ids if w in esc_after}

        # ---- write the new chain values ----
        for hit in hits:
            claims_after[hit.winner_id][hit.loser_id] = hit.final
            claims_after[hit.loser_id].pop(hit.winner_id, None)

            if hit.prior > 0:
                count = esc_before.get(hit.winner_id, {}).get(hit.loser_id, 0) + 1
            else:
                count = 1
            esc_after.setdefault(hit.winner_id, {})[hit.loser_id] = count

        # ---- deltas: winners first (declared order), then payers in seat order ----
        gains: Dict[int, int] = {}
        for hit in hits:
            gains[hit.winner_id] = gains.get(hit.winner_id, 0) + hit.gain
            gains[hit.loser_id] = gains.get(hit.loser_id, 0) - hit.gain
        score_changes = [ScoreChange(w, gains[w]) for w in winner_ids]
        score_changes += [
            ScoreChange(pid, gains[pid])
            for pid in snapshot.seat_order
            if pid in gains and pid not in winner_ids
        ]

        principal = winner_ids[0]
        dealer.record_win(principal, snapshot.seat_order)

        return Resolution(
            description=description,
            score_changes=score_changes,
            ledger_patch=self._diff(claims_before, claims_after),
            escalation_patch=self._diff(esc_before, esc_after),
            dealer_id=dealer.dealer_id,
            dealer_streak=dealer.streak,
            last_winner_id=principal,
            reset_notice=notice if notice else None,
        )

    def _resolve_self_draw(self, snapshot: SessionSnapshot, event: SelfDraw, pop: bool) -> Resolution:
        self._require_seated(snapshot, event.winner_id)
        value = parse_amount(event.value, label="fan value")

        claims = snapshot.claims()
        new_winner = any(
            self._has_active(claims, pid) for pid in snapshot.seat_order if pid != event.winner_id
        )
        hits = [
            _Hit(event.winner_id, pid, value)
            for pid in snapshot.seat_order
            if pid != event.winner_id
        ]
        desc = f"{snapshot.name_of(event.winner_id)} self-draw (zimo) {value} fan"
        return self._resolve_hits(snapshot, hits, new_winner, pop, desc)

    def _resolve_direct_win(self, snapshot: SessionSnapshot, event: DirectWin, pop: bool) -> Resolution:
        self._require_seated(snapshot, event.winner_id, event.loser_id)
        if event.winner_id == event.loser_id:
            raise InvalidEvent("Winner and discarder must be different players.")
        value = parse_amount(event.value, label="fan value")

        claims = snapshot.claims()
        new_winner = any(
            self._has_active(claims, pid) for pid in snapshot.seat_order if pid != event.winner_id
        )
        hits = [_Hit(event.winner_id, event.loser_id, value)]
        desc = (
            f"{snapshot.name_of(event.winner_id)} wins {value} fan "
            f"off {snapshot.name_of(event.loser_id)}"
        )
        return self._resolve_hits(snapshot, hits, new_winner, pop, desc)

    def _resolve_multi_hit(self, snapshot: SessionSnapshot, event: MultiHit, pop: bool) -> Resolution:
        winners = list(event.winner_ids)
        if not (MULTI_HIT_MIN_WINNERS <= len(winners) <= MULTI_HIT_MAX_WINNERS):
            raise InvalidEvent(
                f"Multi-hit needs {MULTI_HIT_MIN_WINNERS}-{MULTI_HIT_MAX_WINNERS} winners, got {len(winners)}."
            )
        if len(set(winners)) != len(winners):
            raise InvalidEvent("Multi-hit winners must be distinct.")
        self._require_seated(snapshot, event.loser_id, *winners)
        if event.loser_id in winners:
            raise InvalidEvent("The discarder cannot also be a winner.")

        values: Dict[int, int] = {}
        for w in winners:
            if w not in event.values:
                raise InvalidEvent(f"Missing fan value for {snapshot.name_of(w)}.")
            values[w] = parse_amount(event.values[w], label=f"fan value for {snapshot.name_of(w)}")

        claims = snapshot.claims()
        new_winner = any(
            self._has_active(claims, pid)
            for pid in snapshot.seat_order
            if pid not in winners and pid != event.loser_id
        )
        hits = [_Hit(w, event.loser_id, values[w]) for w in winners]
        parts = ", ".join(f"{snapshot.name_of(w)} {values[w]}" for w in winners)
        desc = f"{snapshot.name_of(event.loser_id)} deals into {len(winners)} winners ({parts})"
        return self._resolve_hits(snapshot, hits, new_winner, pop, desc)

    # ============================================================
    # SIDE PAYMENTS (no claims, no dealer movement)
    # ============================================================
    def _side_payment(self, snapshot: SessionSnapshot, description: str, score_changes: List[ScoreChange]) -> Resolution:
        return Resolution(
            description=description,
            score_changes=score_changes,
            ledger_patch={},
            escalation_patch={},
            dealer_id=snapshot.dealer_id,
            dealer_streak=snapshot.dealer_streak,
            last_winner_id=snapshot.last_winner_id,
        )

    def _resolve_special(self, snapshot: SessionSnapshot, event: Special) -> Resolution:
        self._require_seated(snapshot, event.actor_id)
        if event.action not in ("collect", "pay"):
            raise InvalidEvent(f"Special action must be 'collect' or 'pay', got {event.action!r}.")
        amount = parse_amount(event.amount, label="amount")

        sign = 1 if event.action == "collect" else -1
        others = [pid for pid in snapshot.seat_order if pid != event.actor_id]
        score_changes = [ScoreChange(event.actor_id, sign * amount * len(others))]
        score_changes += [ScoreChange(pid, -sign * amount) for pid in others]

        verb = "collects" if sign > 0 else "pays"
        prep = "from" if sign > 0 else "to"
        desc = f"{snapshot.name_of(event.actor_id)} {verb} {amount} {prep} each player"
        return self._side_payment(snapshot, desc, score_changes)

    def _resolve_custom_payout(self, snapshot: SessionSnapshot, event: CustomPayout) -> Resolution:
        self._require_seated(snapshot, event.actor_id)
        others = [pid for pid in snapshot.seat_order if pid != event.actor_id]

        extra = set(event.payouts) - set(others)
        if extra:
            raise InvalidEvent(f"Payout listed for non-opponent ids {sorted(extra)}.")
        amounts: Dict[int, int] = {}
        for pid in others:
            if pid not in event.payouts or event.payouts[pid] is None:
                raise InvalidEvent(f"Enter a payout for {snapshot.name_of(pid)}.")
            amounts[pid] = parse_amount(
                event.payouts[pid], allow_zero=True, label=f"payout to {snapshot.name_of(pid)}"
            )

        total = sum(amounts.values())
        score_changes = [ScoreChange(event.actor_id, -total)]
        score_changes += [ScoreChange(pid, amounts[pid]) for pid in others if amounts[pid] > 0]

        parts = ", ".join(f"{snapshot.name_of(pid)} {amounts[pid]}" for pid in others if amounts[pid] > 0)
        desc = f"{snapshot.name_of(event.actor_id)} false win (zha hu) pays {total}"
        if parts:
            desc += f" ({parts})"
        return self._side_payment(snapshot, desc, score_changes)

    # ============================================================
    # FORFEIT (out-of-band: no score stream entry)
    # ============================================================
    def can_forfeit(self, snapshot: SessionSnapshot, loser_id: int) -> bool:
        winner_id = snapshot.last_winner_id
        if winner_id is None or winner_id == loser_id:
            return False
        if loser_id not in snapshot.seat_order:
            return False
        hits = snapshot.escalation.get(winner_id, {}).get(loser_id, 0)
        claim = snapshot.claims().get(winner_id, {}).get(loser_id, 0)
        return hits >= self.FORFEIT_MIN_HITS and claim > 0

    def _resolve_forfeit(self, snapshot: SessionSnapshot, event: Forfeit) -> Optional[Resolution]:
        if not self.can_forfeit(snapshot, event.loser_id):
            return None
        winner_id = snapshot.last_winner_id
        desc = (
            f"{snapshot.name_of(winner_id)} forfeits the claim on "
            f"{snapshot.name_of(event.loser_id)}"
        )
        return Resolution(
            description=desc,
            score_changes=[],
            ledger_patch={winner_id: {event.loser_id: 0}},
            escalation_patch={winner_id: {event.loser_id: 0}},
            dealer_id=snapshot.dealer_id,
            dealer_streak=snapshot.dealer_streak,
            last_winner_id=snapshot.last_winner_id,
        )
