"""Per-user token budget ledger with a rolling window.

Admission is a pre-flight gate: ``reserve()`` checks the per-request
and daily ceilings and, when the request fits, holds its estimate
against the user's window until ``record_usage()`` swaps in the actual
count or ``release()`` drops it. Every read or write of an entry runs
under that user's lock, and a window older than ``window`` is reset
before anything else looks at it.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from threading import Lock

import structlog
from pydantic import BaseModel

from generation_router.errors import AdmissionReason, AdmissionRejectedError

logger = structlog.get_logger()


@dataclass(frozen=True)
class BudgetLimits:
    daily_limit: int
    per_request_limit: int


@dataclass
class ActionUsage:
    """Consumption of one action category inside a window."""

    tokens: int = 0
    cost_cents: int = 0
    requests: int = 0


@dataclass
class BudgetLedgerEntry:
    """Mutable per-user state. Only touched under the user's lock."""

    window_start: datetime
    limits: BudgetLimits
    tokens_used: int = 0
    reserved_tokens: int = 0
    cost_cents: int = 0
    requests: int = 0
    actions: dict[str, ActionUsage] = field(default_factory=dict)

    @property
    def committed(self) -> int:
        """Usage that admission must account for, reservations included."""
        return self.tokens_used + self.reserved_tokens


@dataclass(frozen=True)
class Reservation:
    """Estimate held against a user's window between admission and usage."""

    user_id: str
    tokens: int
    window_start: datetime


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason: AdmissionReason | None
    current_usage: int
    limit: int
    reset_at: datetime


class BudgetStatus(BaseModel):
    """Snapshot of one user's budget."""

    user_id: str
    daily_limit: int
    per_request_limit: int
    current_usage: int
    reserved_tokens: int
    remaining: int
    cost_cents: int
    requests: int
    average_request_tokens: float
    most_used_action: str | None
    cost_breakdown: dict[str, int]
    window_start: datetime
    reset_at: datetime


class BudgetOverview(BaseModel):
    """Aggregate across every user with a live window."""

    total_users: int
    users_over_limit: int
    average_usage: float
    total_tokens: int
    total_cost_cents: int


class TokenBudgetLedger:
    """In-process authoritative ledger of per-user token consumption.

    Thread-safe via one Lock per user. Single-instance only; for
    multi-instance deployments the entries would need a shared backend.
    """

    def __init__(
        self,
        *,
        daily_limit: int = 30_000,
        per_request_limit: int = 3000,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._default_limits = BudgetLimits(daily_limit, per_request_limit)
        self._window = window
        self._clock = clock
        self._entries: dict[str, BudgetLedgerEntry] = {}
        self._user_overrides: dict[str, BudgetLimits] = {}
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    # -- admission ------------------------------------------------------

    def check_admission(self, user_id: str, estimated_tokens: int) -> AdmissionDecision:
        """Evaluate a request against the user's ceilings without reserving."""
        with self._user_lock(user_id):
            entry = self._current_entry(user_id)
            return self._evaluate(entry, estimated_tokens)

    def reserve(self, user_id: str, estimated_tokens: int) -> Reservation:
        """Admit a request and hold its estimate in the user's window.

        Raises:
            AdmissionRejectedError: If either ceiling would be exceeded.
        """
        with self._user_lock(user_id):
            entry = self._current_entry(user_id)
            decision = self._evaluate(entry, estimated_tokens)
            if decision.reason is not None:
                logger.info(
                    "budget_admission_rejected",
                    user_id=user_id,
                    reason=decision.reason.value,
                    estimated_tokens=estimated_tokens,
                    current_usage=decision.current_usage,
                    limit=decision.limit,
                )
                raise AdmissionRejectedError(
                    decision.reason,
                    user_id=user_id,
                    estimated_tokens=estimated_tokens,
                    limit=decision.limit,
                    current_usage=decision.current_usage,
                    reset_at=decision.reset_at,
                )
            entry.reserved_tokens += estimated_tokens
            return Reservation(user_id, estimated_tokens, entry.window_start)

    def release(self, reservation: Reservation) -> None:
        """Drop a reservation without recording usage (cache hit, failure)."""
        with self._user_lock(reservation.user_id):
            entry = self._current_entry(reservation.user_id)
            self._drop_reservation(entry, reservation)

    def record_usage(
        self,
        user_id: str,
        actual_tokens: int,
        cost_cents: int = 0,
        reservation: Reservation | None = None,
        *,
        action: str | None = None,
    ) -> None:
        """Add actual consumption, replacing the reservation if given.

        Actual usage may exceed the estimate and push the window past
        the daily ceiling; that is logged, not refused. ``action``
        attributes the usage to a category for the status breakdown.
        """
        with self._user_lock(user_id):
            entry = self._current_entry(user_id)
            if reservation is not None:
                self._drop_reservation(entry, reservation)
            entry.tokens_used += actual_tokens
            entry.cost_cents += cost_cents
            entry.requests += 1
            if action is not None:
                usage = entry.actions.setdefault(action, ActionUsage())
                usage.tokens += actual_tokens
                usage.cost_cents += cost_cents
                usage.requests += 1

            if actual_tokens > entry.limits.per_request_limit:
                logger.warning(
                    "budget_request_over_limit",
                    user_id=user_id,
                    tokens=actual_tokens,
                    per_request_limit=entry.limits.per_request_limit,
                )
            if entry.tokens_used > entry.limits.daily_limit:
                logger.warning(
                    "budget_daily_limit_exceeded",
                    user_id=user_id,
                    tokens_used=entry.tokens_used,
                    daily_limit=entry.limits.daily_limit,
                )
            logger.debug(
                "budget_usage_recorded",
                user_id=user_id,
                tokens=actual_tokens,
                cost_cents=cost_cents,
                tokens_used=entry.tokens_used,
            )

    # -- administration -------------------------------------------------

    def get_status(self, user_id: str) -> BudgetStatus:
        with self._user_lock(user_id):
            return self._status(user_id, self._current_entry(user_id))

    def set_limits(
        self,
        user_id: str,
        *,
        daily_limit: int | None = None,
        per_request_limit: int | None = None,
    ) -> BudgetLimits:
        """Override one user's ceilings; unspecified values keep defaults."""
        with self._user_lock(user_id):
            current = self._user_overrides.get(user_id, self._default_limits)
            limits = BudgetLimits(
                daily_limit=(
                    daily_limit if daily_limit is not None else current.daily_limit
                ),
                per_request_limit=(
                    per_request_limit
                    if per_request_limit is not None
                    else current.per_request_limit
                ),
            )
            self._user_overrides[user_id] = limits
            entry = self._entries.get(user_id)
            if entry is not None:
                entry.limits = limits
            logger.info(
                "budget_limits_updated",
                user_id=user_id,
                daily_limit=limits.daily_limit,
                per_request_limit=limits.per_request_limit,
            )
            return limits

    def reset_user(self, user_id: str) -> None:
        """Start a fresh window for one user, keeping their limits."""
        with self._user_lock(user_id), self._locks_guard:
            self._entries.pop(user_id, None)
        logger.info("budget_reset", user_id=user_id)

    def overview(self) -> BudgetOverview:
        """Aggregate the users whose window is still live.

        Expired entries are skipped, not reset.
        """
        with self._locks_guard:
            user_ids = list(self._entries)

        now = self._clock()
        statuses: list[BudgetStatus] = []
        for user_id in user_ids:
            with self._user_lock(user_id):
                entry = self._entries.get(user_id)
                if entry is None or self._expired(entry, now):
                    continue
                statuses.append(self._status(user_id, entry))

        total_tokens = sum(s.current_usage for s in statuses)
        return BudgetOverview(
            total_users=len(statuses),
            users_over_limit=sum(
                1 for s in statuses if s.current_usage > s.daily_limit
            ),
            average_usage=total_tokens / len(statuses) if statuses else 0.0,
            total_tokens=total_tokens,
            total_cost_cents=sum(s.cost_cents for s in statuses),
        )

    def cleanup(self) -> int:
        """Remove users whose window has expired. Call periodically.

        Their locks go with them; per-user limit overrides are kept.
        Users whose lock is currently held are left for the next run.

        Returns:
            Number of users cleaned up.
        """
        now = self._clock()
        cleaned = 0

        with self._locks_guard:
            for user_id, entry in list(self._entries.items()):
                lock = self._locks.get(user_id)
                if lock is not None and not lock.acquire(blocking=False):
                    continue
                try:
                    if self._expired(entry, now):
                        del self._entries[user_id]
                        self._locks.pop(user_id, None)
                        cleaned += 1
                finally:
                    if lock is not None:
                        lock.release()
            # locks left behind by users that never got an entry
            for user_id in [u for u in self._locks if u not in self._entries]:
                lock = self._locks[user_id]
                if lock.acquire(blocking=False):
                    del self._locks[user_id]
                    lock.release()

        if cleaned:
            logger.debug("budget_cleanup", users_removed=cleaned)
        return cleaned

    # -- internals ------------------------------------------------------

    @contextmanager
    def _user_lock(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock, retrying if cleanup() retired it meanwhile."""
        while True:
            with self._locks_guard:
                lock = self._locks.get(user_id)
                if lock is None:
                    lock = self._locks[user_id] = Lock()
            with lock:
                with self._locks_guard:
                    current = self._locks.get(user_id) is lock
                if current:
                    yield
                    return

    def _expired(self, entry: BudgetLedgerEntry, now: datetime) -> bool:
        return now - entry.window_start >= self._window

    def _status(self, user_id: str, entry: BudgetLedgerEntry) -> BudgetStatus:
        most_used = max(
            entry.actions.items(), key=lambda item: item[1].requests, default=None
        )
        return BudgetStatus(
            user_id=user_id,
            daily_limit=entry.limits.daily_limit,
            per_request_limit=entry.limits.per_request_limit,
            current_usage=entry.tokens_used,
            reserved_tokens=entry.reserved_tokens,
            remaining=max(0, entry.limits.daily_limit - entry.committed),
            cost_cents=entry.cost_cents,
            requests=entry.requests,
            average_request_tokens=(
                entry.tokens_used / entry.requests if entry.requests else 0.0
            ),
            most_used_action=most_used[0] if most_used else None,
            cost_breakdown={
                name: usage.cost_cents for name, usage in entry.actions.items()
            },
            window_start=entry.window_start,
            reset_at=entry.window_start + self._window,
        )

    def _current_entry(self, user_id: str) -> BudgetLedgerEntry:
        """Entry for ``user_id`` with a live window. Caller holds the lock."""
        now = self._clock()
        entry = self._entries.get(user_id)
        if entry is None:
            entry = BudgetLedgerEntry(
                window_start=now,
                limits=self._user_overrides.get(user_id, self._default_limits),
            )
            with self._locks_guard:
                self._entries[user_id] = entry
        elif self._expired(entry, now):
            logger.debug(
                "budget_window_reset",
                user_id=user_id,
                previous_usage=entry.tokens_used,
            )
            # Reservations belong to the old window and are dropped with it.
            entry.window_start = now
            entry.tokens_used = 0
            entry.reserved_tokens = 0
            entry.cost_cents = 0
            entry.requests = 0
            entry.actions = {}
        return entry

    def _evaluate(
        self, entry: BudgetLedgerEntry, estimated_tokens: int
    ) -> AdmissionDecision:
        reset_at = entry.window_start + self._window
        limits = entry.limits
        if estimated_tokens > limits.per_request_limit:
            return AdmissionDecision(
                allowed=False,
                reason=AdmissionReason.PER_REQUEST_CEILING_EXCEEDED,
                current_usage=entry.committed,
                limit=limits.per_request_limit,
                reset_at=reset_at,
            )
        if entry.committed + estimated_tokens > limits.daily_limit:
            return AdmissionDecision(
                allowed=False,
                reason=AdmissionReason.DAILY_BUDGET_EXHAUSTED,
                current_usage=entry.committed,
                limit=limits.daily_limit,
                reset_at=reset_at,
            )
        return AdmissionDecision(
            allowed=True,
            reason=None,
            current_usage=entry.committed,
            limit=limits.daily_limit,
            reset_at=reset_at,
        )

    @staticmethod
    def _drop_reservation(entry: BudgetLedgerEntry, reservation: Reservation) -> None:
        if reservation.window_start != entry.window_start:
            return  # window was reset since admission
        entry.reserved_tokens = max(0, entry.reserved_tokens - reservation.tokens)
