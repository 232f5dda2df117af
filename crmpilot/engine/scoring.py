"""Account scoring: relationship health, lead score and deal forecast.

Three independent additive models over the same signals:
    - Health: is the relationship being looked after? (0-100)
    - Lead: how promising is this account right now? (0-100)
    - Forecast: probability the deal closes (0-95, never certain)

Every score comes with its factor list (label, signed weight) so the
number can always be explained. Pure functions, no I/O.

Usage:
    from crmpilot.engine.scoring import build_signals, lead_score

    signals = build_signals(account, tasks, now)
    result = lead_score(signals)
    print(result.score, result.factors)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from crmpilot.core.logging import get_logger
from crmpilot.db.models import Account, Importance, PipelineStage, Task

logger = get_logger(__name__)

# Used when an account has neither a last contact nor a creation date
NO_CONTACT_DAYS = 999

RECENT_ACTIVITY_WINDOW = timedelta(days=14)


# =============================================================================
# WEIGHT TABLES
# =============================================================================

LEAD_STAGE_BONUS: dict[PipelineStage, int] = {
    PipelineStage.ENTRY_POINT: 5,
    PipelineStage.EXCHANGE: 15,
    PipelineStage.PROPOSAL: 25,
    PipelineStage.VALIDATION: 35,
    PipelineStage.CLIENT_SUCCESS: 10,
}

FORECAST_STAGE_SEED: dict[PipelineStage, int] = {
    PipelineStage.ENTRY_POINT: 10,
    PipelineStage.EXCHANGE: 25,
    PipelineStage.PROPOSAL: 50,
    PipelineStage.VALIDATION: 75,
    PipelineStage.CLIENT_SUCCESS: 95,
}

FORECAST_CEILING = 95


# =============================================================================
# SIGNALS AND RESULTS
# =============================================================================


@dataclass
class AccountSignals:
    """Derived inputs shared by all three models.

    Attributes:
        days_since_contact: Whole days since last contact (may be negative under clock skew)
        recent_activity_count: Activities in the last 14 days
        lifetime_activity_count: All activities
        checklist_done: Completed checklist items
        checklist_total: All checklist items
        contact_count: Contacts on the account
        pending_task_count: Linked tasks not completed
        stage: Pipeline stage
        importance: Account importance
    """

    days_since_contact: int
    recent_activity_count: int = 0
    lifetime_activity_count: int = 0
    checklist_done: int = 0
    checklist_total: int = 0
    contact_count: int = 0
    pending_task_count: int = 0
    stage: PipelineStage = PipelineStage.ENTRY_POINT
    importance: Importance = Importance.MEDIUM

    @property
    def checklist_ratio(self) -> Optional[float]:
        if self.checklist_total == 0:
            return None
        return self.checklist_done / self.checklist_total


@dataclass
class ScoreResult:
    """Bounded score with the factors that produced it."""

    score: int
    factors: list[tuple[str, int]] = field(default_factory=list)

    def factors_as_dicts(self) -> list[dict[str, Any]]:
        return [{"factor": label, "impact": weight} for label, weight in self.factors]


def days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days elapsed from ``moment`` to ``now`` (floored)."""
    if moment is None:
        return None
    return (now - moment) // timedelta(days=1)


def days_since_contact(account: Account, now: datetime) -> int:
    """Days since last contact, falling back to the creation date."""
    days = days_since(account.last_contact_at or account.created_at, now)
    return NO_CONTACT_DAYS if days is None else days


def build_signals(account: Account, tasks: Iterable[Task], now: datetime) -> AccountSignals:
    """Derive scoring signals from an account and its linked tasks.

    Args:
        account: Account with contacts, activities and checklist loaded
        tasks: Tasks linked to the account (others are ignored)
        now: Reference time

    Returns:
        AccountSignals for the scoring functions
    """
    recent_cutoff = now - RECENT_ACTIVITY_WINDOW
    recent = [
        a for a in account.activities if a.created_at is not None and a.created_at > recent_cutoff
    ]
    pending = [t for t in tasks if t.account_id == account.id and t.is_open]

    return AccountSignals(
        days_since_contact=days_since_contact(account, now),
        recent_activity_count=len(recent),
        lifetime_activity_count=len(account.activities),
        checklist_done=sum(1 for item in account.checklist if item.completed),
        checklist_total=len(account.checklist),
        contact_count=len(account.contacts),
        pending_task_count=len(pending),
        stage=account.stage,
        importance=account.importance,
    )


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


# =============================================================================
# MODELS
# =============================================================================


def health_score(signals: AccountSignals) -> ScoreResult:
    """Relationship health, 0-100.

    Base 50, rewarded for recent contact, history, breadth of contacts and
    checklist progress; penalised for silence and a task backlog.
    """
    score = 50
    factors: list[tuple[str, int]] = []
    days = signals.days_since_contact

    if days <= 3:
        factors.append(("Contacted in the last 3 days", 20))
    elif days <= 7:
        factors.append(("Contacted this week", 10))
    elif days > 14:
        factors.append((f"No contact for {days} days", -20))

    if signals.lifetime_activity_count > 5:
        factors.append(("Rich activity history", 10))
    if signals.contact_count > 1:
        factors.append(("Several contacts", 5))

    ratio = signals.checklist_ratio
    if ratio is not None:
        bonus = round(ratio * 15)
        if bonus:
            factors.append((f"Checklist {signals.checklist_done}/{signals.checklist_total}", bonus))

    if signals.pending_task_count > 3:
        factors.append((f"{signals.pending_task_count} pending tasks", -10))

    score += sum(weight for _, weight in factors)
    return ScoreResult(score=_clamp(score), factors=factors)


def lead_score(signals: AccountSignals) -> ScoreResult:
    """Lead attractiveness, 0-100.

    Base 30 plus recency, stage, interaction volume, contact breadth and
    importance adjustments.
    """
    score = 30
    factors: list[tuple[str, int]] = []
    days = signals.days_since_contact

    if days <= 3:
        factors.append(("Very recent contact", 20))
    elif days <= 7:
        factors.append(("Recent contact", 10))
    elif days > 14:
        factors.append(("Stale contact", -15))

    factors.append((f"Stage: {signals.stage.value}", LEAD_STAGE_BONUS[signals.stage]))

    activities = signals.lifetime_activity_count
    if activities > 10:
        factors.append(("Many interactions", 10))
    elif activities > 5:
        factors.append(("Regular interactions", 5))
    elif activities <= 1:
        factors.append(("Few interactions", -5))

    if signals.contact_count >= 3:
        factors.append(("Several contacts identified", 5))
    if signals.importance == Importance.HIGH:
        factors.append(("High importance", 10))

    score += sum(weight for _, weight in factors)
    return ScoreResult(score=_clamp(score), factors=factors)


def forecast_probability(signals: AccountSignals) -> ScoreResult:
    """Probability (percent) that the deal closes, capped at 95."""
    seed = FORECAST_STAGE_SEED[signals.stage]
    factors: list[tuple[str, int]] = [(f"Stage: {signals.stage.value}", seed)]
    days = signals.days_since_contact

    if days <= 3:
        factors.append(("Very recent contact", 10))
    elif days > 14:
        factors.append((f"Silent for {days} days", -20))
    elif days > 7:
        factors.append((f"{days} days without contact", -5))

    recent = signals.recent_activity_count
    if recent >= 5:
        factors.append(("Strong recent activity", 15))
    elif recent >= 2:
        factors.append(("Moderate recent activity", 5))
    elif recent == 0:
        factors.append(("No recent activity", -10))

    if signals.contact_count >= 3:
        factors.append(("Multiple contacts", 10))
    elif signals.contact_count == 0:
        factors.append(("No contact on file", -10))

    ratio = signals.checklist_ratio
    if ratio is not None and ratio >= 0.7:
        factors.append((f"Checklist {signals.checklist_done}/{signals.checklist_total}", 5))

    score = sum(weight for _, weight in factors)
    return ScoreResult(score=_clamp(score, high=FORECAST_CEILING), factors=factors)


# =============================================================================
# BATCH
# =============================================================================


@dataclass
class ScoredAccount:
    """An account paired with one of its scores."""

    account: Account
    signals: AccountSignals
    result: ScoreResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountId": self.account.id,
            "name": self.account.name,
            "stage": self.account.stage.value,
            "score": self.result.score,
            "daysSinceContact": self.signals.days_since_contact,
            "factors": self.result.factors_as_dicts(),
        }


def score_accounts(
    accounts: Iterable[Account],
    tasks: list[Task],
    now: datetime,
    model=lead_score,
) -> list[ScoredAccount]:
    """Score a batch of accounts, highest score first.

    The sort is stable, so ties keep the input order.
    """
    scored = []
    for account in accounts:
        signals = build_signals(account, tasks, now)
        scored.append(ScoredAccount(account=account, signals=signals, result=model(signals)))

    scored.sort(key=lambda item: item.result.score, reverse=True)
    logger.debug(
        "Accounts scored",
        extra={"context": {"model": model.__name__, "count": len(scored)}},
    )
    return scored
