"""Admission eligibility rules.

Each rule looks at one concern and reports pass or fail with a reason code.
Rules never depend on one another, so ``evaluate_rules`` runs all of them and
leaves it to the caller to decide what the combination of failures means.
Counts are always re-read from the database at decision time.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable

from pydantic import BaseModel
from sqlalchemy.orm import Session

from daypass.core.config import get_settings
from daypass.core.timeutils import format_local_date, is_after_cutoff, next_eligible_date, rolling_window_start
from daypass.db.models import Guest, Policy, Visit
from daypass.services.acceptance_service import has_valid_acceptance

settings = get_settings()
logger = logging.getLogger(__name__)


class ReasonCode(str, Enum):
    after_cutoff = "after_cutoff"
    credential_expired = "credential_expired"
    host_capacity = "host_capacity"
    guest_rolling_limit = "guest_rolling_limit"
    blacklisted = "blacklisted"
    terms_required = "terms_required"


class RuleContext(BaseModel):
    host_id: str
    guest_id: str
    guest_email: str
    credential_expires_at: datetime | None = None
    now: datetime


class RuleResult(BaseModel):
    rule: str
    passed: bool
    reason_code: ReasonCode | None = None
    message: str | None = None
    next_eligible_at: datetime | None = None
    overridable: bool = False
    current_count: int | None = None
    max_count: int | None = None


Rule = Callable[[Session, RuleContext, Policy], RuleResult]


def _ok(rule: str) -> RuleResult:
    return RuleResult(rule=rule, passed=True)


def count_active_host_visits(db: Session, host_id: str, now: datetime) -> int:
    return (
        db.query(Visit)
        .filter(
            Visit.host_id == host_id,
            Visit.checked_in_at.is_not(None),
            Visit.expires_at > now,
        )
        .count()
    )


def recent_guest_visits(db: Session, guest_id: str, now: datetime, limit: int | None = None) -> list[Visit]:
    query = (
        db.query(Visit)
        .filter(
            Visit.guest_id == guest_id,
            Visit.checked_in_at.is_not(None),
            Visit.checked_in_at >= rolling_window_start(now),
        )
        .order_by(Visit.checked_in_at.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def time_cutoff_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    if is_after_cutoff(ctx.now):
        return RuleResult(
            rule="time_cutoff",
            passed=False,
            reason_code=ReasonCode.after_cutoff,
            message=f"Entries closed after {settings.CHECKIN_CUTOFF}.",
        )
    return _ok("time_cutoff")


def credential_expiry_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    # Batch QR codes carry no expiry.
    if ctx.credential_expires_at is not None and ctx.now > ctx.credential_expires_at:
        return RuleResult(
            rule="credential_expiry",
            passed=False,
            reason_code=ReasonCode.credential_expired,
            message="QR code has expired. Please regenerate.",
        )
    return _ok("credential_expiry")


def host_concurrency_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    active = count_active_host_visits(db, ctx.host_id, ctx.now)
    limit = policy.host_concurrent_limit
    if active >= limit:
        return RuleResult(
            rule="host_concurrency",
            passed=False,
            reason_code=ReasonCode.host_capacity,
            message=f"Host concurrent limit reached ({limit}).",
            overridable=True,
            current_count=active,
            max_count=limit,
        )
    return _ok("host_concurrency")


def guest_rolling_limit_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    limit = policy.guest_monthly_limit
    counted = recent_guest_visits(db, ctx.guest_id, ctx.now, limit=limit)
    if len(counted) >= limit:
        # The window drops below the limit once the oldest of the newest `limit` visits rolls out.
        next_at = next_eligible_date(counted[-1].checked_in_at)
        return RuleResult(
            rule="guest_rolling_limit",
            passed=False,
            reason_code=ReasonCode.guest_rolling_limit,
            message=(
                f"Guest reached {limit} visits in last {settings.ROLLING_WINDOW_DAYS} days. "
                f"Next eligible on {format_local_date(next_at)}."
            ),
            next_eligible_at=next_at,
            current_count=len(counted),
            max_count=limit,
        )
    return _ok("guest_rolling_limit")


def blacklist_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    guest = db.query(Guest).filter(Guest.id == ctx.guest_id).first()
    if guest and guest.blacklisted_at is not None:
        return RuleResult(
            rule="blacklist",
            passed=False,
            reason_code=ReasonCode.blacklisted,
            message="Guest is not permitted to enter. Please contact building security.",
        )
    return _ok("blacklist")


def terms_acceptance_rule(db: Session, ctx: RuleContext, policy: Policy) -> RuleResult:
    if not has_valid_acceptance(db, ctx.guest_id, ctx.now):
        return RuleResult(
            rule="terms_acceptance",
            passed=False,
            reason_code=ReasonCode.terms_required,
            message="Guest must accept Terms & Visitor Agreement before admission.",
        )
    return _ok("terms_acceptance")


# A banned guest hears the blacklist reason before any other refusal.
ADMISSION_RULES: tuple[Rule, ...] = (
    blacklist_rule,
    time_cutoff_rule,
    credential_expiry_rule,
    host_concurrency_rule,
    guest_rolling_limit_rule,
    terms_acceptance_rule,
)

ACTIVATION_RULES: tuple[Rule, ...] = (
    blacklist_rule,
    terms_acceptance_rule,
    guest_rolling_limit_rule,
)


def evaluate_rules(
    db: Session,
    ctx: RuleContext,
    policy: Policy,
    rules: tuple[Rule, ...] = ADMISSION_RULES,
) -> list[RuleResult]:
    results = [rule(db, ctx, policy) for rule in rules]
    failed = [result.rule for result in results if not result.passed]
    if failed:
        logger.debug("eligibility guest_id=%s host_id=%s failed=%s", ctx.guest_id, ctx.host_id, ",".join(failed))
    return results


def first_failure(results: list[RuleResult]) -> RuleResult | None:
    return next((result for result in results if not result.passed), None)
