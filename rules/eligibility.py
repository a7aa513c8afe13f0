"""Donation cooldown rules."""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from contracts import EligibilityResult
from config import settings


def _aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def donation_eligibility(
    last_donated: Optional[datetime],
    gender: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    """Check whether a donor has recovered from their last donation.

    Elapsed time is rounded UP to whole days, so a donation made yesterday
    evening already counts as one day.

    Args:
        last_donated: When the donor last gave blood (None if never)
        gender: Recorded gender; "female" (any case) gets the longer cooldown
        now: Reference time, defaults to the current UTC time

    Returns:
        EligibilityResult with progress and the next eligible date
    """
    cooldown = settings.cooldown_days_for(gender)
    if last_donated is None:
        return EligibilityResult(eligible=True, cooldown_days=cooldown)

    last = _aware(last_donated)
    reference = _aware(now) if now is not None else datetime.now(timezone.utc)
    elapsed_seconds = abs((reference - last).total_seconds())
    elapsed_days = math.ceil(elapsed_seconds / 86400)
    next_date = last + timedelta(days=cooldown)

    if elapsed_days < cooldown:
        days_remaining = cooldown - elapsed_days
        return EligibilityResult(
            eligible=False,
            days_remaining=days_remaining,
            percentage=min(100.0, elapsed_days / cooldown * 100),
            next_eligible_date=next_date,
            message=f"You can donate again in {days_remaining} days.",
            cooldown_days=cooldown,
        )

    return EligibilityResult(
        eligible=True,
        next_eligible_date=next_date,
        cooldown_days=cooldown,
    )
