"""
Quota precheck.

A search reserves its cost against the user's monthly credits before any
remote call is made. Reservations are keyed, so a retried request is not
charged twice.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from prospector.web.database import Subscription, UsageEvent

logger = logging.getLogger(__name__)


@dataclass
class QuotaDecision:
    ok: bool
    reason: Optional[str] = None


def search_cost(target_count: int, preview: bool = False) -> int:
    """Credits charged for a search: one per requested prospect, one for a preview."""
    if preview:
        return 1
    return max(1, target_count)


def quota_key(user_id: str, query: str, cost: int) -> str:
    """Idempotency key for a quota reservation."""
    raw = json.dumps({"user_id": user_id, "query": query, "cost": cost}, sort_keys=True)
    return hashlib.sha256(raw.encode()).hexdigest()


def _find_reservation(session: Session, idempotency_key: str) -> Optional[UsageEvent]:
    return (
        session.query(UsageEvent)
        .filter(UsageEvent.idempotency_key == idempotency_key)
        .one_or_none()
    )


def require_quota(
    session: Session,
    user_id: str,
    cost: int,
    kind: str,
    idempotency_key: Optional[str] = None,
    skip: bool = False,
) -> QuotaDecision:
    """
    Reserve `cost` credits for `user_id`.

    Args:
        session: Database session
        user_id: Charged user
        cost: Credits to reserve
        kind: Usage kind recorded on the event
        idempotency_key: Reservations with a known key succeed without charging
        skip: Bypass the check entirely (development)

    Returns:
        QuotaDecision; `reason` explains a denial
    """
    if skip:
        logger.warning("Bypassing quota check for %s (SKIP_QUOTA_CHECK)", user_id)
        return QuotaDecision(ok=True)

    sub = session.query(Subscription).filter(Subscription.user_id == user_id).one_or_none()
    quota = sub.quota_monthly if sub else 0
    used = sub.used_this_month if sub else 0

    if quota <= 0:
        return QuotaDecision(ok=False, reason="No credits remaining. Please upgrade your plan.")

    if idempotency_key and _find_reservation(session, idempotency_key):
        logger.debug("Quota already reserved for key %s", idempotency_key)
        return QuotaDecision(ok=True)

    if used + cost > quota:
        return QuotaDecision(ok=False, reason="Monthly quota exceeded.")

    session.add(UsageEvent(user_id=user_id, amount=cost, kind=kind, idempotency_key=idempotency_key))
    sub.used_this_month = used + cost
    try:
        session.commit()
    except IntegrityError:
        # A concurrent request with the same key committed first
        session.rollback()
        logger.info("Quota for key %s reserved by a concurrent request", idempotency_key)
        return QuotaDecision(ok=True)

    logger.info("Reserved %d credits for %s (%d/%d used)", cost, user_id, used + cost, quota)
    return QuotaDecision(ok=True)
