"""Daily Gmail quota tracking.

Keeps per-user counters of emails sent and messages imported, resetting
at local midnight. Held in memory; counters are lost on restart.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict

from quotaguard.domain.exceptions import ClassifiedApiError
from quotaguard.domain.models.common import (
    ClassifiedError,
    DailyUsage,
    ErrorKind,
    QuotaCheck,
    UserId,
)

logger = logging.getLogger(__name__)

DEFAULT_DAILY_EMAIL_LIMIT = 50      # Conservative limit for free Gmail
DEFAULT_DAILY_IMPORT_LIMIT = 100


def next_midnight(now: datetime) -> datetime:
    return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


class QuotaTracker:
    """Tracks daily send/import usage per user."""

    def __init__(
        self,
        daily_email_limit: int = DEFAULT_DAILY_EMAIL_LIMIT,
        daily_import_limit: int = DEFAULT_DAILY_IMPORT_LIMIT,
        now: Callable[[], datetime] = datetime.now,
    ):
        if daily_email_limit <= 0 or daily_import_limit <= 0:
            raise ValueError("Daily limits must be positive.")
        self.daily_email_limit = daily_email_limit
        self.daily_import_limit = daily_import_limit
        self._now = now
        self._usage: Dict[UserId, DailyUsage] = {}

    def usage(self, user_id: str) -> DailyUsage:
        """Returns the user's counters, rolling them over if a reset is due."""
        now = self._now()
        usage = self._usage.setdefault(UserId(user_id), DailyUsage())
        if usage.emails_sent_reset_at is None or now >= usage.emails_sent_reset_at:
            usage.emails_sent_today = 0
            usage.emails_sent_reset_at = next_midnight(now)
        if usage.messages_imported_reset_at is None or now >= usage.messages_imported_reset_at:
            usage.messages_imported_today = 0
            usage.messages_imported_reset_at = next_midnight(now)
        return usage

    def can_send_email(self, user_id: str) -> QuotaCheck:
        usage = self.usage(user_id)
        limit = self.daily_email_limit
        if usage.emails_sent_today >= limit:
            reset_at = usage.emails_sent_reset_at
            return QuotaCheck(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                reason=f"Daily email limit reached ({limit} emails/day). Limit resets at {reset_at:%H:%M}.",
            )
        return QuotaCheck(True, limit - usage.emails_sent_today, usage.emails_sent_reset_at)

    def can_import_messages(self, user_id: str, count: int = 1) -> QuotaCheck:
        usage = self.usage(user_id)
        limit = self.daily_import_limit
        remaining = max(0, limit - usage.messages_imported_today)
        if usage.messages_imported_today + count > limit:
            reset_at = usage.messages_imported_reset_at
            return QuotaCheck(
                allowed=False,
                remaining=remaining,
                reset_at=reset_at,
                reason=(
                    f"Daily import limit would be exceeded. {remaining} messages remaining. "
                    f"Limit resets at {reset_at:%H:%M}."
                ),
            )
        return QuotaCheck(True, remaining - count, usage.messages_imported_reset_at)

    def record_email_sent(self, user_id: str) -> None:
        self.usage(user_id).emails_sent_today += 1
        logger.debug(f"Incremented email count for user {user_id}")

    def record_messages_imported(self, user_id: str, count: int = 1) -> None:
        self.usage(user_id).messages_imported_today += count
        logger.debug(f"Incremented import count for user {user_id} by {count}")

    def enforce_send(self, user_id: str) -> QuotaCheck:
        """Like can_send_email, but raises a QuotaExceeded error when denied."""
        check = self.can_send_email(user_id)
        if not check.allowed:
            logger.info(f"User {user_id} hit the daily email quota")
            raise ClassifiedApiError(ClassifiedError(
                kind=ErrorKind.QUOTA_EXCEEDED,
                raw=None,
                message=check.reason or "Daily quota exceeded",
            ))
        return check
