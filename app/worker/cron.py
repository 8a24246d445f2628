"""Cron: check the balance counter against the ledger for every user."""

from app.core.logging import get_logger
from app.models.user import User
from app.services import ledger

log = get_logger(__name__)


async def run_ledger_audit() -> int:
    """Log every user whose coins differ from the sum of their ledger deltas; return the mismatch count."""
    totals = await ledger.sum_deltas_by_user()
    mismatches = 0
    checked = 0
    async for user in User.find_all():
        checked += 1
        expected = totals.get(user.id, 0)
        if user.coins != expected:
            # Totals may predate this read; compare at the user's own ledger position.
            expected = await ledger.sum_deltas_for_user(user.id, user.ledger_seq)
        if user.coins != expected:
            mismatches += 1
            log.error(
                "ledger_mismatch",
                user_id=str(user.id),
                coins=user.coins,
                ledger_sum=expected,
                ledger_seq=user.ledger_seq,
            )
    log.info("ledger_audit_done", users=checked, mismatches=mismatches)
    return mismatches
