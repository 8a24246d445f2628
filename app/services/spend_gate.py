"""
Spend gate: the only way a coin-costing action happens.

Approval check, balance check, debit, ledger entry and (for run_gated) the gated entity commit
together or not at all. A failure while creating the entity rolls the charge back with it, so
there is never a charged-but-missing post or connection request and no REFUND is needed for
that case.

Charging is not idempotent. Callers retry the whole gated action only after re-reading state,
never the charge on its own.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Generic, TypeVar

from beanie import Document, PydanticObjectId
from beanie.operators import Set
from motor.motor_asyncio import AsyncIOMotorClientSession

from app.core.exceptions import NotApprovedError, NotFoundError
from app.core.logging import get_logger
from app.db.transaction import run_in_transaction
from app.models.coin_ledger import CoinLedgerEntry
from app.models.user import User, UserStatus
from app.services import balance, ledger
from app.services.pricing import PricingProvider, SpendAction

log = get_logger(__name__)

D = TypeVar("D", bound=Document)

REF_TABLES = {
    SpendAction.POST: "posts",
    SpendAction.CONNECT: "connection_requests",
}

DESCRIPTIONS = {
    SpendAction.POST: "Created new post",
    SpendAction.CONNECT: "Sent connection request",
}


@dataclass
class Charge:
    cost: int
    balance_after: int
    entry: CoinLedgerEntry | None  # None when the action is free


@dataclass
class GatedResult(Generic[D]):
    entity: D
    charge: Charge


class SpendGate:
    def __init__(self, pricing: PricingProvider) -> None:
        self.pricing = pricing

    async def _require_approved(self, session: AsyncIOMotorClientSession, user_id: PydanticObjectId) -> User:
        user = await User.get(user_id, session=session)
        if not user:
            raise NotFoundError("User not found")
        if user.status != UserStatus.APPROVED:
            raise NotApprovedError()
        return user

    async def charge(
        self,
        user_id: PydanticObjectId,
        action: SpendAction,
        ref_id: str | None = None,
    ) -> Charge:
        """Debit the action's cost in its own transaction. Raises NotApprovedError / InsufficientFundsError."""
        cost = (await self.pricing.get_pricing()).cost_for(action)

        async def _op(session: AsyncIOMotorClientSession) -> Charge:
            user = await self._require_approved(session, user_id)
            if cost == 0:
                return Charge(cost=0, balance_after=user.coins, entry=None)
            entry, balance_after = await balance.apply_ledger_entry(
                session,
                user_id,
                -cost,
                action.reason,
                ref_table=REF_TABLES[action],
                ref_id=ref_id,
                description=DESCRIPTIONS[action],
            )
            return Charge(cost=cost, balance_after=balance_after, entry=entry)

        result = await run_in_transaction(_op, name=f"charge_{action.value.lower()}")
        log.info("coins_charged", user_id=str(user_id), action=action.value, cost=cost, balance=result.balance_after)
        return result

    async def run_gated(
        self,
        user_id: PydanticObjectId,
        action: SpendAction,
        create: Callable[[AsyncIOMotorClientSession], Awaitable[D]],
        check: Callable[[AsyncIOMotorClientSession], Awaitable[None]] | None = None,
    ) -> GatedResult[D]:
        """
        Charge for `action` and run create(session) in the same transaction.
        check(session), if given, runs before the debit; whatever it raises wins over
        InsufficientFundsError. create and check must use only the session and may run
        more than once (the transaction is retried on write conflicts).
        """
        cost = (await self.pricing.get_pricing()).cost_for(action)

        async def _op(session: AsyncIOMotorClientSession) -> GatedResult[D]:
            user = await self._require_approved(session, user_id)
            if check is not None:
                await check(session)
            if cost:
                user = await balance.apply_delta(session, user_id, -cost)
            else:
                # Free actions still write the user document so that concurrent gated
                # actions for one user conflict and retry instead of both passing check.
                await User.find_one(User.id == user_id, session=session).update(
                    Set({User.updated_at: datetime.utcnow()}), session=session
                )
            entity = await create(session)
            entry = None
            if cost:
                entry = await ledger.append(
                    session,
                    user,
                    -cost,
                    action.reason,
                    ref_table=REF_TABLES[action],
                    ref_id=str(entity.id),
                    description=DESCRIPTIONS[action],
                )
            return GatedResult(entity=entity, charge=Charge(cost=cost, balance_after=user.coins, entry=entry))

        result = await run_in_transaction(_op, name=f"gated_{action.value.lower()}")
        log.info(
            "coins_charged",
            user_id=str(user_id),
            action=action.value,
            cost=cost,
            balance=result.charge.balance_after,
            ref_id=str(result.entity.id),
        )
        return result
