"""Referral links and the one-time referral reward trigger"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from yield_ledger.config import settings
from yield_ledger.domain.balance import require_positive, to_money
from yield_ledger.domain.exceptions import ReferrerAlreadyAssigned, SelfReferral
from yield_ledger.domain.models import (
    REWARD_TRANSITIONS,
    ReferralTotals,
    RewardStatus,
    TransactionKind,
    check_transition,
)
from yield_ledger.infrastructure.database.models import ReferralLink, ReferralReward
from yield_ledger.infrastructure.database.repositories import ReferralRepository, insert_unless_conflict
from yield_ledger.infrastructure.observability.metrics import referral_reward_counter
from yield_ledger.services.ledger import LedgerService

logger = logging.getLogger(__name__)


def reward_transaction_id(referrer: str, referred: str) -> str:
    # Deterministic so a replayed trigger re-appends the same id (a no-op).
    # Account ids are opaque, so the pair is hashed as a JSON array rather
    # than joined with a separator that may occur inside an id.
    pair = json.dumps([referrer, referred])
    return f"RFL-{uuid.uuid5(uuid.NAMESPACE_URL, pair).hex}"


class ReferralService:
    """
    Rewards a referrer once for each account they referred.

    The unique (referrer, referred) constraint on referral_reward is the gate:
    a second purchase, a retried call or a concurrent trigger all lose the
    insert and append nothing.
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[LedgerService] = None,
        reward_amount: Optional[Decimal] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.ledger = ledger or LedgerService(db, clock=clock)
        self.referrals = ReferralRepository(db)
        self.reward_amount = require_positive(
            reward_amount if reward_amount is not None else settings.referral_reward_amount
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def assign_referrer(self, account: str, referrer: str) -> ReferralLink:
        """Record the permanent referrer of account; never reassigned"""
        if account == referrer:
            raise SelfReferral("An account cannot refer itself")

        link = ReferralLink(account=account, referrer=referrer, created_at=self.clock())
        if not insert_unless_conflict(self.db, link):
            current = self.referrals.referrer_of(account)
            if current == referrer:
                return self.db.get(ReferralLink, account)
            raise ReferrerAlreadyAssigned(f"Account {account} already has a referrer")
        logger.info("Referrer assigned", extra={"account": account, "referrer": referrer})
        return link

    def referrer_of(self, account: str) -> Optional[str]:
        return self.referrals.referrer_of(account)

    def on_purchase_completed(
        self,
        account: str,
        purchase_transaction_id: str,
        purchase_amount,
    ) -> Optional[ReferralReward]:
        """
        Reward the referrer of account if this is its first qualifying purchase.

        Returns the new ReferralReward, or None when the account has no
        referrer or was already rewarded for.
        """
        purchase_amount = to_money(purchase_amount)
        if purchase_amount <= 0:
            return None

        referrer = self.referrals.referrer_of(account)
        if referrer is None:
            return None

        reward_tx_id = reward_transaction_id(referrer, account)
        reward = ReferralReward(
            referrer_account=referrer,
            referred_account=account,
            triggering_transaction_id=purchase_transaction_id,
            reward_transaction_id=reward_tx_id,
            amount=self.reward_amount,
            purchase_amount=purchase_amount,
            status=RewardStatus.COMPLETED,
            created_at=self.clock(),
        )
        if not insert_unless_conflict(self.db, reward):
            logger.debug(
                "Referral reward already granted",
                extra={"referrer": referrer, "referred": account},
            )
            return None

        # Only the caller that won the reward insert appends the credit
        self.ledger.append(
            account=referrer,
            kind=TransactionKind.CREDIT_REFERRAL,
            amount=self.reward_amount,
            transaction_id=reward_tx_id,
            external_ref=purchase_transaction_id,
            metadata={
                "source": "referral",
                "referredAccount": account,
                "triggeringTransactionId": purchase_transaction_id,
                "purchaseAmount": str(purchase_amount),
            },
            description=f"Referral reward for {account}'s first purchase",
        )
        referral_reward_counter.inc()
        logger.info(
            "Referral reward granted",
            extra={
                "referrer": referrer,
                "referred": account,
                "amount": str(self.reward_amount),
                "transaction_id": reward_tx_id,
            },
        )
        return reward

    def referred_accounts(self, referrer: str) -> List[ReferralLink]:
        return self.referrals.referred_by(referrer)

    def rewards(self, referrer: str) -> List[ReferralReward]:
        return self.referrals.rewards_for(referrer)

    def totals(self, referrer: str) -> ReferralTotals:
        by_status = self.referrals.totals_by_status(referrer)
        completed_amount, completed_count = by_status[RewardStatus.COMPLETED]
        withdrawn_amount, withdrawn_count = by_status[RewardStatus.WITHDRAWN]
        return ReferralTotals(
            account=referrer,
            completed_amount=completed_amount,
            completed_count=completed_count,
            withdrawn_amount=withdrawn_amount,
            withdrawn_count=withdrawn_count,
        )

    def settle_rewards(self, referrer: str) -> List[ReferralReward]:
        """
        Mark every completed reward of referrer as withdrawn.

        Bookkeeping only: the Credit-Referral rows already count toward the
        balance, so nothing is appended to the ledger.
        """
        settled = []
        now = self.clock()
        for reward in self.referrals.rewards_for(referrer):
            if reward.status != RewardStatus.COMPLETED:
                continue
            check_transition(REWARD_TRANSITIONS, RewardStatus(reward.status), RewardStatus.WITHDRAWN, "Referral reward")
            reward.status = RewardStatus.WITHDRAWN
            reward.withdrawn_at = now
            settled.append(reward)
        self.db.flush()
        if settled:
            logger.info(
                "Referral rewards settled",
                extra={"referrer": referrer, "count": len(settled)},
            )
        return settled
