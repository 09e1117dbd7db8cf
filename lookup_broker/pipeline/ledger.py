"""
Credit ledger and redeem codes.

Every balance change is a single storage-level arithmetic UPDATE
(credits = credits - :amount), never a read-modify-write in Python, so
concurrent requests from one principal cannot lose an update. The debit is
guarded by credits >= :amount in the same statement, so the balance never
goes negative even when two lookups pass the sufficiency check together.
"""

from __future__ import annotations

import secrets
import string
import time
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger
from lookup_broker.core.exceptions import InsufficientCredits, InvalidRedeemCode, PrincipalNotFound
from lookup_broker.database.models import Principal, RedeemCode, now_ts

logger = get_logger(__name__)

REDEEM_CODE_LENGTH = 8
GENERATE_CODE_ATTEMPTS = 5
DUPLICATE_CODE_MESSAGE = "Code already exists"
_REDEEM_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length: int = REDEEM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_REDEEM_ALPHABET) for _ in range(length))


class CreditLedger:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def balance(self, session: Session, principal_id: str) -> int:
        credits = session.query(Principal.credits).filter(Principal.id == principal_id).scalar()
        if credits is None:
            raise PrincipalNotFound()
        return int(credits)

    def credits_expired(self, principal: Principal) -> bool:
        return principal.credits_expire_at is not None and principal.credits_expire_at <= self._clock()

    def available_balance(self, principal: Principal) -> int:
        """Spendable credits: the stored balance, or 0 once credits_expire_at has passed."""
        return 0 if self.credits_expired(principal) else int(principal.credits)

    def debit(self, session: Session, principal_id: str, amount: int) -> int:
        """Atomically subtract amount; returns the updated balance."""
        if amount < 0:
            raise ValueError("debit amount must be >= 0")
        result = session.execute(
            update(Principal)
            .where(Principal.id == principal_id, Principal.credits >= amount)
            .values(credits=Principal.credits - amount, updated_at=now_ts())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # unknown principal, or a concurrent debit got there first
            raise InsufficientCredits(self.balance(session, principal_id))
        balance = self.balance(session, principal_id)
        logger.info("ledger_debit", principal_id=principal_id, amount=amount, balance=balance)
        return balance

    def grant(self, session: Session, principal_id: str, amount: int) -> int:
        """Atomically add amount; returns the updated balance."""
        if amount < 0:
            raise ValueError("grant amount must be >= 0")
        result = session.execute(
            update(Principal)
            .where(Principal.id == principal_id)
            .values(credits=Principal.credits + amount, updated_at=now_ts())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PrincipalNotFound()
        balance = self.balance(session, principal_id)
        logger.info("ledger_grant", principal_id=principal_id, amount=amount, balance=balance)
        return balance

    def set_balance(self, session: Session, principal_id: str, credits: int) -> int:
        """Administrative override of a balance."""
        if credits < 0:
            raise ValueError("credits must be >= 0")
        result = session.execute(
            update(Principal)
            .where(Principal.id == principal_id)
            .values(credits=credits, updated_at=now_ts())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PrincipalNotFound()
        logger.info("ledger_set_balance", principal_id=principal_id, balance=credits)
        return credits

    def grant_all(self, session: Session, amount: int) -> int:
        """Add amount to every principal. Returns the number of principals credited."""
        if amount < 0:
            raise ValueError("grant amount must be >= 0")
        result = session.execute(
            update(Principal)
            .values(credits=Principal.credits + amount, updated_at=now_ts())
            .execution_options(synchronize_session=False)
        )
        logger.info("ledger_grant_all", amount=amount, principals=result.rowcount)
        return int(result.rowcount or 0)

    # --- redeem codes ---

    def create_code(self, session: Session, credits: int, code: str | None = None) -> RedeemCode:
        """
        Store a new redeem code. A generated code that collides is replaced by
        a fresh one; a chosen code that already exists raises ValueError.
        """
        if credits <= 0:
            raise ValueError("credits must be > 0")
        attempts = 1 if code else GENERATE_CODE_ATTEMPTS
        for _ in range(attempts):
            row = RedeemCode(code=(code or generate_code()).strip().upper(), credits=credits, is_used=False)
            try:
                with session.begin_nested():
                    session.add(row)
            except IntegrityError:
                logger.info("redeem_code_exists", generated=code is None)
                continue
            logger.info("redeem_code_created", credits=credits)
            return row
        raise ValueError(DUPLICATE_CODE_MESSAGE)

    def redeem(self, session: Session, code: str, principal_id: str) -> tuple[int, int]:
        """
        Consume a code and credit its grant, in the caller's transaction.

        The claim is a conditional UPDATE on is_used, so at most one redemption
        of a code can ever succeed. Returns (credits granted, new balance).
        """
        code = (code or "").strip().upper()
        if not code:
            raise InvalidRedeemCode("Code is required")
        claimed = session.execute(
            update(RedeemCode)
            .where(RedeemCode.code == code, RedeemCode.is_used.is_(False))
            .values(is_used=True, used_by=principal_id, used_at=now_ts())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            logger.info("redeem_code_rejected", principal_id=principal_id)
            raise InvalidRedeemCode()
        granted = int(session.query(RedeemCode.credits).filter(RedeemCode.code == code).scalar())
        balance = self.grant(session, principal_id, granted)
        logger.info("redeem_code_used", principal_id=principal_id, credits=granted, balance=balance)
        return granted, balance
