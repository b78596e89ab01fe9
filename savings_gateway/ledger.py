"""Balance ledger over the user store.

Deposits go through a server-side ``balance = balance + :amount`` update so
concurrent notifications for the same user cannot lose an increment. Only if
that statement fails does the ledger fall back to read-modify-write, which
can lose an update when two deposits race.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError as DuplicateRowError
from sqlalchemy.exc import SQLAlchemyError

from savings_gateway.errors import ConflictError, NotFoundError, TransientStoreError
from savings_gateway.logging import logger
from savings_gateway.models import Payment, Transaction, User

CENTS = Decimal("0.01")


class LedgerStore:
    """Reads and writes balances, pending payments and transactions."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def get_user(self, user_id: str):
        with self.session_factory() as db:
            return db.get(User, user_id)

    def get_balance(self, user_id: str) -> Decimal:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"Unknown user: {user_id}")
        return Decimal(user.balance or 0).quantize(CENTS)

    def community_balance(self) -> Decimal:
        with self.session_factory() as db:
            total = db.execute(select(func.sum(User.balance))).scalar()
        return Decimal(total or 0).quantize(CENTS)

    def recent_transactions(self, user_id: str, limit: int = 10):
        with self.session_factory() as db:
            return db.execute(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.created_at.desc())
                .limit(limit)
            ).scalars().all()

    def create_user(self, username: str, face_descriptor=None, user_id: str = None):
        """Insert a user with a zero balance; username and id must be unused."""

        with self.session_factory() as db:
            if db.execute(select(User.id).where(User.username == username)).first() is not None:
                raise ConflictError(f"Username already taken: {username}")
            if user_id and db.get(User, user_id) is not None:
                raise ConflictError(f"User already exists: {user_id}")

            user = User(username=username, face_descriptor=face_descriptor, balance=Decimal("0.00"))
            if user_id:
                user.id = user_id
            db.add(user)
            try:
                db.commit()
            except DuplicateRowError as exc:
                raise ConflictError(f"Username already taken: {username}") from exc
            logger.info("user registered user_id=%s face=%s", user.id, face_descriptor is not None)
            return user

    def record_pending_payment(self, payment_id: str, user_id: str, amount: str) -> None:
        with self.session_factory() as db:
            db.add(Payment(payment_id=payment_id, user_id=user_id, amount=Decimal(amount), status="pending"))
            db.commit()

    def apply_deposit(self, user_id: str, amount: Decimal, payment_id: str = None, reference: str = None):
        """Credit ``amount`` and append its transaction in one DB transaction.

        Raises NotFoundError for an unknown user and TransientStoreError when
        both write strategies fail, in which case nothing is committed.
        """

        try:
            return self._apply(self._increment_atomic, user_id, amount, payment_id, reference)
        except SQLAlchemyError as exc:
            logger.warning("atomic balance increment failed user_id=%s error=%s; falling back", user_id, exc)

        try:
            return self._apply(self._increment_read_modify_write, user_id, amount, payment_id, reference)
        except SQLAlchemyError as exc:
            logger.exception("fallback balance update failed user_id=%s", user_id)
            raise TransientStoreError(f"Could not credit user {user_id}") from exc

    def _apply(self, increment, user_id, amount, payment_id, reference):
        with self.session_factory() as db:
            increment(db, user_id, amount)
            entry = Transaction(
                user_id=user_id,
                amount=amount,
                type="deposit",
                status="completed",
                payment_id=payment_id,
                reference=reference,
            )
            db.add(entry)
            self._mark_payment_completed(db, payment_id)
            db.commit()
            return entry

    def _increment_atomic(self, db, user_id: str, amount: Decimal) -> None:
        result = db.execute(
            update(User)
            .where(User.id == user_id)
            .values(balance=User.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Unknown user: {user_id}")

    def _increment_read_modify_write(self, db, user_id: str, amount: Decimal) -> None:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"Unknown user: {user_id}")
        user.balance = Decimal(user.balance or 0) + amount

    def _mark_payment_completed(self, db, payment_id: str) -> None:
        payment = db.get(Payment, payment_id) if payment_id else None
        if payment is None:
            # Intent may have been created by a process that died after redirecting.
            logger.info("no pending payment entry payment_id=%s", payment_id)
            return
        payment.status = "completed"
        payment.completed_at = datetime.now(timezone.utc)
