"""
Cart/Payment Reconciliation

Turns a confirmed checkout into a durable payment record and removes the
purchased cart entries.

Transaction layout for record_payment():

    BEGIN
      INSERT payment (+ payment_menu_items)     -- skipped if transaction_id exists
      SAVEPOINT
        DELETE carts WHERE id IN (payment.cart_ids)   -- as recorded
      RELEASE SAVEPOINT
    COMMIT

Cart entries are never removed unless the payment row commits in the same
transaction. If only the delete fails, the savepoint is rolled back, the
payment is committed alone and PartialReconciliation is raised; sending the
same payment again reuses the record (matched on transaction_id) and
finishes the cleanup. Deleting an already-deleted entry is a no-op.

transaction_id is unique in the store, so two concurrent requests for one
checkout produce one payment. A resend always deletes the cart entries the
recorded payment lists, whatever cartIds the new body carries.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bistro.core.exceptions import PartialReconciliation, UpstreamFailure
from bistro.models import CartItem, Payment, PaymentMenuItem
from bistro.schemas import PaymentCreate
from bistro.services.payment import BasePaymentService, to_minor_units

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    payment: Payment
    duplicate: bool
    deleted_count: int


class PaymentReconciler:
    """
    Payment-intent creation and post-payment reconciliation.

    Args:
        session: Request-scoped session, committed by record_payment();
            not needed for payment intents
        payment_service: Provider used for payment intents
        currency: Fixed currency for every intent
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        payment_service: Optional[BasePaymentService] = None,
        currency: str = "usd",
    ):
        self.session = session
        self.payment_service = payment_service
        self.currency = currency

    # =========================================================================
    # PAYMENT INTENTS
    # =========================================================================

    async def create_payment_intent(self, price: float) -> str:
        """
        Create a provider intent for `price` and return its client secret.

        No local state is touched.

        Raises:
            UpstreamFailure: The provider rejected or could not handle the call
        """
        if self.payment_service is None:
            raise UpstreamFailure("No payment provider configured")

        amount = to_minor_units(price)
        result = await self.payment_service.create_payment_intent(
            amount_minor=amount,
            currency=self.currency,
        )

        if not result.success or not result.client_secret:
            logger.warning(
                f"PaymentIntent failed on {self.payment_service.provider_name}: "
                f"{result.to_dict()}"
            )
            raise UpstreamFailure(result.error_message or "Payment provider error")

        logger.info(f"PaymentIntent {result.payment_intent_id} created for {amount} {self.currency}")
        return result.client_secret

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def record_payment(self, data: PaymentCreate) -> ReconciliationResult:
        """
        Persist the payment and delete its cart entries as one transaction.

        Raises:
            PartialReconciliation: Payment committed, cart cleanup failed
            UpstreamFailure: Nothing was committed
        """
        try:
            payment, duplicate = await self._get_or_add_payment(data)

            # The stored record decides what is covered, not the resent body
            try:
                async with self.session.begin_nested():
                    deleted = await self._delete_cart_items(
                        [uuid.UUID(str(cart_id)) for cart_id in payment.cart_ids]
                    )
            except SQLAlchemyError as e:
                logger.error(f"Cart cleanup failed for payment {payment.id}: {e}")
                await self.session.commit()
                raise PartialReconciliation(str(payment.id))

            await self.session.commit()

        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception(f"Payment {data.transaction_id} not recorded")
            raise UpstreamFailure("Payment store unavailable", status_code=503) from e

        logger.info(
            f"Payment {payment.id} ({data.transaction_id}) "
            f"{'re-driven' if duplicate else 'recorded'} - "
            f"${payment.price:.2f} - {deleted} cart item(s) removed"
        )
        return ReconciliationResult(payment=payment, duplicate=duplicate, deleted_count=deleted)

    async def _find_payment(self, transaction_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.transaction_id == transaction_id)
        )
        return result.scalars().first()

    async def _get_or_add_payment(self, data: PaymentCreate) -> tuple[Payment, bool]:
        """
        Return the payment for data.transaction_id, inserting it if new.

        transaction_id is unique in the store: a concurrent request that
        inserts the same transaction first wins, and this one reuses its row.
        """
        existing = await self._find_payment(data.transaction_id)
        if existing is not None:
            self._warn_if_mismatched(existing, data)
            return existing, True

        payment = Payment(
            id=uuid.uuid4(),
            email=data.email,
            price=data.price,
            transaction_id=data.transaction_id,
            cart_ids=[str(cart_id) for cart_id in data.cart_ids],
            status=data.status,
            items=[PaymentMenuItem(menu_item_id=menu_id) for menu_id in data.menu_item_ids],
        )
        try:
            async with self.session.begin_nested():
                self.session.add(payment)
                await self.session.flush()
        except IntegrityError:
            winner = await self._find_payment(data.transaction_id)
            if winner is None:
                raise
            logger.info(f"Transaction {data.transaction_id} recorded concurrently, reusing {winner.id}")
            self._warn_if_mismatched(winner, data)
            return winner, True

        return payment, False

    @staticmethod
    def _warn_if_mismatched(payment: Payment, data: PaymentCreate) -> None:
        resent_cart_ids = sorted(str(c) for c in data.cart_ids)
        if (
            payment.email != data.email
            or payment.price != data.price
            or sorted(payment.cart_ids) != resent_cart_ids
        ):
            logger.warning(
                f"Transaction {data.transaction_id} resent with a different body; "
                f"keeping the recorded payment {payment.id}"
            )
        else:
            logger.info(f"Payment for transaction {data.transaction_id} already recorded")

    async def _delete_cart_items(self, cart_ids: Sequence[uuid.UUID]) -> int:
        if not cart_ids:
            return 0

        result = await self.session.execute(
            delete(CartItem)
            .where(CartItem.id.in_(list(cart_ids)))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
