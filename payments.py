"""Payment settlement. One payment per rental, updated in place."""

import logging
import math
from typing import List, Optional

from database import MongoRecordStore
from errors import AlreadyPaid, AmountMismatch, Conflict, PaymentNotFound, PersistenceError, RentalNotFound
from schemas import PaymentStatus

logger = logging.getLogger(__name__)

UNPAID = PaymentStatus.unpaid.value
PAID = PaymentStatus.paid.value


class PaymentManager:
    def __init__(self, store: MongoRecordStore):
        self.store = store

    def settle_payment(self, rental_id: str, method: str, amount: Optional[float] = None) -> dict:
        """Mark a rental and its payment as paid; the rental moves unpaid -> paid atomically."""
        rental = self.store.get("rental", rental_id)
        if rental is None:
            raise RentalNotFound()
        if rental.get("status") == PAID:
            logger.info("Rejected settlement of rental %s: already paid", rental_id)
            raise AlreadyPaid()

        payment = self.store.find_one("payment", {"rental_id": str(rental_id)})
        if payment is None:
            raise PaymentNotFound("Payment record for rental not found")

        if amount is not None and not math.isclose(amount, rental["total_price"], rel_tol=1e-9, abs_tol=1e-9):
            raise AmountMismatch()

        settled = self.store.update("rental", rental_id, {"status": PAID}, expected={"status": UNPAID})
        if settled is None:
            if self.store.get("rental", rental_id) is None:
                raise RentalNotFound()
            logger.info("Rejected settlement of rental %s: lost race to a concurrent payment", rental_id)
            raise AlreadyPaid()

        try:
            updated = self.store.update(
                "payment", payment["_id"], {"status": PAID, "payment_method": method}
            )
        except PersistenceError:
            self._revert(rental_id)
            raise
        if updated is None:
            self._revert(rental_id)
            raise PaymentNotFound("Payment record for rental not found")

        logger.info("Rental %s settled by %s for %.2f", rental_id, method, rental["total_price"])
        return updated

    def _revert(self, rental_id: str) -> None:
        logger.warning("Payment update failed, reverting rental %s to unpaid", rental_id)
        self.store.update("rental", rental_id, {"status": UNPAID}, expected={"status": PAID})

    def get_payment(self, payment_id: str) -> dict:
        payment = self.store.get("payment", payment_id)
        if payment is None:
            raise PaymentNotFound()
        return payment

    def list_payments(self, rental_id: Optional[str] = None, status: Optional[PaymentStatus] = None) -> List[dict]:
        query = {}
        if rental_id:
            query["rental_id"] = rental_id
        if status:
            query["status"] = PaymentStatus(status).value
        return self.store.list("payment", query)

    def update_payment(self, payment_id: str, method: Optional[str] = None) -> dict:
        payment = self.get_payment(payment_id)
        if method is None:
            return payment
        if payment.get("status") != PAID:
            raise Conflict("Payment method is set when the rental is settled")
        updated = self.store.update("payment", payment_id, {"payment_method": method}, expected={"status": PAID})
        if updated is None:
            raise PaymentNotFound()
        return updated

    def delete_payment(self, payment_id: str) -> None:
        payment = self.get_payment(payment_id)
        # a rental must keep its payment; deleting the rental removes both
        if self.store.get("rental", payment.get("rental_id")) is not None:
            raise Conflict("Payment belongs to an existing rental, delete the rental instead")
        if not self.store.delete("payment", payment_id):
            raise PaymentNotFound()
