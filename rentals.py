"""Rental lifecycle: a rental is always stored with its unpaid payment."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from database import MongoRecordStore
from errors import CarNotFound, InvalidDateRange, PersistenceError, RentalNotFound, UserNotFound
from pricing import compute_total
from schemas import Payment, PaymentStatus, Rental

logger = logging.getLogger(__name__)


class RentalManager:
    def __init__(self, store: MongoRecordStore):
        self.store = store

    def create_rental(self, user_id: str, car_id: str, start: datetime, end: datetime) -> dict:
        start, end = _naive(start), _naive(end)
        if end <= start:
            raise InvalidDateRange()

        if self.store.get("user", user_id) is None:
            raise UserNotFound()
        car = self.store.get("car", car_id)
        if car is None:
            raise CarNotFound()

        total_price = compute_total(car["price_per_day"], start, end)
        rental = Rental(
            user_id=user_id,
            car_id=car_id,
            start_date=start,
            end_date=end,
            total_price=total_price,
            status=PaymentStatus.unpaid,
        )
        rental_id = self.store.create("rental", rental)

        payment = Payment(
            rental_id=rental_id,
            amount=total_price,
            payment_method="",
            status=PaymentStatus.unpaid,
        )
        try:
            self.store.create("payment", payment)
        except PersistenceError:
            logger.warning("Payment insert failed, rolling back rental %s", rental_id)
            self.store.delete("rental", rental_id)
            raise PersistenceError("Failed to create payment")

        logger.info("Rental %s created for user %s, car %s, total %.2f", rental_id, user_id, car_id, total_price)
        return self.store.get("rental", rental_id)

    def get_rental(self, rental_id: str) -> dict:
        rental = self.store.get("rental", rental_id)
        if rental is None:
            raise RentalNotFound()
        return rental

    def list_rentals(self, user_id: Optional[str] = None, status: Optional[PaymentStatus] = None) -> List[dict]:
        query = {}
        if user_id:
            query["user_id"] = user_id
        if status:
            query["status"] = PaymentStatus(status).value
        return self.store.list("rental", query)

    def update_rental(self, rental_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        # Dates are editable, the price stays as computed at booking time.
        rental = self.get_rental(rental_id)
        changes = {}
        if start is not None:
            changes["start_date"] = _naive(start)
        if end is not None:
            changes["end_date"] = _naive(end)
        if not changes:
            return rental
        new_start = changes.get("start_date", rental["start_date"])
        new_end = changes.get("end_date", rental["end_date"])
        if _naive(new_end) <= _naive(new_start):
            raise InvalidDateRange()
        updated = self.store.update("rental", rental_id, changes)
        if updated is None:
            raise RentalNotFound()
        return updated

    def delete_rental(self, rental_id: str) -> None:
        self.get_rental(rental_id)
        self.store.delete_many("payment", {"rental_id": str(rental_id)})
        self.store.delete("rental", rental_id)
        logger.info("Rental %s and its payment deleted", rental_id)

    def get_payment_for_rental(self, rental_id: str) -> Optional[dict]:
        return self.store.find_one("payment", {"rental_id": str(rental_id)})


def _naive(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
