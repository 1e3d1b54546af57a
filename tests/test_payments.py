import threading
from datetime import datetime

import pytest
from bson import ObjectId

from conftest import FailingStore, SerializedStore
from errors import AlreadyPaid, AmountMismatch, Conflict, PaymentNotFound, PersistenceError, RentalNotFound
from payments import PaymentManager
from rentals import RentalManager


@pytest.fixture
def rental_id(store, user_id, car_id):
    rental = RentalManager(store).create_rental(user_id, car_id, datetime(2024, 1, 1), datetime(2024, 1, 4))
    return str(rental["_id"])


def test_settle_marks_rental_and_payment_paid(store, rental_id):
    payment = PaymentManager(store).settle_payment(rental_id, "card")

    assert payment["status"] == "paid"
    assert payment["payment_method"] == "card"
    assert payment["amount"] == 300.0
    assert store.get("rental", rental_id)["status"] == "paid"
    assert len(store.list("payment")) == 1


def test_second_settlement_rejected_without_changes(store, rental_id):
    manager = PaymentManager(store)
    manager.settle_payment(rental_id, "card")

    with pytest.raises(AlreadyPaid):
        manager.settle_payment(rental_id, "cash")

    payments = store.list("payment")
    assert len(payments) == 1
    assert payments[0]["payment_method"] == "card"
    assert payments[0]["amount"] == 300.0
    assert store.get("rental", rental_id)["status"] == "paid"


def test_unknown_rental(store):
    with pytest.raises(RentalNotFound):
        PaymentManager(store).settle_payment(str(ObjectId()), "card")


def test_amount_must_match_total(store, rental_id):
    manager = PaymentManager(store)
    with pytest.raises(AmountMismatch):
        manager.settle_payment(rental_id, "card", amount=250.0)
    assert store.get("rental", rental_id)["status"] == "unpaid"

    payment = manager.settle_payment(rental_id, "card", amount=300.0)
    assert payment["status"] == "paid"


def test_rental_without_payment_record(store, rental_id):
    store.delete_many("payment", {"rental_id": rental_id})
    with pytest.raises(PaymentNotFound):
        PaymentManager(store).settle_payment(rental_id, "card")
    assert store.get("rental", rental_id)["status"] == "unpaid"


def test_failed_payment_update_reverts_rental(mongo_db, store, rental_id):
    failing = FailingStore(mongo_db, fail_update={"payment"})
    with pytest.raises(PersistenceError):
        PaymentManager(failing).settle_payment(rental_id, "card")

    assert store.get("rental", rental_id)["status"] == "unpaid"
    assert store.list("payment")[0]["status"] == "unpaid"

    # the pair is still settleable afterwards
    assert PaymentManager(store).settle_payment(rental_id, "card")["status"] == "paid"


def test_concurrent_settlements_only_one_wins(mongo_db, rental_id):
    store = SerializedStore(mongo_db)
    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    results_lock = threading.Lock()

    def settle():
        barrier.wait()
        try:
            PaymentManager(store).settle_payment(rental_id, "card")
            outcome = "paid"
        except AlreadyPaid:
            outcome = "already_paid"
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=settle) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("paid") == 1
    assert results.count("already_paid") == workers - 1
    assert len(store.list("payment")) == 1


def test_payment_method_not_editable_before_settlement(store, rental_id):
    manager = PaymentManager(store)
    payment_id = str(manager.list_payments(rental_id=rental_id)[0]["_id"])

    with pytest.raises(Conflict):
        manager.update_payment(payment_id, method="bank_transfer")
    payment = manager.get_payment(payment_id)
    assert payment["payment_method"] == ""
    assert payment["status"] == "unpaid"


def test_payment_method_editable_after_settlement(store, rental_id):
    manager = PaymentManager(store)
    payment_id = str(manager.settle_payment(rental_id, "card")["_id"])

    updated = manager.update_payment(payment_id, method="bank_transfer")
    assert updated["payment_method"] == "bank_transfer"
    assert updated["status"] == "paid"


def test_payment_of_existing_rental_cannot_be_deleted(store, rental_id):
    manager = PaymentManager(store)
    payment_id = str(manager.list_payments(rental_id=rental_id)[0]["_id"])

    with pytest.raises(Conflict):
        manager.delete_payment(payment_id)
    assert manager.get_payment(payment_id)["rental_id"] == rental_id
    assert manager.settle_payment(rental_id, "card")["status"] == "paid"


def test_delete_payment_without_rental(store, rental_id):
    manager = PaymentManager(store)
    payment_id = str(manager.list_payments(rental_id=rental_id)[0]["_id"])
    store.delete("rental", rental_id)

    manager.delete_payment(payment_id)
    with pytest.raises(PaymentNotFound):
        manager.get_payment(payment_id)
