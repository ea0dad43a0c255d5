"""Unit tests for escrow lock, release and refund."""

import pytest

from task_market_service.core.exceptions import ServiceError
from task_market_service.services.escrow_engine import EscrowEngine
from task_market_service.services.fee_policy import FeePolicy
from tests.helpers import FEE_ACCOUNT_ID, Market


@pytest.mark.unit
def test_unknown_funding_model_rejected(market: Market) -> None:
    with pytest.raises(ValueError):
        EscrowEngine(
            store=market.store,
            ledger=market.ledger,
            fee_policy=FeePolicy(flat_fee=0, fee_basis_points=0),
            funding_model="credit-card",
            fee_account_id=FEE_ACCOUNT_ID,
        )


@pytest.mark.unit
def test_lock_total_is_amount_plus_fee(market: Market) -> None:
    task_id = market.start_task(amount=450)

    escrow = market.escrow.get_escrow(task_id)
    assert escrow["amount"] == 450
    assert escrow["platform_fee"] == 20
    assert escrow["total"] == escrow["amount"] + escrow["platform_fee"]
    assert escrow["status"] == "locked"
    assert escrow["funding_model"] == "trust"


@pytest.mark.unit
def test_second_lock_for_same_task_rejected(market: Market) -> None:
    task_id = market.start_task()
    with pytest.raises(ServiceError) as exc_info:
        market.escrow.lock(task_id, 100)
    assert exc_info.value.error == "INVALID_STATE"


@pytest.mark.unit
def test_lock_validates_amount_and_task(market: Market) -> None:
    with pytest.raises(ServiceError) as exc_info:
        market.escrow.lock("t-missing", 0)
    assert exc_info.value.error == "INVALID_AMOUNT"

    with pytest.raises(ServiceError) as exc_info:
        market.escrow.lock("t-missing", 10)
    assert exc_info.value.error == "NOT_FOUND"


@pytest.mark.unit
def test_release_requires_completed_task(market: Market) -> None:
    task_id = market.start_task()
    with pytest.raises(ServiceError) as exc_info:
        market.escrow.release(task_id)
    assert exc_info.value.error == "INVALID_STATE"
    assert market.escrow.get_escrow(task_id)["status"] == "locked"
    assert market.ledger.get_balance("a-worker") == 0


@pytest.mark.unit
def test_release_pays_worker_and_fee_account_once(market: Market) -> None:
    """A second release fails and leaves every balance untouched."""
    task_id = market.complete_task(amount=450)

    assert market.escrow.get_escrow(task_id)["status"] == "released"
    assert market.ledger.get_balance("a-worker") == 450
    assert market.ledger.get_balance(FEE_ACCOUNT_ID) == 20

    with pytest.raises(ServiceError) as exc_info:
        market.escrow.release(task_id)
    assert exc_info.value.error == "INVALID_STATE"
    assert market.ledger.get_balance("a-worker") == 450
    assert market.ledger.get_balance(FEE_ACCOUNT_ID) == 20


@pytest.mark.unit
def test_prepaid_lock_debits_poster(prepaid_market: Market) -> None:
    prepaid_market.ledger.credit("a-poster", 1000, "Deposit")
    task_id = prepaid_market.start_task(amount=450)

    assert prepaid_market.ledger.get_balance("a-poster") == 530
    last = prepaid_market.ledger.get_wallet("a-poster")["transactions"][-1]
    assert last["type"] == "debit"
    assert last["amount"] == 470
    assert last["task_id"] == task_id


@pytest.mark.unit
def test_prepaid_lock_with_low_balance_changes_nothing(prepaid_market: Market) -> None:
    """Insufficient funds roll back the whole bid acceptance."""
    prepaid_market.ledger.credit("a-poster", 100, "Deposit")
    task_id = prepaid_market.create_task()
    bid = prepaid_market.bids.place_bid(task_id, "a-worker", 450)

    with pytest.raises(ServiceError) as exc_info:
        prepaid_market.bids.accept_bid(task_id, bid["bid_id"], "a-poster")

    assert exc_info.value.error == "INSUFFICIENT_FUNDS"
    task = prepaid_market.tasks.get_task(task_id)
    assert task["state"] == "open"
    assert task["assigned_worker_id"] is None
    assert task["version"] == 1
    assert prepaid_market.store.get_bid(bid["bid_id"], task_id)["status"] == "pending"
    assert prepaid_market.store.get_escrow(task_id) is None
    assert prepaid_market.ledger.get_balance("a-poster") == 100


@pytest.mark.unit
def test_prepaid_refund_returns_total(prepaid_market: Market) -> None:
    prepaid_market.ledger.credit("a-poster", 1000, "Deposit")
    task_id = prepaid_market.start_task(amount=450)

    prepaid_market.tasks.cancel_task(task_id, "a-poster")

    escrow = prepaid_market.escrow.get_escrow(task_id)
    assert escrow["status"] == "refunded"
    assert escrow["resolved_at"] is not None
    assert prepaid_market.ledger.get_balance("a-poster") == 1000


@pytest.mark.unit
def test_refund_requires_cancelled_task(market: Market) -> None:
    task_id = market.start_task()
    with pytest.raises(ServiceError) as exc_info:
        market.escrow.refund(task_id)
    assert exc_info.value.error == "INVALID_STATE"


@pytest.mark.unit
def test_get_escrow_missing(market: Market) -> None:
    with pytest.raises(ServiceError) as exc_info:
        market.escrow.get_escrow("t-missing")
    assert exc_info.value.error == "NOT_FOUND"
    assert market.escrow.platform_fee(450) == 20
    assert market.escrow.funding_model == "trust"
