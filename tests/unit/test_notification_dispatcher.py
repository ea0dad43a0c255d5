"""Unit tests for the notification dispatcher."""

import pytest

from task_market_service.core.exceptions import ServiceError
from task_market_service.services.notification_dispatcher import NotificationType
from tests.helpers import Market


@pytest.mark.unit
def test_emit_appends_unread_notification(market: Market) -> None:
    notification = market.notifier.emit(NotificationType.NEW_BID, "a-poster", "t-1")

    assert notification["notification_id"].startswith("n-")
    assert notification["type"] == "new_bid"
    assert notification["is_read"] is False
    assert market.notifier.unread_count("a-poster") == 1


@pytest.mark.unit
def test_mark_read_is_idempotent(market: Market) -> None:
    notification = market.notifier.emit(NotificationType.TASK_COMPLETED, "a-worker", "t-1")
    notification_id = notification["notification_id"]

    first = market.notifier.mark_read(notification_id)
    second = market.notifier.mark_read(notification_id)

    assert first["is_read"] is True
    assert second == first
    assert market.notifier.unread_count("a-worker") == 0


@pytest.mark.unit
def test_mark_all_read_only_touches_recipient(market: Market) -> None:
    market.notifier.emit(NotificationType.NEW_BID, "a-poster", "t-1")
    market.notifier.emit(NotificationType.WORKER_ARRIVED, "a-poster", "t-1")
    market.notifier.emit(NotificationType.BID_ACCEPTED, "a-worker", "t-1")

    assert market.notifier.mark_all_read("a-poster") == 2
    assert market.notifier.mark_all_read("a-poster") == 0
    assert market.notifier.unread_count("a-worker") == 1


@pytest.mark.unit
def test_list_filters_unread(market: Market) -> None:
    first = market.notifier.emit(NotificationType.NEW_BID, "a-poster", "t-1")
    market.notifier.emit(NotificationType.NEW_BID, "a-poster", "t-2")
    market.notifier.mark_read(first["notification_id"])

    everything = market.notifier.list_for_user("a-poster", unread_only=False)
    unread = market.notifier.list_for_user("a-poster", unread_only=True)

    assert len(everything) == 2
    assert [n["related_entity_id"] for n in unread] == ["t-2"]


@pytest.mark.unit
def test_other_users_notification_is_not_found(market: Market) -> None:
    notification = market.notifier.emit(NotificationType.NEW_BID, "a-poster", "t-1")
    notification_id = notification["notification_id"]

    for call in (market.notifier.get, market.notifier.mark_read, market.notifier.delete):
        with pytest.raises(ServiceError) as exc_info:
            call(notification_id, "a-intruder")
        assert exc_info.value.error == "NOT_FOUND"

    assert market.notifier.get(notification_id, "a-poster")["is_read"] is False


@pytest.mark.unit
def test_delete_removes_notification(market: Market) -> None:
    notification = market.notifier.emit(NotificationType.REVIEW_RECEIVED, "a-worker", "t-1")
    market.notifier.delete(notification["notification_id"], "a-worker")

    with pytest.raises(ServiceError) as exc_info:
        market.notifier.get(notification["notification_id"])
    assert exc_info.value.error == "NOT_FOUND"
