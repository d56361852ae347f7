import pytest

from ageless.models_sqlalchemy.models import Notification
from ageless.services import messaging, notifications, wishlist
from ageless.services.errors import NotFoundError, ValidationFailed
from ageless.services.notifications import NotificationHub


def test_hub_fans_out_to_each_stream():
    hub = NotificationHub()
    first = hub.subscribe("u1")
    second = hub.subscribe("u1")

    assert hub.subscriber_count("u1") == 2
    assert hub.publish("u1", "notification:new", {"id": "n1"}) == 2
    assert first.get_nowait() == {"event": "notification:new", "data": {"id": "n1"}}
    assert second.get_nowait()["data"]["id"] == "n1"
    assert hub.publish("someone-else", "notification:new", {}) == 0

    hub.unsubscribe("u1", first)
    hub.unsubscribe("u1", second)
    assert hub.subscriber_count("u1") == 0


def test_hub_drops_events_for_full_queues():
    hub = NotificationHub(max_queue_size=1)
    hub.subscribe("u1")
    assert hub.publish("u1", "a", {}) == 1
    assert hub.publish("u1", "b", {}) == 0


def test_notify_persists_and_publishes(db, make_user):
    user = make_user()
    queue = notifications.hub.subscribe(user.id)
    try:
        row = notifications.notify(db, user.id, "order_shipped", "Shipped", "On its way", {"entityId": "o1"})
    finally:
        notifications.hub.unsubscribe(user.id, queue)

    event = queue.get_nowait()
    assert event["event"] == "notification:new"
    assert event["data"]["id"] == row.id
    assert event["data"]["is_read"] is False


def test_notify_once_is_idempotent_per_entity(db, make_user):
    user = make_user()
    first = notifications.notify_once(db, user.id, "ORDER_CONFIRMATION", "t", "m", entity_id="order-1")
    again = notifications.notify_once(db, user.id, "ORDER_CONFIRMATION", "t", "m", entity_id="order-1")
    other = notifications.notify_once(db, user.id, "ORDER_CONFIRMATION", "t", "m", entity_id="order-2")

    assert first is not None
    assert again is None
    assert other is not None
    assert first.data["entityId"] == "order-1"

    scoped = notifications.notify_once(
        db, user.id, "ORDER_NEW_VENDOR", "t", "m", entity_id="order-1", vendor_id="v1"
    )
    second_vendor = notifications.notify_once(
        db, user.id, "ORDER_NEW_VENDOR", "t", "m", entity_id="order-1", vendor_id="v2"
    )
    assert scoped.data["vendorId"] == "v1"
    assert second_vendor is not None


def test_read_and_delete(db, make_user):
    user = make_user()
    stranger = make_user()
    rows = [notifications.notify(db, user.id, "custom_offer", f"Offer {i}", "m") for i in range(3)]

    listing = notifications.list_notifications(db, user.id)
    assert listing["total"] == 3
    assert listing["unread_count"] == 3

    assert notifications.mark_read(db, stranger.id, rows[0].id) is None
    marked = notifications.mark_read(db, user.id, rows[0].id)
    assert marked.is_read is True
    assert marked.read_at is not None
    assert notifications.list_notifications(db, user.id, unread_only=True)["total"] == 2

    assert notifications.mark_all_read(db, user.id) == 2
    assert notifications.list_notifications(db, user.id)["unread_count"] == 0

    assert notifications.delete_notification(db, stranger.id, rows[1].id) is False
    assert notifications.delete_notification(db, user.id, rows[1].id) is True
    assert db.query(Notification).filter(Notification.user_id == user.id).count() == 2


def test_wishlist(db, make_user, make_vendor, make_book, make_product):
    user = make_user()
    vendor = make_vendor()
    book = make_book(vendor)

    entry = wishlist.add_to_wishlist(db, user.id, book_id=book.id)
    same = wishlist.add_to_wishlist(db, user.id, book_id=book.id)
    assert entry["id"] == same["id"]
    wishlist.add_to_wishlist(db, user.id, product_id=make_product(vendor).id)
    assert len(wishlist.list_wishlist(db, user.id)) == 2

    with pytest.raises(ValidationFailed, match="Provide exactly one of bookId or productId"):
        wishlist.add_to_wishlist(db, user.id, book_id=book.id, product_id="p")
    with pytest.raises(NotFoundError):
        wishlist.add_to_wishlist(db, user.id, book_id="missing")

    wishlist.remove_from_wishlist(db, user.id, entry["id"])
    with pytest.raises(NotFoundError):
        wishlist.remove_from_wishlist(db, user.id, entry["id"])
    assert len(wishlist.list_wishlist(db, user.id)) == 1


def test_render_and_build_email():
    assert messaging.render_template("Hi {{ name }}, {{missing}}!", {"name": "Ada"}) == "Hi Ada, !"
    assert messaging.html_to_text("<p>Hello&nbsp;<b>there</b></p><style>p{}</style>") == "Hello there"

    email = messaging.build_email("no-such-template", {"title": "Ping"})
    assert email["subject"]
    assert email["text"] == messaging.html_to_text(email["html"])


async def test_send_email_and_sms_without_providers():
    assert await messaging.send_templated_email("order_confirmation_buyer", "not-an-email") is False
    assert await messaging.send_templated_email("order_confirmation_buyer", "reader@bookmail.com", {}) is True
    assert await messaging.send_sms("+15551234567", "hello") == {"ok": False, "error": "sms_not_configured"}
