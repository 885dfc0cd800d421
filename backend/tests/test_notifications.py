"""
Tests for the notification outbox and its sinks.
"""

import asyncio
import json

import httpx
import pytest

from eventreg.core.config import get_settings
from eventreg.models.notification import OUTBOX_DELIVERED, OUTBOX_FAILED, OUTBOX_PENDING, NotificationType
from eventreg.services.interfaces.log_sink import LogNotificationSink
from eventreg.services.notification_service import deliver_pending, dispatch_notifications, run_outbox_relay
from eventreg.services.notification_sinks import RedisNotificationSink, WebhookNotificationSink
from eventreg.services.sink_factory import build_notification_sink


@pytest.mark.asyncio
async def test_outcome_rows_start_pending(make_event, register, fetch):
    event = await make_event(max_participants=1)
    await register(event.id, 1)
    await register(event.id, 2)

    notifications = await fetch.notifications(event.id)

    assert [n.type for n in notifications] == [
        NotificationType.REGISTRATION_CONFIRMED,
        NotificationType.REGISTRATION_WAITLIST,
    ]
    assert all(n.status == OUTBOX_PENDING for n in notifications)
    assert notifications[1].recipient_ids == [2]
    assert notifications[1].title == "Waiting List: Science Fair"


@pytest.mark.asyncio
async def test_deliver_pending_sends_payloads(session_factory, make_event, register, fetch, sink):
    event = await make_event(max_participants=1)
    await register(event.id, 1)
    await register(event.id, 2)

    report = await deliver_pending(session_factory, sink)

    assert report.delivered == 2
    assert report.failed == 0
    assert [p["recipientIds"] for p in sink.payloads] == [[1], [2]]
    assert sink.payloads[0] == {
        "notificationId": sink.payloads[0]["notificationId"],
        "eventId": event.id,
        "type": NotificationType.REGISTRATION_CONFIRMED,
        "recipientType": "specific_users",
        "recipientIds": [1],
        "title": "Registration Confirmed: Science Fair",
        "message": (
            "You have successfully registered for Science Fair. "
            "We look forward to your participation!"
        ),
        "recipientCount": 1,
        "createdBy": 1,
    }

    notifications = await fetch.notifications(event.id)
    assert all(n.status == OUTBOX_DELIVERED for n in notifications)
    assert all(n.delivered_at is not None for n in notifications)


@pytest.mark.asyncio
async def test_deliver_pending_only_requested_ids(session_factory, make_event, register, fetch, sink):
    event = await make_event()
    first = await register(event.id, 1)
    await register(event.id, 2)

    await deliver_pending(session_factory, sink, ids=first.notification_ids)

    statuses = [n.status for n in await fetch.notifications(event.id)]
    assert statuses == [OUTBOX_DELIVERED, OUTBOX_PENDING]


@pytest.mark.asyncio
async def test_delivered_rows_not_sent_again(session_factory, make_event, register, sink):
    event = await make_event()
    await register(event.id, 1)

    await deliver_pending(session_factory, sink)
    report = await deliver_pending(session_factory, sink)

    assert report.delivered == 0
    assert len(sink.payloads) == 1


@pytest.mark.asyncio
async def test_failed_delivery_marks_row_without_retry(
    session_factory, make_event, register, fetch, failing_sink
):
    event = await make_event()
    await register(event.id, 1)

    report = await deliver_pending(session_factory, failing_sink)
    await deliver_pending(session_factory, failing_sink)

    assert report.failed == 1
    assert failing_sink.calls == 1
    notification = (await fetch.notifications(event.id))[0]
    assert notification.status == OUTBOX_FAILED
    assert notification.attempts == 1
    assert notification.last_error == "ConnectionError: notification service unreachable"

    registration = (await fetch.by_user(event.id))[1]
    assert registration.is_active


@pytest.mark.asyncio
async def test_dispatch_never_raises(session_factory, failing_sink):
    class BrokenFactory:
        def __call__(self):
            raise RuntimeError("database gone")

    await dispatch_notifications(BrokenFactory(), failing_sink, [1, 2])
    await dispatch_notifications(session_factory, failing_sink, [])

    assert failing_sink.calls == 0


@pytest.mark.asyncio
async def test_relay_delivers_leftover_rows(session_factory, make_event, register, fetch, sink):
    event = await make_event()
    await register(event.id, 1)

    task = asyncio.create_task(run_outbox_relay(session_factory, sink, interval=0.01))
    for _ in range(100):
        if sink.payloads:
            break
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(sink.payloads) == 1
    assert (await fetch.notifications(event.id))[0].status == OUTBOX_DELIVERED


@pytest.mark.asyncio
async def test_webhook_sink_posts_json():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = WebhookNotificationSink("http://notify.test/hooks", client=client)

    await sink.send({"notificationId": 7, "eventId": 1, "type": "registration_confirmed"})
    await sink.close()

    assert received == [{"notificationId": 7, "eventId": 1, "type": "registration_confirmed"}]


@pytest.mark.asyncio
async def test_webhook_sink_raises_on_error_status():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    sink = WebhookNotificationSink("http://notify.test/hooks", client=client)

    with pytest.raises(httpx.HTTPStatusError):
        await sink.send({"notificationId": 1})
    await sink.close()


def test_webhook_sink_requires_url():
    with pytest.raises(ValueError):
        WebhookNotificationSink("")


@pytest.mark.asyncio
async def test_redis_sink_fails_when_redis_disabled():
    sink = RedisNotificationSink("registrations")

    with pytest.raises(ConnectionError):
        await sink.send({"notificationId": 1})


@pytest.mark.asyncio
async def test_log_sink_accepts_payload():
    await LogNotificationSink().send(
        {"notificationId": 1, "eventId": 1, "type": "registration_confirmed", "recipientIds": [1], "title": "t"}
    )


@pytest.mark.parametrize(
    "configured, expected",
    [("log", LogNotificationSink), ("webhook", WebhookNotificationSink), ("redis", RedisNotificationSink)],
)
def test_sink_factory_selects_configured_sink(monkeypatch, configured, expected):
    settings = get_settings()
    monkeypatch.setattr(settings, "NOTIFICATION_SINK", configured)
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", "http://notify.test/hooks")

    assert isinstance(build_notification_sink(), expected)
