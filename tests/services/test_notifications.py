# tests/services/test_notifications.py
import json
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from app.models.enums import NotificationKind, ReservationStatus
from app.models.notification import Notification
from app.models.notification_preferences import UserNotificationPreferences
from app.services.notifications import PreferenceNotificationDispatcher, WebhookChannel
from app.services.reservation_service import LineRequest, ReservationService
from tests.factories import NOW, ExplodingNotifier, customer, make_business, make_listing

pytestmark = pytest.mark.asyncio


class RecordingChannel:
    def __init__(self, name: str) -> None:
        self.name = name
        self.sent = []

    async def send(self, user_id, *, title, message, payload) -> None:
        self.sent.append((user_id, title, message))


class BrokenChannel:
    name = "email"

    async def send(self, user_id, *, title, message, payload) -> None:
        raise ConnectionError("smtp unreachable")


async def _inbox(maker, user_id):
    async with maker() as s:
        return (
            await s.execute(
                select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)
            )
        ).scalars().all()


async def _prefs(maker, user_id, **fields):
    async with maker() as s:
        s.add(UserNotificationPreferences(user_id=user_id, **fields))
        await s.commit()


async def test_inbox_row_written_without_preferences(async_session_maker):
    email = RecordingChannel("email")
    dispatcher = PreferenceNotificationDispatcher(async_session_maker, {"email": email})

    await dispatcher.notify(
        501,
        NotificationKind.RESERVATION_CREATED,
        {"reservation_id": 7, "reservation_number": "GRN-20260314-00001"},
    )

    [row] = await _inbox(async_session_maker, 501)
    assert row.kind == "RESERVATION_CREATED"
    assert row.reference_id == "7"
    assert row.reference_type == "reservation"
    assert "GRN-20260314-00001" in row.message
    assert row.is_read is False
    assert email.sent == []


async def test_channels_follow_preferences(async_session_maker):
    channels = {name: RecordingChannel(name) for name in ("email", "push", "sms")}
    dispatcher = PreferenceNotificationDispatcher(async_session_maker, channels)
    await _prefs(
        async_session_maker,
        501,
        email_notifications=True,
        push_notifications=False,
        sms_notifications=True,
        notification_types=["PAYMENT_CONFIRMED"],
    )

    await dispatcher.notify(501, NotificationKind.PAYMENT_CONFIRMED, {"reservation_number": "N-1"})
    await dispatcher.notify(501, NotificationKind.RESERVATION_CREATED, {"reservation_number": "N-1"})

    assert [len(channels[n].sent) for n in ("email", "push", "sms")] == [1, 0, 1]
    assert len(await _inbox(async_session_maker, 501)) == 2


async def test_failing_channel_is_swallowed(async_session_maker):
    push = RecordingChannel("push")
    dispatcher = PreferenceNotificationDispatcher(
        async_session_maker, {"email": BrokenChannel(), "push": push}
    )
    await _prefs(async_session_maker, 502, email_notifications=True, push_notifications=True)

    await dispatcher.notify(502, NotificationKind.PICKUP_CONFIRMED, {"reservation_number": "N-2"})

    assert len(push.sent) == 1
    assert len(await _inbox(async_session_maker, 502)) == 1


async def test_webhook_channel_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        channel = WebhookChannel("push", "http://hooks.test/notify", client=client)
        await channel.send(501, title="Pickup confirmed", message="done", payload={"x": 1})

    assert seen == [
        {
            "channel": "push",
            "user_id": 501,
            "title": "Pickup confirmed",
            "message": "done",
            "payload": {"x": 1},
        }
    ]


async def test_webhook_channel_raises_on_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    async with httpx.AsyncClient(transport=transport) as client:
        channel = WebhookChannel("push", "http://hooks.test/notify", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await channel.send(501, title="t", message="m", payload={})


async def test_broken_notifier_never_fails_the_operation(session, settings, clock):
    service = ReservationService(notifier=ExplodingNotifier(), settings=settings, utc_now=clock)
    biz = await make_business(session)
    listing = await make_listing(session, biz, quantity=2)

    [r] = await service.create(
        session,
        customer_id=501,
        items=[LineRequest(listing.id, 1)],
        pickup_time=NOW + timedelta(hours=1),
    )
    paid = await service.pay(session, r.id, actor=customer(501), amount="5.00")

    assert paid.reservation.status == ReservationStatus.CONFIRMED


async def test_dispatcher_end_to_end_with_service(session, async_session_maker, settings, clock):
    dispatcher = PreferenceNotificationDispatcher(async_session_maker)
    service = ReservationService(notifier=dispatcher, settings=settings, utc_now=clock)
    biz = await make_business(session)
    listing = await make_listing(session, biz, title="Croissants", quantity=2)

    [r] = await service.create(
        session,
        customer_id=503,
        items=[LineRequest(listing.id, 2)],
        pickup_time=NOW + timedelta(hours=1),
    )
    await service.cancel(session, r.id, actor=customer(503))

    rows = await _inbox(async_session_maker, 503)
    assert [row.kind for row in rows] == ["RESERVATION_CREATED", "STATUS_CHANGED"]
    assert "Croissants x2" in rows[1].message
