"""Tests for outbound event publishing and notification builders."""
import json
from uuid import uuid4

import fakeredis

from core.redis import RedisClient
from models.user import User
from services import notifications
from services.events import (
    EventQueue,
    NullEventPublisher,
    OutboundEvent,
    RedisEventPublisher,
)
from tests.helpers import RecordingEventPublisher


def _user() -> User:
    return User(id=uuid4(), email="events@example.com", name="Eve", password_hash="h")


class TestRedisEventPublisher:
    """Tests for pushing events onto Redis lists."""

    async def test__publish__pushes_json_onto_queue(
        self,
        redis_client: RedisClient,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """Events land on <prefix>:<queue> as JSON."""
        publisher = RedisEventPublisher(redis_client, prefix="jobs")
        event = notifications.welcome_email(_user())

        assert await publisher.publish(event) is True

        raw = await fake_redis.lrange("jobs:email", 0, -1)
        assert len(raw) == 1
        job = json.loads(raw[0])
        assert job["name"] == "welcome_email"
        assert job["queue"] == "email"
        assert job["payload"]["to"] == "events@example.com"
        assert job["priority"] == 5
        assert job["attempts"] == 3
        assert job["id"] == event.id

    async def test__publish__newest_first(
        self,
        redis_client: RedisClient,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """LPUSH puts the latest event at the head of the list."""
        publisher = RedisEventPublisher(redis_client)
        user = _user()
        await publisher.publish(notifications.analytics("user_registered", user))
        await publisher.publish(notifications.analytics("user_login", user))

        raw = await fake_redis.lrange("queue:analytics", 0, -1)
        assert [json.loads(r)["name"] for r in raw] == ["user_login", "user_registered"]

    async def test__publish__redis_down_returns_false(self) -> None:
        """A disabled Redis drops the event without raising."""
        client = RedisClient("redis://unused", enabled=False)
        publisher = RedisEventPublisher(client)
        assert await publisher.publish(notifications.welcome_push(_user())) is False

    def test__queue_key(self) -> None:
        """Queue keys combine prefix and queue name."""
        publisher = RedisEventPublisher(RedisClient("redis://unused"), prefix="q")
        assert publisher.queue_key(EventQueue.NOTIFICATION) == "q:notification"


class TestNullEventPublisher:
    """Tests for the disabled publisher."""

    async def test__publish__always_false(self) -> None:
        """Nothing is enqueued."""
        event = OutboundEvent(queue=EventQueue.EMAIL, name="x", payload={})
        assert await NullEventPublisher().publish(event) is False


class TestNotificationBuilders:
    """Tests for the shape of built events."""

    def test__verification_email__carries_link(self) -> None:
        """The plaintext token is embedded in the verification link."""
        event = notifications.verification_email(_user(), "tok123", "https://app.test")

        assert event.queue == EventQueue.EMAIL
        assert event.payload["data"]["verificationToken"] == "tok123"
        assert event.payload["data"]["verificationUrl"] == (
            "https://app.test/verify-email?token=tok123"
        )

    def test__password_reset_email__high_priority_more_attempts(self) -> None:
        """Reset emails jump the queue and retry harder."""
        event = notifications.password_reset_email(_user(), "r", "https://app.test")

        assert event.priority == notifications.HIGH_PRIORITY
        assert event.attempts == 5
        assert event.payload["data"]["resetUrl"] == "https://app.test/reset-password?token=r"

    def test__push__addressed_by_user_id(self) -> None:
        """Push notifications target the user id."""
        user = _user()
        event = notifications.email_verified_push(user)

        assert event.queue == EventQueue.NOTIFICATION
        assert event.payload["userId"] == str(user.id)
        assert event.payload["data"] == {"type": "email-verified"}

    def test__analytics__low_priority_with_metadata(self) -> None:
        """Analytics events default to empty metadata."""
        event = notifications.analytics("user_login", _user())

        assert event.queue == EventQueue.ANALYTICS
        assert event.priority == 1
        assert event.payload["metadata"] == {}

    def test__to_json__serializable(self) -> None:
        """Events serialize to plain JSON."""
        data = json.loads(notifications.welcome_push(_user()).to_json())
        assert data["queue"] == "notification"
        assert data["payload"]["title"] == "Welcome!"


class TestDispatch:
    """Tests for sending batches of events."""

    async def test__dispatch__counts_successes_in_order(self) -> None:
        """Every event is published in order and counted."""
        publisher = RecordingEventPublisher()
        user = _user()

        sent = await notifications.dispatch(
            publisher,
            notifications.welcome_email(user),
            notifications.welcome_push(user),
        )

        assert sent == 2
        assert publisher.names() == ["welcome_email", "welcome_push"]

    async def test__dispatch__failures_do_not_raise(self) -> None:
        """A publisher that drops events yields a zero count."""
        sent = await notifications.dispatch(
            NullEventPublisher(), notifications.welcome_push(_user()),
        )
        assert sent == 0
