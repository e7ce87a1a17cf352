"""
Builders for the emails, push notifications and analytics events the auth
flows emit.

Every builder returns an OutboundEvent; `dispatch` sends a batch through the
publisher. A failed enqueue is logged by the publisher and never fails the
request that produced it.
"""
from typing import Any, TYPE_CHECKING

from services.events import EventPublisher, EventQueue, OutboundEvent

if TYPE_CHECKING:
    from models.user import User

HIGH_PRIORITY = 8


def welcome_email(user: "User") -> OutboundEvent:
    """Welcome email sent after registration."""
    return OutboundEvent(
        queue=EventQueue.EMAIL,
        name="welcome_email",
        payload={
            "to": user.email,
            "subject": "Welcome to Mobile App!",
            "template": "welcome",
            "data": {"name": user.name, "email": user.email},
        },
    )


def verification_email(user: "User", token: str, app_url: str) -> OutboundEvent:
    """Email carrying the plaintext verification token."""
    return OutboundEvent(
        queue=EventQueue.EMAIL,
        name="verification_email",
        payload={
            "to": user.email,
            "subject": "Verify Your Email",
            "template": "email-verification",
            "data": {
                "name": user.name,
                "verificationToken": token,
                "verificationUrl": f"{app_url}/verify-email?token={token}",
            },
        },
    )


def password_reset_email(user: "User", token: str, app_url: str) -> OutboundEvent:
    """Email carrying the plaintext password-reset token."""
    return OutboundEvent(
        queue=EventQueue.EMAIL,
        name="password_reset_email",
        payload={
            "to": user.email,
            "subject": "Password Reset Request",
            "template": "password-reset",
            "data": {
                "name": user.name,
                "resetToken": token,
                "resetUrl": f"{app_url}/reset-password?token={token}",
            },
        },
        priority=HIGH_PRIORITY,
        attempts=5,
    )


def _push(user: "User", name: str, title: str, body: str, kind: str) -> OutboundEvent:
    return OutboundEvent(
        queue=EventQueue.NOTIFICATION,
        name=name,
        payload={
            "userId": str(user.id),
            "title": title,
            "body": body,
            "data": {"type": kind},
        },
    )


def welcome_push(user: "User") -> OutboundEvent:
    """Push notification greeting a new user."""
    return _push(user, "welcome_push", "Welcome!", "Thanks for joining our app!", "welcome")


def password_reset_push(user: "User") -> OutboundEvent:
    """Push notification confirming a password reset."""
    return _push(
        user,
        "password_reset_push",
        "Password Reset",
        "Your password has been reset successfully.",
        "password-reset",
    )


def email_verified_push(user: "User") -> OutboundEvent:
    """Push notification confirming email verification."""
    return _push(
        user,
        "email_verified_push",
        "Email Verified",
        "Your email has been verified successfully!",
        "email-verified",
    )


def analytics(event: str, user: "User", metadata: dict[str, Any] | None = None) -> OutboundEvent:
    """Analytics event, e.g. ``user_registered`` or ``user_login``."""
    return OutboundEvent(
        queue=EventQueue.ANALYTICS,
        name=event,
        payload={"event": event, "userId": str(user.id), "metadata": metadata or {}},
        priority=1,
    )


async def dispatch(publisher: EventPublisher, *events: OutboundEvent) -> int:
    """
    Publish events in order.

    Returns:
        Number of events successfully enqueued.
    """
    sent = 0
    for event in events:
        if await publisher.publish(event):
            sent += 1
    return sent
