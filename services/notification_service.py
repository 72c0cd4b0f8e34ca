"""
Notification dispatch for booking events.

Delivery is fire-and-forget: a failed notification is logged and never
undoes the booking change that triggered it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from core.utils_time import format_date, utc_now
from domain.enums import EventType
from domain.events import DomainEvent, FreedSlot
from domain.models import ReservationRecord, WaitlistRecord


logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    """What was sent and to whom."""
    kind: str
    recipient: str
    method: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)


class NotificationDispatcher(Protocol):
    """Outbound notification channel."""

    def send_confirmation(self, reservation: ReservationRecord) -> Optional[NotificationResult]:
        ...

    def send_status_update(self, reservation: ReservationRecord) -> Optional[NotificationResult]:
        ...

    def send_cancellation(self, reservation: ReservationRecord) -> Optional[NotificationResult]:
        ...

    def send_waitlist_offer(self, entry: WaitlistRecord, slot: FreedSlot) -> Optional[NotificationResult]:
        ...

    def send_reminder(self, reservation: ReservationRecord) -> Optional[NotificationResult]:
        ...


def _recipient(phone: str, email: Optional[str]) -> tuple:
    return (email, "email") if email else (phone, "sms")


class LoggingNotificationDispatcher:
    """Formats guest messages and writes them to the log instead of a gateway."""

    def __init__(self, response_minutes: int = 30):
        self.response_minutes = response_minutes

    def _emit(self, kind: str, name: str, phone: str, email: Optional[str], message: str) -> NotificationResult:
        recipient, method = _recipient(phone, email)
        logger.info(
            f"{kind.upper()} notification to {name} via {method}",
            extra={"notification_kind": kind, "recipient": recipient, "body": message},
        )
        return NotificationResult(kind=kind, recipient=recipient, method=method, message=message)

    def send_confirmation(self, reservation: ReservationRecord) -> NotificationResult:
        message = (
            "Your reservation request has been received.\n\n"
            "Reservation Details:\n"
            f"- Date: {format_date(reservation.reservation_date)}\n"
            f"- Time: {reservation.start_time} - {reservation.end_time}\n"
            f"- Party Size: {reservation.party_size}\n"
            f"- Confirmation #: {reservation.confirmation_number}"
        )
        if reservation.special_requests:
            message += f"\n- Special Requests: {reservation.special_requests}"
        return self._emit(
            "reservation_received",
            reservation.customer_name,
            reservation.customer_phone,
            reservation.customer_email,
            message,
        )

    def send_status_update(self, reservation: ReservationRecord) -> NotificationResult:
        message = (
            "Your reservation has been CONFIRMED!\n\n"
            "Reservation Details:\n"
            f"- Date: {format_date(reservation.reservation_date)}\n"
            f"- Time: {reservation.start_time} - {reservation.end_time}\n"
            f"- Party Size: {reservation.party_size}\n"
            f"- Confirmation #: {reservation.confirmation_number}\n\n"
            "We look forward to seeing you!"
        )
        return self._emit(
            "reservation_confirmed",
            reservation.customer_name,
            reservation.customer_phone,
            reservation.customer_email,
            message,
        )

    def send_cancellation(self, reservation: ReservationRecord) -> NotificationResult:
        message = (
            "Your reservation has been cancelled.\n\n"
            "Cancelled Reservation:\n"
            f"- Date: {format_date(reservation.reservation_date)}\n"
            f"- Time: {reservation.start_time}\n"
            f"- Party Size: {reservation.party_size}"
        )
        if reservation.cancellation_reason:
            message += f"\n- Reason: {reservation.cancellation_reason}"
        return self._emit(
            "reservation_cancelled",
            reservation.customer_name,
            reservation.customer_phone,
            reservation.customer_email,
            message,
        )

    def send_waitlist_offer(self, entry: WaitlistRecord, slot: FreedSlot) -> NotificationResult:
        message = (
            "Great news! A table is now available!\n\n"
            "Available Slot:\n"
            f"- Date: {format_date(slot.reservation_date)}\n"
            f"- Time: {slot.start_time} - {slot.end_time}\n"
            f"- Party Size: {entry.party_size}\n\n"
            f"Please respond within {self.response_minutes} minutes to confirm your reservation."
        )
        return self._emit(
            "waitlist_offer",
            entry.customer_name,
            entry.customer_phone,
            entry.customer_email,
            message,
        )

    def send_reminder(self, reservation: ReservationRecord) -> NotificationResult:
        message = (
            "Reminder: You have a reservation coming up!\n\n"
            "Reservation Details:\n"
            f"- Date: {format_date(reservation.reservation_date)}\n"
            f"- Time: {reservation.start_time}\n"
            f"- Party Size: {reservation.party_size}\n"
            f"- Confirmation #: {reservation.confirmation_number}"
        )
        return self._emit(
            "reservation_reminder",
            reservation.customer_name,
            reservation.customer_phone,
            reservation.customer_email,
            message,
        )


def dispatch_events(dispatcher: NotificationDispatcher, events: List[DomainEvent]) -> int:
    """
    Deliver the notifications implied by a list of events.

    Failures are logged with their traceback and skipped.

    Returns:
        Number of notifications handed to the dispatcher without error
    """
    delivered = 0
    for event in events:
        try:
            if event.event_type == EventType.RESERVATION_CREATED:
                dispatcher.send_confirmation(event.reservation)
            elif event.event_type == EventType.RESERVATION_CONFIRMED:
                dispatcher.send_status_update(event.reservation)
            elif event.event_type == EventType.RESERVATION_CANCELLED:
                dispatcher.send_cancellation(event.reservation)
            elif event.event_type == EventType.WAITLIST_OFFER:
                dispatcher.send_waitlist_offer(event.waitlist_entry, event.slot)
            elif event.event_type == EventType.RESERVATION_REMINDER:
                dispatcher.send_reminder(event.reservation)
            else:
                continue
            delivered += 1
        except Exception:
            logger.exception(f"Failed to send {event.event_type.value} notification")
    return delivered
