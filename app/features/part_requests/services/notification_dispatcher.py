"""
Notification dispatcher.

Turns lifecycle events into per-recipient notification records. Record
creation is the whole job here: delivery over WhatsApp/SMS/email is done
by a separate channel worker that flips `sent`.

Nothing in this module raises into the caller. A failed record is logged
and counted, and the triggering operation carries on. Each record carries
an event key so a retried event does not produce a second row for the
same recipient.
"""

from decimal import Decimal

from app.config import settings
from app.features.part_requests.domain.models import (
    FanOutResult,
    NotificationChannel,
    NotificationRecord,
    Offer,
    PartRequest,
    Profile,
)
from app.features.part_requests.repository.notification_repository import NotificationRepository
from app.features.part_requests.repository.profile_repository import ProfileRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _format_price(price: Decimal) -> str:
    return f"{price:,.2f}"


class NotificationDispatcher:
    def __init__(
        self,
        channel: NotificationChannel | None = None,
        currency_code: str | None = None,
    ):
        self.channel = channel or NotificationChannel(settings.NOTIFICATION_CHANNEL)
        self.currency_code = currency_code or settings.CURRENCY_CODE

    async def dispatch(
        self,
        user_id: str,
        destination: str,
        message: str,
        *,
        event_key: str | None = None,
        channel: NotificationChannel | None = None,
    ) -> NotificationRecord | None:
        """
        Create one notification record.

        Returns the record (the existing one if this event was already
        recorded for the recipient), or None if it could not be written.
        """
        channel = channel or self.channel
        try:
            record = await NotificationRepository.create(
                user_id=user_id,
                channel=channel,
                destination=destination,
                message=message,
                event_key=event_key,
            )
        except Exception as e:
            logger.error(
                "Failed to create notification",
                user_id=user_id,
                channel=channel.value,
                destination=destination,
                event_key=event_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if record:
            logger.info(
                "Notification queued",
                notification_id=record.id,
                user_id=user_id,
                channel=channel.value,
                event_key=event_key,
            )
        return record

    async def fan_out(
        self, recipients: list[Profile], message: str, event_key: str
    ) -> FanOutResult:
        """One independent record per recipient; a failure never stops the loop."""
        result = FanOutResult()

        for recipient in recipients:
            if not recipient.phone:
                result.skipped.append(recipient.id)
                continue

            record = await self.dispatch(recipient.id, recipient.phone, message, event_key=event_key)
            if record is None:
                result.failed.append(recipient.id)
            else:
                result.created.append(record)

        logger.info(
            "Notification fan-out finished",
            event_key=event_key,
            created=len(result.created),
            skipped=len(result.skipped),
            failed=len(result.failed),
        )
        return result

    async def _lookup_profile(self, user_id: str) -> Profile | None:
        try:
            return await ProfileRepository.get(user_id)
        except Exception as e:
            logger.error("Profile lookup failed", user_id=user_id, error=str(e))
            return None

    async def notify_new_request(self, request: PartRequest) -> FanOutResult:
        """Tell every supplier whose location matches that a request was published."""
        try:
            suppliers = await ProfileRepository.find_suppliers_by_location(request.location)
        except Exception as e:
            logger.error(
                "Supplier lookup failed, no new-request notifications sent",
                request_id=request.id,
                error=str(e),
            )
            return FanOutResult()

        recipients = [s for s in suppliers if s.id != request.owner_id]
        message = (
            f"New part request: {request.part_name} for {request.car_make} "
            f"{request.car_model} ({request.car_year}) in {request.location}. "
            f"Request ID: {request.id}"
        )
        return await self.fan_out(recipients, message, event_key=f"new_request:{request.id}")

    async def notify_new_offer(
        self, request: PartRequest, offer: Offer
    ) -> NotificationRecord | None:
        message = (
            f"You received an offer of {self.currency_code} {_format_price(offer.price)} "
            f"for your {request.part_name} request from a verified supplier!"
        )
        return await self.dispatch(
            request.owner_id, request.phone, message, event_key=f"new_offer:{offer.id}"
        )

    async def notify_offer_accepted(self, request: PartRequest, offer: Offer) -> FanOutResult:
        """Buyer gets a confirmation; the seller learns their offer won."""
        result = FanOutResult()
        event_key = f"offer_accepted:{offer.id}"

        buyer_record = await self.dispatch(
            request.owner_id,
            request.phone,
            f"You accepted an offer of {self.currency_code} {_format_price(offer.price)} "
            f"for your {request.part_name} request.",
            event_key=event_key,
        )
        if buyer_record is None:
            result.failed.append(request.owner_id)
        else:
            result.created.append(buyer_record)

        seller = await self._lookup_profile(offer.seller_id)
        if seller is None or not seller.phone:
            result.skipped.append(offer.seller_id)
            return result

        seller_record = await self.dispatch(
            seller.id,
            seller.phone,
            f"Your offer for {request.part_name} ({request.vehicle}) was accepted!",
            event_key=event_key,
        )
        if seller_record is None:
            result.failed.append(seller.id)
        else:
            result.created.append(seller_record)
        return result

    async def notify_offer_rejected(
        self, request: PartRequest, offer: Offer
    ) -> NotificationRecord | None:
        seller = await self._lookup_profile(offer.seller_id)
        if seller is None or not seller.phone:
            logger.info("Seller has no phone, rejection not notified", offer_id=offer.id)
            return None

        return await self.dispatch(
            seller.id,
            seller.phone,
            f"Your offer for {request.part_name} ({request.vehicle}) was declined.",
            event_key=f"offer_rejected:{offer.id}",
        )

    async def notify_contact_unlocked(self, request: PartRequest, offer: Offer) -> FanOutResult:
        """Each party receives the counterpart's phone number."""
        result = FanOutResult()
        event_key = f"contact_unlocked:{offer.id}"

        seller = await self._lookup_profile(offer.seller_id)
        seller_phone = seller.phone if seller else None

        if seller_phone:
            buyer_record = await self.dispatch(
                request.owner_id,
                request.phone,
                f"Payment confirmed! Supplier contact: {seller_phone}. "
                "You can now contact them directly.",
                event_key=event_key,
            )
            if buyer_record is None:
                result.failed.append(request.owner_id)
            else:
                result.created.append(buyer_record)
        else:
            logger.warning(
                "Seller has no phone on file, buyer not sent contact",
                offer_id=offer.id,
                seller_id=offer.seller_id,
            )
            result.skipped.append(request.owner_id)

        if seller_phone:
            seller_record = await self.dispatch(
                offer.seller_id,
                seller_phone,
                f"Customer paid for your offer! Customer contact: {request.phone}",
                event_key=event_key,
            )
            if seller_record is None:
                result.failed.append(offer.seller_id)
            else:
                result.created.append(seller_record)
        else:
            result.skipped.append(offer.seller_id)

        return result

    async def notify_transaction_completed(
        self, request: PartRequest, offer: Offer
    ) -> NotificationRecord | None:
        return await self.dispatch(
            request.owner_id,
            request.phone,
            f"Your {request.part_name} purchase is complete. Please rate your seller.",
            event_key=f"transaction_completed:{offer.id}",
        )

    async def notify_status_update(
        self, request: PartRequest, message: str
    ) -> NotificationRecord | None:
        # Custom admin messages are not deduplicated
        return await self.dispatch(request.owner_id, request.phone, message)


part_request_notification_dispatcher = NotificationDispatcher()
