"""
Offer Workflow for LASTMILE

Entry point used by the API to move an offer through its lifecycle and
trigger the side effects each status carries.
"""

import logging

from django.db import transaction

from logistics.lifecycle import DeliveryLifecycle, TERMINAL_STATUSES
from logistics.models import Offer, OfferStatus
from logistics.services.tracking import LocationTracker

logger = logging.getLogger(__name__)


@transaction.atomic
def transition_offer(offer: Offer, new_status: str, actor, notes: str = '',
                     coordinates=None) -> Offer:
    """
    Apply a status transition and its side effects.

    - delivered: actual distance from the courier's trajectory (2+ points),
      actual duration from pickup to delivery
    - completed / cancelled: courier tracking for the offer is deactivated
    - completed: earnings are derived when the offer has a payment

    Raises whatever DeliveryLifecycle.update_status raises.
    """
    from finance.models import Payment
    from finance.services import LedgerEngine

    offer = Offer.objects.select_for_update().get(pk=offer.pk)
    lifecycle = DeliveryLifecycle(offer)
    lifecycle.update_status(new_status, actor, notes=notes, coordinates=coordinates)

    if new_status == OfferStatus.DELIVERED:
        _record_actuals(offer)

    lifecycle.save()

    if new_status in TERMINAL_STATUSES and offer.courier_id:
        LocationTracker.deactivate(offer.courier, offer)

    if new_status == OfferStatus.COMPLETED:
        payment = Payment.objects.filter(offer=offer).first()
        if payment is None:
            logger.warning(f"[WORKFLOW] Offer {str(offer.pk)[:8]} completed without a payment, no earnings yet")
        else:
            result = LedgerEngine.create_from_offer(offer, payment)
            if result.created:
                logger.info(f"[WORKFLOW] Earnings {result.earnings.pk} created for offer {str(offer.pk)[:8]}")

    return offer


def _record_actuals(offer: Offer):
    """Fill actual distance/duration from telemetry and timestamps."""
    start_time = offer.accepted_at
    distance = LocationTracker.trajectory_distance(offer.courier, offer, start_time=start_time)
    if distance > 0:
        offer.actual_distance = round(distance, 1)

    if offer.picked_up_at and offer.delivered_at:
        elapsed = offer.delivered_at - offer.picked_up_at
        offer.actual_duration = round(elapsed.total_seconds() / 60, 1)

