"""
LOGISTICS App - Django Signals

Guard offer status writes so they only happen through DeliveryLifecycle.
"""

import logging
from django.db.models.signals import pre_save
from django.dispatch import receiver

from core.exceptions import InvalidTransition
from logistics.models import Offer, OfferStatus

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Offer)
def guard_offer_status(sender, instance, raw=False, **kwargs):
    """
    Reject status changes that bypass the lifecycle.

    New offers must start 'open'. On update, a changed status must match
    the one DeliveryLifecycle.update_status() authorized on this instance.
    """
    if raw:
        return

    if instance._state.adding:
        if instance.status != OfferStatus.OPEN:
            raise InvalidTransition(f"Offers must be created '{OfferStatus.OPEN}', got '{instance.status}'")
        return

    previous = Offer.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
    if previous is None or previous == instance.status:
        return

    if getattr(instance, '_authorized_status', None) != instance.status:
        logger.warning(
            f"[SIGNAL] Blocked direct status write on offer {instance.pk}: {previous} → {instance.status}"
        )
        raise InvalidTransition(
            f"Offer status can only change through the delivery lifecycle ('{previous}' → '{instance.status}')"
        )
