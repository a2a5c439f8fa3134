"""
LOGISTICS App - Delivery Lifecycle State Machine

The transition table below is the single source of truth for which status
changes are legal and which actor role may perform each of them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from core.exceptions import InsufficientRole, InvalidTransition
from .models import ActorRole, Offer, OfferStatus, OfferStatusHistory
from .utils import to_point, validate_coordinates

logger = logging.getLogger(__name__)


# ===========================================
# TRANSITION TABLE
# ===========================================
EITHER = frozenset({ActorRole.REQUESTER, ActorRole.COURIER})

TRANSITIONS = {
    (OfferStatus.OPEN, OfferStatus.ACCEPTED): frozenset({ActorRole.COURIER}),
    (OfferStatus.ACCEPTED, OfferStatus.PICKED_UP): frozenset({ActorRole.COURIER}),
    (OfferStatus.PICKED_UP, OfferStatus.IN_TRANSIT): frozenset({ActorRole.COURIER}),
    (OfferStatus.IN_TRANSIT, OfferStatus.DELIVERED): frozenset({ActorRole.COURIER}),
    (OfferStatus.DELIVERED, OfferStatus.COMPLETED): frozenset({ActorRole.REQUESTER}),
    (OfferStatus.OPEN, OfferStatus.CANCELLED): EITHER,
    (OfferStatus.ACCEPTED, OfferStatus.CANCELLED): EITHER,
}

TERMINAL_STATUSES = frozenset({OfferStatus.COMPLETED, OfferStatus.CANCELLED})

TIMESTAMP_FIELDS = {
    OfferStatus.ACCEPTED: 'accepted_at',
    OfferStatus.PICKED_UP: 'picked_up_at',
    OfferStatus.IN_TRANSIT: 'in_transit_at',
    OfferStatus.DELIVERED: 'delivered_at',
    OfferStatus.COMPLETED: 'completed_at',
    OfferStatus.CANCELLED: 'cancelled_at',
}


@dataclass(frozen=True)
class StatusChange:
    """A transition applied in memory, not yet persisted."""
    offer_id: object
    previous_status: str
    status: str
    actor: object
    actor_role: str
    notes: str
    timestamp: datetime
    coordinates: Optional[tuple] = None


class DeliveryLifecycle:
    """
    Wraps one Offer and applies status transitions to it.

    update_status() only mutates the in-memory offer and queues an audit
    entry; save() persists both in one database transaction.

    Usage:
        lifecycle = DeliveryLifecycle(offer)
        lifecycle.update_status(OfferStatus.ACCEPTED, courier)
        lifecycle.save()
    """

    def __init__(self, offer: Offer):
        self.offer = offer
        self._pending: List[StatusChange] = []

    # ==========================================
    # Queries
    # ==========================================

    @property
    def status(self) -> str:
        return self.offer.status

    @property
    def is_terminal(self) -> bool:
        return self.offer.status in TERMINAL_STATUSES

    @property
    def pending_changes(self) -> List[StatusChange]:
        return list(self._pending)

    def valid_next_statuses(self, role: str = None) -> List[str]:
        """Statuses reachable from the current one, optionally for one role."""
        return [
            to_status
            for (from_status, to_status), roles in TRANSITIONS.items()
            if from_status == self.offer.status and (role is None or role in roles)
        ]

    def status_info(self) -> dict:
        return {
            'status': self.offer.status,
            'is_terminal': self.is_terminal,
            'valid_next_statuses': self.valid_next_statuses(),
            'courier_id': self.offer.courier_id,
            'timestamps': {
                status: getattr(self.offer, field)
                for status, field in TIMESTAMP_FIELDS.items()
            },
        }

    @staticmethod
    def resolve_role(offer: Offer, actor) -> str:
        """
        Role the actor plays on this offer.

        The offer's requester acts as REQUESTER, any courier account as
        COURIER. Anyone else has no role on the offer.
        """
        if actor is None or getattr(actor, 'pk', None) is None:
            raise InsufficientRole("An authenticated actor is required")
        if offer.requester_id == actor.pk:
            return ActorRole.REQUESTER
        if actor.is_courier:
            return ActorRole.COURIER
        raise InsufficientRole(f"User {actor.pk} has no role on offer {offer.pk}")

    # ==========================================
    # Mutation
    # ==========================================

    def update_status(self, new_status: str, actor, notes: str = '',
                      coordinates=None) -> StatusChange:
        """
        Move the offer to new_status on behalf of actor.

        Raises:
            InvalidTransition: (current, new_status) is not in the table
            InsufficientRole: actor's role may not perform this edge, or a
                courier other than the assigned one acts after acceptance
        """
        offer = self.offer
        previous = offer.status
        allowed_roles = TRANSITIONS.get((previous, new_status))
        if allowed_roles is None:
            logger.warning(f"[LIFECYCLE] Rejected {previous} → {new_status} on offer {offer.pk}")
            raise InvalidTransition(f"Cannot change status from '{previous}' to '{new_status}'")

        role = self.resolve_role(offer, actor)
        if role not in allowed_roles:
            logger.warning(
                f"[LIFECYCLE] {role} {actor.pk} may not move offer {offer.pk} {previous} → {new_status}"
            )
            raise InsufficientRole(
                f"Only {' or '.join(sorted(allowed_roles))} may change status from '{previous}' to '{new_status}'"
            )

        if role == ActorRole.COURIER and new_status != OfferStatus.ACCEPTED:
            if offer.courier_id != actor.pk:
                raise InsufficientRole("Only the assigned courier can update this offer")

        if new_status not in (OfferStatus.ACCEPTED, OfferStatus.CANCELLED) and offer.courier_id is None:
            raise InvalidTransition(f"Offer {offer.pk} has no assigned courier")

        if coordinates is not None:
            coordinates = validate_coordinates(coordinates)

        now = timezone.now()
        if new_status == OfferStatus.ACCEPTED:
            offer.courier = actor
        offer.status = new_status
        setattr(offer, TIMESTAMP_FIELDS[new_status], now)
        offer._authorized_status = new_status

        change = StatusChange(
            offer_id=offer.pk,
            previous_status=previous,
            status=new_status,
            actor=actor,
            actor_role=role,
            notes=notes or '',
            timestamp=now,
            coordinates=coordinates,
        )
        self._pending.append(change)
        logger.info(f"[LIFECYCLE] Offer {str(offer.pk)[:8]} {previous} → {new_status} by {role}")
        return change

    def save(self) -> Offer:
        """Persist the offer and its queued audit entries atomically."""
        with transaction.atomic():
            self.offer.save()
            OfferStatusHistory.objects.bulk_create([
                OfferStatusHistory(
                    offer=self.offer,
                    previous_status=change.previous_status,
                    status=change.status,
                    actor=change.actor,
                    actor_role=change.actor_role,
                    notes=change.notes,
                    location=to_point(change.coordinates) if change.coordinates else None,
                    timestamp=change.timestamp,
                )
                for change in self._pending
            ])
        self._pending.clear()
        self.offer.__dict__.pop('_authorized_status', None)
        return self.offer
