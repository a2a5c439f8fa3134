"""
Shared builders for logistics and finance tests.
"""

from decimal import Decimal

from core.models import User, UserRole, VehicleType
from logistics.lifecycle import DeliveryLifecycle
from logistics.models import Offer, OfferStatus
from logistics.utils import to_point

# Empire State Building → Central Park (≈ 4.3 km)
PICKUP = [-73.9857, 40.7484]
DELIVERY = [-73.9680, 40.7851]

COURIER_PATH = [OfferStatus.ACCEPTED, OfferStatus.PICKED_UP, OfferStatus.IN_TRANSIT, OfferStatus.DELIVERED]


def make_requester(phone='+15551000001', role=UserRole.CLIENT, **extra):
    return User.objects.create_user(phone_number=phone, role=role, full_name=extra.pop('full_name', 'Test Client'), **extra)


def make_courier(phone='+15552000001', vehicle_type=VehicleType.BIKE, **extra):
    return User.objects.create_user(
        phone_number=phone,
        role=UserRole.COURIER,
        vehicle_type=vehicle_type,
        full_name=extra.pop('full_name', 'Test Courier'),
        **extra
    )


def make_offer(requester, amount='25.50', **extra):
    offer = Offer(
        requester=requester,
        title=extra.pop('title', 'Documents'),
        pickup_address='350 5th Ave, New York',
        pickup_location=to_point(PICKUP),
        delivery_address='Central Park, New York',
        delivery_location=to_point(DELIVERY),
        payment_amount=Decimal(amount),
        **extra
    )
    offer.save()
    return offer


def advance(offer, courier, until=OfferStatus.DELIVERED):
    """Drive an open offer along the courier path up to and including `until`."""
    lifecycle = DeliveryLifecycle(offer)
    for status in COURIER_PATH:
        lifecycle.update_status(status, courier)
        if status == until:
            break
    lifecycle.save()
    return offer


def complete(offer, requester):
    lifecycle = DeliveryLifecycle(offer)
    lifecycle.update_status(OfferStatus.COMPLETED, requester)
    lifecycle.save()
    return offer
