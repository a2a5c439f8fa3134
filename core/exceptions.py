"""
CORE App - Domain Errors

Typed failures raised by the lifecycle, tracking, ledger and geocoding
services, plus the DRF exception handler that maps them to responses.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for every business rule failure."""

    code = 'domain_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Operation rejected'

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DomainValidationError(DomainError, ValueError):
    """Rejected input. Also a ValueError so callers can catch it generically."""

    code = 'validation_error'


# ===========================================
# GEOSPATIAL
# ===========================================

class InvalidCoordinates(DomainValidationError):
    code = 'invalid_coordinates'
    default_message = 'Coordinates must be [longitude, latitude] within valid ranges'


class UnknownVehicleClass(DomainValidationError):
    code = 'unknown_vehicle_class'
    default_message = 'Unknown vehicle class'


# ===========================================
# DELIVERY LIFECYCLE
# ===========================================

class InvalidTransition(DomainError):
    code = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Status transition is not allowed'


class InsufficientRole(DomainError):
    code = 'insufficient_role'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Actor is not allowed to perform this transition'


# ===========================================
# LEDGER
# ===========================================

class TransactionNotCompleted(DomainValidationError):
    code = 'transaction_not_completed'
    default_message = 'Offer must be completed to generate earnings'


class NoAssignedCourier(DomainValidationError):
    code = 'no_assigned_courier'
    default_message = 'Offer has no assigned courier'


class PaymentRequired(DomainValidationError):
    code = 'payment_required'
    default_message = 'Payment record is required to generate earnings'


class InvalidBonusAmount(DomainValidationError):
    code = 'invalid_bonus_amount'
    default_message = 'Bonus amount must be positive'


class MissingAdjustmentAmount(DomainValidationError):
    code = 'missing_adjustment_amount'
    default_message = 'Adjustment amount is required'


class MissingAdjustmentReason(DomainValidationError):
    code = 'missing_adjustment_reason'
    default_message = 'Adjustment reason is required'


class InvalidPaymentStatus(DomainValidationError):
    code = 'invalid_payment_status'
    default_message = 'Invalid payment status'


class PaymentRetryUnavailable(DomainValidationError):
    code = 'payment_retry_unavailable'
    default_message = 'Only failed payments under the retry limit can be retried'


class InvalidPeriod(DomainValidationError):
    code = 'invalid_period'
    default_message = 'Invalid period. Must be one of: day, week, month, year'


# ===========================================
# GEOCODING
# ===========================================

class InvalidAddress(DomainValidationError):
    code = 'invalid_address'
    default_message = 'Address must be a non-empty string'


class ExternalGeocodingFailure(DomainError):
    """
    Provider or network failure while geocoding.

    The provider's message is kept in ``message``; raise it ``from`` the
    original exception so the cause stays attached.
    """

    code = 'geocoding_failed'
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = 'Geocoding provider failure'


# ===========================================
# DRF INTEGRATION
# ===========================================

def api_exception_handler(exc, context):
    """
    REST_FRAMEWORK['EXCEPTION_HANDLER'].

    Domain errors become {'error': ..., 'code': ...} with their status code;
    everything else goes through the default DRF handler.
    """
    if isinstance(exc, DomainError):
        view = context.get('view')
        logger.warning(
            f"[API] {exc.code} in {view.__class__.__name__ if view else 'unknown view'}: {exc.message}"
        )
        return Response(
            {'error': exc.message, 'code': exc.code},
            status=exc.status_code
        )
    return exception_handler(exc, context)
