from rest_framework import status
from rest_framework.exceptions import APIException


class InvalidStateTransition(APIException):
    """Action attempted from a project status that does not permit it."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This action is not allowed in the project's current status."
    default_code = 'invalid_state_transition'


class ConflictError(APIException):
    """Duplicate transaction hash, duplicate vote or concurrent modification."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with an existing record."
    default_code = 'conflict'


class ExternalServiceError(APIException):
    """
    The escrow service failed, rejected the request or timed out.
    Local state is left untouched; ledger details stay in the logs.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The escrow service could not process the request. Please try again later."
    default_code = 'external_service_error'


class ReconciliationRequired(APIException):
    """
    The ledger accepted a transaction but the local write that should follow it failed.
    A ReconciliationItem is recorded for manual repair.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The request could not be completed. Our team has been notified."
    default_code = 'reconciliation_required'
