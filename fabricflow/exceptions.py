"""Error taxonomy of the roll lifecycle.

Every service in :mod:`fabricflow.services` raises one of these. Each class
describes how a terminal should react: ``level`` is the notification level
(``error`` blocks the workflow, ``warning`` does not), ``fatal`` means the
current workflow must be reset and a supervisor involved, ``reset_form`` means
the scan form is cleared so the operator can scan the next roll.
"""
from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class RollLifecycleError(Exception):
    code = "lifecycle_error"
    status_code = 400
    level = "error"
    fatal = False
    reset_form = False

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context

    def as_payload(self) -> dict:
        payload = {
            "error": self.message,
            "code": self.code,
            "level": self.level,
            "fatal": self.fatal,
            "reset_form": self.reset_form,
        }
        if self.context:
            payload["context"] = {k: str(v) for k, v in self.context.items()}
        return payload


class ValidationError(RollLifecycleError):
    """Bad input shape or range. Re-prompt."""

    code = "validation_error"


class CapacityExceededError(RollLifecycleError):
    code = "capacity_exceeded"
    status_code = 409

    def __init__(self, remaining_capacity: int, requested: int):
        super().__init__(
            f"Cannot assign {requested} rolls; only {remaining_capacity} remaining rolls",
            remaining_capacity=remaining_capacity,
            requested=requested,
        )
        self.remaining_capacity = remaining_capacity


class SequencingError(RollLifecycleError):
    code = "sequencing_error"
    status_code = 409

    def __init__(self, shift_name: str, remaining_rolls: int):
        super().__init__(
            f"Shift {shift_name} still has {remaining_rolls} remaining rolls; "
            "finish them before opening a new shift assignment",
            shift=shift_name,
            remaining_rolls=remaining_rolls,
        )
        self.shift_name = shift_name
        self.remaining_rolls = remaining_rolls


class IllegalTransitionError(RollLifecycleError):
    code = "illegal_transition"
    status_code = 409


class MalformedBarcodeError(RollLifecycleError):
    """Partial or corrupted scan. Re-scan."""

    code = "malformed_barcode"


class NotFoundError(RollLifecycleError):
    code = "not_found"
    status_code = 404
    fatal = True
    reset_form = True


class DuplicateConfirmationError(RollLifecycleError):
    code = "duplicate_confirmation"
    status_code = 409
    level = "warning"
    reset_form = True


class DuplicateScanError(RollLifecycleError):
    code = "duplicate_scan"
    status_code = 409
    level = "warning"
    reset_form = True


class AlreadyDispatchedError(RollLifecycleError):
    code = "already_dispatched"
    status_code = 409
    level = "warning"
    reset_form = True


class InvalidWeightError(RollLifecycleError):
    code = "invalid_weight"


class NegativeNetWeightError(RollLifecycleError):
    code = "negative_net_weight"


class WeightMismatchError(RollLifecycleError):
    """Measured net weight is outside the planned roll weight tolerance."""

    code = "weight_mismatch"
    status_code = 409


class WrongLotError(RollLifecycleError):
    code = "wrong_lot"
    status_code = 409


class LotCompleteError(RollLifecycleError):
    code = "lot_complete"
    status_code = 409


class NetworkError(RollLifecycleError):
    """Transient failure talking to the store or a device."""

    code = "network_error"
    status_code = 503
    level = "warning"


def api_exception_handler(exc, context):
    """DRF exception handler rendering lifecycle errors as JSON bodies."""
    if isinstance(exc, RollLifecycleError):
        logger.info("%s: %s", exc.code, exc.message)
        return Response(exc.as_payload(), status=exc.status_code)
    return exception_handler(exc, context)
