# Overview: Domain error taxonomy shared by services, routes, socket handlers and the device queue.

from __future__ import annotations


class PosError(Exception):
    """Base for domain errors. `details` is echoed to API callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(PosError):
    """400-level input problem (bad line item ids, empty selection, non-positive quantity)."""


class NotFoundError(PosError):
    """404-level: missing active order, menu item, category, user or sale."""

    status_code = 404


class ConflictError(PosError):
    """409-level business rule conflict (e.g., duplicate category name)."""

    status_code = 409


class AlreadyProcessed(ConflictError):
    """
    A sale with the same session id was already committed.

    Reported with HTTP 200 ("already paid"); device queues drop the entry.
    """

    status_code = 200


class TransientError(PosError):
    """Server or channel unreachable. Devices queue the mutation instead of failing."""

    status_code = 503


class UnsupportedOperation(PosError):
    """The remote has no endpoint for a queued mutation kind."""

    status_code = 501
