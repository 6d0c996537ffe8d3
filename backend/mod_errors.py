"""Error kinds raised by the mod subsystem.

Each kind carries the HTTP status the routes answer with, so callers can
branch on the class instead of matching message strings.
"""
from __future__ import annotations


class ModError(Exception):
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ModError):
    http_status = 404


class PreconditionError(ModError):
    http_status = 400


class AlreadyPatchedError(PreconditionError):
    http_status = 409


class NoPatchNeededError(PreconditionError):
    http_status = 400


class UnknownProviderError(PreconditionError):
    http_status = 400


class ProviderNotConfiguredError(PreconditionError):
    http_status = 400


class ConflictError(PreconditionError):
    http_status = 409


class ValidationError(ModError):
    http_status = 400


class InvalidArchiveError(ModError):
    http_status = 400


class UpstreamError(ModError):
    http_status = 502


class VerificationError(ModError):
    http_status = 500


class PersistenceError(ModError):
    http_status = 500
