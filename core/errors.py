from __future__ import annotations


class GenerationError(Exception):
    """Base class for failures that abort session generation before any write."""

    code = "GENERATION_ERROR"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(GenerationError):
    code = "NOT_FOUND"


class ForbiddenError(GenerationError):
    code = "FORBIDDEN"


class DataIntegrityError(GenerationError):
    code = "DATA_INTEGRITY"


class PatchValidationError(GenerationError, ValueError):
    code = "INVALID_PATCH"
