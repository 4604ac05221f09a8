# backend/automatch/core/errors.py
"""
Error taxonomy for the matching pipeline.

- InputValidationError: bad input (vector dims, preference values); raised immediately.
- ConfigurationError: missing credentials / store; fatal for a run.
- ItemProcessingError: one candidate/job failed; recorded and skipped.

Policy outcomes (disabled, duplicate, threshold, daily cap) are not errors;
they come back as Decision(submit=False, reason=...).
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for pipeline errors."""


class InputValidationError(MatchingError, ValueError):
    pass


class ConfigurationError(MatchingError, RuntimeError):
    pass


class ItemProcessingError(MatchingError):
    """A single item failed at a given stage."""

    def __init__(self, message: str, *, entity_id: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.entity_id = entity_id
        self.stage = stage

    def __str__(self) -> str:
        base = super().__str__()
        if self.stage and self.entity_id:
            return f"[{self.stage}] {self.entity_id}: {base}"
        return base


__all__ = ["MatchingError", "InputValidationError", "ConfigurationError", "ItemProcessingError"]
