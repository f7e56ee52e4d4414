"""Exceptions raised by the break scheduler and its adapters."""

from __future__ import annotations


class StretchBreakError(Exception):
    """Base class for errors reported to callers."""


class InvalidOperation(StretchBreakError):
    """A command is not allowed in the current presence mode."""


class PersistenceUnavailable(StretchBreakError):
    """Scheduler state could not be saved or loaded."""
