"""Errors raised at the parsing and I/O boundaries."""

from __future__ import annotations


class ParseError(ValueError):
    """A time, date or timezone string could not be resolved to an instant."""


class FetchFailure(RuntimeError):
    """The event snapshot could not be retrieved or written.

    A booking must never proceed when this is raised: an unknown snapshot is
    not a free slot.
    """


class EventNotFound(LookupError):
    """No stored event has the requested id."""
