"""Exceptions raised by readtop."""


class ReadtopError(Exception):
    """Base class for readtop errors."""


class SourceUnavailableError(ReadtopError):
    """An event source cannot be started on this host."""
