"""Exceptions raised by the pkgtrend evolution engine."""


class EvolutionError(ValueError):
    """Base class for invalid input handed to the engine."""


class InvalidDateError(EvolutionError):
    """A day is not a well-formed YYYY-MM-DD string or does not exist."""


class InvalidCountError(EvolutionError):
    """A downloads value is missing, negative, or not an integer."""


class InvalidRangeError(EvolutionError):
    """A start date falls after its end date."""


class InvalidGranularityError(EvolutionError):
    """An unknown granularity name was requested."""


class InvalidTimestampError(EvolutionError):
    """A release timestamp could not be parsed (strict resolution only)."""
