"""Exception classes raised by ramsesmap.

All exceptions derive from :class:`RamsesMapError`, and additionally from the closest built-in exception so that
generic ``except ValueError`` or ``except KeyError`` clauses keep working.
"""


class RamsesMapError(Exception):
    """Base class for all errors raised by ramsesmap"""
    pass


class InvalidArgument(RamsesMapError, ValueError):
    """Raised for malformed arguments: inverted ranges, negative radii, mismatched lengths and similar"""
    pass


class UnknownIdentifier(RamsesMapError, KeyError):
    """Raised when a variable or unit name is not recognised"""

    def __str__(self):
        # KeyError quotes its argument, which is unhelpful for a sentence
        return str(self.args[0]) if self.args else ""


class DomainMissing(RamsesMapError, LookupError):
    """Raised when a data kind (hydro, particles, gravity, ...) is absent from a snapshot"""
    pass


class LevelOutOfRange(InvalidArgument):
    """Raised when lmin > lmax, or level bounds fall outside the available level range"""
    pass
