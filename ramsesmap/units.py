"""
Light-weight units module. A simple set of classes for tracking units.

Making units
============

You can make units in two ways. Either you can create a string, and
instantiate a Unit like this:

   units.Unit("Msol kpc**-3")
   units.Unit("2.1e12 m_p cm^-2")

Or you can do it within python, using the predefined Unit objects

   units.Msol * units.kpc**-3
   2.1e12 * units.m_p * units.cm**-2

Fractional powers are given either as a tuple ``(numerator, denominator)`` or
as a :class:`fractions.Fraction`.


Getting conversion ratios
=========================

To convert one unit to another, use the ``ratio`` member function:

   units.Msol.ratio(units.kg)  # ->  1.99e30
   (units.Msol / units.kpc**3).ratio(units.m_p/units.cm**3) # -> 4.04e-8

If the units cannot be converted, a UnitsException is raised:

   units.Msol.ratio(units.kpc)  # -> UnitsException

Unknown unit names in strings raise :class:`ramsesmap.errors.UnknownIdentifier`.

Defining new base units
=======================

The module is extensible: you can define and name your own units which then
integrate with all the standard functions.

   litre = units.NamedUnit("litre", 0.001*units.m**3)
   (units.pc**3).ratio(litre) # 2.94e52

"""

from __future__ import annotations

from fractions import Fraction

from .errors import InvalidArgument, UnknownIdentifier

_registry = {}


class UnitsException(InvalidArgument):
    pass


class UnitBase:
    """Base class for units"""

    def __init__(self):
        raise ValueError("Cannot directly initialize abstract base class")

    def __pow__(self, p):
        if isinstance(p, tuple):
            p = Fraction(p[0], p[1])
        return CompositeUnit(1, [self], [p]).simplify()

    def __truediv__(self, m):
        if isinstance(m, UnitBase):
            return CompositeUnit(1, [self, m], [1, -1]).simplify()
        else:
            return CompositeUnit(1.0 / m, [self], [1]).simplify()

    def __rtruediv__(self, m):
        return CompositeUnit(m, [self], [-1]).simplify()

    def __mul__(self, m):
        if isinstance(m, UnitBase):
            return CompositeUnit(1, [self, m], [1, 1]).simplify()
        else:
            return CompositeUnit(m, [self], [1]).simplify()

    def __rmul__(self, m):
        return CompositeUnit(m, [self], [1]).simplify()

    def __repr__(self):
        return 'Unit("' + str(self) + '")'

    def simplify(self):
        return self

    def is_dimensionless(self):
        return False

    def ratio(self, other: str | UnitBase) -> float:
        """Get the conversion ratio between this Unit and another specified unit"""

        if isinstance(other, str):
            other = Unit(other)

        try:
            return (self / other).dimensionless_constant()
        except UnitsException:
            raise UnitsException("Not convertible: %s to %s" % (self, other))

    def convertible_to(self, other: str | UnitBase) -> bool:
        """Return True if this unit can be converted into other"""
        try:
            self.ratio(other)
        except UnitsException:
            return False
        return True

    def irrep(self):
        """Return a unit equivalent to this one (may be identical) but
        expressed in terms of the currently defined IrreducibleUnit
        instances."""
        return self

    def _register_unit(self, st):
        if st in _registry:
            raise UnitsException("Unit with this name already exists")
        if "**" in st or "^" in st or " " in st:
            # will cause problems for simple string parser in Unit() factory
            raise UnitsException("Unit names cannot contain '**' or '^' or spaces")
        _registry[st] = self


class IrreducibleUnit(UnitBase):
    def __init__(self, st):
        self._st_rep = st
        self._register_unit(st)

    def __str__(self):
        return self._st_rep

    def irrep(self):
        return CompositeUnit(1, [self], [1])


class NamedUnit(UnitBase):
    def __init__(self, st, represents):
        self._st_rep = st
        self._represents = represents
        self._register_unit(st)

    def __str__(self):
        return self._st_rep

    def irrep(self):
        return self._represents.irrep()


class CompositeUnit(UnitBase):
    def __init__(self, scale, bases, powers):
        if scale == 1.:
            scale = 1

        self._scale = scale
        self._bases = bases
        self._powers = powers

    def __str__(self):
        s = None
        if len(self._bases) == 0:
            return "%.2e" % self._scale

        if self._scale != 1:
            s = "%.2e" % self._scale

        for b, p in zip(self._bases, self._powers):
            if s is not None:
                s += " " + str(b)
            else:
                s = str(b)

            if p != 1:
                s += "**" + str(p)
        return s

    def _expand(self, expand_to_irrep=False):
        """Internal routine to expand any pointers to composite units
        into direct pointers to the base units. If expand_to_irrep is
        True, everything is expressed in irreducible units.
        A _gather will normally be necessary to sanitize the unit
        after an _expand."""

        trash = []

        for i, (b, p) in enumerate(zip(self._bases, self._powers)):
            if isinstance(b, NamedUnit) and expand_to_irrep:
                b = b._represents.irrep()
            elif isinstance(b, IrreducibleUnit):
                continue

            if isinstance(b, CompositeUnit):
                if expand_to_irrep:
                    b = b.irrep()

                trash.append(i)
                self._scale *= b._scale ** p
                for b_sub, p_sub in zip(b._bases, b._powers):
                    self._bases.append(b_sub)
                    self._powers.append(p_sub * p)

        for offset, i in enumerate(trash):
            del self._bases[i - offset]
            del self._powers[i - offset]

    def _gather(self):
        """Internal routine to gather together powers of the same base
        units, then order the base units by their power (descending)"""

        bases = []
        for b in self._bases:
            if not any(b is existing for existing in bases):
                bases.append(b)
        powers = [sum([p for bi, p in zip(self._bases, self._powers) if bi is b])
                  for b in bases]

        bp = sorted([x for x in zip(powers, bases) if x[0] != 0], key=lambda x: x[0], reverse=True)

        if len(bp) != 0:
            self._powers, self._bases = map(list, zip(*bp))
        else:
            self._powers, self._bases = [], []

    def copy(self):
        """Create a copy which is 'shallow' in the sense that it
        references exactly the same underlying base units, but where
        the list of those units can be manipulated separately."""
        return CompositeUnit(self._scale, self._bases[:], self._powers[:])

    def __copy__(self):
        """For compatibility with python copy module"""
        return self.copy()

    def simplify(self):
        self._expand()
        self._gather()
        return self

    def irrep(self):
        x = self.copy()
        x._expand(True)
        x._gather()
        return x

    def is_dimensionless(self):
        x = self.irrep()
        return len(x._powers) == 0

    def dimensionless_constant(self):
        x = self.irrep()
        if len(x._bases) != 0:
            raise UnitsException("Not dimensionless")
        return float(x._scale)


def Unit(s: str | UnitBase) -> UnitBase:
    """Class factory for units. Given a string s, creates
    a Unit object.

    The string format is:
      [<scale>] [<unit_name>][**<rational_power>] [[<unit_name>] ... ]

    for example:
      "1.e30 kg"
      "kpc**2"
      "26.2 m s**-1"
      "Msol pc^-2"
    """

    if isinstance(s, UnitBase):
        return s

    x = s.split()
    if len(x) == 0:
        raise UnknownIdentifier("Empty unit specification")
    try:
        scale = float(x[0])
        del x[0]
    except ValueError:
        scale = 1.0

    units = []
    powers = []

    for com in x:
        if "**" in com or "^" in com:
            parts = com.split("**" if "**" in com else "^")
            name = parts[0]
            try:
                p = Fraction(parts[1])
            except ValueError:
                raise UnknownIdentifier("Cannot parse power in unit %r" % com)
            if p.denominator == 1:
                p = p.numerator
        else:
            name = com
            p = 1

        try:
            u = _registry[name]
        except KeyError:
            raise UnknownIdentifier("Unknown unit " + name)

        units.append(u)
        powers.append(p)

    return CompositeUnit(scale, units, powers).simplify()


def is_unit(s) -> bool:
    """Returns True if s is a unit object"""
    return isinstance(s, UnitBase)


def registered_names() -> list[str]:
    """Names of every unit known to the string parser"""
    return sorted(_registry)


m = IrreducibleUnit("m")
s = IrreducibleUnit("s")
kg = IrreducibleUnit("kg")
K = IrreducibleUnit("K")

# Times
ms = NamedUnit("ms", 1.e-3 * s)
yr = NamedUnit("yr", 3.15576e7 * s)
kyr = NamedUnit("kyr", 1000 * yr)
Myr = NamedUnit("Myr", 1000 * kyr)
Gyr = NamedUnit("Gyr", 1000 * Myr)

# Distances
um = NamedUnit("um", 1.e-6 * m)
mm = NamedUnit("mm", 1.e-3 * m)
cm = NamedUnit("cm", 0.01 * m)
km = NamedUnit("km", 1000 * m)
au = NamedUnit("au", 1.495978707e11 * m)
Au = NamedUnit("Au", au)
ly = NamedUnit("ly", 9.4607304725808e15 * m)
pc = NamedUnit("pc", 3.08567758e16 * m)
mpc = NamedUnit("mpc", 1.e-3 * pc)
kpc = NamedUnit("kpc", 1000 * pc)
Mpc = NamedUnit("Mpc", 1000 * kpc)
Gpc = NamedUnit("Gpc", 1000 * Mpc)

# Masses
Msol = NamedUnit("Msol", 1.98892e30 * kg)
Msun = NamedUnit("Msun", Msol)
Mearth = NamedUnit("Mearth", 5.9722e24 * kg)
Mjupiter = NamedUnit("Mjupiter", 1.89813e27 * kg)
g = NamedUnit("g", 1.e-3 * kg)
m_p = NamedUnit("m_p", 1.67262158e-27 * kg)
mH = NamedUnit("mH", 1.6600000e-27 * kg)
m_e = NamedUnit("m_e", 9.10938188e-31 * kg)

# Forces
N = NamedUnit("N", kg * m * s ** -2)
dyn = NamedUnit("dyn", g * cm * s ** -2)

# Energies
J = NamedUnit("J", N * m)
erg = NamedUnit("erg", 1.e-7 * J)
eV = NamedUnit("eV", 1.60217646e-19 * J)
keV = NamedUnit("keV", 1.e3 * eV)
MeV = NamedUnit("MeV", 1.e3 * keV)

# Pressures
Pa = NamedUnit("Pa", N / m ** 2)
Ba = NamedUnit("Ba", dyn / cm ** 2)

# Helpful physical quantities

k = 1.3806490e-23 * J / K
c = 299792458 * m / s
G = 6.67430e-11 * m ** 3 * kg ** -1 * s ** -2
