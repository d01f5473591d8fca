"""Conversion factors between RAMSES code units and physical units.

A snapshot stores every quantity in code units defined by three numbers, ``unit_l`` [cm], ``unit_d`` [g cm^-3] and
``unit_t`` [s]. :class:`Scales` knows the code unit for each kind of quantity and turns a requested physical unit
into a multiplicative factor:

   >>> scale = Scales(unit_l=3.08e21, unit_d=6.77e-23, unit_t=4.7e14)
   >>> scale.factor('length', 'kpc')
   >>> scale.kpc          # same thing, the quantity kind is inferred

Units may be given as anything :func:`ramsesmap.units.Unit` parses (``"km s**-1"``) or in the compact underscore
form common in RAMSES tooling (``km_s``, ``Msol_pc2``, ``g_cm3``). The string ``'standard'`` and ``None`` mean
code units.
"""

from __future__ import annotations

import collections
import re

from . import units
from .errors import InvalidArgument, UnknownIdentifier

# hydrogen mass fraction assumed by the RAMSES cooling module
X_FRAC = 0.76

Constants = collections.namedtuple('Constants', ['G', 'kB', 'mH', 'mp', 'Msol', 'pc', 'ly', 'Au', 'yr',
                                                 'Mearth', 'Mjupiter', 'eV'])


def physical_constants() -> Constants:
    """Physical constants in cgs units"""
    cgs_energy = units.erg
    return Constants(G=units.G.ratio(units.cm ** 3 * units.g ** -1 * units.s ** -2),
                     kB=units.k.ratio(cgs_energy / units.K),
                     mH=units.mH.ratio(units.g),
                     mp=units.m_p.ratio(units.g),
                     Msol=units.Msol.ratio(units.g),
                     pc=units.pc.ratio(units.cm),
                     ly=units.ly.ratio(units.cm),
                     Au=units.au.ratio(units.cm),
                     yr=units.yr.ratio(units.s),
                     Mearth=units.Mearth.ratio(units.g),
                     Mjupiter=units.Mjupiter.ratio(units.g),
                     eV=units.eV.ratio(cgs_energy))


constants = physical_constants()

# the order matters for attribute lookup: the first convertible kind wins
QUANTITY_KINDS = ('length', 'mass', 'time', 'velocity', 'density', 'surface_density', 'volume', 'area',
                  'pressure', 'temperature', 'energy', 'specific_energy', 'acceleration',
                  'angular_momentum', 'specific_angular_momentum', 'inverse_time', 'velocity2', 'potential',
                  'dimensionless')

_ALIASES = {'Msun': 'Msol',
            'km_s': 'km s**-1',
            'm_s': 'm s**-1',
            'cm_s': 'cm s**-1',
            'g_cm3': 'g cm**-3',
            'g_cm2': 'g cm**-2',
            'g_cms2': 'Ba',
            'g_cm_s2': 'Ba',
            'cm_s2': 'cm s**-2',
            'm_s2': 'm s**-2',
            'km_s2': 'km**2 s**-2',
            'erg_g': 'erg g**-1',
            'g_cm2_s': 'g cm**2 s**-1',
            'J_s': 'J s',
            'kpc_km_s': 'kpc km s**-1',
            'pc_km_s': 'pc km s**-1',
            'Msol_pc3': 'Msol pc**-3',
            'Msun_pc3': 'Msol pc**-3',
            'Msol_pc2': 'Msol pc**-2',
            'Msun_pc2': 'Msol pc**-2',
            'Msol_kpc2': 'Msol kpc**-2',
            'Msol_yr': 'Msol yr**-1',
            'T': 'K'}

_power_suffix = re.compile(r"^([A-Za-z_]*[A-Za-z])([23])$")

# names whose meaning is not a pure unit
_NUMBER_DENSITY_NAMES = ('nH', 'cm-3', 'cm3_inv')


def _with_power(token):
    match = _power_suffix.match(token)
    if match is not None and match.group(1) in units._registry:
        return match.group(1), int(match.group(2))
    return token, 1


def parse_unit(name: str | units.UnitBase) -> units.UnitBase:
    """Turn a unit name, including underscore aliases such as ``km_s`` or ``Msol_pc2``, into a unit object.

    Raises UnknownIdentifier if the name cannot be interpreted."""
    if units.is_unit(name):
        return name
    if not isinstance(name, str):
        raise UnknownIdentifier("Unit names must be strings, not %r" % (name,))

    name = _ALIASES.get(name, name)

    if name in units._registry or " " in name or "**" in name or "^" in name:
        return units.Unit(name)

    # compact form: numerator_denominator1_denominator2 with optional trailing power digits
    tokens = name.split("_")
    if any(t == "" for t in tokens):
        raise UnknownIdentifier("Unknown unit " + name)
    parts = []
    for i, token in enumerate(tokens):
        base, power = _with_power(token)
        if base not in units._registry:
            raise UnknownIdentifier("Unknown unit " + name)
        parts.append("%s**%d" % (base, power if i == 0 else -power))
    return units.Unit(" ".join(parts))


def is_standard(unit) -> bool:
    """Return True if the unit specification means code units"""
    return unit is None or (isinstance(unit, str) and unit in ('standard', 'code'))


class Scales:
    """Factors converting code units into physical units, for one snapshot"""

    def __init__(self, unit_l: float, unit_d: float, unit_t: float):
        self._unit_l = float(unit_l)
        self._unit_d = float(unit_d)
        self._unit_t = float(unit_t)

        length = unit_l * units.cm
        time = unit_t * units.s
        mass = unit_d * unit_l ** 3 * units.g
        velocity = length / time
        temperature_factor = constants.mH / constants.kB * (unit_l / unit_t) ** 2 / X_FRAC

        self._code_units = {
            'length': length,
            'area': length ** 2,
            'volume': length ** 3,
            'time': time,
            'inverse_time': time ** -1,
            'mass': mass,
            'density': mass / length ** 3,
            'surface_density': mass / length ** 2,
            'velocity': velocity,
            'velocity2': velocity ** 2,
            'specific_energy': velocity ** 2,
            'potential': velocity ** 2,
            'acceleration': velocity / time,
            'pressure': mass / length / time ** 2,
            'energy': mass * velocity ** 2,
            'angular_momentum': mass * length * velocity,
            'specific_angular_momentum': length * velocity,
            'temperature': temperature_factor * units.K,
            'dimensionless': units.CompositeUnit(1, [], []),
        }

    @property
    def unit_l(self):
        return self._unit_l

    @property
    def unit_d(self):
        return self._unit_d

    @property
    def unit_t(self):
        return self._unit_t

    @property
    def unit_m(self):
        return self._unit_d * self._unit_l ** 3

    @property
    def unit_v(self):
        return self._unit_l / self._unit_t

    def code_unit(self, kind: str) -> units.UnitBase:
        """The code unit of the given quantity kind, as a unit object"""
        try:
            return self._code_units[kind]
        except KeyError:
            raise UnknownIdentifier("Unknown quantity kind %r" % kind)

    def factor(self, kind: str, unit) -> float:
        """Return the number by which a value of the given kind in code units must be multiplied to obtain it in unit.

        Parameters
        ----------
        kind : str
            One of :data:`QUANTITY_KINDS`.
        unit : str | units.UnitBase | None
            The target unit. ``None`` or ``'standard'`` means code units (factor 1).

        Raises
        ------
        UnknownIdentifier
            If the unit name is not recognised.
        InvalidArgument
            If the unit is not convertible to the quantity kind.
        """
        code = self.code_unit(kind)
        if is_standard(unit):
            return 1.0
        if kind == 'density' and isinstance(unit, str) and unit in _NUMBER_DENSITY_NAMES:
            return self._unit_d * X_FRAC / constants.mH
        target = parse_unit(unit)
        try:
            return code.ratio(target)
        except units.UnitsException:
            raise units.UnitsException("Cannot express %s in %s" % (kind.replace("_", " "), unit))

    def kind_of(self, unit) -> str:
        """Return the first quantity kind that unit is convertible to"""
        target = parse_unit(unit)
        for kind in QUANTITY_KINDS:
            if self._code_units[kind].convertible_to(target):
                return kind
        raise InvalidArgument("Unit %s does not correspond to any known quantity" % unit)

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name in _NUMBER_DENSITY_NAMES:
            return self.factor('density', name)
        try:
            kind = self.kind_of(name)
        except (UnknownIdentifier, InvalidArgument):
            raise AttributeError("No scale factor called %r" % name)
        return self.factor(kind, name)

    def __repr__(self):
        return "<Scales unit_l=%.3e cm unit_d=%.3e g/cm^3 unit_t=%.3e s>" % (self._unit_l, self._unit_d,
                                                                            self._unit_t)
