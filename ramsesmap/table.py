"""Column-oriented tables of AMR cells or particles.

A table holds one NumPy array per field, plus the metadata needed to interpret them. There are three kinds:

* :class:`HydroTable` -- AMR leaf cells with ``level``, ``cx``, ``cy``, ``cz`` and hydro fields (``rho``, ``vx``,
  ``vy``, ``vz``, ``p`` and passive scalars);
* :class:`GravityTable` -- AMR leaf cells with gravity fields (``epot``, ``ax``, ``ay``, ``az``);
* :class:`ParticleTable` -- particles with continuous positions ``x``, ``y``, ``z`` in code length units, velocities
  and ``mass``.

Integer cell coordinates are 1-based: cell ``cx`` at ``level`` spans ``[(cx-1), cx] * boxlen / 2**level`` along x.

Tables are immutable. Indexing with a field name returns a read-only array; indexing with a boolean mask or a
:class:`~ramsesmap.filt.Filter` returns a new, independent table:

>>> gas['rho']
>>> dense = gas[gas['rho'] > 10]
>>> inner = gas[ramsesmap.filt.Sphere(0.1, (0.5, 0.5, 0.5))]

Quantities that are not stored can be computed on the fly; see :mod:`ramsesmap.derived` and
:func:`ramsesmap.getvar.getvar`.
"""

from __future__ import annotations

import collections
import logging

import numpy as np

from .errors import InvalidArgument, LevelOutOfRange, UnknownIdentifier
from .info import SimulationInfo

logger = logging.getLogger('ramsesmap.table')

DerivedVariable = collections.namedtuple('DerivedVariable', ['function', 'quantity', 'extensive', 'centred'])

_GRID_FIELDS = ('level', 'cx', 'cy', 'cz')


class CellTable:
    """Base class for all table kinds. Use one of the subclasses to construct a table.

    Parameters
    ----------
    info : SimulationInfo
        Metadata for the snapshot the records come from. It is shared, never copied.
    columns : dict
        Mapping from field name to a one-dimensional array. All arrays must have the same length.
    lmin, lmax : int, optional
        The level bounds of the table. Default to the level range of *info*.
    ranges : sequence of 6 floats, optional
        The spatial bounds ``xmin, xmax, ymin, ymax, zmin, zmax`` in box-relative units. Default to the whole box.
    smallr, smallc : float, optional
        Density and sound speed floors of the run, carried along for reference.
    """

    kind = None

    _derived_array_registry = {}

    _required_fields = ()
    _positive_fields = ()
    _field_quantities = {'level': 'dimensionless', 'cx': 'dimensionless', 'cy': 'dimensionless',
                         'cz': 'dimensionless', 'id': 'dimensionless', 'family': 'dimensionless',
                         'cpu': 'dimensionless'}

    def __init__(self, info: SimulationInfo, columns: dict, lmin: int | None = None, lmax: int | None = None,
                 ranges=None, smallr: float = 0.0, smallc: float = 0.0):
        if not isinstance(info, SimulationInfo):
            raise TypeError("info must be a SimulationInfo instance")
        info.check_for_type(self.kind)

        self._info = info
        self._columns = {}
        length = None
        for name, values in columns.items():
            arr = np.array(values, copy=True)
            if arr.ndim != 1:
                raise InvalidArgument("Column %r must be one-dimensional" % name)
            if length is None:
                length = len(arr)
            elif len(arr) != length:
                raise InvalidArgument("Column %r has length %d, expected %d" % (name, len(arr), length))
            if name in _GRID_FIELDS:
                if len(arr) > 0 and not np.all(np.equal(np.mod(arr, 1), 0)):
                    raise InvalidArgument("Column %r must contain integers" % name)
                arr = arr.astype(np.int64)
            elif arr.dtype.kind not in 'iuf':
                raise InvalidArgument("Column %r must be numeric" % name)
            arr.setflags(write=False)
            self._columns[name] = arr
        self._num_rows = 0 if length is None else length

        missing = [f for f in self._required_fields if f not in self._columns]
        if missing:
            raise InvalidArgument("A %s table requires the fields %s" % (self.kind, ", ".join(missing)))

        self._lmin = info.levelmin if lmin is None else int(lmin)
        self._lmax = info.levelmax if lmax is None else int(lmax)
        self._ranges = _validated_ranges(ranges)
        self._smallr = float(smallr)
        self._smallc = float(smallc)

        self._validate()
        logger.debug("Created %r", self)

    @classmethod
    def _from_validated(cls, parent, columns, ranges):
        """Build a table from columns that are already known to be valid, skipping validation"""
        new = cls.__new__(cls)
        new._info = parent._info
        new._columns = columns
        new._num_rows = len(next(iter(columns.values()))) if columns else 0
        new._lmin = parent._lmin
        new._lmax = parent._lmax
        new._ranges = tuple(float(r) for r in ranges)
        new._smallr = parent._smallr
        new._smallc = parent._smallc
        return new

    def _validate(self):
        info = self._info
        if self._lmin > self._lmax:
            raise LevelOutOfRange("lmin (%d) exceeds lmax (%d)" % (self._lmin, self._lmax))
        if self._lmin < info.levelmin or self._lmax > info.levelmax:
            raise LevelOutOfRange("Level bounds %d..%d lie outside the snapshot's range %d..%d" %
                                  (self._lmin, self._lmax, info.levelmin, info.levelmax))

        for name, arr in self._columns.items():
            if arr.dtype.kind == 'f' and not np.all(np.isfinite(arr)):
                raise InvalidArgument("Column %r contains NaN or infinite values" % name)

        for name in self._positive_fields:
            if name in self._columns and np.any(self._columns[name] <= 0):
                raise InvalidArgument("Column %r must be strictly positive" % name)

        if 'level' in self._columns and self._num_rows > 0:
            level = self._columns['level']
            if level.min() < self._lmin or level.max() > self._lmax:
                raise LevelOutOfRange("Records have levels %d..%d outside the table bounds %d..%d" %
                                      (level.min(), level.max(), self._lmin, self._lmax))
            if self.is_amr:
                ncell = 2 ** level
                for axis in ('cx', 'cy', 'cz'):
                    c = self._columns[axis]
                    if np.any(c < 1) or np.any(c > ncell):
                        raise InvalidArgument("Grid coordinate %r out of range for its level" % axis)

    ############################################
    # CAPABILITIES
    ############################################

    @property
    def info(self) -> SimulationInfo:
        return self._info

    @property
    def scale(self):
        return self._info.scale

    @property
    def boxlen(self) -> float:
        return self._info.boxlen

    @property
    def lmin(self) -> int:
        return self._lmin

    @property
    def lmax(self) -> int:
        return self._lmax

    @property
    def ranges(self) -> tuple:
        return self._ranges

    @property
    def smallr(self) -> float:
        return self._smallr

    @property
    def smallc(self) -> float:
        return self._smallc

    @property
    def is_amr(self) -> bool:
        """True if the records are grid cells identified by level and integer coordinates"""
        return all(f in self._columns for f in _GRID_FIELDS)

    def level_range(self) -> tuple[int, int]:
        return self._lmin, self._lmax

    def fields(self) -> list[str]:
        """Names of the stored columns"""
        return list(self._columns.keys())

    def row_count(self) -> int:
        return self._num_rows

    def __len__(self) -> int:
        return self._num_rows

    def __contains__(self, name):
        return name in self._columns or self._find_derived(name) is not None

    def __repr__(self):
        return "<%s len=%d levels=%d..%d>" % (type(self).__name__, len(self), self._lmin, self._lmax)

    ############################################
    # GETTING ARRAYS AND SUBSETS
    ############################################

    def __getitem__(self, i):
        """Return a column or derived array if i is a string; a new table if i is a boolean mask or a Filter."""
        from . import filt

        if isinstance(i, str):
            return self._get_array(i)
        elif isinstance(i, filt.Filter):
            return self.select(i(self))
        elif isinstance(i, np.ndarray) and i.dtype == np.bool_:
            return self.select(i)

        raise TypeError("Tables can be indexed by a field name, a boolean mask or a Filter")

    def _get_array(self, name, center=None):
        if name in self._columns:
            return self._columns[name]

        derived = self._find_derived(name)
        if derived is None:
            raise UnknownIdentifier("No field or derived variable %r for a %s table" % (name, self.kind))

        if derived.centred:
            if center is None:
                center = np.zeros(3)
            result = derived.function(self, np.asarray(center, dtype=float))
        else:
            result = derived.function(self)
        result = np.asarray(result, dtype=float) if np.ndim(result) > 0 else np.full(len(self), float(result))
        result.setflags(write=False)
        return result

    def select(self, mask, ranges=None) -> CellTable:
        """Return a new table holding the rows where mask is True.

        The new table keeps the level bounds of this one, and its ranges if ranges is None.
        """
        mask = np.asarray(mask)
        if mask.dtype != np.bool_ or mask.shape != (len(self),):
            raise InvalidArgument("Selection mask must be a boolean array of length %d" % len(self))
        columns = {}
        for name, arr in self._columns.items():
            sub = arr[mask]
            sub.setflags(write=False)
            columns[name] = sub
        return type(self)._from_validated(self, columns, self._ranges if ranges is None else ranges)

    @classmethod
    def _find_deriving_function(cls, name):
        for cl in cls.__mro__:
            if cl in CellTable._derived_array_registry and name in CellTable._derived_array_registry[cl]:
                return CellTable._derived_array_registry[cl][name]
        return None

    def _find_derived(self, name):
        derived = self._find_deriving_function(name)
        if derived is None:
            return None
        # derived arrays may be registered on a base class but still need fields a given table lacks
        if getattr(derived.function, 'requires', None):
            if not all(r in self._columns or r in ('x', 'y', 'z') for r in derived.function.requires):
                return None
        return derived

    def derivable_keys(self) -> list[str]:
        """Returns a list of variables which can be computed on the fly for this table."""
        res = []
        for cl in type(self).__mro__:
            if cl in CellTable._derived_array_registry:
                res += [k for k in CellTable._derived_array_registry[cl].keys() if self._find_derived(k)]
        return sorted(set(res) - set(self._columns))

    def all_keys(self) -> list[str]:
        return self.fields() + self.derivable_keys()

    def quantity_of(self, name) -> str:
        """The kind of physical quantity (see :mod:`ramsesmap.scales`) the named variable represents"""
        if name in self._columns:
            return self._field_quantities.get(name, 'dimensionless')
        derived = self._find_derived(name)
        if derived is None:
            raise UnknownIdentifier("No field or derived variable %r for a %s table" % (name, self.kind))
        return derived.quantity

    def is_extensive(self, name) -> bool:
        """True if the named variable is additive over cells (e.g. mass), so that projections sum it"""
        if name in self._columns:
            return name in self._extensive_fields
        derived = self._find_derived(name)
        return derived is not None and derived.extensive

    _extensive_fields = ()

    @classmethod
    def derived_array(cls, quantity='dimensionless', extensive=False, centred=False, requires=None):
        """Function decorator to register a derived variable for a table class and its subclasses.

        Example usage:

        >>> @HydroTable.derived_array(quantity='velocity')
        ... def v(table):
        ...     return np.sqrt(table['vx']**2 + table['vy']**2 + table['vz']**2)

        Parameters
        ----------
        quantity : str
            The quantity kind used for unit conversion, one of :data:`ramsesmap.scales.QUANTITY_KINDS`.
        extensive : bool
            True if the quantity is additive over cells; projections then always sum it.
        centred : bool
            True if the function depends on a reference point. It is then called as ``fn(table, center)`` with the
            center in code length units.
        requires : sequence of str, optional
            Stored fields the function needs; tables lacking any of them do not offer the variable.
        """
        def register(fn):
            if requires is not None:
                fn.requires = tuple(requires)
            if cls not in CellTable._derived_array_registry:
                CellTable._derived_array_registry[cls] = {}
            CellTable._derived_array_registry[cls][fn.__name__] = DerivedVariable(fn, quantity, extensive, centred)
            if fn.__doc__ is not None and not fn.__doc__.startswith("Derived"):
                fn.__doc__ = "Derived [%s]: %s" % (cls.__name__, fn.__doc__)
            return fn
        return register

    ############################################
    # GEOMETRY
    ############################################

    def cellsize_fraction(self) -> np.ndarray:
        """Cell side length in box-relative units, one entry per record (zero for particles)"""
        if not self.is_amr:
            return np.zeros(len(self))
        return np.ldexp(1.0, -self._columns['level'])

    def positions_fraction(self) -> np.ndarray:
        """Cell centres (or particle positions) in box-relative units, as an (N, 3) array"""
        if self.is_amr:
            size = self.cellsize_fraction()
            return np.stack([(self._columns[c] - 0.5) * size for c in ('cx', 'cy', 'cz')], axis=1)
        return np.stack([self._columns[c] / self.boxlen for c in ('x', 'y', 'z')], axis=1)

    def bounding_box(self) -> tuple:
        """Tightest box enclosing all records (cell edges for AMR data), as 6 box-relative floats"""
        if len(self) == 0:
            return self._ranges
        pos = self.positions_fraction()
        half = 0.5 * self.cellsize_fraction()
        lo = (pos - half[:, np.newaxis]).min(axis=0)
        hi = (pos + half[:, np.newaxis]).max(axis=0)
        return (lo[0], hi[0], lo[1], hi[1], lo[2], hi[2])

    ############################################
    # OVERVIEW
    ############################################

    def level_counts(self) -> dict[int, int]:
        """Number of records per level, for every level between lmin and lmax"""
        counts = {level: 0 for level in range(self._lmin, self._lmax + 1)}
        if 'level' in self._columns:
            levels, n = np.unique(self._columns['level'], return_counts=True)
            for level, count in zip(levels, n):
                counts[int(level)] = int(count)
        return counts

    def overview(self) -> dict[str, dict[str, float]]:
        """Minimum and maximum of every stored field, in code units"""
        result = {}
        for name, arr in self._columns.items():
            if len(arr) == 0:
                result[name] = {'min': np.nan, 'max': np.nan}
            else:
                result[name] = {'min': float(arr.min()), 'max': float(arr.max())}
        return result


def _validated_ranges(ranges):
    if ranges is None:
        return (0.0, 1.0, 0.0, 1.0, 0.0, 1.0)
    ranges = tuple(float(r) for r in ranges)
    if len(ranges) != 6:
        raise InvalidArgument("ranges must contain six values: xmin, xmax, ymin, ymax, zmin, zmax")
    for lo, hi in zip(ranges[::2], ranges[1::2]):
        if lo > hi:
            raise InvalidArgument("ranges must satisfy min <= max")
        if lo < 0 or hi > 1:
            raise InvalidArgument("ranges are box-relative and must lie within [0, 1]")
    return ranges


class HydroTable(CellTable):
    """Hydrodynamic AMR leaf cells"""
    kind = 'hydro'
    _required_fields = ('level', 'cx', 'cy', 'cz', 'rho')
    _positive_fields = ('rho',)
    _field_quantities = dict(CellTable._field_quantities, rho='density', vx='velocity', vy='velocity',
                             vz='velocity', p='pressure')


class GravityTable(CellTable):
    """Gravitational potential and acceleration on AMR leaf cells"""
    kind = 'gravity'
    _required_fields = ('level', 'cx', 'cy', 'cz')
    _field_quantities = dict(CellTable._field_quantities, epot='potential', ax='acceleration',
                             ay='acceleration', az='acceleration', rho='density')


class ParticleTable(CellTable):
    """Particles with positions in code length units"""
    kind = 'particles'
    _required_fields = ('x', 'y', 'z', 'mass')
    _positive_fields = ('mass',)
    _extensive_fields = ('mass',)
    _field_quantities = dict(CellTable._field_quantities, x='length', y='length', z='length',
                             vx='velocity', vy='velocity', vz='velocity', mass='mass', birth='time',
                             metal='dimensionless')

    def _validate(self):
        super()._validate()
        for axis in ('x', 'y', 'z'):
            pos = self._columns[axis]
            if np.any(pos < 0) or np.any(pos > self.boxlen):
                raise InvalidArgument("Particle positions must lie within the box [0, boxlen]")
