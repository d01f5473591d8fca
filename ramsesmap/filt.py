"""
Filters define subsets of tables, especially (but not exclusively) spatial sub-regions.

A :class:`Filter` stores the abstract definition of the subset; calling it with a table returns a boolean array
indicating which records are in the subset. Indexing a table with a filter returns the corresponding sub-table.

Geometric filters work in box-relative coordinates (fractions of ``boxlen`` in ``[0, 1]``). They accept a ``cell``
flag: if True (default), a cell is in the subset when its centre is; if False, the whole cell must lie inside.
Particles are always tested by position.

Filters can be combined using the logical operators ``&``, ``|`` and ``~``. For region selection in physical units
and relative to arbitrary centres, see :func:`ramsesmap.regions.subregion`.
"""

from __future__ import annotations

import numpy as np

from .errors import InvalidArgument

_axes_for_direction = {'x': (1, 2, 0), 'y': (0, 2, 1), 'z': (0, 1, 2)}


def plane_axes(direction):
    """Return (first in-plane axis, second in-plane axis, line-of-sight axis) for a direction name"""
    try:
        return _axes_for_direction[direction]
    except (KeyError, TypeError):
        raise InvalidArgument("direction must be one of 'x', 'y' or 'z', not %r" % (direction,))


class Filter:
    """Base class for all filters. Filters are callables that take tables as input and return a boolean mask"""

    def where(self, table):
        """Return the indices of records that are in the filter."""
        return np.where(self(table))

    def __call__(self, table):
        """Return a boolean mask indicating which records are in the filter."""
        return np.ones(len(table), dtype=bool)

    def __and__(self, f2):
        return And(self, f2)

    def __invert__(self):
        return Not(self)

    def __or__(self, f2):
        return Or(self, f2)

    def __repr__(self):
        return "Filter()"

    def __eq__(self, other):
        if type(self) is not type(other):
            return False

        for k, v in self.__dict__.items():
            if k not in other.__dict__:
                return False
            else:
                equal = other.__dict__[k] == v
                if isinstance(equal, np.ndarray):
                    equal = equal.all()
                if not equal:
                    return False

        return True

    def __hash__(self):
        return hash(repr(self))


class And(Filter):
    """A filter that selects records that are in both of two other filters.

    You can construct this filter conveniently using the ``&`` operator, i.e.

    >>> f = f1 & f2
    """

    def __init__(self, f1, f2):
        self.f1 = f1
        self.f2 = f2

    def __call__(self, table):
        return self.f1(table) & self.f2(table)

    def __repr__(self):
        return "(" + repr(self.f1) + " & " + repr(self.f2) + ")"


class Or(Filter):
    """A filter that selects records that are in either of two other filters (``f1 | f2``)."""

    def __init__(self, f1, f2):
        self.f1 = f1
        self.f2 = f2

    def __call__(self, table):
        return self.f1(table) | self.f2(table)

    def __repr__(self):
        return "(" + repr(self.f1) + " | " + repr(self.f2) + ")"


class Not(Filter):
    """A filter that selects records that are not in another filter (``~f``)."""

    def __init__(self, f):
        self.f = f

    def __call__(self, table):
        return np.logical_not(self.f(table))

    def __repr__(self):
        return "~" + repr(self.f)


class _GeometricFilter(Filter):
    """Shared machinery: relative positions and half cell sizes in box units"""

    def _relative(self, table, cen):
        pos = table.positions_fraction() - np.asarray(cen)[np.newaxis, :]
        half = 0.5 * table.cellsize_fraction()
        return pos, half

    def _tag(self):
        return "" if self.cell else ", cell=False"


def _checked_center(cen, length=3):
    cen = np.asarray(cen, dtype=float)
    if cen.shape != (length,):
        raise InvalidArgument("Centre must be length %d array" % length)
    return cen


def _checked_radius(radius, name="radius"):
    radius = float(radius)
    if not radius >= 0:
        raise InvalidArgument("%s must not be negative" % name)
    return radius


class Cuboid(_GeometricFilter):
    """A filter that selects records within an axis-aligned box defined by two opposite corners."""

    def __init__(self, x1: float, y1: float = None, z1: float = None, x2: float = None, y2: float = None,
                 z2: float = None, cell: bool = True):
        """Create a cuboid filter.

        If any of the coordinates ``y1``, ``z1``, ``x2``, ``y2``, ``z2`` are not specified they are determined as
        ``y1=x1``; ``z1=x1``; ``x2=1-x1``; ``y2=1-y1``; ``z2=1-z1``, i.e. a box centred on the box centre.
        """
        if y1 is None:
            y1 = x1
        if z1 is None:
            z1 = x1
        if x2 is None:
            x2 = 1 - x1
        if y2 is None:
            y2 = 1 - y1
        if z2 is None:
            z2 = 1 - z1
        if x2 < x1 or y2 < y1 or z2 < z1:
            raise InvalidArgument("Cuboid boundaries are not well defined")
        self.x1, self.y1, self.z1, self.x2, self.y2, self.z2 = (float(v) for v in (x1, y1, z1, x2, y2, z2))
        self.cell = cell

    def __call__(self, table):
        pos, half = self._relative(table, (0., 0., 0.))
        if self.cell:
            half = np.zeros_like(half)
        lower = (self.x1, self.y1, self.z1)
        upper = (self.x2, self.y2, self.z2)
        mask = np.ones(len(table), dtype=bool)
        for axis in range(3):
            mask &= (pos[:, axis] - half >= lower[axis]) & (pos[:, axis] + half <= upper[axis])
        return mask

    def bounds(self):
        return (self.x1, self.x2, self.y1, self.y2, self.z1, self.z2)

    def __repr__(self):
        return f"Cuboid({self.x1}, {self.y1}, {self.z1}, {self.x2}, {self.y2}, {self.z2}{self._tag()})"


class Sphere(_GeometricFilter):
    """
    A filter that selects records within `radius` of the point `cen`.
    """

    def __init__(self, radius: float, cen=(0.5, 0.5, 0.5), cell: bool = True):
        self.cen = _checked_center(cen)
        self.radius = _checked_radius(radius)
        self.cell = cell

    def __call__(self, table):
        pos, half = self._relative(table, self.cen)
        if self.cell:
            r2 = (pos ** 2).sum(axis=1)
        else:
            # farthest corner of the cell
            r2 = ((np.abs(pos) + half[:, np.newaxis]) ** 2).sum(axis=1)
        return r2 <= self.radius ** 2

    def bounds(self):
        r = self.radius
        return tuple(v for c in self.cen for v in (c - r, c + r))

    def __repr__(self):
        return f"Sphere({self.radius:.2e}, {repr(self.cen)}{self._tag()})"


class Cylinder(_GeometricFilter):
    """A filter that selects records within a cylinder of given radius and extent along its axis.

    The axis is parallel to `direction` and passes through `cen`. Along the axis, the cylinder extends from
    ``cen + axial_range[0]`` to ``cen + axial_range[1]``; give `height` instead for the symmetric range
    ``(-height, height)``.
    """

    def __init__(self, radius: float, height: float = None, cen=(0.5, 0.5, 0.5), direction='z',
                 axial_range=None, cell: bool = True):
        self.cen = _checked_center(cen)
        self.radius = _checked_radius(radius)
        self.direction = direction
        self._axes = plane_axes(direction)
        if axial_range is None:
            if height is None:
                raise InvalidArgument("A cylinder needs a height or an axial range")
            height = _checked_radius(height, "height")
            axial_range = (-height, height)
        if axial_range[0] > axial_range[1]:
            raise InvalidArgument("Cylinder axial range has min > max")
        self.axial_range = (float(axial_range[0]), float(axial_range[1]))
        self.cell = cell

    def _radial_and_axial(self, table):
        pos, half = self._relative(table, self.cen)
        a1, a2, los = self._axes
        if self.cell:
            half = np.zeros_like(half)
        R2_far = (np.abs(pos[:, a1]) + half) ** 2 + (np.abs(pos[:, a2]) + half) ** 2
        R2_near = (np.maximum(np.abs(pos[:, a1]) - half, 0) ** 2 +
                   np.maximum(np.abs(pos[:, a2]) - half, 0) ** 2)
        return R2_far, R2_near, pos[:, los], half

    def __call__(self, table):
        R2, _, axial, half = self._radial_and_axial(table)
        return ((R2 <= self.radius ** 2) & (axial - half >= self.axial_range[0]) &
                (axial + half <= self.axial_range[1]))

    def bounds(self):
        a1, a2, los = self._axes
        b = [None] * 6
        for axis in (a1, a2):
            b[2 * axis], b[2 * axis + 1] = self.cen[axis] - self.radius, self.cen[axis] + self.radius
        b[2 * los], b[2 * los + 1] = self.cen[los] + self.axial_range[0], self.cen[los] + self.axial_range[1]
        return tuple(b)

    def __repr__(self):
        return (f"Cylinder({self.radius:.2e}, cen={repr(self.cen)}, direction={self.direction!r}, "
                f"axial_range={self.axial_range}{self._tag()})")


class SphericalShell(_GeometricFilter):
    """A filter that selects records between two concentric spheres of radii `r1` < `r2` centred on `cen`.

    With ``cell=True``, a record is selected when ``r1 < distance <= r2``, which is the complement of the inner
    sphere within the outer one. With ``cell=False``, cells must lie entirely between the two spheres.
    """

    def __init__(self, r1: float, r2: float, cen=(0.5, 0.5, 0.5), cell: bool = True):
        self.r1 = _checked_radius(r1, "inner radius")
        self.r2 = _checked_radius(r2, "outer radius")
        if self.r1 >= self.r2:
            raise InvalidArgument("Shell inner radius must be smaller than its outer radius")
        self.cen = _checked_center(cen)
        self.cell = cell

    def __call__(self, table):
        pos, half = self._relative(table, self.cen)
        if self.cell:
            r2 = (pos ** 2).sum(axis=1)
            return (r2 > self.r1 ** 2) & (r2 <= self.r2 ** 2)
        far = ((np.abs(pos) + half[:, np.newaxis]) ** 2).sum(axis=1)
        near = (np.maximum(np.abs(pos) - half[:, np.newaxis], 0) ** 2).sum(axis=1)
        return (near >= self.r1 ** 2) & (far <= self.r2 ** 2)

    def bounds(self):
        return Sphere(self.r2, self.cen).bounds()

    def __repr__(self):
        return f"SphericalShell({self.r1:.2e}, {self.r2:.2e}, {repr(self.cen)}{self._tag()})"


class CylindricalShell(Cylinder):
    """A filter that selects records between two coaxial cylinders of radii `r1` < `r2`."""

    def __init__(self, r1: float, r2: float, height: float = None, cen=(0.5, 0.5, 0.5), direction='z',
                 axial_range=None, cell: bool = True):
        super().__init__(r2, height, cen, direction, axial_range, cell)
        self.r1 = _checked_radius(r1, "inner radius")
        if self.r1 >= self.radius:
            raise InvalidArgument("Shell inner radius must be smaller than its outer radius")

    def __call__(self, table):
        R2_far, R2_near, axial, half = self._radial_and_axial(table)
        if self.cell:
            radial = (R2_far > self.r1 ** 2) & (R2_far <= self.radius ** 2)
        else:
            radial = (R2_near >= self.r1 ** 2) & (R2_far <= self.radius ** 2)
        return radial & (axial - half >= self.axial_range[0]) & (axial + half <= self.axial_range[1])

    def __repr__(self):
        return (f"CylindricalShell({self.r1:.2e}, {self.radius:.2e}, cen={repr(self.cen)}, "
                f"direction={self.direction!r}, axial_range={self.axial_range}{self._tag()})")


class BandPass(Filter):
    """Selects records with min < table[prop] < max, comparing in code units"""

    def __init__(self, prop: str, min: float, max: float):
        self._prop = prop
        self._min = min
        self._max = max

    def __call__(self, table):
        values = table[self._prop]
        return (values > self._min) & (values < self._max)

    def __repr__(self):
        return f"BandPass('{self._prop}', {self._min:.2e}, {self._max:.2e})"


class HighPass(Filter):
    """Selects records exceeding a specified threshold of a named property"""

    def __init__(self, prop: str, min: float):
        self._prop = prop
        self._min = min

    def __call__(self, table):
        return table[self._prop] > self._min

    def __repr__(self):
        return f"HighPass('{self._prop}', {self._min:.2e})"


class LowPass(Filter):
    """Selects records below a specified threshold of a named property"""

    def __init__(self, prop: str, max: float):
        self._prop = prop
        self._max = max

    def __call__(self, table):
        return table[self._prop] < self._max

    def __repr__(self):
        return f"LowPass('{self._prop}', {self._max:.2e})"


class LevelRange(Filter):
    """Selects AMR cells with lmin <= level <= lmax"""

    def __init__(self, lmin: int, lmax: int):
        if lmin > lmax:
            raise InvalidArgument("lmin exceeds lmax")
        self._lmin = lmin
        self._lmax = lmax

    def __call__(self, table):
        level = table['level']
        return (level >= self._lmin) & (level <= self._lmax)

    def __repr__(self):
        return f"LevelRange({self._lmin}, {self._lmax})"
