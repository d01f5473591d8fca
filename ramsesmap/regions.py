"""The Region Selector: sub-tables for boxes, spheres, cylinders and shells.

Sizes and centres are given in ``range_unit``:

* ``'standard'`` -- box-relative fractions in [0, 1] (the default);
* ``'code'`` -- code length units;
* any physical length unit understood by :mod:`ramsesmap.scales`, e.g. ``'kpc'``.

Ranges are offsets from ``center``, so with the default center ``(0, 0, 0)`` they are absolute positions. Any
element of ``center`` may be ``'bc'`` to mean the centre of the box.

>>> inner = subregion(gas, 'sphere', center=['bc'], radius=10., range_unit='kpc')
>>> slab = subregion(gas, 'cuboid', zrange=[0.45, 0.55])
>>> halo = shellregion(gas, 'sphere', center=['bc'], radius=[5., 20.], range_unit='kpc')
"""

from __future__ import annotations

import logging

import numpy as np

from . import filt
from .configuration import RunOptions
from .errors import InvalidArgument
from .table import CellTable
from .util import length_to_box_fraction, parse_range, resolve_center

logger = logging.getLogger('ramsesmap.regions')

_shape_aliases = {'cuboid': 'cuboid', 'box': 'cuboid', 'sphere': 'sphere', 'cylinder': 'cylinder'}


def _normalise_shape(shape, allowed):
    s = _shape_aliases.get(shape) if isinstance(shape, str) else None
    if s is None or s not in allowed:
        raise InvalidArgument("shape must be one of %s, not %r" % (", ".join(allowed), shape))
    return s


def _offset_range(rng, name, origin, unit, table):
    rng = parse_range(rng, name)
    if rng is None:
        return None
    lo, hi = length_to_box_fraction(rng, unit, table)
    return origin + float(lo), origin + float(hi)


def _clip_bounds(bounds, parent_ranges):
    """Intersect two sets of six bounds. A disjoint axis collapses to a zero-width interval inside the parent."""
    out = []
    for i in range(3):
        plo, phi = parent_ranges[2 * i], parent_ranges[2 * i + 1]
        lo = min(max(bounds[2 * i], plo), phi)
        hi = max(min(bounds[2 * i + 1], phi), lo)
        out += [lo, hi]
    return tuple(out)


def _apply(table, region_filter, fallback_bounds, inverse, opts, description):
    if inverse:
        region_filter = ~region_filter
    mask = region_filter(table)
    if inverse:
        ranges = table.ranges
    else:
        result = table.select(mask)
        bounds = result.bounding_box() if len(result) > 0 else fallback_bounds
        ranges = _clip_bounds(bounds, table.ranges)
    result = table.select(mask, ranges=ranges)
    logger.log(opts.log_level, "%s: %d of %d records selected", description, len(result), len(table))
    return result


def _cylinder_filter(table, cls, radii, center, height, zrange, direction, range_unit, cell):
    a1, a2, los = filt.plane_axes(direction)
    cen = resolve_center(center, table, range_unit, allowed_dimensions=(2, 3))
    if len(cen) == 2:
        full = np.full(3, 0.5)
        full[a1], full[a2] = cen
        cen = full

    axial_range = None
    if zrange is not None:
        zr = parse_range(zrange, "zrange")
        axial_range = tuple(float(v) for v in length_to_box_fraction(zr, range_unit, table))
    elif height is not None:
        height = float(length_to_box_fraction(height, range_unit, table))
    else:
        raise InvalidArgument("A cylinder needs either a height or a zrange")

    radii = [float(length_to_box_fraction(r, range_unit, table)) for r in radii]
    return cls(*radii, height=height, cen=cen, direction=direction, axial_range=axial_range, cell=cell)


def subregion(table: CellTable, shape: str = 'cuboid', *, xrange=None, yrange=None, zrange=None,
              center=(0., 0., 0.), radius=None, height=None, direction: str = 'z', range_unit='standard',
              cell: bool = True, inverse: bool = False, options: RunOptions = None) -> CellTable:
    """Select the records of a table lying inside (or, with inverse, outside) a box, sphere or cylinder.

    Parameters
    ----------
    table : CellTable
        The table to select from. It is not modified.
    shape : str
        ``'cuboid'`` (or ``'box'``), ``'sphere'`` or ``'cylinder'``.
    xrange, yrange, zrange : pair of float, optional
        Cuboid extent along each axis, relative to center. None selects the whole axis. For cylinders, zrange is
        the extent along the cylinder axis and may replace height.
    center : sequence
        Reference point, three elements (two are allowed for cylinders, giving the in-plane position; the axial
        position is then the box centre). Elements may be ``'bc'``.
    radius : float
        Sphere or cylinder radius.
    height : float
        Half-extent of a cylinder along its axis.
    direction : str
        Axis of the cylinder, ``'x'``, ``'y'`` or ``'z'``.
    range_unit : str
        Unit of all ranges, radii, heights and of the center (see module documentation).
    cell : bool
        If True, cells are selected by their centre; if False, they must lie entirely inside the shape.
    inverse : bool
        If True, return the records outside the shape. The result then keeps the ranges of the parent table.

    Returns
    -------
    CellTable
        A new table of the same kind. Its ranges are the tightest box enclosing the selected records, within the
        parent's ranges.
    """
    opts = RunOptions.resolve(options)
    shape = _normalise_shape(shape, ('cuboid', 'sphere', 'cylinder'))

    if shape == 'cuboid':
        cen = resolve_center(center, table, range_unit)
        bounds = []
        for axis, (rng, name) in enumerate(((xrange, 'xrange'), (yrange, 'yrange'), (zrange, 'zrange'))):
            r = _offset_range(rng, name, cen[axis], range_unit, table)
            if r is None:
                r = (table.ranges[2 * axis], table.ranges[2 * axis + 1])
            bounds.append(r)
        (x1, x2), (y1, y2), (z1, z2) = bounds
        region_filter = filt.Cuboid(x1, y1, z1, x2, y2, z2, cell=cell)
    elif shape == 'sphere':
        if radius is None:
            raise InvalidArgument("A sphere needs a radius")
        cen = resolve_center(center, table, range_unit)
        r = float(length_to_box_fraction(radius, range_unit, table))
        region_filter = filt.Sphere(r, cen, cell=cell)
    else:
        if radius is None:
            raise InvalidArgument("A cylinder needs a radius")
        region_filter = _cylinder_filter(table, filt.Cylinder, [radius], center, height, zrange, direction,
                                         range_unit, cell)

    return _apply(table, region_filter, region_filter.bounds(), inverse, opts, "subregion %s" % shape)


def shellregion(table: CellTable, shape: str = 'sphere', *, radius=None, center=(0., 0., 0.), height=None,
                zrange=None, direction: str = 'z', range_unit='standard', cell: bool = True,
                inverse: bool = False, options: RunOptions = None) -> CellTable:
    """Select the records between two concentric spheres, or two coaxial cylinders.

    Parameters are as for :func:`subregion`, except that radius must be a pair ``[inner, outer]`` with
    ``0 <= inner < outer``. An inverted pair is an error; it is never swapped silently.
    """
    opts = RunOptions.resolve(options)
    shape = _normalise_shape(shape, ('sphere', 'cylinder'))

    if radius is None or isinstance(radius, str) or np.ndim(radius) != 1 or len(radius) != 2:
        raise InvalidArgument("A shell needs radius=[inner, outer]")
    inner, outer = (float(r) for r in radius)
    if inner < 0 or outer < 0:
        raise InvalidArgument("Shell radii must not be negative")
    if inner >= outer:
        raise InvalidArgument("Shell inner radius (%g) must be smaller than its outer radius (%g)" % (inner, outer))

    if shape == 'sphere':
        cen = resolve_center(center, table, range_unit)
        r1, r2 = (float(length_to_box_fraction(r, range_unit, table)) for r in (inner, outer))
        region_filter = filt.SphericalShell(r1, r2, cen, cell=cell)
    else:
        region_filter = _cylinder_filter(table, filt.CylindricalShell, [inner, outer], center, height, zrange,
                                         direction, range_unit, cell)

    return _apply(table, region_filter, region_filter.bounds(), inverse, opts, "shellregion %s" % shape)
