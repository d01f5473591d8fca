"""
The Projection Engine: maps of AMR cells or particles projected along x, y or z.

>>> p = projection(gas, 'mass', 'Msol', mode='sum')
>>> p.maps['mass'].sum()          # equals msum(gas, 'Msol')
>>> p = projection(gas, ['rho', 'T'], units=['g_cm3', 'K'], weighting=['mass', 'Msol'], res=256)
>>> p = projection(gas, 'sd', 'Msol_pc2', direction='x', center=['bc'], xrange=[-0.1, 0.1])

Additive quantities (mass, volume, energies, angular momenta) are always summed, and their maps satisfy
``map.sum() == table total`` whenever the map extent encloses the selected cells. Other quantities are averaged
with the chosen weighting (``mode='standard'``), multiplied by the number of cell layers along the line of sight
(``mode='sum'``), or maximised (``mode='max'``).

Besides table variables, the following map names are understood:

* ``sd`` -- surface density, the summed mass divided by the pixel area;
* ``sigmax``, ``sigmay``, ``sigmaz``, ``sigma``, ``sigmar_cylinder``, ``sigmaphi_cylinder`` -- weighted dispersion
  of vx, vy, vz, v, vr_cylinder and vphi_cylinder;
* ``r_cylinder``, ``phi`` -- distance and angle of each pixel centre from the center, in the projection plane.

The pixel-splitting rule and the thread model are described in :mod:`ramsesmap.projection.rasterise`.
"""

from __future__ import annotations

import logging

import numpy as np

from .. import filt, scales
from ..configuration import RunOptions, config
from ..errors import InvalidArgument, LevelOutOfRange
from ..getvar import getvar, list_variables
from ..table import CellTable, ParticleTable
from ..util import (as_variable_list, broadcast_units, check_mask, length_to_box_fraction, parse_range,
                    resolve_center)
from .rasterise import Channel, MapGeometry, make_projection_pipeline

logger = logging.getLogger('ramsesmap.projection')

MODES = {'standard': 'standard', 'mean': 'standard', 'sum': 'sum', 'max': 'max'}

SIGMA_MAPS = {'sigmax': ('vx', 'vx2'),
              'sigmay': ('vy', 'vy2'),
              'sigmaz': ('vz', 'vz2'),
              'sigma': ('v', 'v2'),
              'sigmar_cylinder': ('vr_cylinder', 'vr_cylinder2'),
              'sigmaphi_cylinder': ('vphi_cylinder', 'vphi_cylinder2')}

GEOMETRIC_MAPS = ('r_cylinder', 'phi')


class ProjectionMap:
    """The result of a projection.

    Attributes
    ----------
    maps : dict
        Variable name to 2D array of shape ``res``. The first index runs along the first in-plane axis.
    maps_unit, maps_mode : dict
        Unit and aggregation mode (``'sum'``, ``'standard'``, ``'max'`` or ``'geometric'``) per variable.
    maps_weight : tuple or None
        The weighting ``(quantity, unit)`` used for averaged maps.
    extent, cextent : tuple
        ``(xmin, xmax, ymin, ymax)`` of the map in code length units, absolute and relative to center.
    ratio : float
        Aspect ratio ``(ymax - ymin) / (xmax - xmin)``.
    """

    def __init__(self, maps, maps_unit, maps_mode, maps_weight, geometry, table, lmin, lmax, ranges, center,
                 direction):
        boxlen = table.boxlen
        self.maps = maps
        self.maps_unit = maps_unit
        self.maps_mode = maps_mode
        self.maps_weight = maps_weight
        self.direction = direction
        self.res = (geometry.nx, geometry.ny)
        self.pixsize = tuple(p * boxlen for p in geometry.pixel_size)
        self.extent = (geometry.x1 * boxlen, geometry.x2 * boxlen, geometry.y1 * boxlen, geometry.y2 * boxlen)
        a1, a2, _ = geometry.axes
        c1, c2 = center[a1] * boxlen, center[a2] * boxlen
        self.cextent = (self.extent[0] - c1, self.extent[1] - c1, self.extent[2] - c2, self.extent[3] - c2)
        width = self.extent[1] - self.extent[0]
        self.ratio = (self.extent[3] - self.extent[2]) / width if width > 0 else np.nan
        self.center = tuple(float(c) for c in center)
        self.boxlen = boxlen
        self.lmin = lmin
        self.lmax = lmax
        self.ranges = tuple(ranges)
        self.smallr = table.smallr
        self.smallc = table.smallc
        self.scale = table.scale
        self.info = table.info

    def __getitem__(self, name):
        return self.maps[name]

    def keys(self):
        return self.maps.keys()

    def extent_in(self, unit, centred=False):
        """Return the extent (or, if centred, the center-relative extent) converted to a length unit"""
        f = self.scale.factor('length', unit) if not scales.is_standard(unit) else 1.0
        return tuple(e * f for e in (self.cextent if centred else self.extent))

    def __repr__(self):
        return "<ProjectionMap %s res=%s direction=%r>" % (", ".join(self.maps), self.res, self.direction)


def _parse_weighting(weighting, table):
    if weighting is None:
        return None
    if isinstance(weighting, str) and weighting == 'default':
        name = config['projection']['default-weighting']
        if name == 'none' or name not in table:
            return None
        return name, 'standard'
    if isinstance(weighting, str):
        weighting = [weighting]
    weighting = list(weighting)
    if len(weighting) == 0 or len(weighting) > 2:
        raise InvalidArgument("weighting must be a quantity name optionally followed by a unit")
    name = weighting[0]
    if not isinstance(name, str):
        raise InvalidArgument("Unsupported weighting %r" % (name,))
    if name == 'none':
        return None
    unit = weighting[1] if len(weighting) == 2 else 'standard'
    if name not in table:
        raise InvalidArgument("Unsupported weighting %r for a %s table" % (name, table.kind))
    return name, unit


def _parse_resolution(res, pxsize, widths, lmax, table):
    if pxsize is not None:
        if res is not None:
            raise InvalidArgument("Give either res or pxsize, not both")
        if isinstance(pxsize, (int, float)):
            pxsize = [pxsize, 'standard']
        if len(pxsize) != 2:
            raise InvalidArgument("pxsize must be [value, unit]")
        size = float(length_to_box_fraction(float(pxsize[0]), pxsize[1], table))
        if not size > 0:
            raise InvalidArgument("pxsize must be positive")
        return tuple(int(np.ceil(w / size - 1e-9)) if w > 0 else 0 for w in widths)

    if res is None:
        n = 2 ** lmax
        return n, n
    if np.ndim(res) == 0:
        res = (res, res)
    res = tuple(res)
    if len(res) != 2:
        raise InvalidArgument("res must be an integer or a pair of integers")
    for r in res:
        if isinstance(r, (bool, np.bool_)) or int(r) != r:
            raise InvalidArgument("res must be an integer, not %r" % (r,))
        if r < 0:
            raise InvalidArgument("res must not be negative")
    return int(res[0]), int(res[1])


def _parse_levels(lmin, lmax, table):
    lmin = table.lmin if lmin is None else lmin
    lmax = table.lmax if lmax is None else lmax
    if int(lmin) != lmin or int(lmax) != lmax:
        raise InvalidArgument("lmin and lmax must be integers")
    lmin, lmax = int(lmin), int(lmax)
    if lmin > lmax:
        raise LevelOutOfRange("lmin (%d) exceeds lmax (%d)" % (lmin, lmax))
    if lmin < table.lmin or lmax > table.lmax:
        raise LevelOutOfRange("Levels %d..%d lie outside the table's range %d..%d" % (lmin, lmax, table.lmin,
                                                                                      table.lmax))
    return lmin, lmax


def _parse_ranges(table, center, range_unit, xrange, yrange, zrange):
    ranges = list(table.ranges)
    explicit = [False, False, False]
    for axis, (rng, name) in enumerate(((xrange, 'xrange'), (yrange, 'yrange'), (zrange, 'zrange'))):
        rng = parse_range(rng, name)
        if rng is None:
            continue
        lo, hi = center[axis] + length_to_box_fraction(np.asarray(rng), range_unit, table)
        if hi < 0 or lo > 1:
            raise InvalidArgument("%s lies outside the simulation box" % name)
        ranges[2 * axis], ranges[2 * axis + 1] = max(float(lo), 0.0), min(float(hi), 1.0)
        explicit[axis] = True
    return ranges, explicit


def _list_projectable():
    result = {}
    for kind, names in list_variables().items():
        extra = ['sd'] + sorted(SIGMA_MAPS) + list(GEOMETRIC_MAPS) if kind != 'gravity' else list(GEOMETRIC_MAPS)
        result[kind] = sorted(set(names) | set(extra))
    return result


def projection(table: CellTable = None, var: str | list[str] = None, unit='standard', *, units=None,
               res=None, pxsize=None, direction: str = 'z', xrange=None, yrange=None, zrange=None,
               center=(0., 0., 0.), range_unit='standard', mode: str = None, weighting='default',
               mask=None, lmin: int = None, lmax: int = None, max_threads: int = None,
               options: RunOptions = None) -> ProjectionMap:
    """Project one or more variables of a table onto a 2D map.

    Parameters
    ----------
    table : CellTable
        A hydro, gravity or particle table. If omitted, the projectable names are printed and returned.
    var : str or list of str
        Variable(s) to project.
    unit : str
        Unit applied to every variable; ``'standard'`` means code units.
    units : list of str, optional
        One unit per variable (a single-element list is broadcast). Mismatched lengths are an error.
    res : int or pair of int, optional
        Number of pixels along each in-plane axis of the map extent. Defaults to ``2**lmax``. Zero gives an empty
        map; negative values are an error.
    pxsize : [value, unit], optional
        Pixel size, as an alternative to res.
    direction : str
        Line of sight, ``'x'``, ``'y'`` or ``'z'``. The map plane is (y, z), (x, z) or (x, y) respectively.
    xrange, yrange, zrange : pair of float, optional
        Spatial restriction relative to center, in range_unit. In-plane ranges set the map extent; along the line
        of sight, cells whose centre lies in the range are kept. The default extent is the table's ranges.
    center : sequence
        Reference point for ranges, for centre-dependent variables and for ``cextent``. Elements may be ``'bc'``.
    range_unit : str
        ``'standard'`` (box-relative), ``'code'`` or a physical length unit.
    mode : str
        ``'standard'`` (alias ``'mean'``), ``'sum'`` or ``'max'``; applies to non-additive quantities.
    weighting : str, [name, unit] or None
        Weighting quantity for averaged maps. None or ``'none'`` gives area-weighted averages. The default is the
        ``default-weighting`` configuration value (mass), or no weighting for tables without that quantity.
    mask : numpy.ndarray of bool, optional
        Only rows where mask is True contribute.
    lmin, lmax : int, optional
        Only levels in [lmin, lmax] contribute. Must lie within the table's level range.
    max_threads : int, optional
        Number of worker threads; the output does not depend on it.
    options : RunOptions, optional
        Verbosity and progress reporting.

    Returns
    -------
    ProjectionMap
    """
    if table is None:
        projectable = _list_projectable()
        for kind, names in projectable.items():
            print("%s: %s" % (kind, ", ".join(names)))
        return projectable
    if var is None:
        raise InvalidArgument("No variable given to project")

    opts = RunOptions.resolve(options)
    if max_threads is None:
        max_threads = opts.max_threads
    if mode is None:
        mode = config['projection']['default-mode']
    if mode not in MODES:
        raise InvalidArgument("mode must be one of %s, not %r" % (", ".join(MODES), mode))
    mode = MODES[mode]

    names = as_variable_list(var)
    if len(set(names)) != len(names):
        raise InvalidArgument("Variables must not be repeated")
    unit_list = broadcast_units(names, unit, units)
    axes = filt.plane_axes(direction)
    a1, a2, los = axes
    weight = _parse_weighting(weighting, table)
    lmin, lmax = _parse_levels(lmin, lmax, table)
    mask = check_mask(mask, table)
    cen = resolve_center(center, table, range_unit)
    ranges, explicit = _parse_ranges(table, cen, range_unit, xrange, yrange, zrange)

    widths = (ranges[2 * a1 + 1] - ranges[2 * a1], ranges[2 * a2 + 1] - ranges[2 * a2])
    nx, ny = _parse_resolution(res, pxsize, widths, lmax, table)
    geometry = MapGeometry(ranges[2 * a1], ranges[2 * a1 + 1], ranges[2 * a2], ranges[2 * a2 + 1], nx, ny, axes)

    # rows contributing to the map
    keep = np.ones(len(table), dtype=bool) if mask is None else mask.copy()
    if 'level' in table.fields():
        level = table['level']
        keep &= (level >= lmin) & (level <= lmax)
    pos = table.positions_fraction()
    if explicit[los]:
        keep &= (pos[:, los] >= ranges[2 * los]) & (pos[:, los] <= ranges[2 * los + 1])
    selected = table.select(keep)
    pos = pos[keep]
    particles = isinstance(table, ParticleTable)

    # center as understood by getvar: box-relative
    center_arg = list(cen)
    channels, recipes, maps_unit, maps_mode = _plan(selected, names, unit_list, mode, weight, center_arg)

    logger.log(opts.log_level, "Projecting %s of %r along %s at %d x %d pixels", ", ".join(names), table,
               direction, nx, ny)

    def _progress(level, nrows):
        if opts.show_progress:
            logger.info("level %d: %d records", level, nrows)

    coordinates = (pos[:, a1], pos[:, a2], 0.5 * selected.cellsize_fraction())
    pipeline = make_projection_pipeline(coordinates, geometry, channels,
                                        levels=None if particles else selected['level'],
                                        particles=particles, num_threads=max_threads, on_task=_progress)
    accumulated = pipeline.render()

    maps = {}
    for name in names:
        maps[name] = recipes[name](accumulated, geometry, selected, cen)

    return ProjectionMap(maps, maps_unit, maps_mode, weight, geometry, table, lmin, lmax, ranges, cen, direction)


def _plan(table, names, unit_list, mode, weight, center):
    """Work out which channels to accumulate, and how to turn them into each map"""
    channels = {}
    recipes = {}
    maps_unit = {}
    maps_mode = {}

    def add(name, values, kind):
        if name not in channels:
            channels[name] = Channel(name, values, kind)
        return name

    if weight is not None:
        w = getvar(table, weight[0], weight[1], center=center)
        add('__weight_f', w, 'f')
    add('__layers', np.ones(len(table)), 'g')

    def mean_channels(qname, values):
        """Channel names for the numerator and denominator of a weighted mean"""
        if weight is None:
            return add('__g_' + qname, values, 'g'), '__layers'
        return add('__wf_' + qname, values * w, 'f'), '__weight_f'

    for name, u in zip(names, unit_list):
        maps_unit[name] = u

        if name == 'sd':
            add('__mass', getvar(table, 'mass', center=center), 'f')
            factor = 1.0 if scales.is_standard(u) else table.scale.factor('surface_density', u)
            recipes[name] = _surface_density(factor)
            maps_mode[name] = 'sum'

        elif name in GEOMETRIC_MAPS:
            if name == 'r_cylinder':
                factor = 1.0 if scales.is_standard(u) else table.scale.factor('length', u)
            else:
                if not scales.is_standard(u):
                    raise InvalidArgument("phi is given in radians; it takes no unit")
                factor = 1.0
            recipes[name] = _geometric(name, factor)
            maps_mode[name] = 'geometric'

        elif name in SIGMA_MAPS:
            base, squared = SIGMA_MAPS[name]
            factor = 1.0 if scales.is_standard(u) else table.scale.factor('velocity', u)
            n1, d = mean_channels(base, getvar(table, base, center=center))
            n2, _ = mean_channels(squared, getvar(table, squared, center=center))
            recipes[name] = _dispersion(n1, n2, d, factor)
            maps_mode[name] = 'standard'

        elif table.is_extensive(name):
            add('__sum_' + name, getvar(table, name, u, center=center), 'f')
            recipes[name] = _plain('__sum_' + name)
            maps_mode[name] = 'sum'

        else:
            values = getvar(table, name, u, center=center)
            if mode == 'max':
                add('__max_' + name, values, 'max')
                recipes[name] = _maximum('__max_' + name)
            else:
                numerator, denominator = mean_channels(name, values)
                recipes[name] = _mean(numerator, denominator, mode == 'sum')
            maps_mode[name] = mode

    ordered = [channels[k] for k in sorted(channels)]
    return ordered, recipes, maps_unit, maps_mode


def _ratio(numerator, denominator):
    out = np.zeros_like(numerator)
    np.divide(numerator, denominator, out=out, where=denominator > 0)
    return out


def _plain(channel):
    return lambda acc, geometry, table, cen: acc[channel].copy()


def _maximum(channel):
    def recipe(acc, geometry, table, cen):
        m = acc[channel].copy()
        m[~np.isfinite(m)] = 0.0
        return m
    return recipe


def _mean(numerator, denominator, multiply_by_layers):
    def recipe(acc, geometry, table, cen):
        m = _ratio(acc[numerator], acc[denominator])
        if multiply_by_layers:
            # a partly covered pixel still holds at least one layer
            m = m * np.maximum(acc['__layers'], 1.0)
        return m
    return recipe


def _dispersion(n1, n2, denominator, factor):
    def recipe(acc, geometry, table, cen):
        mean = _ratio(acc[n1], acc[denominator])
        mean_sq = _ratio(acc[n2], acc[denominator])
        return np.sqrt(np.maximum(mean_sq - mean ** 2, 0.0)) * factor
    return recipe


def _surface_density(factor):
    def recipe(acc, geometry, table, cen):
        px, py = geometry.pixel_size
        area = px * py * table.boxlen ** 2
        if area <= 0:
            return np.zeros_like(acc['__mass'])
        return acc['__mass'] / area * factor
    return recipe


def _geometric(name, factor):
    def recipe(acc, geometry, table, cen):
        a1, a2, _ = geometry.axes
        u, v = geometry.pixel_centers()
        du = (u - cen[a1]) * table.boxlen
        dv = (v - cen[a2]) * table.boxlen
        if name == 'r_cylinder':
            return np.sqrt(du ** 2 + dv ** 2) * factor
        return np.arctan2(dv, du)
    return recipe
