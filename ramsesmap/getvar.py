"""The Variable Resolver: named physical quantities from a table, in any unit.

>>> rho = getvar(gas, 'rho', 'g_cm3')
>>> d = getvar(gas, ['mass', 'T'], units=['Msol', 'K'])
>>> r = getvar(gas, 'r_sphere', 'kpc', center=['bc'])

Calling :func:`getvar` without arguments lists the recognised identifiers for every kind of table.
"""

from __future__ import annotations

import logging

import numpy as np

from . import derived  # noqa: F401 (registers the derived variables)
from .configuration import RunOptions
from .errors import InvalidArgument
from .info import DEFAULT_GRAVITY_VARIABLES, DEFAULT_HYDRO_VARIABLES, DEFAULT_PARTICLE_VARIABLES
from .table import CellTable, GravityTable, HydroTable, ParticleTable
from .util import as_variable_list, broadcast_units, check_mask, factor_for, resolve_center

logger = logging.getLogger('ramsesmap.getvar')

_POSITION_NAMES = ('x', 'y', 'z')


def list_variables() -> dict[str, list[str]]:
    """Return the identifiers the resolver recognises, per table kind.

    Stored fields depend on the snapshot; the defaults listed here are those of a standard RAMSES hydro run.
    """
    stored = {HydroTable: ('level', 'cx', 'cy', 'cz') + DEFAULT_HYDRO_VARIABLES,
              GravityTable: ('level', 'cx', 'cy', 'cz') + DEFAULT_GRAVITY_VARIABLES,
              ParticleTable: ('x', 'y', 'z') + DEFAULT_PARTICLE_VARIABLES}
    result = {}
    for cls, fields in stored.items():
        names = set(fields)
        for cl in cls.__mro__:
            for name, d in CellTable._derived_array_registry.get(cl, {}).items():
                requires = getattr(d.function, 'requires', ())
                if all(r in fields or r in _POSITION_NAMES for r in requires):
                    names.add(name)
        result[cls.kind] = sorted(names)
    return result


def _print_variables():
    for kind, names in list_variables().items():
        print("%s: %s" % (kind, ", ".join(names)))


def _center_in_code_units(table, center, center_unit):
    return resolve_center(center, table, center_unit) * table.boxlen


def _raw(table, name, center_code):
    if name in _POSITION_NAMES:
        # stored particle positions are absolute, so handle them like the derived cell positions
        axis = _POSITION_NAMES.index(name)
        return table.positions_fraction()[:, axis] * table.boxlen - center_code[axis]
    return table._get_array(name, center=center_code)


def getvar(table: CellTable = None, var: str | list[str] = None, unit='standard', *, units=None, mask=None,
           center=(0., 0., 0.), center_unit='standard', options: RunOptions = None):
    """Get one or more variables from a table, converted to the requested unit(s).

    Parameters
    ----------
    table : CellTable
        The hydro, gravity or particle table. If omitted, the recognised identifiers are printed and returned.
    var : str or list of str
        The variable(s) to compute. A single name gives a single array; a list gives a dict.
    unit : str
        Unit applied to every variable. ``'standard'`` means code units.
    units : list of str, optional
        One unit per variable (or a single-element list, broadcast to all).
    mask : numpy.ndarray of bool, optional
        Restrict the output to the rows where mask is True. Must match the table length.
    center : sequence, optional
        Reference point for positions and centre-dependent quantities, in center_unit. Any element may be
        ``'bc'`` for the box centre.
    center_unit : str
        ``'standard'`` (box-relative), ``'code'`` or a physical length unit.

    Returns
    -------
    numpy.ndarray or dict of numpy.ndarray
    """
    if table is None:
        _print_variables()
        return list_variables()
    if var is None:
        return table.all_keys()

    opts = RunOptions.resolve(options)
    single = isinstance(var, str)
    names = as_variable_list(var)
    if len(set(names)) != len(names):
        raise InvalidArgument("Variables must not be repeated")
    unit_list = broadcast_units(names, unit, units)
    mask = check_mask(mask, table)
    center_code = _center_in_code_units(table, center, center_unit)

    result = {}
    for name, u in zip(names, unit_list):
        values = _raw(table, name, center_code)
        f = factor_for(table, name, u)
        if mask is not None:
            values = values[mask]
        if values.dtype.kind in 'iu' and f == 1.0:
            out = np.array(values, copy=True)
        else:
            out = np.asarray(values, dtype=float) * f
        result[name] = out

    logger.log(opts.log_level, "getvar: %s from %r", ", ".join(names), table)

    if single:
        return result[names[0]]
    return result


def getpositions(table: CellTable, unit='standard', *, center=(0., 0., 0.), center_unit='standard', mask=None):
    """Return the x, y and z positions of the records relative to center, as a tuple of arrays.

    Equivalent to ``getvar(table, ['x', 'y', 'z'], unit, center=center)``.
    """
    d = getvar(table, list(_POSITION_NAMES), unit, center=center, center_unit=center_unit, mask=mask)
    return d['x'], d['y'], d['z']


def getvelocities(table: CellTable, unit='standard', *, mask=None):
    """Return the vx, vy and vz components of the records as a tuple of arrays"""
    for name in ('vx', 'vy', 'vz'):
        if name not in table:
            raise InvalidArgument("%r has no velocities" % table)
    d = getvar(table, ['vx', 'vy', 'vz'], unit, mask=mask)
    return d['vx'], d['vy'], d['vz']


def getextent(table: CellTable, unit='standard', *, center=(0., 0., 0.), center_unit='standard'):
    """Return ((xmin, xmax), (ymin, ymax), (zmin, zmax)) of the records, relative to center.

    Cell edges are used for AMR data, positions for particles."""
    center_code = _center_in_code_units(table, center, center_unit)
    f = factor_for(table, 'cellsize' if table.is_amr else 'x', unit)
    bb = np.asarray(table.bounding_box()) * table.boxlen
    return tuple(((bb[2 * i] - center_code[i]) * f, (bb[2 * i + 1] - center_code[i]) * f) for i in range(3))
