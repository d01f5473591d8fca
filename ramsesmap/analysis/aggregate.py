"""

aggregate
=========

Reductions of a table to a single number or vector: total mass, centre of mass, bulk velocity and mass-weighted
averages.

Every function accepts an optional boolean ``mask`` which restricts the reduction to the rows where it is True.
An empty selection gives a total of zero and averages of NaN, with a :class:`RuntimeWarning`.

"""

from __future__ import annotations

import logging
import warnings

import numpy as np

from .. import scales
from ..errors import InvalidArgument
from ..getvar import getvar
from ..table import CellTable
from ..util import check_mask

logger = logging.getLogger('ramsesmap.analysis.aggregate')


def _as_table_list(tables, mask):
    if isinstance(tables, CellTable):
        return [tables], [mask]
    tables = list(tables)
    if len(tables) == 0:
        raise InvalidArgument("No tables given")
    for t in tables:
        if not isinstance(t, CellTable):
            raise InvalidArgument("Expected a table, not %r" % (t,))
    if mask is None:
        masks = [None] * len(tables)
    else:
        masks = list(mask)
        if len(masks) != len(tables):
            raise InvalidArgument("%d masks given for %d tables" % (len(masks), len(tables)))
    return tables, masks


def _empty_warning(what):
    warnings.warn("%s of an empty selection is undefined" % what, RuntimeWarning, stacklevel=3)


def _length_factor(table, unit):
    return 1.0 if scales.is_standard(unit) else table.scale.factor('length', unit)


def _weights(table, weighting, mask):
    if weighting == 'mass':
        return getvar(table, 'mass', mask=mask)
    if weighting == 'volume':
        if not table.is_amr:
            raise InvalidArgument("Volume weighting needs a cell table, not %r" % table)
        return getvar(table, 'volume', mask=mask)
    if weighting in (None, 'none'):
        n = len(table) if mask is None else int(np.count_nonzero(mask))
        return np.ones(n)
    raise InvalidArgument("Unsupported weighting %r; use 'mass', 'volume' or 'none'" % (weighting,))


def msum(table: CellTable, unit='standard', mask=None) -> float:
    """Return the total mass of the (masked) records of a table, in unit.

    >>> msum(gas, 'Msol')
    """
    mask = check_mask(mask, table)
    total = float(np.sum(getvar(table, 'mass', unit, mask=mask)))
    logger.debug("msum of %r: %g %s", table, total, unit)
    return total


def center_of_mass(tables, unit='standard', mask=None) -> tuple[float, float, float]:
    """Return the centre of mass of one or more tables, measured from the box origin.

    Parameters
    ----------
    tables : CellTable or list of CellTable
        A single table, or several (e.g. gas cells and particles of the same snapshot) for a joint centre of mass.
    unit : str
        Length unit of the result; ``'standard'`` means code length units.
    mask : numpy.ndarray or list of numpy.ndarray, optional
        A mask for a single table, or one mask (or None) per table.

    Returns
    -------
    tuple
        (x, y, z) of the centre of mass.
    """
    tables, masks = _as_table_list(tables, mask)
    weighted = np.zeros(3)
    total = 0.0
    factor = None
    for table, m in zip(tables, masks):
        m = check_mask(m, table)
        f = _length_factor(table, unit)
        if factor is not None and not np.isclose(f, factor):
            raise InvalidArgument("Tables with different length scales cannot be combined")
        factor = f
        mass = getvar(table, 'mass', mask=m)
        pos = table.positions_fraction() * table.boxlen
        if m is not None:
            pos = pos[m]
        weighted += (pos * mass[:, np.newaxis]).sum(axis=0)
        total += mass.sum()

    if total == 0:
        _empty_warning("The centre of mass")
        return (np.nan, np.nan, np.nan)
    result = weighted / total * factor
    logger.debug("centre of mass: %s", result)
    return tuple(float(c) for c in result)


com = center_of_mass


def bulk_velocity(tables, unit='standard', mask=None, weighting='mass') -> tuple[float, float, float]:
    """Return the weighted average velocity (vx, vy, vz) of one or more tables.

    weighting is ``'mass'`` (the default), ``'volume'`` (cell tables only) or ``'none'``. Masks are given as for
    :func:`center_of_mass`.
    """
    tables, masks = _as_table_list(tables, mask)
    weighted = np.zeros(3)
    total = 0.0
    for table, m in zip(tables, masks):
        m = check_mask(m, table)
        w = _weights(table, weighting, m)
        v = getvar(table, ['vx', 'vy', 'vz'], unit, mask=m)
        weighted += [(v[c] * w).sum() for c in ('vx', 'vy', 'vz')]
        total += w.sum()

    if total == 0:
        _empty_warning("The bulk velocity")
        return (np.nan, np.nan, np.nan)
    return tuple(float(c) for c in weighted / total)


average_velocity = bulk_velocity


def average_mweighted(table: CellTable, var: str, unit='standard', mask=None) -> float:
    """Return the mass-weighted average of a variable, sum(q m) / sum(m), in unit

    >>> average_mweighted(gas, 'T', 'K')
    """
    mask = check_mask(mask, table)
    values = getvar(table, var, unit, mask=mask)
    mass = getvar(table, 'mass', mask=mask)
    if mass.sum() == 0:
        _empty_warning("The mass-weighted average")
        return np.nan
    return float((values * mass).sum() / mass.sum())
