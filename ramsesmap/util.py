"""Helpers shared by the region selector, the variable resolver and the projection engine."""

from __future__ import annotations

import numpy as np

from . import scales
from .errors import InvalidArgument

BOX_CENTER_MARKERS = ('bc', 'boxcenter', ':bc', ':boxcenter')


def is_box_center_marker(value) -> bool:
    return isinstance(value, str) and value.lower() in BOX_CENTER_MARKERS


def length_to_box_fraction(value, unit, table):
    """Convert a length (or array of lengths) in unit into box-relative units.

    ``'standard'`` or None means the value is already box-relative; ``'code'`` means code length units; anything
    else is a physical length unit understood by :mod:`ramsesmap.scales`.
    """
    value = np.asarray(value, dtype=float)
    if unit is None or unit == 'standard':
        return value
    if unit == 'code':
        return value / table.boxlen
    return value / table.scale.factor('length', unit) / table.boxlen


def resolve_center(center, table, unit='standard', allowed_dimensions=(3,)) -> np.ndarray:
    """Turn a center specification into a box-relative numpy array.

    The specification is a sequence of numbers in unit; any element may be the box-center marker ``'bc'``, and a
    lone marker (``'bc'`` or ``['bc']``) stands for the center of the box along every axis.
    """
    ndim = max(allowed_dimensions)
    if center is None:
        return np.zeros(ndim)
    if is_box_center_marker(center):
        return np.full(ndim, 0.5)
    if isinstance(center, str):
        raise InvalidArgument("Unrecognised center %r" % center)
    center = list(center)
    if len(center) == 1 and is_box_center_marker(center[0]):
        return np.full(ndim, 0.5)
    if len(center) not in allowed_dimensions:
        raise InvalidArgument("center must have %s elements, not %d" %
                              (" or ".join(map(str, allowed_dimensions)), len(center)))

    result = np.empty(len(center))
    for i, c in enumerate(center):
        if is_box_center_marker(c):
            result[i] = 0.5
        elif isinstance(c, str):
            raise InvalidArgument("Unrecognised center element %r" % c)
        else:
            result[i] = length_to_box_fraction(float(c), unit, table)
    return result


def check_mask(mask, table):
    """Return mask as a boolean array, checking that it matches the table; None gives None"""
    if mask is None:
        return None
    mask = np.asarray(mask)
    if mask.shape != (len(table),):
        raise InvalidArgument("mask has length %d but the table has %d rows" % (mask.size, len(table)))
    if mask.dtype != np.bool_:
        raise InvalidArgument("mask must be a boolean array")
    return mask


def broadcast_units(variables, unit, units_list):
    """Pair every variable with its unit. A single unit applies to every variable; a list must match in length."""
    if units_list is not None:
        if isinstance(units_list, str):
            units_list = [units_list]
        units_list = list(units_list)
        if len(units_list) == 1:
            return units_list * len(variables)
        if len(units_list) != len(variables):
            raise InvalidArgument("%d units given for %d variables" % (len(units_list), len(variables)))
        return units_list
    if isinstance(unit, (list, tuple)):
        return broadcast_units(variables, None, unit)
    return [unit] * len(variables)


def as_variable_list(var):
    if isinstance(var, str):
        return [var]
    var = list(var)
    for v in var:
        if not isinstance(v, str):
            raise InvalidArgument("Variable names must be strings, not %r" % (v,))
    return var


def parse_range(rng, name):
    """Validate a (min, max) pair; None passes through"""
    if rng is None:
        return None
    rng = list(rng)
    if len(rng) != 2:
        raise InvalidArgument("%s must be a pair (min, max)" % name)
    lo, hi = float(rng[0]), float(rng[1])
    if not (np.isfinite(lo) and np.isfinite(hi)):
        raise InvalidArgument("%s must be finite" % name)
    if lo > hi:
        raise InvalidArgument("%s has min > max (%g > %g)" % (name, lo, hi))
    return lo, hi


def factor_for(table, name, unit):
    """Conversion factor from code units for the named variable of table"""
    return table.scale.factor(table.quantity_of(name), unit) if not scales.is_standard(unit) else 1.0
