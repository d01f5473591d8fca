"""Weighted summary statistics of an array."""

from __future__ import annotations

import collections
import warnings

import numpy as np
import scipy.stats

from ..errors import InvalidArgument

WStat = collections.namedtuple('WStat', ['mean', 'median', 'std', 'skewness', 'kurtosis', 'min', 'max'])


def _weighted_median(values, weights):
    order = np.argsort(values, kind='stable')
    values, weights = values[order], weights[order]
    cumulative = np.cumsum(weights)
    half = 0.5 * cumulative[-1]
    i = int(np.searchsorted(cumulative, half))
    if np.isclose(cumulative[i], half) and i + 1 < len(values):
        return 0.5 * (values[i] + values[i + 1])
    return values[i]


def wstat(array, weight=None, mask=None) -> WStat:
    """Return the (weighted) mean, median, standard deviation, skewness, excess kurtosis, min and max of array.

    Parameters
    ----------
    array : array-like
        The values, e.g. from :func:`ramsesmap.getvar.getvar`.
    weight : array-like, optional
        Non-negative weights of the same length. Without weights, the moments are those of
        :func:`scipy.stats.describe` (population standard deviation, biased skewness and kurtosis).
    mask : numpy.ndarray of bool, optional
        Only entries where mask is True are used.
    """
    values = np.asarray(array, dtype=float)
    if values.ndim != 1:
        raise InvalidArgument("wstat needs a one-dimensional array")
    if weight is not None:
        weight = np.asarray(weight, dtype=float)
        if weight.shape != values.shape:
            raise InvalidArgument("weight has length %d but the array has %d" % (weight.size, values.size))
        if np.any(weight < 0):
            raise InvalidArgument("Weights must not be negative")
    if mask is not None:
        mask = np.asarray(mask)
        if mask.shape != values.shape or mask.dtype != np.bool_:
            raise InvalidArgument("mask must be a boolean array of length %d" % values.size)
        values = values[mask]
        if weight is not None:
            weight = weight[mask]

    if len(values) == 0 or (weight is not None and weight.sum() == 0):
        warnings.warn("Statistics of an empty selection are undefined", RuntimeWarning, stacklevel=2)
        return WStat(*([np.nan] * 7))

    if weight is None:
        d = scipy.stats.describe(values, ddof=0)
        return WStat(float(d.mean), float(np.median(values)), float(np.sqrt(d.variance)), float(d.skewness),
                     float(d.kurtosis), float(d.minmax[0]), float(d.minmax[1]))

    mean = np.average(values, weights=weight)
    dev = values - mean
    variance = np.average(dev ** 2, weights=weight)
    std = np.sqrt(variance)
    if variance > 0:
        skewness = np.average(dev ** 3, weights=weight) / variance ** 1.5
        kurtosis = np.average(dev ** 4, weights=weight) / variance ** 2 - 3.0
    else:
        skewness = kurtosis = np.nan
    return WStat(float(mean), float(_weighted_median(values, weight)), float(std), float(skewness),
                 float(kurtosis), float(values.min()), float(values.max()))
