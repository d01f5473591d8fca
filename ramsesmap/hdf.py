"""Saving and loading tables and projection maps as HDF5 files.

>>> ramsesmap.hdf.save(gas, 'gas.hdf5')
>>> gas = ramsesmap.hdf.load('gas.hdf5')

A file holds exactly one object. The snapshot metadata is stored alongside it, so that units and scales survive the
round trip.
"""

from __future__ import annotations

import logging

import h5py
import numpy as np

from .errors import InvalidArgument
from .info import DATA_KINDS, SimulationInfo
from .projection import ProjectionMap
from .table import CellTable, GravityTable, HydroTable, ParticleTable

logger = logging.getLogger('ramsesmap.hdf')

_INFO_SCALARS = ('levelmin', 'levelmax', 'boxlen', 'unit_l', 'unit_d', 'unit_t', 'time', 'aexp', 'H0',
                 'omega_m', 'omega_l', 'omega_k', 'omega_b', 'gamma', 'ncpu') + DATA_KINDS
_INFO_LISTS = ('hydro_variables', 'particle_variables', 'gravity_variables')

_TABLE_CLASSES = {cls.kind: cls for cls in (HydroTable, GravityTable, ParticleTable)}

_MAP_SCALARS = ('direction', 'boxlen', 'lmin', 'lmax', 'smallr', 'smallc', 'ratio')
_MAP_TUPLES = ('res', 'pixsize', 'extent', 'cextent', 'center', 'ranges')


def _decode(value):
    if isinstance(value, bytes):
        return value.decode('utf-8')
    if isinstance(value, np.generic):
        return value.item()
    return value


def _write_info(group, info):
    for name in _INFO_SCALARS:
        group.attrs[name] = getattr(info, name)
    if info.output is not None:
        group.attrs['output'] = info.output
    if info.path:
        group.attrs['path'] = info.path
    for name in _INFO_LISTS:
        group.attrs[name] = np.array(getattr(info, name), dtype=h5py.string_dtype())


def _read_info(group):
    kwargs = {name: _decode(group.attrs[name]) for name in _INFO_SCALARS}
    kwargs['output'] = _decode(group.attrs['output']) if 'output' in group.attrs else None
    kwargs['path'] = _decode(group.attrs['path']) if 'path' in group.attrs else ''
    for name in _INFO_LISTS:
        kwargs[name] = tuple(_decode(v) for v in group.attrs[name])
    return SimulationInfo(**kwargs)


def _save_table(f, table):
    f.attrs['kind'] = table.kind
    f.attrs['lmin'] = table.lmin
    f.attrs['lmax'] = table.lmax
    f.attrs['ranges'] = np.asarray(table.ranges)
    f.attrs['smallr'] = table.smallr
    f.attrs['smallc'] = table.smallc
    columns = f.create_group('columns')
    for name in table.fields():
        columns.create_dataset(name, data=table[name])


def _load_table(f, info):
    kind = _decode(f.attrs['kind'])
    if kind not in _TABLE_CLASSES:
        raise InvalidArgument("Unknown table kind %r in file" % kind)
    columns = {name: f['columns'][name][()] for name in f['columns']}
    return _TABLE_CLASSES[kind](info, columns, lmin=int(f.attrs['lmin']), lmax=int(f.attrs['lmax']),
                                ranges=tuple(f.attrs['ranges']), smallr=float(f.attrs['smallr']),
                                smallc=float(f.attrs['smallc']))


def _save_map(f, pmap):
    for name in _MAP_SCALARS:
        f.attrs[name] = getattr(pmap, name)
    for name in _MAP_TUPLES:
        f.attrs[name] = np.asarray(getattr(pmap, name))
    if pmap.maps_weight is not None:
        f.attrs['weight'] = np.array([str(w) for w in pmap.maps_weight], dtype=h5py.string_dtype())
    maps = f.create_group('maps')
    for name, data in pmap.maps.items():
        ds = maps.create_dataset(name, data=data)
        ds.attrs['unit'] = str(pmap.maps_unit[name])
        ds.attrs['mode'] = pmap.maps_mode[name]


def _load_map(f, info):
    pmap = ProjectionMap.__new__(ProjectionMap)
    pmap.maps, pmap.maps_unit, pmap.maps_mode = {}, {}, {}
    for name in f['maps']:
        ds = f['maps'][name]
        pmap.maps[name] = ds[()]
        pmap.maps_unit[name] = _decode(ds.attrs['unit'])
        pmap.maps_mode[name] = _decode(ds.attrs['mode'])
    pmap.maps_weight = tuple(_decode(w) for w in f.attrs['weight']) if 'weight' in f.attrs else None
    for name in _MAP_SCALARS:
        setattr(pmap, name, _decode(f.attrs[name]))
    for name in _MAP_TUPLES:
        setattr(pmap, name, tuple(_decode(v) for v in f.attrs[name]))
    pmap.info = info
    pmap.scale = info.scale
    return pmap


def save(obj, filename):
    """Write a table or a projection map to an HDF5 file, replacing any existing file"""
    if isinstance(obj, CellTable):
        what, writer = 'table', _save_table
    elif isinstance(obj, ProjectionMap):
        what, writer = 'projection', _save_map
    else:
        raise InvalidArgument("Only tables and projection maps can be saved, not %r" % (obj,))

    with h5py.File(filename, 'w') as f:
        f.attrs['ramsesmap_type'] = what
        _write_info(f.create_group('info'), obj.info)
        writer(f, obj)
    logger.info("Saved %r to %s", obj, filename)


def load(filename):
    """Read a table or a projection map previously written by :func:`save`"""
    with h5py.File(filename, 'r') as f:
        what = _decode(f.attrs.get('ramsesmap_type', ''))
        if what not in ('table', 'projection'):
            raise InvalidArgument("%s was not written by ramsesmap" % filename)
        info = _read_info(f['info'])
        result = _load_table(f, info) if what == 'table' else _load_map(f, info)
    logger.debug("Loaded %r from %s", result, filename)
    return result
