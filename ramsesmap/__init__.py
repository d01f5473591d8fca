"""
ramsesmap
=========

Post-processing of RAMSES adaptive-mesh-refinement snapshots: derived variables with unit conversion, geometric
region selection, 2D projections and aggregate statistics over tables of leaf cells or particles.

>>> import ramsesmap
>>> info = ramsesmap.SimulationInfo.from_infofile('output_00100')
>>> gas = ramsesmap.HydroTable(info, columns)
>>> ramsesmap.msum(gas, 'Msol')
>>> p = ramsesmap.projection(gas, 'sd', 'Msol_pc2', center=['bc'], xrange=[-10, 10], yrange=[-10, 10],
...                          range_unit='kpc')

"""

# We need to import configuration first, so prevent isort from reordering
# isort: off
from .configuration import config, logger, config_parser, RunOptions, set_logging_level
# isort: on
from . import analysis, derived, errors, filt, hdf, scales, units, util
from .analysis import (average_mweighted, average_velocity, bulk_velocity, center_of_mass, com, msum, wstat)
from .errors import DomainMissing, InvalidArgument, LevelOutOfRange, RamsesMapError, UnknownIdentifier
from .getvar import getextent, getpositions, getvar, getvelocities
from .info import SimulationInfo
from .projection import ProjectionMap, projection
from .regions import shellregion, subregion
from .table import CellTable, GravityTable, HydroTable, ParticleTable

__all__ = ['config', 'RunOptions', 'set_logging_level',
           'SimulationInfo', 'CellTable', 'HydroTable', 'GravityTable', 'ParticleTable',
           'getvar', 'getpositions', 'getvelocities', 'getextent',
           'subregion', 'shellregion', 'projection', 'ProjectionMap',
           'msum', 'center_of_mass', 'com', 'bulk_velocity', 'average_velocity', 'average_mweighted', 'wstat',
           'RamsesMapError', 'InvalidArgument', 'UnknownIdentifier', 'DomainMissing', 'LevelOutOfRange']

__version__ = '0.1.0'
