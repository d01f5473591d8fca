"""Tools for scientific analysis with ramsesmap

The reductions over whole tables (total mass, centre of mass, bulk velocity and mass-weighted averages) live in
:mod:`ramsesmap.analysis.aggregate`; weighted summary statistics of arbitrary arrays live in
:mod:`ramsesmap.analysis.stats`. Both are imported into the sub-package itself.
"""

from . import aggregate, stats
from .aggregate import (average_mweighted, average_velocity, bulk_velocity, center_of_mass, com, msum)
from .stats import WStat, wstat
