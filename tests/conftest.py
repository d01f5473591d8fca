import numpy as np
import pytest

import ramsesmap
from ramsesmap import test_utils

# 6.77e-22 g/cm^3 is ten code density units with the test_utils defaults
UNIFORM_RHO_CGS = 6.770254302002489e-22


@pytest.fixture
def info():
    return test_utils.make_info(levelmin=3, levelmax=5)


@pytest.fixture
def uniform_gas():
    """Level-3 grid with rho = 6.77e-22 g/cm^3 and v = (20, 30, 40) km/s"""
    return test_utils.make_uniform_grid(level=3, rho=10.0, vx=20.0, vy=30.0, vz=40.0, p=1.0)


@pytest.fixture
def refined_gas():
    return test_utils.make_refined_grid(levelmin=3, levelmax=5)


@pytest.fixture
def particles():
    return test_utils.make_particle_blob(500, info=test_utils.make_info(levelmin=3, levelmax=5))


@pytest.fixture
def gravity():
    return test_utils.make_gravity_grid(level=3)


@pytest.fixture
def quiet_options():
    return ramsesmap.RunOptions(verbose=False, show_progress=False)


def total_mass(table):
    return np.sum(table['mass'])
