import numpy as np
import numpy.testing as npt
import pytest

import ramsesmap
from ramsesmap import getextent, getpositions, getvar, getvelocities
from ramsesmap.errors import InvalidArgument, UnknownIdentifier

from conftest import UNIFORM_RHO_CGS


def test_uniform_density_in_cgs(uniform_gas):
    rho = getvar(uniform_gas, 'rho', 'g_cm3')
    assert rho.shape == (512,)
    npt.assert_allclose(rho, UNIFORM_RHO_CGS, rtol=1e-12)


def test_uniform_velocities(uniform_gas):
    d = getvar(uniform_gas, ['vx', 'vy', 'vz'], 'km_s')
    npt.assert_allclose(d['vx'], 20.0, rtol=1e-12)
    npt.assert_allclose(d['vy'], 30.0, rtol=1e-12)
    npt.assert_allclose(d['vz'], 40.0, rtol=1e-12)
    npt.assert_allclose(getvar(uniform_gas, 'v', 'km_s'), np.sqrt(20 ** 2 + 30 ** 2 + 40 ** 2), rtol=1e-12)
    vx, vy, vz = getvelocities(uniform_gas, 'cm_s')
    npt.assert_allclose(vz, 4.e6, rtol=1e-12)


def test_standard_unit_is_code(uniform_gas):
    npt.assert_array_equal(getvar(uniform_gas, 'rho'), uniform_gas['rho'])
    npt.assert_array_equal(getvar(uniform_gas, 'rho', 'standard'), getvar(uniform_gas, 'rho', 'code'))


def test_units_list(uniform_gas):
    d = getvar(uniform_gas, ['rho', 'vx'], units=['g_cm3', 'km_s'])
    npt.assert_allclose(d['rho'], UNIFORM_RHO_CGS, rtol=1e-12)
    npt.assert_allclose(d['vx'], 20.0, rtol=1e-12)
    # a single unit is broadcast
    d = getvar(uniform_gas, ['vx', 'vy'], units=['cm_s'])
    npt.assert_allclose(d['vy'], 3.e6, rtol=1e-12)
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, ['rho', 'vx', 'vy'], units=['g_cm3', 'km_s'])


def test_repeated_variable(uniform_gas):
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, ['rho', 'rho'])
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, ['rho', 'vx', 'rho'], units=['g_cm3', 'km_s', 'kg_m3'])


def test_mass(uniform_gas):
    mass = getvar(uniform_gas, 'mass', 'g')
    cell_volume_cm3 = (12.5 * ramsesmap.test_utils.KPC_IN_CM) ** 3
    npt.assert_allclose(mass, UNIFORM_RHO_CGS * cell_volume_cm3, rtol=1e-10)
    npt.assert_allclose(mass.sum(), UNIFORM_RHO_CGS * (100 * ramsesmap.test_utils.KPC_IN_CM) ** 3, rtol=1e-10)


def test_positions_match_getvar(refined_gas):
    x, y, z = getpositions(refined_gas, 'kpc', center=['bc'])
    d = getvar(refined_gas, ['x', 'y', 'z'], 'kpc', center=['bc'])
    npt.assert_array_equal(x, d['x'])
    npt.assert_array_equal(y, d['y'])
    npt.assert_array_equal(z, d['z'])
    assert x.min() > -50 and x.max() < 50


def test_particle_positions(particles):
    x, y, z = getpositions(particles, 'standard')
    npt.assert_allclose(x, particles['x'])
    x, y, z = getpositions(particles, 'kpc', center=[50., 50., 50.], center_unit='kpc')
    npt.assert_allclose(z, getvar(particles, 'z', 'kpc', center=['bc']), atol=1e-6)


def test_center_dependent(uniform_gas):
    r = getvar(uniform_gas, 'r_sphere', center=['bc'])
    npt.assert_allclose(r.min(), np.sqrt(3) * 6.25)
    r_code = getvar(uniform_gas, 'r_sphere', center=[50., 50., 50.], center_unit='code')
    npt.assert_array_equal(r, r_code)


def test_temperature(uniform_gas):
    T = getvar(uniform_gas, 'T', 'K')
    c = ramsesmap.scales.constants
    expected = 0.1 * c.mH / c.kB * 1e10 / ramsesmap.scales.X_FRAC
    npt.assert_allclose(T, expected, rtol=1e-10)


def test_mask(uniform_gas):
    mask = np.zeros(len(uniform_gas), dtype=bool)
    mask[:10] = True
    assert len(getvar(uniform_gas, 'rho', mask=mask)) == 10
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, 'rho', mask=mask[:5])
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, 'rho', mask=np.ones(len(uniform_gas)))


def test_unknown_variable(uniform_gas, gravity):
    with pytest.raises(UnknownIdentifier):
        getvar(uniform_gas, 'wibble')
    with pytest.raises(UnknownIdentifier):
        getvar(gravity, 'mass')


def test_unknown_unit(uniform_gas):
    with pytest.raises(UnknownIdentifier):
        getvar(uniform_gas, 'rho', 'stone_cubit3')
    with pytest.raises(InvalidArgument):
        getvar(uniform_gas, 'rho', 'kpc')


def test_returned_arrays_are_independent(uniform_gas):
    rho = getvar(uniform_gas, 'rho', 'g_cm3')
    rho[:] = 0
    assert uniform_gas['rho'][0] == 10.0


def test_discovery(capsys, uniform_gas):
    listing = getvar()
    out = capsys.readouterr().out
    assert 'hydro' in listing and 'particles' in listing and 'gravity' in listing
    assert 'rho' in listing['hydro']
    assert 'mass' in listing['particles']
    assert 'hydro: ' in out
    assert getvar(uniform_gas) == uniform_gas.all_keys()


def test_extent(uniform_gas):
    ext = getextent(uniform_gas, 'kpc', center=['bc'])
    npt.assert_allclose(np.array(ext), [[-50, 50]] * 3, rtol=1e-8)
