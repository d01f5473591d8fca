import numpy as np
import numpy.testing as npt
import pytest

import ramsesmap
from ramsesmap import msum, projection, subregion
from ramsesmap.errors import InvalidArgument, LevelOutOfRange, UnknownIdentifier

from conftest import UNIFORM_RHO_CGS


@pytest.fixture
def small_chunks(monkeypatch):
    """Split rasterisation into many tasks so that threading has something to do"""
    monkeypatch.setitem(ramsesmap.config['projection'], 'chunk-size', 97)


@pytest.mark.parametrize("direction", ['x', 'y', 'z'])
@pytest.mark.parametrize("res", [8, 37, (13, 50)])
def test_mass_conservation(refined_gas, direction, res):
    p = projection(refined_gas, 'mass', 'Msol', direction=direction, res=res)
    npt.assert_allclose(p.maps['mass'].sum(), msum(refined_gas, 'Msol'), rtol=1e-10)
    assert p.maps_mode['mass'] == 'sum'


def test_particle_mass_conservation(particles):
    p = projection(particles, 'mass', res=21)
    npt.assert_allclose(p.maps['mass'].sum(), particles['mass'].sum(), rtol=1e-10)


def test_uniform_end_to_end(uniform_gas):
    p = projection(uniform_gas, ['rho', 'vx', 'vy', 'vz', 'sd'],
                   units=['g_cm3', 'km_s', 'km_s', 'km_s', 'Msol_pc2'], res=16)
    assert p.maps['rho'].shape == (16, 16)
    npt.assert_allclose(p.maps['rho'], UNIFORM_RHO_CGS, rtol=1e-10)
    npt.assert_allclose(p.maps['vx'], 20.0, rtol=1e-10)
    npt.assert_allclose(p.maps['vy'], 30.0, rtol=1e-10)
    npt.assert_allclose(p.maps['vz'], 40.0, rtol=1e-10)

    # column density is rho * boxlen
    expected_sd = 10.0 * 100.0 * uniform_gas.scale.factor('surface_density', 'Msol_pc2')
    npt.assert_allclose(p.maps['sd'], expected_sd, rtol=1e-10)
    assert p.maps_unit['sd'] == 'Msol_pc2'
    assert p.maps_weight == ('mass', 'standard')


def test_uniform_dispersion_vanishes(uniform_gas):
    p = projection(uniform_gas, ['sigmax', 'sigma'], 'km_s', res=8)
    npt.assert_allclose(p.maps['sigmax'], 0.0, atol=1e-5)
    npt.assert_allclose(p.maps['sigma'], 0.0, atol=1e-5)


def test_dispersion(refined_gas):
    p = projection(refined_gas, ['sigmaz', 'vz'], res=4, weighting=None)
    assert np.all(p.maps['sigmaz'] > 0)
    whole = ramsesmap.analysis.wstat(refined_gas['vz'], refined_gas['volume'])
    # every pixel averages many random cells, so its dispersion is of the order of the global one
    assert p.maps['sigmaz'].max() < 2 * whole.std


def test_monotonic_thinning(refined_gas):
    mask = refined_gas['rho'] > np.median(refined_gas['rho'])
    full = projection(refined_gas, 'mass', res=20).maps['mass']
    thin = projection(refined_gas, 'mass', res=20, mask=mask).maps['mass']
    assert np.all(thin <= full * (1 + 1e-12))
    assert thin.sum() < full.sum()


def test_sum_at_least_mean(refined_gas):
    mean = projection(refined_gas, 'rho', res=20, mode='standard').maps['rho']
    total = projection(refined_gas, 'rho', res=20, mode='sum').maps['rho']
    assert np.all(total >= mean * (1 - 1e-12))
    assert np.any(total > mean)


@pytest.mark.parametrize("weighting", ['default', None])
def test_sum_at_least_mean_partial_coverage(uniform_gas, weighting):
    # a 2 x 2 x 1 block of cells covering a quarter of one pixel
    corner = subregion(uniform_gas, 'cuboid', xrange=[0, .25], yrange=[0, .25], zrange=[0, .125])
    mean = projection(corner, 'rho', res=2, xrange=[0, 1], yrange=[0, 1], weighting=weighting).maps['rho']
    total = projection(corner, 'rho', res=2, xrange=[0, 1], yrange=[0, 1], weighting=weighting,
                       mode='sum').maps['rho']
    assert np.all(total >= mean * (1 - 1e-12))
    npt.assert_allclose(total[0, 0], 10.0, rtol=1e-12)
    assert np.all(total[1:, :] == 0) and np.all(total[:, 1:] == 0)


def test_sum_mode_unweighted_counts_layers(uniform_gas):
    # eight cells along every line of sight
    p = projection(uniform_gas, 'rho', res=8, mode='sum', weighting=None)
    npt.assert_allclose(p.maps['rho'], 80.0, rtol=1e-12)


def test_max_mode(refined_gas):
    p = projection(refined_gas, 'rho', res=16, mode='max')
    npt.assert_allclose(p.maps['rho'].max(), refined_gas['rho'].max())
    mean = projection(refined_gas, 'rho', res=16).maps['rho']
    assert np.all(p.maps['rho'] >= mean * (1 - 1e-12))
    assert p.maps_mode['rho'] == 'max'


def test_variable_order_invariance(refined_gas):
    a = projection(refined_gas, ['rho', 'T', 'mass'], res=19)
    b = projection(refined_gas, ['mass', 'T', 'rho'], res=19)
    for name in ('rho', 'T', 'mass'):
        npt.assert_array_equal(a.maps[name], b.maps[name])


def test_thread_invariance(refined_gas, small_chunks):
    one = projection(refined_gas, ['rho', 'mass', 'vx'], res=23, max_threads=1)
    many = projection(refined_gas, ['rho', 'mass', 'vx'], res=23, max_threads=4)
    for name in ('rho', 'mass', 'vx'):
        npt.assert_array_equal(one.maps[name], many.maps[name])


def test_mask_consistency(refined_gas):
    mask = refined_gas['level'] > 3
    masked = projection(refined_gas, ['rho', 'mass'], res=17, mask=mask)
    selected = projection(refined_gas[mask], ['rho', 'mass'], res=17)
    for name in ('rho', 'mass'):
        npt.assert_allclose(masked.maps[name], selected.maps[name], rtol=1e-12)


def test_level_restriction(refined_gas):
    p = projection(refined_gas, 'mass', res=16, lmax=4)
    expected = refined_gas['mass'][refined_gas['level'] <= 4].sum()
    npt.assert_allclose(p.maps['mass'].sum(), expected, rtol=1e-10)
    assert p.lmax == 4

    p = projection(refined_gas, 'mass', res=16, lmin=5)
    expected = refined_gas['mass'][refined_gas['level'] == 5].sum()
    npt.assert_allclose(p.maps['mass'].sum(), expected, rtol=1e-10)


def test_default_resolution(refined_gas):
    p = projection(refined_gas, 'rho')
    assert p.res == (32, 32)
    assert p.maps['rho'].shape == (32, 32)
    p = projection(refined_gas, 'rho', lmax=4)
    assert p.res == (16, 16)


def test_pixel_size(uniform_gas):
    p = projection(uniform_gas, 'rho', pxsize=[12.5, 'code'])
    assert p.res == (8, 8)
    npt.assert_allclose(p.pixsize, (12.5, 12.5))


def test_zero_resolution(uniform_gas):
    p = projection(uniform_gas, ['rho', 'mass', 'sd'], res=0)
    for name in ('rho', 'mass', 'sd'):
        assert p.maps[name].shape == (0, 0)


def test_extent(uniform_gas):
    p = projection(uniform_gas, 'rho', res=10, center=['bc'], xrange=[-0.25, 0.25], yrange=[-0.1, 0.3],
                   direction='z')
    npt.assert_allclose(p.extent, (25., 75., 40., 80.))
    npt.assert_allclose(p.cextent, (-25., 25., -10., 30.))
    npt.assert_allclose(p.ratio, 0.8)
    npt.assert_allclose(p.extent_in('kpc', centred=True), np.array(p.cextent) * uniform_gas.scale.kpc)


def test_partial_extent_mass(uniform_gas):
    # half of the box in x, cells split exactly in two along the edge
    p = projection(uniform_gas, 'mass', res=10, xrange=[0.0, 0.5625])
    npt.assert_allclose(p.maps['mass'].sum(), uniform_gas['mass'].sum() * 0.5625, rtol=1e-10)


def test_line_of_sight_range(uniform_gas):
    p = projection(uniform_gas, 'mass', res=8, zrange=[0.0, 0.5])
    npt.assert_allclose(p.maps['mass'].sum(), uniform_gas['mass'].sum() / 2, rtol=1e-12)


def test_slice_width_thinning(refined_gas):
    full = projection(refined_gas, 'mass', res=16).maps['mass']
    totals = []
    for w in (0.05, 0.1, 0.25, 0.5):
        p = projection(refined_gas, 'mass', res=16, center=['bc'], zrange=[-w, w])
        assert np.all(p.maps['mass'] <= full * (1 + 1e-12))
        totals.append(p.maps['mass'].sum())
    assert all(a <= b for a, b in zip(totals[:-1], totals[1:]))
    assert totals[0] < totals[-1]
    # the widest slice spans the whole box
    npt.assert_allclose(totals[-1], full.sum(), rtol=1e-10)


def test_directions(uniform_gas):
    for direction, shape in (('x', (8, 4)), ('y', (8, 4)), ('z', (8, 4))):
        p = projection(uniform_gas, 'rho', res=(8, 4), direction=direction)
        assert p.maps['rho'].shape == shape
        assert p.direction == direction


def test_geometric_maps(uniform_gas):
    p = projection(uniform_gas, ['r_cylinder', 'phi'], res=4, center=['bc'])
    r = p.maps['r_cylinder']
    npt.assert_allclose(r[1, 1], np.sqrt(2) * 12.5)
    npt.assert_allclose(r[0, 0], np.sqrt(2) * 37.5)
    npt.assert_allclose(p.maps['phi'][3, 3], np.pi / 4)
    assert p.maps_mode['r_cylinder'] == 'geometric'


def test_weightings(refined_gas):
    by_mass = projection(refined_gas, 'T', res=8, weighting='mass').maps['T']
    by_mass_unit = projection(refined_gas, 'T', res=8, weighting=['mass', 'Msol']).maps['T']
    npt.assert_allclose(by_mass, by_mass_unit, rtol=1e-10)
    by_volume = projection(refined_gas, 'T', res=8, weighting='volume').maps['T']
    unweighted = projection(refined_gas, 'T', res=8, weighting='none').maps['T']
    assert not np.allclose(by_mass, by_volume)
    assert not np.allclose(by_volume, unweighted)


def test_gravity_projection(gravity):
    p = projection(gravity, 'epot', res=8)
    npt.assert_allclose(p.maps['epot'].mean(), gravity['epot'].mean(), rtol=1e-10)
    assert p.maps_weight is None


def test_threads_and_progress_options(refined_gas, caplog):
    opts = ramsesmap.RunOptions(verbose=True, show_progress=True, max_threads=2)
    with caplog.at_level('INFO', logger='ramsesmap'):
        projection(refined_gas, 'rho', res=8, options=opts)
    assert any('level 5' in r.getMessage() for r in caplog.records)


def test_discovery(capsys):
    listing = projection()
    assert 'sd' in listing['hydro']
    assert 'sigmaz' in listing['hydro']
    assert 'hydro: ' in capsys.readouterr().out


@pytest.mark.parametrize("kwargs", [
    {'res': -1},
    {'res': 2.5},
    {'direction': 'w'},
    {'mode': 'median'},
    {'weighting': ['mass', 'Msol', 'extra']},
    {'weighting': [3]},
    {'weighting': 'wibble'},
    {'xrange': [2., 3.]},
    {'xrange': [0.6, 0.4]},
    {'mask': np.ones(3, dtype=bool)},
])
def test_invalid_arguments(refined_gas, kwargs):
    with pytest.raises(InvalidArgument):
        projection(refined_gas, 'rho', **kwargs)


def test_level_errors(refined_gas):
    with pytest.raises(LevelOutOfRange):
        projection(refined_gas, 'rho', lmin=5, lmax=4)
    with pytest.raises(LevelOutOfRange):
        projection(refined_gas, 'rho', lmin=2)
    with pytest.raises(LevelOutOfRange):
        projection(refined_gas, 'rho', lmax=6)


def test_unknown_variable(refined_gas, gravity):
    with pytest.raises(UnknownIdentifier):
        projection(refined_gas, 'wibble')
    with pytest.raises(UnknownIdentifier):
        projection(gravity, 'sd')
    with pytest.raises(InvalidArgument):
        projection(refined_gas, ['rho', 'rho'])
