import numpy as np
import numpy.testing as npt
import pytest
import scipy.stats

from ramsesmap import (average_mweighted, bulk_velocity, center_of_mass, com, getvar, msum, subregion,
                       test_utils, wstat)
from ramsesmap.errors import InvalidArgument

from conftest import UNIFORM_RHO_CGS


def test_msum_uniform(uniform_gas):
    box_volume_cm3 = (100 * test_utils.KPC_IN_CM) ** 3
    npt.assert_allclose(msum(uniform_gas, 'g'), UNIFORM_RHO_CGS * box_volume_cm3, rtol=1e-10)
    npt.assert_allclose(msum(uniform_gas), 10.0 * 100 ** 3, rtol=1e-12)


def test_msum_mask(refined_gas):
    mask = refined_gas['level'] == 5
    npt.assert_allclose(msum(refined_gas, mask=mask), refined_gas['mass'][mask].sum())
    assert msum(refined_gas, mask=np.zeros(len(refined_gas), dtype=bool)) == 0.0
    with pytest.raises(InvalidArgument):
        msum(refined_gas, mask=mask[1:])


def test_msum_is_additive(refined_gas):
    inside = subregion(refined_gas, 'sphere', center=['bc'], radius=0.2)
    outside = subregion(refined_gas, 'sphere', center=['bc'], radius=0.2, inverse=True)
    npt.assert_allclose(msum(inside) + msum(outside), msum(refined_gas), rtol=1e-12)


def test_center_of_mass_uniform(uniform_gas):
    npt.assert_allclose(center_of_mass(uniform_gas), (50., 50., 50.), rtol=1e-12)
    npt.assert_allclose(com(uniform_gas, 'kpc'), np.array((50., 50., 50.)) * uniform_gas.scale.kpc, rtol=1e-12)


def test_center_of_mass_mask(uniform_gas):
    mask = uniform_gas['cx'] <= 4
    x, y, z = center_of_mass(uniform_gas, mask=mask)
    npt.assert_allclose((x, y, z), (25., 50., 50.), rtol=1e-12)


def test_joint_center_of_mass(uniform_gas):
    info = uniform_gas.info
    p = test_utils.make_particle_blob(200, info=info)
    joint = center_of_mass([uniform_gas, p])
    mg, mp = msum(uniform_gas), msum(p)
    expected = (np.array(center_of_mass(uniform_gas)) * mg + np.array(center_of_mass(p)) * mp) / (mg + mp)
    npt.assert_allclose(joint, expected, rtol=1e-12)
    with pytest.raises(InvalidArgument):
        center_of_mass([uniform_gas, p], mask=[None])


def test_bulk_velocity_uniform(uniform_gas):
    npt.assert_allclose(bulk_velocity(uniform_gas, 'km_s'), (20., 30., 40.), rtol=1e-12)
    npt.assert_allclose(bulk_velocity(uniform_gas, 'km_s', weighting='volume'), (20., 30., 40.), rtol=1e-12)
    npt.assert_allclose(bulk_velocity(uniform_gas, 'km_s', weighting='none'), (20., 30., 40.), rtol=1e-12)
    with pytest.raises(InvalidArgument):
        bulk_velocity(uniform_gas, weighting='entropy')


def test_bulk_velocity_weights(refined_gas):
    m = refined_gas['mass']
    expected = [(refined_gas[c] * m).sum() / m.sum() for c in ('vx', 'vy', 'vz')]
    npt.assert_allclose(bulk_velocity(refined_gas), expected, rtol=1e-12)


def test_average_mweighted(refined_gas):
    T = getvar(refined_gas, 'T', 'K')
    m = refined_gas['mass']
    npt.assert_allclose(average_mweighted(refined_gas, 'T', 'K'), (T * m).sum() / m.sum(), rtol=1e-12)
    npt.assert_allclose(average_mweighted(refined_gas, 'mass'), (m * m).sum() / m.sum(), rtol=1e-12)


def test_empty_selection(refined_gas):
    empty = np.zeros(len(refined_gas), dtype=bool)
    with pytest.warns(RuntimeWarning):
        assert np.all(np.isnan(center_of_mass(refined_gas, mask=empty)))
    with pytest.warns(RuntimeWarning):
        assert np.all(np.isnan(bulk_velocity(refined_gas, mask=empty)))
    with pytest.warns(RuntimeWarning):
        assert np.isnan(average_mweighted(refined_gas, 'rho', mask=empty))


def test_wstat_unweighted():
    np.random.seed(1337)
    values = np.random.normal(size=1000)
    s = wstat(values)
    npt.assert_allclose(s.mean, values.mean())
    npt.assert_allclose(s.median, np.median(values))
    npt.assert_allclose(s.std, values.std())
    npt.assert_allclose(s.skewness, scipy.stats.skew(values))
    npt.assert_allclose(s.kurtosis, scipy.stats.kurtosis(values))
    assert s.min == values.min() and s.max == values.max()


def test_wstat_weighted():
    values = np.array([1.0, 2.0, 3.0, 4.0])
    s = wstat(values, weight=[1.0, 1.0, 1.0, 1.0])
    npt.assert_allclose(s.mean, 2.5)
    npt.assert_allclose(s.median, 2.5)
    npt.assert_allclose(s.std, values.std())

    s = wstat(values, weight=[0.0, 0.0, 1.0, 3.0])
    npt.assert_allclose(s.mean, 3.75)
    assert s.median == 4.0

    # integer weights are equivalent to repetition
    repeated = np.repeat(values, [1, 2, 3, 4])
    s = wstat(values, weight=[1, 2, 3, 4])
    npt.assert_allclose(s.std, repeated.std())
    npt.assert_allclose(s.skewness, scipy.stats.skew(repeated))


def test_wstat_mask_and_errors():
    values = np.arange(10.0)
    s = wstat(values, mask=values < 5)
    assert s.max == 4.0
    with pytest.raises(InvalidArgument):
        wstat(values, weight=np.ones(3))
    with pytest.raises(InvalidArgument):
        wstat(values, weight=-np.ones(10))
    with pytest.warns(RuntimeWarning):
        assert np.isnan(wstat(values, mask=np.zeros(10, dtype=bool)).mean)
