import h5py
import numpy.testing as npt
import pytest

from ramsesmap import hdf, projection
from ramsesmap.errors import InvalidArgument


def test_table_file(tmp_path, refined_gas):
    filename = tmp_path / "gas.hdf5"
    hdf.save(refined_gas, filename)
    loaded = hdf.load(filename)

    assert type(loaded) is type(refined_gas)
    assert len(loaded) == len(refined_gas)
    assert loaded.level_range() == refined_gas.level_range()
    assert loaded.ranges == refined_gas.ranges
    assert loaded.info.output == refined_gas.info.output
    assert loaded.info.hydro_variables == refined_gas.info.hydro_variables
    npt.assert_allclose(loaded.info.unit_d, refined_gas.info.unit_d)
    for name in refined_gas.fields():
        npt.assert_array_equal(loaded[name], refined_gas[name])
    npt.assert_allclose(loaded.scale.kpc, refined_gas.scale.kpc)


def test_particle_file(tmp_path, particles):
    filename = tmp_path / "stars.hdf5"
    hdf.save(particles, filename)
    loaded = hdf.load(filename)
    npt.assert_array_equal(loaded['x'], particles['x'])
    assert loaded.kind == 'particles'


def test_projection_file(tmp_path, refined_gas):
    p = projection(refined_gas, ['rho', 'mass'], units=['g_cm3', 'Msol'], res=12, center=['bc'],
                   xrange=[-0.3, 0.3])
    filename = tmp_path / "map.hdf5"
    hdf.save(p, filename)
    loaded = hdf.load(filename)

    for name in ('rho', 'mass'):
        npt.assert_array_equal(loaded.maps[name], p.maps[name])
        assert loaded.maps_unit[name] == p.maps_unit[name]
        assert loaded.maps_mode[name] == p.maps_mode[name]
    assert loaded.maps_weight == p.maps_weight
    assert loaded.res == p.res
    npt.assert_allclose(loaded.extent, p.extent)
    npt.assert_allclose(loaded.cextent, p.cextent)
    assert loaded.direction == 'z'


def test_foreign_file(tmp_path):
    filename = tmp_path / "other.hdf5"
    with h5py.File(filename, 'w') as f:
        f.create_dataset('x', data=[1, 2, 3])
    with pytest.raises(InvalidArgument):
        hdf.load(filename)


def test_unsupported_object(tmp_path):
    with pytest.raises(InvalidArgument):
        hdf.save({'a': 1}, tmp_path / "dict.hdf5")
