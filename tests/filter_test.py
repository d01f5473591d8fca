import numpy as np
import numpy.testing as npt
import pytest

from ramsesmap import filt
from ramsesmap.errors import InvalidArgument


def _distance_from_centre(table):
    return np.linalg.norm(table.positions_fraction() - 0.5, axis=1)


def test_sphere(refined_gas):
    sp = refined_gas[filt.Sphere(0.2)]
    d = _distance_from_centre(refined_gas)
    assert len(sp) == (d <= 0.2).sum()
    assert _distance_from_centre(sp).max() <= 0.2


def test_sphere_whole_cells(refined_gas):
    by_centre = filt.Sphere(0.2)(refined_gas)
    whole = filt.Sphere(0.2, cell=False)(refined_gas)
    # whole-cell selection is a subset of centre selection
    assert np.all(by_centre[whole])
    assert whole.sum() < by_centre.sum()


def test_empty_sphere(refined_gas):
    sp = refined_gas[filt.Sphere(0.0, (0.01, 0.01, 0.01))]
    assert len(sp) == 0


def test_cuboid(refined_gas):
    f = filt.Cuboid(0.25, 0.25, 0.25, 0.75, 0.75, 0.75)
    pos = refined_gas.positions_fraction()
    expected = np.all((pos >= 0.25) & (pos <= 0.75), axis=1)
    npt.assert_array_equal(f(refined_gas), expected)
    assert f.bounds() == (0.25, 0.75, 0.25, 0.75, 0.25, 0.75)
    assert filt.Cuboid(0.25) == f


def test_cuboid_inverted():
    with pytest.raises(InvalidArgument):
        filt.Cuboid(0.5, 0.0, 0.0, 0.4, 1.0, 1.0)


def test_cylinder(refined_gas):
    f = filt.Cylinder(0.2, height=0.1, direction='x')
    pos = refined_gas.positions_fraction() - 0.5
    expected = (pos[:, 1] ** 2 + pos[:, 2] ** 2 <= 0.2 ** 2) & (np.abs(pos[:, 0]) <= 0.1)
    npt.assert_array_equal(f(refined_gas), expected)


def test_shells_complement(refined_gas):
    shell = filt.SphericalShell(0.1, 0.3)(refined_gas)
    inner = filt.Sphere(0.1)(refined_gas)
    outer = filt.Sphere(0.3)(refined_gas)
    npt.assert_array_equal(shell, outer & ~inner)

    cshell = filt.CylindricalShell(0.1, 0.3, height=0.2)(refined_gas)
    cinner = filt.Cylinder(0.1, height=0.2)(refined_gas)
    couter = filt.Cylinder(0.3, height=0.2)(refined_gas)
    npt.assert_array_equal(cshell, couter & ~cinner)


def test_shell_radii():
    with pytest.raises(InvalidArgument):
        filt.SphericalShell(0.3, 0.1)
    with pytest.raises(InvalidArgument):
        filt.CylindricalShell(0.2, 0.2, height=0.1)
    with pytest.raises(InvalidArgument):
        filt.Sphere(-0.1)


def test_logical_combinations(refined_gas):
    a = filt.Sphere(0.3)
    b = filt.LevelRange(5, 5)
    npt.assert_array_equal((a & b)(refined_gas), a(refined_gas) & b(refined_gas))
    npt.assert_array_equal((a | b)(refined_gas), a(refined_gas) | b(refined_gas))
    npt.assert_array_equal((~a)(refined_gas), ~a(refined_gas))
    assert "&" in repr(a & b)


def test_value_filters(refined_gas):
    rho = refined_gas['rho']
    npt.assert_array_equal(filt.HighPass('rho', 1.0)(refined_gas), rho > 1.0)
    npt.assert_array_equal(filt.LowPass('rho', 1.0)(refined_gas), rho < 1.0)
    npt.assert_array_equal(filt.BandPass('rho', 0.5, 2.0)(refined_gas), (rho > 0.5) & (rho < 2.0))


def test_plane_axes():
    assert filt.plane_axes('z') == (0, 1, 2)
    assert filt.plane_axes('y') == (0, 2, 1)
    assert filt.plane_axes('x') == (1, 2, 0)
    with pytest.raises(InvalidArgument):
        filt.plane_axes('w')
