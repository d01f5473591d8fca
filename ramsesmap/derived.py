"""Derived variables: quantities computed on the fly from the stored fields of a table.

All functions return values in code units. Registration happens at import time via the
:meth:`~ramsesmap.table.CellTable.derived_array` decorator; the Variable Resolver (:func:`ramsesmap.getvar.getvar`)
handles unit conversion and reference centres.
"""

import numpy as np

from .table import CellTable, HydroTable, ParticleTable

_grid = ('level', 'cx', 'cy', 'cz')
_vel = ('vx', 'vy', 'vz')


def _relative_positions(table, center):
    return table.positions_fraction() * table.boxlen - center[np.newaxis, :]


def _velocities(table):
    return np.stack([table['vx'], table['vy'], table['vz']], axis=1)


def _gravitational_constant(table):
    """G in code units"""
    info = table.info
    return info.constants.G * info.unit_d * info.unit_t ** 2


@CellTable.derived_array(quantity='length', requires=_grid)
def cellsize(table):
    """Cell side length, boxlen / 2**level"""
    return table.cellsize_fraction() * table.boxlen


@CellTable.derived_array(quantity='volume', extensive=True, requires=_grid)
def volume(table):
    """Cell volume"""
    return table['cellsize'] ** 3


@HydroTable.derived_array(quantity='mass', extensive=True)
def mass(table):
    """Gas mass of the cell, rho * volume"""
    return table['rho'] * table['volume']


@CellTable.derived_array(quantity='velocity', requires=_vel)
def v(table):
    """Velocity magnitude"""
    return np.sqrt(table['v2'])


@CellTable.derived_array(quantity='velocity2', requires=_vel)
def v2(table):
    """Squared velocity magnitude"""
    return table['vx'] ** 2 + table['vy'] ** 2 + table['vz'] ** 2


@CellTable.derived_array(quantity='velocity2', requires=('vx',))
def vx2(table):
    return table['vx'] ** 2


@CellTable.derived_array(quantity='velocity2', requires=('vy',))
def vy2(table):
    return table['vy'] ** 2


@CellTable.derived_array(quantity='velocity2', requires=('vz',))
def vz2(table):
    return table['vz'] ** 2


@CellTable.derived_array(quantity='energy', extensive=True, requires=_vel)
def ekin(table):
    """Kinetic energy, m v^2 / 2"""
    return 0.5 * table['mass'] * table['v2']


@HydroTable.derived_array(quantity='velocity', requires=('p',))
def cs(table):
    """Adiabatic sound speed, sqrt(gamma p / rho)"""
    return np.sqrt(table.info.gamma * table['p'] / table['rho'])


@HydroTable.derived_array(quantity='temperature', requires=('p',))
def T(table):
    """Temperature, p / rho in code units"""
    return table['p'] / table['rho']


@HydroTable.derived_array(quantity='dimensionless', requires=('p', 'vx', 'vy', 'vz'))
def mach(table):
    """Mach number, v / cs"""
    return table['v'] / table['cs']


@HydroTable.derived_array(quantity='energy', extensive=True, requires=('p',))
def etherm(table):
    """Thermal energy of the cell, p V / (gamma - 1)"""
    return table['p'] * table['volume'] / (table.info.gamma - 1)


@HydroTable.derived_array(quantity='length', requires=('p',))
def jeanslength(table):
    """Jeans length, cs sqrt(pi / (G rho))"""
    return table['cs'] * np.sqrt(np.pi / (_gravitational_constant(table) * table['rho']))


@HydroTable.derived_array(quantity='mass', requires=('p',))
def jeansmass(table):
    """Mass of a sphere with diameter equal to the Jeans length"""
    return 4. / 3 * np.pi * table['rho'] * (0.5 * table['jeanslength']) ** 3


@HydroTable.derived_array(quantity='time')
def freefall_time(table):
    """Free-fall time, sqrt(3 pi / (32 G rho))"""
    return np.sqrt(3 * np.pi / (32 * _gravitational_constant(table) * table['rho']))


@HydroTable.derived_array(quantity='dimensionless', requires=('p',))
def entropy_index(table):
    """Adiabatic constant p / rho^gamma, in code units"""
    return table['p'] / table['rho'] ** table.info.gamma


@CellTable.derived_array(quantity='acceleration', requires=('ax', 'ay', 'az'))
def a(table):
    """Acceleration magnitude"""
    return np.sqrt(table['ax'] ** 2 + table['ay'] ** 2 + table['az'] ** 2)


@ParticleTable.derived_array(quantity='time', requires=('birth',))
def age(table):
    """Time since the particle formed"""
    return table.info.time - table['birth']


# Quantities relative to a centre

@CellTable.derived_array(quantity='length', centred=True, requires=_grid)
def x(table, center):
    """Position of the cell centre along x"""
    return _relative_positions(table, center)[:, 0]


@CellTable.derived_array(quantity='length', centred=True, requires=_grid)
def y(table, center):
    """Position of the cell centre along y"""
    return _relative_positions(table, center)[:, 1]


@CellTable.derived_array(quantity='length', centred=True, requires=_grid)
def z(table, center):
    """Position of the cell centre along z"""
    return _relative_positions(table, center)[:, 2]


@CellTable.derived_array(quantity='length', centred=True)
def r_sphere(table, center):
    """Distance from the centre"""
    pos = _relative_positions(table, center)
    return np.sqrt((pos ** 2).sum(axis=1))


@CellTable.derived_array(quantity='length', centred=True)
def r_cylinder(table, center):
    """Distance from the z axis through the centre"""
    pos = _relative_positions(table, center)
    return np.sqrt(pos[:, 0] ** 2 + pos[:, 1] ** 2)


def _safe_divide(num, den):
    out = np.zeros_like(num)
    np.divide(num, den, out=out, where=den > 0)
    return out


@CellTable.derived_array(quantity='velocity', centred=True, requires=_vel)
def vr_sphere(table, center):
    """Radial velocity with respect to the centre"""
    pos = _relative_positions(table, center)
    r = np.sqrt((pos ** 2).sum(axis=1))
    return _safe_divide((pos * _velocities(table)).sum(axis=1), r)


@CellTable.derived_array(quantity='velocity', centred=True, requires=_vel)
def vr_cylinder(table, center):
    """Cylindrical radial velocity with respect to the z axis through the centre"""
    pos = _relative_positions(table, center)
    R = np.sqrt(pos[:, 0] ** 2 + pos[:, 1] ** 2)
    return _safe_divide(pos[:, 0] * table['vx'] + pos[:, 1] * table['vy'], R)


@CellTable.derived_array(quantity='velocity', centred=True, requires=_vel)
def vphi_cylinder(table, center):
    """Azimuthal velocity around the z axis through the centre"""
    pos = _relative_positions(table, center)
    R = np.sqrt(pos[:, 0] ** 2 + pos[:, 1] ** 2)
    return _safe_divide(pos[:, 0] * table['vy'] - pos[:, 1] * table['vx'], R)


@CellTable.derived_array(quantity='velocity2', centred=True, requires=_vel)
def vr_cylinder2(table, center):
    return vr_cylinder(table, center) ** 2


@CellTable.derived_array(quantity='velocity2', centred=True, requires=_vel)
def vphi_cylinder2(table, center):
    return vphi_cylinder(table, center) ** 2


@CellTable.derived_array(quantity='velocity', centred=True, requires=_vel)
def vphi_sphere(table, center):
    """Azimuthal velocity in spherical coordinates (same as the cylindrical one)"""
    return vphi_cylinder(table, center)


@CellTable.derived_array(quantity='velocity', centred=True, requires=_vel)
def vtheta_sphere(table, center):
    """Polar velocity in spherical coordinates, positive towards increasing theta"""
    pos = _relative_positions(table, center)
    vel = _velocities(table)
    R = np.sqrt(pos[:, 0] ** 2 + pos[:, 1] ** 2)
    r = np.sqrt(R ** 2 + pos[:, 2] ** 2)
    cos_phi = _safe_divide(pos[:, 0], R)
    sin_phi = _safe_divide(pos[:, 1], R)
    cos_theta = _safe_divide(pos[:, 2], r)
    sin_theta = _safe_divide(R, r)
    return (vel[:, 0] * cos_phi + vel[:, 1] * sin_phi) * cos_theta - vel[:, 2] * sin_theta


def _specific_angular_momentum(table, center):
    return np.cross(_relative_positions(table, center), _velocities(table))


@CellTable.derived_array(quantity='specific_angular_momentum', centred=True, requires=_vel)
def hx(table, center):
    return _specific_angular_momentum(table, center)[:, 0]


@CellTable.derived_array(quantity='specific_angular_momentum', centred=True, requires=_vel)
def hy(table, center):
    return _specific_angular_momentum(table, center)[:, 1]


@CellTable.derived_array(quantity='specific_angular_momentum', centred=True, requires=_vel)
def hz(table, center):
    return _specific_angular_momentum(table, center)[:, 2]


@CellTable.derived_array(quantity='specific_angular_momentum', centred=True, requires=_vel)
def h(table, center):
    """Magnitude of the specific angular momentum about the centre"""
    return np.sqrt((_specific_angular_momentum(table, center) ** 2).sum(axis=1))


@CellTable.derived_array(quantity='angular_momentum', extensive=True, centred=True, requires=_vel)
def lx(table, center):
    return table['mass'] * hx(table, center)


@CellTable.derived_array(quantity='angular_momentum', extensive=True, centred=True, requires=_vel)
def ly(table, center):
    return table['mass'] * hy(table, center)


@CellTable.derived_array(quantity='angular_momentum', extensive=True, centred=True, requires=_vel)
def lz(table, center):
    return table['mass'] * hz(table, center)


@CellTable.derived_array(quantity='angular_momentum', extensive=True, centred=True, requires=_vel)
def l(table, center):  # noqa: E741
    """Magnitude of the angular momentum about the centre"""
    return table['mass'] * h(table, center)
