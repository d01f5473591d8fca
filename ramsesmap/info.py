"""Simulation metadata shared by all tables derived from one RAMSES snapshot.

A :class:`SimulationInfo` is normally created by a loader, but it can be built directly for synthetic data or read
from the text metadata of an output directory with :meth:`SimulationInfo.from_infofile`. Binary AMR, hydro and
particle files are never opened here.
"""

from __future__ import annotations

import glob
import logging
import os
import re

from . import scales as scales_module
from .errors import DomainMissing, InvalidArgument, LevelOutOfRange

logger = logging.getLogger('ramsesmap.info')

DATA_KINDS = ('hydro', 'particles', 'gravity', 'amr', 'rt', 'clumps', 'sinks')

_file_prefix_for_kind = {'amr': 'amr_', 'hydro': 'hydro_', 'particles': 'part_', 'gravity': 'grav_',
                         'rt': 'rt_', 'clumps': 'clump_', 'sinks': 'sink_'}

# RAMSES descriptor names and the short names used throughout ramsesmap
_descriptor_name_mapping = {'density': 'rho', 'velocity_x': 'vx', 'velocity_y': 'vy', 'velocity_z': 'vz',
                            'pressure': 'p', 'thermal_pressure': 'p', 'metallicity': 'metal',
                            'position_x': 'x', 'position_y': 'y', 'position_z': 'z',
                            'birth_time': 'birth', 'identity': 'id', 'levelp': 'level'}

DEFAULT_HYDRO_VARIABLES = ('rho', 'vx', 'vy', 'vz', 'p')
DEFAULT_PARTICLE_VARIABLES = ('vx', 'vy', 'vz', 'mass', 'id', 'family', 'birth', 'metal')
DEFAULT_GRAVITY_VARIABLES = ('epot', 'ax', 'ay', 'az')


def _timestep_id(path):
    match = re.search(r"output_0*(\d+)", path)
    if match is None:
        return None
    return int(match.group(1))


class SimulationInfo:
    """Immutable metadata for one snapshot.

    Unit factors are in cgs: ``unit_l`` in cm, ``unit_d`` in g cm^-3 and ``unit_t`` in s. Level bounds and the box
    length are validated on construction, and the instance refuses attribute assignment afterwards.
    """

    def __init__(self, levelmin: int, levelmax: int, boxlen: float = 1.0,
                 unit_l: float = 1.0, unit_d: float = 1.0, unit_t: float = 1.0,
                 time: float = 0.0, aexp: float = 1.0, output: int | None = None, path: str = "",
                 H0: float = 0.0, omega_m: float = 0.0, omega_l: float = 0.0, omega_k: float = 0.0,
                 omega_b: float = 0.0, gamma: float = 5. / 3, ndim: int = 3, ncpu: int = 1,
                 hydro: bool = True, particles: bool = False, gravity: bool = False, amr: bool = True,
                 rt: bool = False, clumps: bool = False, sinks: bool = False,
                 hydro_variables=DEFAULT_HYDRO_VARIABLES,
                 particle_variables=DEFAULT_PARTICLE_VARIABLES,
                 gravity_variables=DEFAULT_GRAVITY_VARIABLES):

        if int(levelmin) != levelmin or int(levelmax) != levelmax:
            raise InvalidArgument("levelmin and levelmax must be integers")
        if levelmin < 0:
            raise LevelOutOfRange("levelmin must not be negative")
        if levelmin > levelmax:
            raise LevelOutOfRange("levelmin (%d) exceeds levelmax (%d)" % (levelmin, levelmax))
        if not boxlen > 0:
            raise InvalidArgument("boxlen must be positive")
        for name, value in (('unit_l', unit_l), ('unit_d', unit_d), ('unit_t', unit_t)):
            if not value > 0:
                raise InvalidArgument("%s must be strictly positive" % name)
        if ndim != 3:
            raise InvalidArgument("Only three-dimensional simulations are supported")

        d = self.__dict__
        d['levelmin'] = int(levelmin)
        d['levelmax'] = int(levelmax)
        d['boxlen'] = float(boxlen)
        d['unit_l'] = float(unit_l)
        d['unit_d'] = float(unit_d)
        d['unit_t'] = float(unit_t)
        d['time'] = float(time)
        d['aexp'] = float(aexp)
        d['output'] = output
        d['path'] = path
        d['H0'] = float(H0)
        d['omega_m'] = float(omega_m)
        d['omega_l'] = float(omega_l)
        d['omega_k'] = float(omega_k)
        d['omega_b'] = float(omega_b)
        d['gamma'] = float(gamma)
        d['ndim'] = ndim
        d['ncpu'] = int(ncpu)
        for kind, present in zip(DATA_KINDS, (hydro, particles, gravity, amr, rt, clumps, sinks)):
            d[kind] = bool(present)
        d['hydro_variables'] = tuple(hydro_variables)
        d['particle_variables'] = tuple(particle_variables)
        d['gravity_variables'] = tuple(gravity_variables)
        d['constants'] = scales_module.constants
        d['scale'] = scales_module.Scales(unit_l, unit_d, unit_t)

    def __setattr__(self, key, value):
        raise AttributeError("SimulationInfo is read-only")

    def __delattr__(self, key):
        raise AttributeError("SimulationInfo is read-only")

    @property
    def unit_m(self):
        return self.unit_d * self.unit_l ** 3

    @property
    def unit_v(self):
        return self.unit_l / self.unit_t

    def check_for_type(self, kind: str):
        """Raise DomainMissing if the snapshot contains no data of the given kind"""
        if kind not in DATA_KINDS:
            raise InvalidArgument("Unknown data kind %r; expected one of %s" % (kind, ", ".join(DATA_KINDS)))
        if not self.__dict__[kind]:
            raise DomainMissing("No %s data present in output %s" % (kind, self.output))

    def kinds_present(self) -> list[str]:
        return [k for k in DATA_KINDS if self.__dict__[k]]

    def summary(self) -> str:
        """A short human-readable description of the snapshot"""
        length_unit = 'kpc'
        lines = ["output %s at %s" % (self.output, self.path or "<memory>"),
                 "levels %d to %d, boxlen %.4g (%.4g %s)" % (self.levelmin, self.levelmax, self.boxlen,
                                                            self.boxlen * self.scale.factor('length', length_unit),
                                                            length_unit),
                 "time %.4g (%.4g Myr), aexp %.4g" % (self.time, self.time * self.scale.factor('time', 'Myr'),
                                                     self.aexp),
                 "data: " + ", ".join(self.kinds_present())]
        return "\n".join(lines)

    def __repr__(self):
        return "<SimulationInfo output=%s levels=%d..%d boxlen=%g>" % (self.output, self.levelmin,
                                                                       self.levelmax, self.boxlen)

    @classmethod
    def from_infofile(cls, path: str) -> SimulationInfo:
        """Read the metadata of a RAMSES output directory.

        Parameters
        ----------
        path : str
            Either an ``output_XXXXX`` directory or the ``info_XXXXX.txt`` file inside it.
        """
        if os.path.isdir(path):
            dirname = path
            candidates = sorted(glob.glob(os.path.join(dirname, "info_*.txt")))
            if len(candidates) == 0:
                raise DomainMissing("No info file found in %s" % dirname)
            infofile = candidates[0]
        else:
            infofile = path
            dirname = os.path.dirname(path)

        with open(infofile) as f:
            values = _parse_info_lines(f)

        output = _timestep_id(os.path.basename(os.path.normpath(dirname)))
        if output is None:
            output = _timestep_id("output_" + os.path.basename(infofile)[5:])

        present = {kind: len(glob.glob(os.path.join(dirname, _file_prefix_for_kind[kind] + "*"))) > 0
                   for kind in DATA_KINDS}

        hydro_variables = _read_descriptor(os.path.join(dirname, "hydro_file_descriptor.txt"),
                                           DEFAULT_HYDRO_VARIABLES)
        particle_variables = _read_descriptor(os.path.join(dirname, "part_file_descriptor.txt"),
                                              DEFAULT_PARTICLE_VARIABLES)
        try:
            info = cls(levelmin=values['levelmin'], levelmax=values['levelmax'],
                       boxlen=values.get('boxlen', 1.0),
                       unit_l=values['unit_l'], unit_d=values['unit_d'], unit_t=values['unit_t'],
                       time=values.get('time', 0.0), aexp=values.get('aexp', 1.0),
                       output=output, path=dirname,
                       H0=values.get('H0', 0.0), omega_m=values.get('omega_m', 0.0),
                       omega_l=values.get('omega_l', 0.0), omega_k=values.get('omega_k', 0.0),
                       omega_b=values.get('omega_b', 0.0), ndim=values.get('ndim', 3),
                       ncpu=values.get('ncpu', 1),
                       hydro_variables=hydro_variables, particle_variables=particle_variables,
                       **present)
        except KeyError as e:
            raise InvalidArgument("Info file %s lacks the entry %s" % (infofile, e.args[0]))

        logger.debug("Loaded info for output %s: %r", output, info)
        return info


def _parse_info_lines(lines):
    values = {}
    for l in lines:
        if '=' in l:
            name, val = list(map(str.strip, l.split('=', 1)))
            try:
                if '.' in val or 'E' in val or 'e' in val:
                    values[name] = float(val)
                else:
                    values[name] = int(val)
            except ValueError:
                values[name] = val
    return values


def _read_descriptor(fname, default):
    if not os.path.exists(fname):
        return tuple(default)

    names = []
    with open(fname) as fd:
        for line in fd:
            line = line.strip()
            if line.startswith("#") or len(line) == 0:
                continue
            if line.startswith("variable #"):
                # old format: "variable #  1: density"
                name = line.split(":", 1)[1].strip()
            elif "," in line:
                name = line.split(",")[1].strip()
            else:
                continue
            names.append(_descriptor_name_mapping.get(name, name))
    return tuple(names)
