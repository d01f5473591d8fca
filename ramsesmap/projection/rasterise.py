"""Core classes for rasterising AMR cells and particles onto a 2D pixel grid.

Most users want :func:`ramsesmap.projection.projection`. Underneath, :func:`make_projection_pipeline` builds a
rasteriser object for a table, a :class:`MapGeometry` and a list of :class:`Channel` definitions; calling
:meth:`RasteriserBase.render` returns one accumulated 2D array per channel.

Each cell's square footprint in the projection plane is split analytically over the pixels it overlaps. For a cell
and a pixel with overlap area A:

* ``f = A / (cell footprint area)`` is the fraction of the cell that falls in the pixel, so that summing ``q f`` over
  pixels conserves any additive quantity q;
* ``g = A / (pixel area)`` is the fraction of the pixel that the cell covers; summed along a line of sight it counts
  the cell layers in front of the pixel.

Particles are deposited on the nearest pixel, with ``f = g = 1``.
"""

from __future__ import annotations

import collections
import concurrent.futures
import copy

import numpy as np

from ..configuration import config
from ..errors import InvalidArgument

Channel = collections.namedtuple('Channel', ['name', 'values', 'kind'])
Channel.__doc__ = """A quantity to accumulate: values has one entry per row of the table, kind is 'f', 'g' or 'max'"""

CHANNEL_KINDS = ('f', 'g', 'max')


class MapGeometry:
    """The region of the projection plane covered by a map, in box-relative units."""

    def __init__(self, x1, x2, y1, y2, nx, ny, axes=(0, 1, 2)):
        if x2 < x1 or y2 < y1:
            raise InvalidArgument("Map extent is inverted")
        self.x1, self.x2, self.y1, self.y2 = float(x1), float(x2), float(y1), float(y2)
        self.nx, self.ny = int(nx), int(ny)
        self.axes = tuple(axes)

    @property
    def width(self):
        return self.x2 - self.x1

    @property
    def height(self):
        return self.y2 - self.y1

    @property
    def pixel_size(self):
        """Pixel side lengths (px, py); zero for a degenerate map"""
        px = self.width / self.nx if self.nx > 0 else 0.0
        py = self.height / self.ny if self.ny > 0 else 0.0
        return px, py

    @property
    def is_degenerate(self):
        return self.nx == 0 or self.ny == 0 or self.width <= 0 or self.height <= 0

    def pixel_centers(self):
        """Return two (nx, ny) arrays holding the in-plane coordinates of every pixel centre"""
        px, py = self.pixel_size
        u = self.x1 + (np.arange(self.nx) + 0.5) * px
        v = self.y1 + (np.arange(self.ny) + 0.5) * py
        return np.meshgrid(u, v, indexing='ij')

    def copy(self):
        return copy.copy(self)

    def __repr__(self):
        return "<MapGeometry [%g, %g] x [%g, %g] at %d x %d>" % (self.x1, self.x2, self.y1, self.y2,
                                                               self.nx, self.ny)


def _pixel_overlaps(lo, hi, origin, pixel, npix, span):
    """One-dimensional overlaps of intervals [lo, hi] with pixels.

    Returns (index, length) arrays of shape (n, span). Pixels outside the map get zero length and index 0."""
    first = np.floor((lo - origin) / pixel).astype(np.int64)
    index = first[:, np.newaxis] + np.arange(span)[np.newaxis, :]
    pixel_lo = origin + index * pixel
    length = np.minimum(hi[:, np.newaxis], pixel_lo + pixel) - np.maximum(lo[:, np.newaxis], pixel_lo)
    valid = (index >= 0) & (index < npix) & (length > 0)
    length = np.where(valid, length, 0.0)
    index = np.where(valid, index, 0)
    return index, length


class RasteriserBase:
    """An abstract base class for rasterisers"""

    def __init__(self, coordinates, geometry: MapGeometry):
        """Parameters
        ----------
        coordinates : tuple
            ``(u, v, half)``: in-plane positions of every row and half cell sizes, all box-relative.
        geometry : MapGeometry
            The map to rasterise onto.
        """
        self._coordinates = coordinates
        self._geometry = geometry
        self._channels = []
        self._rows = None

    @property
    def geometry(self):
        return self._geometry

    def set_channels(self, channels):
        for c in channels:
            if c.kind not in CHANNEL_KINDS:
                raise InvalidArgument("Unknown channel kind %r" % c.kind)
        self._channels = list(channels)

    def set_rows(self, rows):
        """Restrict the rasteriser to the given row indices"""
        self._rows = rows

    def copy(self):
        return copy.copy(self)

    def _empty_maps(self):
        g = self._geometry
        maps = {}
        for c in self._channels:
            if c.kind == 'max':
                maps[c.name] = np.full(g.nx * g.ny, -np.inf)
            else:
                maps[c.name] = np.zeros(g.nx * g.ny)
        return maps

    def _finish(self, maps):
        g = self._geometry
        return {k: v.reshape(g.nx, g.ny) for k, v in maps.items()}

    def render(self) -> dict[str, np.ndarray]:
        """Accumulate every channel and return the maps, keyed by channel name"""
        raise NotImplementedError("Subclasses must implement this method")


class CellRasteriser(RasteriserBase):
    """Rasterises AMR cells of a single level, splitting each footprint over the pixels it overlaps."""

    def render(self):
        g = self._geometry
        maps = self._empty_maps()
        if g.is_degenerate:
            return self._finish(maps)

        u, v, half = self._coordinates
        rows = self._rows if self._rows is not None else np.arange(len(u))
        if len(rows) == 0:
            return self._finish(maps)

        h = half[rows]
        if np.any(h != h[0]):
            raise InvalidArgument("CellRasteriser requires cells of a single level")
        h = float(h[0])
        px, py = g.pixel_size
        span_x = int(np.ceil(2 * h / px)) + 1
        span_y = int(np.ceil(2 * h / py)) + 1

        ix, ox = _pixel_overlaps(u[rows] - h, u[rows] + h, g.x1, px, g.nx, span_x)
        iy, oy = _pixel_overlaps(v[rows] - h, v[rows] + h, g.y1, py, g.ny, span_y)

        cell_area = (2 * h) ** 2
        pixel_area = px * py
        values = {c.name: np.asarray(c.values)[rows] for c in self._channels}

        for kx in range(span_x):
            area = ox[:, kx, np.newaxis] * oy
            touched = area > 0
            if not touched.any():
                continue
            flat = (ix[:, kx, np.newaxis] * g.ny + iy)[touched]
            for c in self._channels:
                q = np.broadcast_to(values[c.name][:, np.newaxis], area.shape)[touched]
                if c.kind == 'max':
                    np.maximum.at(maps[c.name], flat, q)
                else:
                    fraction = area[touched] / (cell_area if c.kind == 'f' else pixel_area)
                    maps[c.name] += np.bincount(flat, weights=q * fraction, minlength=g.nx * g.ny)

        return self._finish(maps)


class ParticleRasteriser(RasteriserBase):
    """Deposits particles on the pixel containing them."""

    def render(self):
        g = self._geometry
        maps = self._empty_maps()
        if g.is_degenerate:
            return self._finish(maps)

        u, v, _ = self._coordinates
        rows = self._rows if self._rows is not None else np.arange(len(u))
        px, py = g.pixel_size
        ix = np.floor((u[rows] - g.x1) / px).astype(np.int64)
        iy = np.floor((v[rows] - g.y1) / py).astype(np.int64)
        # particles exactly on the upper edge belong to the last pixel
        ix[(ix == g.nx) & (u[rows] <= g.x2)] = g.nx - 1
        iy[(iy == g.ny) & (v[rows] <= g.y2)] = g.ny - 1
        inside = (ix >= 0) & (ix < g.nx) & (iy >= 0) & (iy < g.ny)
        flat = (ix * g.ny + iy)[inside]

        for c in self._channels:
            q = np.asarray(c.values)[rows][inside]
            if c.kind == 'max':
                np.maximum.at(maps[c.name], flat, q)
            else:
                maps[c.name] += np.bincount(flat, weights=q, minlength=g.nx * g.ny)

        return self._finish(maps)


class MultipassRasteriser(RasteriserBase):
    """Runs several rasterisers, each over its own rows, and merges their maps in a fixed order.

    Sums are accumulated task by task in list order, so the result does not depend on how the passes are
    scheduled."""

    def __init__(self, subrasterisers):  # noqa - no need to call super constructor
        self._subrasterisers = list(subrasterisers)
        self._geometry = self._subrasterisers[0].geometry if self._subrasterisers else None
        self._channels = self._subrasterisers[0]._channels if self._subrasterisers else []

    def _run(self, passes):
        return [r.render() for r in passes]

    def render(self):
        if len(self._subrasterisers) == 0:
            raise InvalidArgument("Nothing to rasterise")
        results = self._run(self._subrasterisers)
        merged = None
        for result in results:
            if merged is None:
                merged = {k: v.copy() for k, v in result.items()}
                continue
            for c in self._channels:
                if c.kind == 'max':
                    np.maximum(merged[c.name], result[c.name], out=merged[c.name])
                else:
                    merged[c.name] += result[c.name]
        return merged


class ThreadedRasteriser(MultipassRasteriser):
    """Runs the passes of a multipass rasteriser across a pool of threads."""

    def __init__(self, subrasterisers, num_threads):
        super().__init__(subrasterisers)
        self._num_threads = max(1, int(num_threads))

    def _run(self, passes):
        if self._num_threads == 1 or len(passes) == 1:
            return super()._run(passes)
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self._num_threads, len(passes))) as executor:
            # map preserves the order of passes, whatever order they complete in
            results = list(executor.map(lambda r: r.render(), passes))
        return results


def _tasks(levels, chunk_size):
    """Split row indices into tasks: one per level (ascending), each cut into chunks of at most chunk_size rows"""
    tasks = []
    if levels is None:
        return tasks
    for level in np.unique(levels):
        rows = np.flatnonzero(levels == level)
        for start in range(0, len(rows), chunk_size):
            tasks.append((int(level), rows[start:start + chunk_size]))
    return tasks


def make_projection_pipeline(coordinates, geometry: MapGeometry, channels, levels=None, *,
                             particles: bool = False, chunk_size: int | None = None,
                             num_threads: int | None = None, on_task=None) -> RasteriserBase:
    """Generate a rasteriser for projecting records onto a map.

    Parameters
    ----------
    coordinates : tuple
        ``(u, v, half)``: in-plane positions of every row and half cell sizes (zero for particles), box-relative.
    geometry : MapGeometry
        The map to rasterise onto.
    channels : list of Channel
        The quantities to accumulate.
    levels : numpy.ndarray, optional
        AMR level of every row. Required for cells; rows are grouped per level.
    particles : bool
        If True, deposit rows on the nearest pixel rather than splitting cell footprints.
    chunk_size : int, optional
        Maximum number of rows rasterised by one pass. Defaults to the ``chunk-size`` configuration value. The
        result is independent of the thread count but not of the chunk size, which fixes the summation order.
    num_threads : int, optional
        Number of worker threads. Defaults to the ``number_of_threads`` configuration value.
    on_task : callable, optional
        Called as ``on_task(level, nrows)`` for every pass when the pipeline is built, for progress reporting.
    """
    if chunk_size is None:
        chunk_size = config['projection']['chunk-size']
    if num_threads is None:
        num_threads = config['number_of_threads']
    chunk_size = max(1, int(chunk_size))

    n = len(coordinates[0])
    if particles:
        pseudo_levels = np.zeros(n, dtype=np.int64)
        tasks = _tasks(pseudo_levels, chunk_size)
        template = ParticleRasteriser(coordinates, geometry)
    else:
        if levels is None:
            raise InvalidArgument("Cell rasterisation needs the level of every row")
        tasks = _tasks(np.asarray(levels), chunk_size)
        template = CellRasteriser(coordinates, geometry)
    template.set_channels(channels)

    if len(tasks) == 0:
        template.set_rows(np.zeros(0, dtype=np.int64))
        return template

    passes = []
    for level, rows in tasks:
        r = template.copy()
        r.set_rows(rows)
        passes.append(r)
        if on_task is not None:
            on_task(level, len(rows))

    return ThreadedRasteriser(passes, num_threads)
