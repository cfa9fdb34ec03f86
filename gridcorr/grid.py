# Copyright (c) 2003-2024 by Mike Jarvis
#
# GridCorr is free software: redistribution and use in source and binary forms,
# with or without modification, are permitted provided that the following
# conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions, and the disclaimer given in the accompanying LICENSE
#    file.
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions, and the disclaimer given in the documentation
#    and/or other materials provided with the distribution.

"""
.. module:: grid
"""

import math
import numpy as np

from . import _kernels
from .util import parse_boxsize


class GridGeometry(object):
    """The lattice of cells shared by all the grids of one pair counting run.

    Usually you would build this with `from_catalogs`, which works out the extent of the
    lattice and the cell sizes from the data and the binning.

    Attributes:
        origin:     The position of the lower corner of cell (0,0,0).
        extent:     The size of the lattice along each axis.  For periodic runs, this is the
                    box size.
        ncell:      The number of cells along each axis.
        cell_size:  The size of a cell along each axis.
        nsearch:    The number of neighboring cells to search on each side along each axis.
        periodic:   Whether the lattice wraps around.

    Parameters:
        origin (array):     The lower corner, length 3.
        extent (array):     The size along each axis, length 3.
        search (array):     The maximum separation to search along each axis, length 3.
        refine (array):     The number of cells per search distance along each axis.
                            (default: (2,2,1))
        max_cells_per_dim (int):  The maximum number of cells along any axis. (default: 100)
        periodic (bool):    Whether the lattice wraps around. (default: False)
    """
    def __init__(self, origin, extent, search, refine=(2,2,1), max_cells_per_dim=100,
                 periodic=False):
        self.origin = np.array(origin, dtype=float)
        self.extent = np.array(extent, dtype=float)
        self.search = np.array(search, dtype=float)
        refine = np.array(refine, dtype=int)
        if self.origin.shape != (3,) or self.extent.shape != (3,) or self.search.shape != (3,):
            raise ValueError("origin, extent and search must each have 3 values")
        if refine.shape != (3,) or np.any(refine < 1):
            raise ValueError("refine factors must be 3 integers >= 1")
        if max_cells_per_dim < 1:
            raise ValueError("max_cells_per_dim must be >= 1")
        if np.any(self.search <= 0):
            raise ValueError("search distances must be > 0")
        self.refine = refine
        self.max_cells_per_dim = int(max_cells_per_dim)
        self.periodic = bool(periodic)

        ncell = np.zeros(3, dtype=np.int64)
        cell_size = np.zeros(3, dtype=float)
        nsearch = np.zeros(3, dtype=np.int64)
        for k in range(3):
            n = int(math.floor(self.extent[k] * refine[k] / self.search[k]))
            ncell[k] = min(max(n, 1), self.max_cells_per_dim)
            if self.extent[k] > 0:
                cell_size[k] = self.extent[k] / ncell[k]
                ns = int(math.ceil(self.search[k] / cell_size[k]))
                while ns * cell_size[k] < self.search[k]:
                    ns += 1
                nsearch[k] = ns
            else:
                # All points have the same value along this axis.
                cell_size[k] = self.search[k]
                nsearch[k] = 1
        self.ncell = ncell
        self.cell_size = cell_size
        self.nsearch = nsearch

    @classmethod
    def from_catalogs(cls, cats, max_sep, mu_max=1., periodic=False, boxsize=None,
                      refine=(2,2,1), max_cells_per_dim=100, logger=None):
        """Build the geometry for pair counting the given catalogs.

        The search distance is ``max_sep`` perpendicular to the line of sight and
        ``max_sep * mu_max`` along it.

        For non-periodic runs, the lattice covers the bounding box of all the catalogs.
        For periodic runs, it covers the box ``[0, boxsize)`` along each axis with a positive
        boxsize, and the extent of the data along any axis whose boxsize is 0.

        Parameters:
            cats (list):            The catalogs that will be gridded on this geometry.
            max_sep (float):        The maximum separation to count.
            mu_max (float):         The maximum mu to count. (default: 1)
            periodic (bool):        Whether to use periodic boundary conditions.
                                    (default: False)
            boxsize (float):        The period, either one value or 3. (default: None)
            refine (tuple):         The refine factors along each axis. (default: (2,2,1))
            max_cells_per_dim (int): The maximum number of cells per axis. (default: 100)
            logger:                 A logger for debug output. (default: None)

        Returns:
            A GridGeometry instance.
        """
        lo = np.min([cat.getBounds()[0] for cat in cats], axis=0)
        hi = np.max([cat.getBounds()[1] for cat in cats], axis=0)
        search = np.array([max_sep, max_sep, max_sep * mu_max], dtype=float)

        if periodic:
            boxsize = parse_boxsize(boxsize)
            origin = np.zeros(3, dtype=float)
            for k in range(3):
                if boxsize[k] == 0.:
                    origin[k] = lo[k]
                    boxsize[k] = hi[k] - lo[k]
                    if logger:
                        logger.info("Detected boxsize = %f along axis %d", boxsize[k], k)
                elif lo[k] < 0. or hi[k] > boxsize[k]:
                    raise ValueError("Points are outside the periodic box [0, %s) along axis %d"%(
                                     boxsize[k], k))
            if np.any(max_sep > 0.5 * boxsize):
                raise ValueError("max_sep = %s is larger than half the periodic box %s"%(
                                 max_sep, boxsize.tolist()))
            extent = boxsize
        else:
            origin = lo
            extent = hi - lo
        geom = cls(origin, extent, search, refine, max_cells_per_dim, periodic)
        if logger:
            logger.info("Grid has %d x %d x %d cells", *geom.ncell)
            logger.debug("cell_size = %s, nsearch = %s", geom.cell_size, geom.nsearch)
        return geom

    @property
    def total_cells(self):
        return int(np.prod(self.ncell))

    @property
    def boxsize(self):
        """The period along each axis (only meaningful for periodic geometries)."""
        return self.extent

    def cell_index(self, pos):
        """The flat cell index of each of the given positions.

        Parameters:
            pos (array):    An (n, 3) array of positions.

        Returns:
            An int64 array of length n.
        """
        pos = np.asarray(pos, dtype=float)
        ijk = np.floor((pos - self.origin) / self.cell_size).astype(np.int64)
        ijk = np.clip(ijk, 0, self.ncell-1)
        return np.ravel_multi_index(ijk.T, tuple(self.ncell))

    def neighbors(self, cell):
        """The flat indices of the cells to search around the given cell, including itself.

        For periodic geometries, the neighbors wrap around the lattice, but each cell is only
        listed once even if the search window is bigger than the whole lattice.

        Parameters:
            cell (int):     The flat index of the cell.

        Returns:
            A sorted int64 array of cell indices.
        """
        ijk = np.unravel_index(int(cell), tuple(self.ncell))
        ranges = []
        for k in range(3):
            lo, hi = _kernels.axis_window(ijk[k], self.nsearch[k], self.ncell[k], self.periodic)
            ranges.append(np.arange(lo, hi+1) % self.ncell[k])
        jx, jy, jz = np.meshgrid(*ranges, indexing='ij')
        flat = np.ravel_multi_index((jx.ravel(), jy.ravel(), jz.ravel()), tuple(self.ncell))
        return np.unique(flat)

    def __eq__(self, other):
        return (isinstance(other, GridGeometry) and
                np.array_equal(self.origin, other.origin) and
                np.array_equal(self.extent, other.extent) and
                np.array_equal(self.ncell, other.ncell) and
                np.array_equal(self.nsearch, other.nsearch) and
                self.periodic == other.periodic)

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self):
        return 'GridGeometry(ncell=%s, nsearch=%s, periodic=%s)'%(
                self.ncell.tolist(), self.nsearch.tolist(), self.periodic)


class Grid(object):
    """A point set sorted into the cells of a `GridGeometry`.

    The positions and weights are copied and sorted by cell, so the points in each cell
    are the contiguous range ``cell_start[c] : cell_start[c] + cell_count[c]``.
    The grid is read-only once it is built.

    Parameters:
        cat (Catalog):          The catalog to grid.
        geom (GridGeometry):    The lattice to use.
        weights (Weights):      The weight payload of the catalog. (default: None, which
                                means no weights)
    """
    def __init__(self, cat, geom, weights=None, dtype=None):
        self.geom = geom
        cell = geom.cell_index(cat.pos)
        order = np.argsort(cell, kind='stable')
        self.order = order
        self.pos = np.ascontiguousarray(cat.pos[order], dtype=dtype)
        self.cell_count = np.bincount(cell, minlength=geom.total_cells).astype(np.int64)
        self.cell_start = np.zeros_like(self.cell_count)
        np.cumsum(self.cell_count[:-1], out=self.cell_start[1:])
        if weights is None:
            weights = cat.getWeights('none')
        weights = weights.take(order)
        self.weights = weights
        self.bits = weights.bits
        self.w = weights.scalar
        for a in (self.pos, self.cell_count, self.cell_start, self.bits, self.w):
            a.flags.writeable = False

    @property
    def npoints(self): return len(self.pos)

    @property
    def nonempty_cells(self):
        """The flat indices of the cells that hold at least one point."""
        return np.flatnonzero(self.cell_count).astype(np.int64)

    def cell_points(self, cell):
        """The (sorted) positions of the points in the given cell."""
        start = self.cell_start[cell]
        return self.pos[start:start+self.cell_count[cell]]

    def neighbors(self, cell):
        """The flat indices of the cells within the search distance of the given cell,
        including the cell itself.
        """
        return self.geom.neighbors(cell)
