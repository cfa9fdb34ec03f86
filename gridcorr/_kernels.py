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
.. module:: _kernels

The compiled pair counting kernels.

The per-pair helpers are written once by `build_helpers`, which compiles them with whatever
decorator it is given.  The cpu kernel uses ``njit``, and the cuda kernel in _cuda.py uses
``cuda.jit(device=True)``, so both targets classify and weight pairs identically.
"""

import math
import numpy as np
from numba import njit

# Weighting schemes
NONE = 0
PAIR_PRODUCT = 1
INVERSE_BITWISE = 2

# The number of set bits in each possible byte.
POPCOUNT8 = np.array([bin(k).count('1') for k in range(256)], dtype=np.int64)


class _Helpers(object):
    pass

def build_helpers(jit):
    """Compile the per-pair helper functions with the given jit decorator.

    Returns:
        An object whose attributes are the compiled functions.
    """
    @jit
    def axis_window(i, nsearch, ncell, periodic):
        # The range of cell indices to visit along one axis.  Indices outside [0, ncell)
        # only occur when periodic, and should be taken modulo ncell.
        if periodic:
            if 2*nsearch+1 >= ncell:
                return 0, ncell-1
            return i-nsearch, i+nsearch
        lo = i-nsearch
        hi = i+nsearch
        if lo < 0:
            lo = 0
        if hi > ncell-1:
            hi = ncell-1
        return lo, hi

    @jit
    def wrap(d, boxsize):
        half = 0.5*boxsize
        if d > half:
            return d - boxsize
        elif d < -half:
            return d + boxsize
        return d

    @jit
    def sbin_index(s2, sqr_edges):
        # Assumes sqr_edges[0] <= s2 < sqr_edges[-1].
        lo = 0
        hi = len(sqr_edges)-1
        while hi - lo > 1:
            mid = (lo+hi) // 2
            if s2 >= sqr_edges[mid]:
                lo = mid
            else:
                hi = mid
        return lo

    @jit
    def classify(dx, dy, dz, sqr_edges, mu_max, dmu, nmu):
        # Returns (sbin, mubin, s).  sbin = -1 means the pair is rejected.
        s2 = dx*dx + dy*dy + dz*dz
        if s2 < sqr_edges[0] or s2 >= sqr_edges[len(sqr_edges)-1]:
            return -1, -1, 0.
        s = math.sqrt(float(s2))
        mu = 0.
        if s > 0.:
            mu = abs(float(dz)) / s
            if mu > 1.:
                mu = 1.
        if mu > mu_max:
            return -1, -1, s
        k = int(mu / dmu)
        if k > nmu-1:
            k = nmu-1
        return sbin_index(s2, sqr_edges), k, s

    @jit
    def interp_clamped(x, xp, fp):
        n = len(xp)
        if x <= xp[0]:
            return fp[0]
        if x >= xp[n-1]:
            return fp[n-1]
        lo = 0
        hi = n-1
        while hi - lo > 1:
            mid = (lo+hi) // 2
            if xp[mid] <= x:
                lo = mid
            else:
                hi = mid
        t = (x - xp[lo]) / (xp[hi] - xp[lo])
        return fp[lo] + t * (fp[hi] - fp[lo])

    @jit
    def costheta(x1, y1, z1, x2, y2, z2):
        r1 = float(x1)*x1 + float(y1)*y1 + float(z1)*z1
        r2 = float(x2)*x2 + float(y2)*y2 + float(z2)*z2
        if r1 == 0. or r2 == 0.:
            return 1.
        return (float(x1)*x2 + float(y1)*y2 + float(z1)*z2) / math.sqrt(r1*r2)

    @jit
    def pair_weight(method, bits1, w1, i, bits2, w2, j, width, cost, pw_x, pw_y):
        if method == NONE:
            return 1.
        if method == PAIR_PRODUCT:
            return w1[i] * w2[j]
        nbits = 0
        for k in range(bits1.shape[1]):
            nbits += POPCOUNT8[bits1[i,k] & bits2[j,k]]
        if nbits == 0:
            return 0.
        w = width / nbits * w1[i] * w2[j]
        if len(pw_x) > 0:
            w *= interp_clamped(cost, pw_x, pw_y)
        return w

    helpers = _Helpers()
    helpers.axis_window = axis_window
    helpers.wrap = wrap
    helpers.sbin_index = sbin_index
    helpers.classify = classify
    helpers.interp_clamped = interp_clamped
    helpers.costheta = costheta
    helpers.pair_weight = pair_weight
    return helpers


_cpu = build_helpers(njit(nogil=True))

axis_window = _cpu.axis_window
wrap = _cpu.wrap
classify = _cpu.classify
costheta = _cpu.costheta
sbin_index = _cpu.sbin_index
interp_clamped = _cpu.interp_clamped
pair_weight = _cpu.pair_weight


@njit(nogil=True)
def _count_cells(cells, pos1, start1, count1, pos2, start2, count2,
                 bits1, w1, bits2, w2, method, width, pw_x, pw_y,
                 sqr_edges, mu_max, dmu, ncell, nsearch, boxsize, periodic, autocorr,
                 need_savg, npairs, wsum, ssum):
    nmu = npairs.shape[1]
    need_cost = method == INVERSE_BITWISE and len(pw_x) > 0
    ny = ncell[1]
    nz = ncell[2]
    for c in cells:
        n1 = count1[c]
        if n1 == 0:
            continue
        ix = c // (ny*nz)
        iy = (c // nz) % ny
        iz = c % nz
        xlo, xhi = axis_window(ix, nsearch[0], ncell[0], periodic)
        ylo, yhi = axis_window(iy, nsearch[1], ny, periodic)
        zlo, zhi = axis_window(iz, nsearch[2], nz, periodic)
        for jx in range(xlo, xhi+1):
            for jy in range(ylo, yhi+1):
                for jz in range(zlo, zhi+1):
                    c2 = ((jx % ncell[0]) * ny + (jy % ny)) * nz + (jz % nz)
                    if autocorr and c2 < c:
                        continue
                    n2 = count2[c2]
                    if n2 == 0:
                        continue
                    end2 = start2[c2] + n2
                    for i in range(start1[c], start1[c]+n1):
                        x1 = pos1[i,0]
                        y1 = pos1[i,1]
                        z1 = pos1[i,2]
                        jstart = start2[c2]
                        if autocorr and c2 == c:
                            jstart = i+1
                        for j in range(jstart, end2):
                            dx = pos2[j,0] - x1
                            dy = pos2[j,1] - y1
                            dz = pos2[j,2] - z1
                            if periodic:
                                dx = wrap(dx, boxsize[0])
                                dy = wrap(dy, boxsize[1])
                                dz = wrap(dz, boxsize[2])
                            kbin, kmu, s = classify(dx, dy, dz, sqr_edges, mu_max, dmu, nmu)
                            if kbin < 0:
                                continue
                            cost = 1.
                            if need_cost:
                                cost = costheta(x1, y1, z1, pos2[j,0], pos2[j,1], pos2[j,2])
                            npairs[kbin,kmu] += np.uint64(1)
                            wsum[kbin,kmu] += pair_weight(method, bits1, w1, i, bits2, w2, j,
                                                          width, cost, pw_x, pw_y)
                            if need_savg:
                                ssum[kbin,kmu] += s


def count_cells(cells, grid1, grid2, geom, sbinning, mubinning, method, width, pw_x, pw_y,
                autocorr, need_savg, npairs, wsum, ssum):
    """Count the pairs between the given primary cells of grid1 and their neighbors in grid2.

    The counts are added to the output arrays, npairs, wsum and ssum, each of shape
    (nsbins, nmu_bins).

    Parameters:
        cells (array):          The flat indices of the primary cells to process.
        grid1 (Grid):           The grid of the first point set.
        grid2 (Grid):           The grid of the second point set (grid1 for an autocorrelation).
        geom (GridGeometry):    The geometry shared by both grids.
        sbinning (SBinning):    The radial bins.
        mubinning (MuBinning):  The mu bins.
        method (int):           The weighting scheme code.
        width (float):          The width of the bit vectors (0 if not used).
        pw_x, pw_y (array):     The pair weight table (empty if not used).
        autocorr (bool):        Whether this is an autocorrelation.
        need_savg (bool):       Whether to accumulate the separations.
        npairs, wsum, ssum:     The output arrays.
    """
    dtype = grid1.pos.dtype
    _count_cells(np.ascontiguousarray(cells, dtype=np.int64),
                 grid1.pos, grid1.cell_start, grid1.cell_count,
                 grid2.pos, grid2.cell_start, grid2.cell_count,
                 grid1.bits, grid1.w, grid2.bits, grid2.w,
                 method, float(width), pw_x, pw_y,
                 sbinning.sqr_edges(dtype), float(mubinning.mu_max), float(mubinning.dmu),
                 geom.ncell, geom.nsearch, geom.boxsize.astype(dtype),
                 bool(geom.periodic), bool(autocorr), bool(need_savg),
                 npairs, wsum, ssum)
