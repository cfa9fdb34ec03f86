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
.. module:: _cuda

The cuda version of the pair counting kernel.

This module is only imported when use_gpu is requested.  Each block processes a strided
subset of the primary cells, with one thread per point of the primary cell, and owns one
row of the partial histograms.  The rows are summed on the host.
"""

import numpy as np
from numba import cuda

from ._kernels import build_helpers, INVERSE_BITWISE

_gpu = build_helpers(cuda.jit(device=True))

axis_window = _gpu.axis_window
wrap = _gpu.wrap
classify = _gpu.classify
costheta = _gpu.costheta
pair_weight = _gpu.pair_weight

threads_per_block = 128
max_blocks = 1024


def is_available():
    """Return whether a cuda device is available."""
    return cuda.is_available()


@cuda.jit
def _count_cells_gpu(cells, pos1, start1, count1, pos2, start2, count2,
                     bits1, w1, bits2, w2, method, width, pw_x, pw_y,
                     sqr_edges, mu_max, dmu, ncell, nsearch, boxsize, periodic, autocorr,
                     need_savg, npairs, wsum, ssum):
    row = cuda.blockIdx.x
    nmu = npairs.shape[2]
    need_cost = method == INVERSE_BITWISE and len(pw_x) > 0
    ny = ncell[1]
    nz = ncell[2]
    for kc in range(row, len(cells), cuda.gridDim.x):
        c = cells[kc]
        n1 = count1[c]
        ix = c // (ny*nz)
        iy = (c // nz) % ny
        iz = c % nz
        xlo, xhi = axis_window(ix, nsearch[0], ncell[0], periodic)
        ylo, yhi = axis_window(iy, nsearch[1], ny, periodic)
        zlo, zhi = axis_window(iz, nsearch[2], nz, periodic)
        for i in range(start1[c] + cuda.threadIdx.x, start1[c] + n1, cuda.blockDim.x):
            x1 = pos1[i,0]
            y1 = pos1[i,1]
            z1 = pos1[i,2]
            for jx in range(xlo, xhi+1):
                for jy in range(ylo, yhi+1):
                    for jz in range(zlo, zhi+1):
                        c2 = ((jx % ncell[0]) * ny + (jy % ny)) * nz + (jz % nz)
                        if autocorr and c2 < c:
                            continue
                        jstart = start2[c2]
                        if autocorr and c2 == c:
                            jstart = i+1
                        for j in range(jstart, start2[c2] + count2[c2]):
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
                            w = pair_weight(method, bits1, w1, i, bits2, w2, j,
                                            width, cost, pw_x, pw_y)
                            cuda.atomic.add(npairs, (row, kbin, kmu), np.uint64(1))
                            cuda.atomic.add(wsum, (row, kbin, kmu), w)
                            if need_savg:
                                cuda.atomic.add(ssum, (row, kbin, kmu), s)


def count_cells(cells, grid1, grid2, geom, sbinning, mubinning, method, width, pw_x, pw_y,
                autocorr, need_savg, npairs, wsum, ssum):
    """The cuda version of `_kernels.count_cells`, with the same arguments.
    """
    if not is_available():
        raise RuntimeError("use_gpu was requested, but no cuda device is available")
    if len(cells) == 0:
        return
    nblocks = min(len(cells), max_blocks)
    shape = (nblocks,) + npairs.shape
    d_npairs = cuda.to_device(np.zeros(shape, dtype=np.uint64))
    d_wsum = cuda.to_device(np.zeros(shape, dtype=float))
    d_ssum = cuda.to_device(np.zeros(shape, dtype=float))

    dtype = grid1.pos.dtype
    d_pos1 = cuda.to_device(grid1.pos)
    d_start1 = cuda.to_device(grid1.cell_start)
    d_count1 = cuda.to_device(grid1.cell_count)
    d_bits1 = cuda.to_device(grid1.bits)
    d_w1 = cuda.to_device(grid1.w)
    if autocorr:
        d_pos2, d_start2, d_count2, d_bits2, d_w2 = d_pos1, d_start1, d_count1, d_bits1, d_w1
    else:
        d_pos2 = cuda.to_device(grid2.pos)
        d_start2 = cuda.to_device(grid2.cell_start)
        d_count2 = cuda.to_device(grid2.cell_count)
        d_bits2 = cuda.to_device(grid2.bits)
        d_w2 = cuda.to_device(grid2.w)

    _count_cells_gpu[nblocks, threads_per_block](
        cuda.to_device(np.ascontiguousarray(cells, dtype=np.int64)),
        d_pos1, d_start1, d_count1, d_pos2, d_start2, d_count2,
        d_bits1, d_w1, d_bits2, d_w2,
        method, float(width), cuda.to_device(pw_x), cuda.to_device(pw_y),
        cuda.to_device(sbinning.sqr_edges(dtype)), float(mubinning.mu_max),
        float(mubinning.dmu), cuda.to_device(geom.ncell), cuda.to_device(geom.nsearch),
        cuda.to_device(geom.boxsize.astype(dtype)), bool(geom.periodic), bool(autocorr),
        bool(need_savg), d_npairs, d_wsum, d_ssum)
    cuda.synchronize()

    npairs += d_npairs.copy_to_host().sum(axis=0, dtype=np.uint64)
    wsum += d_wsum.copy_to_host().sum(axis=0)
    ssum += d_ssum.copy_to_host().sum(axis=0)
