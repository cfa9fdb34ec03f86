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
.. module:: executor
"""

import time
from concurrent.futures import ThreadPoolExecutor

from . import _kernels
from .histogram import SMuHistogram
from .util import get_num_threads


class ParallelExecutor(object):
    """Runs the pair counting kernel over all the primary cells of a grid.

    On the cpu, the cells that hold points are dealt round-robin into ``num_threads``
    groups, and each group is counted by one worker thread into its own `SMuHistogram`.
    The kernel releases the GIL, so the threads run concurrently.  The partial histograms
    are summed once all the workers have finished.  If any worker fails, its exception is
    raised here and no result is returned.

    With ``use_gpu=True``, the counting is done by the cuda kernel instead.

    Parameters:
        num_threads (int):  The number of worker threads. (default: None, which means to
                            use `get_num_threads`)
        use_gpu (bool):     Whether to use the cuda kernel. (default: False)
        logger:             A logger for progress output. (default: None)
    """
    def __init__(self, num_threads=None, use_gpu=False, logger=None):
        if num_threads is None:
            num_threads = get_num_threads()
        num_threads = int(num_threads)
        if num_threads < 1:
            raise ValueError("num_threads = %d must be at least 1."%num_threads)
        self.num_threads = num_threads
        self.use_gpu = bool(use_gpu)
        self.logger = logger
        if self.use_gpu:
            from . import _cuda
            if not _cuda.is_available():
                raise RuntimeError("use_gpu was requested, but no cuda device is available")
            self._count = _cuda.count_cells
        else:
            self._count = _kernels.count_cells

    def partition(self, cells):
        """Deal the given cells round-robin into at most num_threads non-empty groups.
        """
        return [cells[k::self.num_threads] for k in range(min(self.num_threads, len(cells)))]

    def _run_group(self, cells, grid1, grid2, geom, sbinning, mubinning, weight_args,
                   autocorr, output_savg):
        hist = SMuHistogram(sbinning, mubinning, output_savg)
        method, width, pw_x, pw_y = weight_args
        self._count(cells, grid1, grid2, geom, sbinning, mubinning, method, width, pw_x, pw_y,
                    autocorr, output_savg, hist.npairs, hist.weightsum, hist.ssum)
        return hist

    def run(self, grid1, grid2, geom, sbinning, mubinning, weight_args, autocorr=False,
            output_savg=False):
        """Count all the pairs between grid1 and grid2.

        Parameters:
            grid1 (Grid):           The grid of the first point set.
            grid2 (Grid):           The grid of the second point set.  For an
                                    autocorrelation, this should be grid1.
            geom (GridGeometry):    The shared geometry.
            sbinning (SBinning):    The radial bins.
            mubinning (MuBinning):  The mu bins.
            weight_args (tuple):    (method, width, pw_x, pw_y) for the weight calculation.
            autocorr (bool):        Whether this is an autocorrelation. (default: False)
            output_savg (bool):     Whether to accumulate the separations. (default: False)

        Returns:
            An SMuHistogram with the total counts.
        """
        t0 = time.time()
        cells = grid1.nonempty_cells
        result = SMuHistogram(sbinning, mubinning, output_savg)
        args = (grid1, grid2, geom, sbinning, mubinning, weight_args, autocorr, output_savg)

        if self.use_gpu:
            if self.logger:
                self.logger.info("Counting pairs on the gpu for %d cells", len(cells))
            result = self._run_group(cells, *args)
        else:
            groups = self.partition(cells)
            if self.logger:
                self.logger.info("Counting pairs in %d cells using %d threads",
                                 len(cells), len(groups))
            if len(groups) <= 1:
                partials = [self._run_group(g, *args) for g in groups]
            else:
                with ThreadPoolExecutor(max_workers=len(groups)) as pool:
                    futures = [pool.submit(self._run_group, g, *args) for g in groups]
                    partials = [f.result() for f in futures]
            result._sum(partials)

        if self.logger:
            self.logger.debug("Counting took %.3f seconds", time.time()-t0)
        return result
