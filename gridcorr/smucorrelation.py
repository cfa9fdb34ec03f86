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
.. module:: smucorrelation
"""

import time
import numpy as np

from .config import merge_config, setup_logger, get, get_list, make_minimal_config
from .util import parse_precision, parse_boxsize
from .binning import SBinning, MuBinning
from .weights import PairWeightTable, weight_method_enum, weight_methods
from .grid import Grid, GridGeometry
from .executor import ParallelExecutor
from .histogram import SMuHistogram


class Namespace(object):
    pass

class SMuCorrelation(object):
    r"""This class handles the calculation and storage of pair counts binned in
    separation :math:`s` and :math:`\mu`, the absolute cosine of the angle between the
    separation vector and the line of sight (the z axis).

    Objects of this class hold the following attributes:

    Attributes:
        nbins:      The number of radial bins.
        nmu_bins:   The number of mu bins.
        left_edges: The lower edge of each radial bin.
        right_edges: The upper edge of each radial bin.

    In addition, the following attributes are numpy arrays of shape (nbins, nmu_bins):

    Attributes:
        npairs:     The number of pairs in each bin.
        weightsum:  The total pair weight in each bin.
        weightavg:  The mean pair weight in each bin (after `finalize`).
        savg:       The mean separation in each bin (after `finalize`, and only if
                    ``output_savg=True``; otherwise 0).

    The typical usage pattern is as follows:

        >>> smu = gridcorr.SMuCorrelation(config)
        >>> smu.process(cat)         # For auto-correlation.
        >>> smu.process(cat1,cat2)   # For cross-correlation.
        >>> smu.results              # The results as a structured array.

    Parameters:
        config (dict):  A configuration dict that can be used to pass in kwargs if desired.
                        This dict is allowed to have addition entries besides those listed
                        in `_valid_params`, which are ignored here. (default: None)
        logger:         If desired, a logger object for logging. (default: None, in which case
                        one will be built according to the config dict's verbose level.)
        pair_weights (PairWeightTable): An angular pair weight table to use instead of
                        reading one from pair_weights_file. (default: None)

    Keyword Arguments:
        bin_file (str):     A file with the radial bins, one ``smin smax`` pair per line.
                            (Either bin_file or sbins is required.)
        sbins (list):       The radial bin edges.  (Either bin_file or sbins is required.)
        mu_max (float):     The maximum mu to include. (default: 1)
        nmu_bins (int):     The number of mu bins. (default: 1)
        weight_method (str): How to weight the pairs.  Options are 'none', 'pair_product'
                            and 'inverse_bitwise'. (default: 'none')
        pair_weights_file (str): A file with angular pair weights as columns ``costheta
                            weight``.  Only valid for inverse_bitwise. (default: None)
        periodic (bool):    Whether to use periodic boundary conditions. (default: False)
        boxsize (float):    The period, either one value or a list of 3.  A value of 0 means
                            to use the extent of the data. (default: 0)
        precision (str):    The precision of the positions, 'float' or 'double'.
                            (default: 'double')
        num_threads (int):  How many threads should be used. (default: None, which means to use
                            the number of cpu cores)
        use_gpu (bool):     Whether to count the pairs on a cuda device. (default: False)
        bin_refine_factors (list): The number of grid cells per search distance along each
                            axis. (default: [2,2,1])
        max_cells_per_dim (int): The maximum number of grid cells along any axis.
                            (default: 100)
        output_savg (bool): Whether to compute the mean separation in each bin.
                            (default: False)
        verbose (int):      If no logger is provided, this will optionally specify a logging
                            level to use:

                            - 0 means no logging output
                            - 1 means to output warnings only (default)
                            - 2 means to output various progress information
                            - 3 means to output extensive debugging information

        log_file (str):     If no logger is provided, this will specify a file to write the
                            logging output.  (default: None; i.e. output to standard output)
    """
    _valid_params = {
        'bin_file' : (str, False, None, None,
                'A file with the radial bins, one "smin smax" pair per line.'),
        'sbins' : (float, True, None, None,
                'The radial bin edges.'),
        'mu_max' : (float, False, 1., None,
                'The maximum mu to include.  Must be in (0,1].'),
        'nmu_bins' : (int, False, 1, None,
                'The number of mu bins.'),
        'weight_method' : (str, False, 'none', weight_methods,
                'How to weight the pairs.'),
        'pair_weights_file' : (str, False, None, None,
                'A file with angular pair weights (costheta, weight).',
                'Only valid with weight_method = inverse_bitwise.'),
        'periodic' : (bool, False, False, None,
                'Whether to use periodic boundary conditions.'),
        'boxsize' : (float, True, None, None,
                'The period, either one value or a list of 3.  0 means to use the data extent.'),
        'precision' : (str, False, 'double', ['float', 'double'],
                'The floating point precision of the positions.'),
        'num_threads' : (int, False, None, None,
                'How many threads should be used.  None means to use all the cpu cores.'),
        'use_gpu' : (bool, False, False, None,
                'Whether to count the pairs on a cuda device.'),
        'bin_refine_factors' : (int, True, [2,2,1], None,
                'The number of grid cells per search distance along x, y and z.'),
        'max_cells_per_dim' : (int, False, 100, None,
                'The maximum number of grid cells along any axis.'),
        'output_savg' : (bool, False, False, None,
                'Whether to compute the mean separation in each bin.'),
        'verbose' : (int, False, 1, [0, 1, 2, 3],
                'How verbose the code should be during processing. ',
                '0 = Errors Only, 1 = Warnings, 2 = Progress, 3 = Debugging'),
        'log_file' : (str, False, None, None,
                'If desired, an output file for the logging output.',
                'The default is to write the output to stdout.'),
    }

    def __init__(self, config=None, *, logger=None, pair_weights=None, **kwargs):
        self.config = merge_config(config,kwargs,SMuCorrelation._valid_params)
        if logger is None:
            self._logger_name = 'gridcorr.SMuCorrelation'
            self.logger = setup_logger(get(self.config,'verbose',int,1),
                                       self.config.get('log_file',None), self._logger_name)
        else:
            self.logger = logger
            self._logger_name = logger.name

        # The core attributes that won't ever be changed after construction.
        # The access of these attributes are all via read-only properties.
        self._ro = Namespace()

        if self.config.get('bin_file') is not None and self.config.get('sbins') is not None:
            raise TypeError("Only one of bin_file or sbins may be given")
        if self.config.get('bin_file') is not None:
            self._ro.sbinning = SBinning.from_file(self.config['bin_file'])
        elif self.config.get('sbins') is not None:
            self._ro.sbinning = SBinning(get_list(self.config,'sbins',float))
        else:
            raise TypeError("Either bin_file or sbins is required")
        self._ro.mubinning = MuBinning(get(self.config,'mu_max',float,1.),
                                       get(self.config,'nmu_bins',int,1))

        self._ro.weight_method = self.config['weight_method']
        self._ro._method = weight_method_enum(self.weight_method)
        if pair_weights is not None and self.config.get('pair_weights_file') is not None:
            raise TypeError("Only one of pair_weights or pair_weights_file may be given")
        if self.config.get('pair_weights_file') is not None:
            pair_weights = PairWeightTable.from_file(self.config['pair_weights_file'])
        if pair_weights is not None:
            if self.weight_method != 'inverse_bitwise':
                raise ValueError("Pair weights are only valid for weight_method = inverse_bitwise")
            if not isinstance(pair_weights, PairWeightTable):
                raise TypeError("pair_weights must be a PairWeightTable")
        self._ro.pair_weights = pair_weights

        self._ro.periodic = get(self.config,'periodic',bool,False)
        self._ro.boxsize = parse_boxsize(self.config.get('boxsize',None))
        if self.periodic:
            fixed = self.boxsize[self.boxsize > 0]
            if np.any(self.sbinning.max_sep > 0.5 * fixed):
                raise ValueError("The largest separation %s is larger than half the periodic "
                                 "box %s"%(self.sbinning.max_sep, self.boxsize.tolist()))

        self._ro.precision = self.config['precision']
        self._ro.dtype = parse_precision(self.precision)

        num_threads = self.config.get('num_threads',None)
        if num_threads is not None and num_threads < 1:
            raise ValueError("num_threads = %d must be at least 1."%num_threads)

        self._ro.use_gpu = get(self.config,'use_gpu',bool,False)
        if self.use_gpu:
            from . import _cuda
            if not _cuda.is_available():
                raise RuntimeError("use_gpu was requested, but no cuda device is available")

        refine = get_list(self.config,'bin_refine_factors',int,[2,2,1])
        if len(refine) != 3 or any(r < 1 for r in refine):
            raise ValueError("bin_refine_factors must be 3 integers >= 1")
        self._ro.bin_refine_factors = tuple(refine)
        self._ro.max_cells_per_dim = get(self.config,'max_cells_per_dim',int,100)
        if self.max_cells_per_dim < 1:
            raise ValueError("max_cells_per_dim must be >= 1")
        self._ro.output_savg = get(self.config,'output_savg',bool,False)

        self.hist = SMuHistogram(self.sbinning, self.mubinning, self.output_savg)
        self.logger.debug('Finished building SMuCorrelation')

    # Read-only attributes
    @property
    def sbinning(self): return self._ro.sbinning
    @property
    def mubinning(self): return self._ro.mubinning
    @property
    def nbins(self): return self._ro.sbinning.nbins
    @property
    def nmu_bins(self): return self._ro.mubinning.nbins
    @property
    def mu_max(self): return self._ro.mubinning.mu_max
    @property
    def left_edges(self): return self._ro.sbinning.left_edges
    @property
    def right_edges(self): return self._ro.sbinning.right_edges
    @property
    def weight_method(self): return self._ro.weight_method
    @property
    def pair_weights(self): return self._ro.pair_weights
    @property
    def periodic(self): return self._ro.periodic
    @property
    def boxsize(self): return self._ro.boxsize
    @property
    def precision(self): return self._ro.precision
    @property
    def dtype(self): return self._ro.dtype
    @property
    def use_gpu(self): return self._ro.use_gpu
    @property
    def bin_refine_factors(self): return self._ro.bin_refine_factors
    @property
    def max_cells_per_dim(self): return self._ro.max_cells_per_dim
    @property
    def output_savg(self): return self._ro.output_savg

    # The accumulated values live in the histogram.
    @property
    def npairs(self): return self.hist.npairs
    @property
    def weightsum(self): return self.hist.weightsum
    @property
    def weightavg(self): return self.hist.weightavg
    @property
    def savg(self): return self.hist.savg
    @property
    def results(self):
        """The results as a structured array.  See `SMuHistogram.as_array`."""
        return self.hist.as_array()

    @property
    def nonzero(self):
        """Return if there are any values accumulated yet.  (i.e. npairs > 0)
        """
        return self.hist.nonzero

    def _weight_args(self, weights):
        if self.pair_weights is not None:
            pw_x, pw_y = self.pair_weights.costheta, self.pair_weights.weight
        else:
            pw_x = pw_y = np.zeros(0, dtype=float)
        return (self._ro._method, weights.width, pw_x, pw_y)

    def _make_executor(self, num_threads):
        if num_threads is None:
            num_threads = self.config.get('num_threads',None)
        return ParallelExecutor(num_threads, self.use_gpu, self.logger)

    def _make_geometry(self, cats):
        return GridGeometry.from_catalogs(
                cats, self.sbinning.max_sep, self.mu_max, periodic=self.periodic,
                boxsize=self.boxsize, refine=self.bin_refine_factors,
                max_cells_per_dim=self.max_cells_per_dim, logger=self.logger)

    def _check_precision(self, cat):
        if cat.dtype != self.dtype:
            self.logger.warning("Catalog has precision %s, but this SMuCorrelation uses %s. "
                                "Converting the positions.", cat.config['precision'],
                                self.precision)

    def process_auto(self, cat, *, num_threads=None):
        """Process a single catalog, accumulating the auto-correlation.

        This accumulates the pair counts for every distinct pair of points in the catalog,
        counting each unordered pair once.  After calling this function as often as desired,
        the `finalize` command will finish the calculation of weightavg and savg.

        Parameters:
            cat (Catalog):      The catalog to process
            num_threads (int):  How many threads to use during the calculation.
                                (default: use the number of cpu cores; this value can also be given
                                in the constructor in the config dict.)
        """
        self.logger.info('Starting process SMu auto-correlations')
        executor = self._make_executor(num_threads)
        self._check_precision(cat)
        weights = cat.getWeights(self.weight_method)

        t0 = time.time()
        geom = self._make_geometry([cat])
        grid = Grid(cat, geom, weights, self.dtype)
        self.logger.debug("Building the grid took %.3f seconds", time.time()-t0)

        hist = executor.run(grid, grid, geom, self.sbinning, self.mubinning,
                            self._weight_args(weights), autocorr=True,
                            output_savg=self.output_savg)
        self.hist += hist

    def process_cross(self, cat1, cat2, *, num_threads=None):
        """Process a pair of catalogs, accumulating the cross-correlation.

        This accumulates the pair counts for every ordered pair made of one point from cat1
        and one from cat2.  After calling this function as often as desired, the `finalize`
        command will finish the calculation of weightavg and savg.

        Parameters:
            cat1 (Catalog):     The first catalog to process
            cat2 (Catalog):     The second catalog to process
            num_threads (int):  How many threads to use during the calculation.
                                (default: use the number of cpu cores; this value can also be given
                                in the constructor in the config dict.)
        """
        self.logger.info('Starting process SMu cross-correlations')
        executor = self._make_executor(num_threads)
        self._check_precision(cat1)
        self._check_precision(cat2)
        weights1 = cat1.getWeights(self.weight_method)
        weights2 = cat2.getWeights(self.weight_method)
        weights1._check_compatible(weights2)

        t0 = time.time()
        geom = self._make_geometry([cat1, cat2])
        grid1 = Grid(cat1, geom, weights1, self.dtype)
        grid2 = Grid(cat2, geom, weights2, self.dtype)
        self.logger.debug("Building the grids took %.3f seconds", time.time()-t0)

        hist = executor.run(grid1, grid2, geom, self.sbinning, self.mubinning,
                            self._weight_args(weights1), autocorr=False,
                            output_savg=self.output_savg)
        self.hist += hist

    def process(self, cat1, cat2=None, *, num_threads=None):
        """Compute the (s, mu) pair counts.

        - If only 1 argument is given, then compute an auto-correlation.
        - If 2 arguments are given, then compute a cross-correlation.

        Any previously accumulated values are cleared first, and `finalize` is called at
        the end.

        Parameters:
            cat1 (Catalog):     The first catalog to process.
            cat2 (Catalog):     The second catalog to process, if any. (default: None)
            num_threads (int):  How many threads to use during the calculation.
                                (default: use the number of cpu cores; this value can also be given
                                in the constructor in the config dict.)
        """
        self.clear()
        if cat2 is None or cat2 is cat1:
            self.process_auto(cat1, num_threads=num_threads)
        else:
            self.process_cross(cat1, cat2, num_threads=num_threads)
        self.finalize()

    def finalize(self):
        """Finalize the calculation of the pair counts.

        The `process_auto` and `process_cross` commands accumulate values in each bin,
        so they can be called multiple times if appropriate.  Afterwards, this command
        finishes the calculation of weightavg and savg by dividing by the number of pairs.
        """
        self.hist.finalize()

    def clear(self):
        """Clear all data vectors.
        """
        self.hist.clear()

    def __iadd__(self, other):
        """Add a second SMuCorrelation object's data to this one.

        .. note::

            For this to make sense, both objects should not have had `finalize` called yet.
            Then, after adding them together, you should call `finalize` on the sum.
        """
        if not isinstance(other, SMuCorrelation):
            raise TypeError("Can only add another SMuCorrelation object")
        if self.weight_method != other.weight_method:
            raise ValueError("SMuCorrelation to be added is not compatible with this one.")
        self.hist += other.hist
        return self

    def _sum(self, others):
        self.hist._sum([c.hist for c in others])

    def copy(self):
        """Make a copy"""
        ret = self.__class__.__new__(self.__class__)
        for key, item in self.__dict__.items():
            # The read-only things are all in _ro, so a shallow copy is fine for everything
            # except the histogram.
            ret.__dict__[key] = item
        ret.hist = self.hist.copy()
        return ret

    def __eq__(self, other):
        """Return whether two SMuCorrelation instances are equal"""
        return (isinstance(other, SMuCorrelation) and
                self.sbinning == other.sbinning and
                self.mubinning == other.mubinning and
                self.weight_method == other.weight_method and
                self.pair_weights == other.pair_weights and
                self.periodic == other.periodic and
                np.array_equal(self.boxsize, other.boxsize) and
                self.precision == other.precision and
                self.hist == other.hist)

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self):
        kwargs = make_minimal_config(self.config, SMuCorrelation._valid_params)
        kwargs_str = ', '.join(f'{k}={v!r}' for k,v in kwargs.items())
        return f'SMuCorrelation({kwargs_str})'

    def __getstate__(self):
        d = self.__dict__.copy()
        d.pop('logger',None)  # Oh well.  This is just lost in the copy.  Can't be pickled.
        return d

    def __setstate__(self, d):
        self.__dict__ = d
        if self._logger_name is not None:
            self.logger = setup_logger(get(self.config,'verbose',int,1),
                                       self.config.get('log_file',None), self._logger_name)
