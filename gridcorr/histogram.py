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
.. module:: histogram
"""

import numpy as np


class SMuHistogram(object):
    """The accumulated pair counts in a grid of (s, mu) bins.

    Each worker fills its own SMuHistogram, and these are then added together.
    The raw accumulations are:

    Attributes:
        npairs:     The number of pairs in each bin, shape (nsbins, nmu_bins), uint64.
        weightsum:  The sum of the pair weights in each bin.
        ssum:       The sum of the separations in each bin (only filled if output_savg).

    After `finalize`, these are also available:

    Attributes:
        weightavg:  The mean pair weight in each bin (0 for empty bins).
        savg:       The mean separation in each bin (0 for empty bins or if not output_savg).

    Parameters:
        sbinning (SBinning):    The radial bins.
        mubinning (MuBinning):  The mu bins.
        output_savg (bool):     Whether the separations are accumulated. (default: False)
    """
    def __init__(self, sbinning, mubinning, output_savg=False):
        self.sbinning = sbinning
        self.mubinning = mubinning
        self.output_savg = bool(output_savg)
        shape = (sbinning.nbins, mubinning.nbins)
        self.npairs = np.zeros(shape, dtype=np.uint64)
        self.weightsum = np.zeros(shape, dtype=float)
        self.ssum = np.zeros(shape, dtype=float)
        self.weightavg = np.zeros(shape, dtype=float)
        self.savg = np.zeros(shape, dtype=float)

    @property
    def shape(self):
        return self.npairs.shape

    @property
    def nonzero(self):
        """Return if there are any values accumulated yet.  (i.e. npairs > 0)
        """
        return np.any(self.npairs)

    def clear(self):
        """Clear all the accumulated values.
        """
        self.npairs[:] = 0
        self.weightsum[:] = 0
        self.ssum[:] = 0
        self.weightavg[:] = 0
        self.savg[:] = 0

    def _check_compatible(self, other):
        if not isinstance(other, SMuHistogram):
            raise TypeError("Can only add another SMuHistogram object")
        if not (self.sbinning == other.sbinning and self.mubinning == other.mubinning and
                self.output_savg == other.output_savg):
            raise ValueError("SMuHistogram to be added is not compatible with this one.")

    def __iadd__(self, other):
        """Add a second histogram's accumulations to this one.

        .. note::

            For this to make sense, both objects should not have had `finalize` called yet.
            Then, after adding them together, you should call `finalize` on the sum.
        """
        self._check_compatible(other)
        if not other.nonzero: return self
        self.npairs[:] += other.npairs
        self.weightsum[:] += other.weightsum
        self.ssum[:] += other.ssum
        return self

    def _sum(self, others):
        # Equivalent to the operation of:
        #     self.clear()
        #     for other in others:
        #         self += other
        # but with numpy.sum for the float accumulators.
        for other in others:
            self._check_compatible(other)
        others = [c for c in others if c.nonzero]
        if len(others) == 0:
            self.clear()
        else:
            np.sum([c.npairs for c in others], axis=0, dtype=np.uint64, out=self.npairs)
            np.sum([c.weightsum for c in others], axis=0, out=self.weightsum)
            np.sum([c.ssum for c in others], axis=0, out=self.ssum)

    def finalize(self):
        """Compute the mean weight and separation in each bin.
        """
        mask = self.npairs > 0
        n = self.npairs[mask].astype(float)
        self.weightavg[:] = 0
        self.weightavg[mask] = self.weightsum[mask] / n
        self.savg[:] = 0
        if self.output_savg:
            self.savg[mask] = self.ssum[mask] / n

    def as_array(self):
        """The results as a structured array with one row per (s, mu) bin.

        The rows are ordered with mu varying fastest.  The fields are
        ``smin, smax, savg, mu_max, npairs, weightavg``, where mu_max is the upper edge of
        the mu bin.

        Returns:
            A numpy record array of length nsbins * nmu_bins.
        """
        nsbin, nmu = self.shape
        dtype = [('smin', float), ('smax', float), ('savg', float), ('mu_max', float),
                 ('npairs', np.uint64), ('weightavg', float)]
        results = np.zeros(nsbin * nmu, dtype=dtype)
        results['smin'] = np.repeat(self.sbinning.left_edges, nmu)
        results['smax'] = np.repeat(self.sbinning.right_edges, nmu)
        results['savg'] = self.savg.ravel()
        results['mu_max'] = np.tile(self.mubinning.upper_edges, nsbin)
        results['npairs'] = self.npairs.ravel()
        results['weightavg'] = self.weightavg.ravel()
        return results.view(np.recarray)

    def copy(self):
        """Make a copy"""
        ret = self.__class__.__new__(self.__class__)
        for key, item in self.__dict__.items():
            if isinstance(item, np.ndarray):
                ret.__dict__[key] = item.copy()
            else:
                ret.__dict__[key] = item
        return ret

    def __eq__(self, other):
        return (isinstance(other, SMuHistogram) and
                self.sbinning == other.sbinning and
                self.mubinning == other.mubinning and
                self.output_savg == other.output_savg and
                np.array_equal(self.npairs, other.npairs) and
                np.array_equal(self.weightsum, other.weightsum) and
                np.array_equal(self.ssum, other.ssum))

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None
