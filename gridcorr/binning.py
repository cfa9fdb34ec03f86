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
.. module:: binning
"""

import numpy as np


class SBinning(object):
    """The radial binning in separation s.

    The bins are contiguous and half-open, :math:`[s_{\\rm min}, s_{\\rm max})`, so a pair
    whose separation lands exactly on an interior edge goes into the upper bin.

    The binning may be given either as a list of ``nbins+1`` edges or as a list of
    ``(smin, smax)`` pairs, which is the format of the bin files used by `from_file`.
    For the latter, the smin of each bin must equal the smax of the previous one.

    Parameters:
        edges (array):  The bin edges, strictly increasing and non-negative. (default: None)
        pairs (array):  Alternatively, an array of shape (nbins, 2) of (smin, smax) values.
                        (default: None)
    """
    def __init__(self, edges=None, *, pairs=None):
        if (edges is None) == (pairs is None):
            raise TypeError("Exactly one of edges or pairs is required")
        if pairs is not None:
            pairs = np.array(pairs, dtype=float)
            if pairs.ndim != 2 or pairs.shape[1] != 2:
                raise ValueError("pairs must have shape (nbins, 2)")
            if len(pairs) == 0:
                raise ValueError("At least one bin is required")
            if np.any(pairs[1:,0] != pairs[:-1,1]):
                bad = np.where(pairs[1:,0] != pairs[:-1,1])[0][0]
                raise ValueError("Bins are not contiguous: smax = %r of bin %d does not match "
                                 "smin = %r of bin %d"%(pairs[bad,1], bad,
                                                        pairs[bad+1,0], bad+1))
            edges = np.concatenate([pairs[:,0], pairs[-1:,1]])
        else:
            edges = np.array(edges, dtype=float)
            if edges.ndim != 1:
                raise ValueError("edges must be 1-d")
            if len(edges) < 2:
                raise ValueError("At least one bin (two edges) is required")

        if np.any(~np.isfinite(edges)):
            raise ValueError("Bin edges must be finite")
        if np.any(edges < 0):
            raise ValueError("Bin edges must be non-negative")
        if np.any(np.diff(edges) <= 0):
            raise ValueError("Bin edges must be strictly increasing")
        edges.flags.writeable = False
        self._edges = edges

    @classmethod
    def from_file(cls, file_name):
        """Read the binning from an ASCII file with one ``smin smax`` pair per line.

        Lines starting with '#' are treated as comments.

        Parameters:
            file_name (str):    The name of the bin file.

        Returns:
            An SBinning instance.
        """
        pairs = np.loadtxt(file_name, dtype=float, comments='#', ndmin=2)
        if pairs.size == 0:
            raise ValueError("No bins found in %s"%file_name)
        if pairs.shape[1] != 2:
            raise ValueError("Bin file %s should have 2 columns, found %d"%(
                             file_name, pairs.shape[1]))
        return cls(pairs=pairs)

    @property
    def edges(self): return self._edges
    @property
    def nbins(self): return len(self._edges) - 1
    @property
    def left_edges(self): return self._edges[:-1]
    @property
    def right_edges(self): return self._edges[1:]
    @property
    def min_sep(self): return self._edges[0]
    @property
    def max_sep(self): return self._edges[-1]

    def sqr_edges(self, dtype=float):
        """The squared bin edges, which is what the pair counting kernel compares against.
        """
        return np.ascontiguousarray(self._edges**2, dtype=dtype)

    def __eq__(self, other):
        return isinstance(other, SBinning) and np.array_equal(self.edges, other.edges)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(tuple(self._edges))

    def __repr__(self):
        return 'SBinning(%r)'%(self._edges.tolist())


class MuBinning(object):
    """The uniform binning in :math:`\\mu`, the absolute cosine of the angle between the
    separation vector and the line of sight.

    There are ``nmu_bins`` bins of width ``dmu = mu_max / nmu_bins`` covering
    :math:`[0, \\mu_{\\rm max}]`.  Note that the last bin includes its upper edge.

    Parameters:
        mu_max (float):     The maximum mu to include.  Must be in (0, 1].
        nmu_bins (int):     The number of mu bins.  Must be >= 1.
    """
    def __init__(self, mu_max, nmu_bins):
        mu_max = float(mu_max)
        if not (0. < mu_max <= 1.):
            raise ValueError("mu_max = %r must be in (0, 1]"%mu_max)
        if int(nmu_bins) != nmu_bins or nmu_bins < 1:
            raise ValueError("nmu_bins = %r must be an integer >= 1"%nmu_bins)
        self._mu_max = mu_max
        self._nbins = int(nmu_bins)

    @property
    def mu_max(self): return self._mu_max
    @property
    def nbins(self): return self._nbins
    @property
    def dmu(self): return self._mu_max / self._nbins

    @property
    def edges(self):
        return np.linspace(0., self._mu_max, self._nbins+1)

    @property
    def upper_edges(self):
        """The upper edge of each bin, which is how the mu bins are labeled in the output.
        """
        return (np.arange(self._nbins) + 1) * self.dmu

    def index(self, mu):
        """The bin index for the given value(s) of mu, which should be in [0, mu_max].
        """
        k = np.floor(np.asarray(mu) / self.dmu).astype(int)
        return np.minimum(k, self._nbins-1)

    def __eq__(self, other):
        return (isinstance(other, MuBinning) and self.mu_max == other.mu_max and
                self.nbins == other.nbins)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((self._mu_max, self._nbins))

    def __repr__(self):
        return 'MuBinning(mu_max=%r, nmu_bins=%r)'%(self._mu_max, self._nbins)
