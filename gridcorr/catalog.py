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
.. module:: catalog
"""

import numpy as np

from .config import merge_config, setup_logger, get
from .util import parse_precision
from .weights import Weights, make_weights, _as_columns


class Catalog(object):
    r"""A set of 3-d points, with optional per-point weights.

    The positions are given as in-memory arrays.  Reading catalogs from files is left to the
    caller; numpy, pandas or fitsio are all fine ways to get the columns.

    Examples::

        >>> cat = gridcorr.Catalog(x=x, y=y, z=z)
        >>> cat = gridcorr.Catalog(x=x, y=y, z=z, weights=w)
        >>> cat = gridcorr.Catalog(x=x, y=y, z=z, weights=[mask1, mask2, w], precision='float')

    The ``weights`` are kept in their raw form until a weighting scheme is chosen, which
    happens when the catalog is processed by `SMuCorrelation`.  For 'pair_product', they should
    be a single column.  For 'inverse_bitwise', all but the last column are 64-bit integer
    bit masks, and the last column is a scalar weight.  You may also pass an already
    constructed `Weights` instance.

    Attributes:
        ntot:       The number of points.
        x, y, z:    The positions as read-only arrays of the catalog's precision.
        pos:        The positions as a read-only (ntot, 3) array.
        dtype:      The numpy dtype of the positions.

    Parameters:
        config (dict):      A configuration dict, which defines the precision and logging
                            parameters. (default: None)
        logger:             If desired, a Logger object for logging. (default: None, in which
                            case one will be built according to the config dict's verbose level.)
        x (array):          The x values.
        y (array):          The y values.
        z (array):          The z values.  This is the line of sight direction.
        weights (array):    The per-point weight components. (default: None)

    Keyword Arguments:
        precision (str):    The floating point precision of the positions, either 'float' or
                            'double'. (default: 'double')
        verbose (int):      If no logger is provided, this will optionally specify a logging
                            level to use. (default: 1)
        log_file (str):     If no logger is provided, this will specify a file to write the
                            logging output. (default: None; i.e. output to standard output)
    """
    _valid_params = {
        'precision' : (str, False, 'double', ['float', 'double'],
                'The floating point precision of the positions.'),
        'verbose' : (int, False, 1, [0, 1, 2, 3],
                'How verbose the code should be during processing. ',
                '0 = Errors Only, 1 = Warnings, 2 = Progress, 3 = Debugging'),
        'log_file' : (str, False, None, None,
                'If desired, an output file for the logging output.',
                'The default is to write the output to stdout.'),
    }

    def __init__(self, config=None, *, logger=None, x=None, y=None, z=None, weights=None,
                 **kwargs):

        self.config = merge_config(config, kwargs, Catalog._valid_params)

        if logger is not None:
            self.logger = logger
            self._logger_name = logger.name
        else:
            self._logger_name = 'gridcorr.Catalog'
            self.logger = setup_logger(get(self.config,'verbose',int,1),
                                       self.config.get('log_file',None), self._logger_name)

        if x is None or y is None or z is None:
            raise TypeError("x, y and z are all required")
        self._dtype = parse_precision(self.config['precision'])

        x = self.makeArray(x,'x')
        y = self.makeArray(y,'y')
        z = self.makeArray(z,'z')
        ntot = len(x)
        if len(y) != ntot:
            raise ValueError("x and y have different numbers of elements")
        if len(z) != ntot:
            raise ValueError("z has the wrong numbers of elements")
        if ntot == 0:
            raise ValueError("Catalog has no objects")
        self.checkForNaN(x,'x')
        self.checkForNaN(y,'y')
        self.checkForNaN(z,'z')

        self._pos = np.ascontiguousarray(np.column_stack([x, y, z]), dtype=self._dtype)
        self._pos.flags.writeable = False
        self._ntot = ntot

        if isinstance(weights, Weights):
            if weights.npoints != ntot:
                raise ValueError("weights have %d rows, but there are %d points"%(
                                 weights.npoints, ntot))
        elif weights is not None:
            # Just check the number of rows here.  The rest is checked by make_weights.
            if any(len(c) != ntot for c in _as_columns(weights)):
                raise ValueError("weights have the wrong numbers of elements")
        self._weights = weights
        self._weights_cache = {}
        self.logger.debug("Made Catalog with %d objects", ntot)

    @property
    def ntot(self): return self._ntot
    @property
    def dtype(self): return self._dtype
    @property
    def pos(self): return self._pos
    @property
    def x(self): return self._pos[:,0]
    @property
    def y(self): return self._pos[:,1]
    @property
    def z(self): return self._pos[:,2]
    @property
    def raw_weights(self): return self._weights

    def __len__(self):
        return self._ntot

    def makeArray(self, col, col_str, dtype=float):
        """Turn the input column into a numpy array if it wasn't already.
        Also make sure the input is 1-d.

        Parameters:
            col (array-like):   The input column to be converted into a numpy array.
            col_str (str):      The name of the column.  Used only as information in logging output.
            dtype (type):       The dtype for the returned array.  (default: float)

        Returns:
            The column converted to a 1-d numpy array.
        """
        col = np.array(col,dtype=dtype)
        if len(col.shape) != 1:
            s = col.shape
            col = col.reshape(-1)
            self.logger.warning("Warning: Input %s column was not 1-d.\n"%col_str +
                                "         Reshaping from %s to %s"%(s,col.shape))
        return np.ascontiguousarray(col)

    def checkForNaN(self, col, col_str):
        """Check if the column has any NaNs or infinities.  If so, raise a ValueError.

        Parameters:
            col (array):    The input column to check.
            col_str (str):  The name of the column.  Used only as information in logging output.
        """
        if np.any(~np.isfinite(col)):
            index = np.where(~np.isfinite(col))[0]
            s = 's' if len(index) > 1 else ''
            if len(index) < 20:
                self.logger.info("Bad row%s %s.",s,index.tolist())
            else:
                self.logger.info("Bad rows starting %s",
                                 str(index[:10].tolist()).replace(']',' ...]'))
            raise ValueError("%d non-finite value%s found in %s column"%(len(index),s,col_str))

    def getWeights(self, weight_method):
        """Get the weight payload for the given weighting scheme.

        Parameters:
            weight_method (str):    One of 'none', 'pair_product', 'inverse_bitwise'.

        Returns:
            A `Weights` instance.
        """
        if isinstance(self._weights, Weights):
            if self._weights.method != weight_method:
                raise ValueError("Catalog has %s weights, but weight_method is %s"%(
                                 self._weights.method, weight_method))
            return self._weights
        if weight_method not in self._weights_cache:
            self._weights_cache[weight_method] = make_weights(weight_method, self._weights,
                                                              self._ntot)
        return self._weights_cache[weight_method]

    def getBounds(self):
        """The minimum and maximum position along each axis.

        Returns:
            (min, max), each an array of length 3.
        """
        return self._pos.min(axis=0).astype(float), self._pos.max(axis=0).astype(float)

    def __getstate__(self):
        d = self.__dict__.copy()
        d.pop('logger',None)  # Oh well.  This is just lost in the copy.  Can't be pickled.
        return d

    def __setstate__(self, d):
        self.__dict__ = d
        self.logger = setup_logger(get(self.config,'verbose',int,1),
                                   self.config.get('log_file',None), self._logger_name)
        self._pos.flags.writeable = False

    def __repr__(self):
        return 'Catalog(ntot=%d, precision=%r)'%(self._ntot, self.config['precision'])

    def __eq__(self, other):
        return (isinstance(other, Catalog) and
                self.config['precision'] == other.config['precision'] and
                np.array_equal(self._pos, other._pos))

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None
