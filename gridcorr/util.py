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
.. module:: util
"""

import os
import numpy as np

_max_threads = None

def set_num_threads(num_threads, logger=None):
    """Set the default number of worker threads to use for pair counting.

    This is the value used by `SMuCorrelation` when ``num_threads`` is not given explicitly.

    :param num_threads: The target number of threads to use.  None means to use the number
                        of cpu cores.
    :param logger:      If desired, a logger object for logging any warnings here. (default: None)

    :returns:           The number of threads that will be used.
    """
    global _max_threads
    if num_threads is None:
        _max_threads = None
        num_threads = get_num_threads()
        if logger:
            logger.debug('os.cpu_count() = %d',num_threads)
    else:
        num_threads = int(num_threads)
        if num_threads < 1:
            raise ValueError("num_threads = %d must be at least 1."%num_threads)
        _max_threads = num_threads
    if logger:
        logger.info('Using %d threads.',num_threads)
    return num_threads

def get_num_threads():
    """Get the default number of worker threads to use for pair counting.

    :returns:           The number of threads that will be used if not given explicitly.
    """
    if _max_threads is not None:
        return _max_threads
    return os.cpu_count() or 1

def parse_precision(precision):
    """Convert a precision name into the corresponding numpy dtype.

    :param precision:   Either 'float' (32-bit) or 'double' (64-bit).

    :returns:           np.float32 or np.float64
    """
    if precision == 'float':
        return np.float32
    elif precision == 'double':
        return np.float64
    else:
        raise ValueError("Invalid precision %s"%precision)

def parse_boxsize(boxsize):
    """Parse the boxsize into a length-3 array of periods.

    :param boxsize:     Either a single value to use in all directions or a list of
                        three values (x, y, z).  Values <= 0 mean that the extent in that
                        direction should be taken from the data.  None is the same as 0.

    :returns:           A numpy array of shape (3,)
    """
    if boxsize is None:
        return np.zeros(3, dtype=float)
    boxsize = np.atleast_1d(np.asarray(boxsize, dtype=float))
    if boxsize.ndim != 1 or len(boxsize) not in (1, 3):
        raise ValueError("boxsize must be a single value or a list of 3 values")
    if np.any(~np.isfinite(boxsize)):
        raise ValueError("boxsize must be finite")
    if len(boxsize) == 1:
        boxsize = np.repeat(boxsize, 3)
    boxsize[boxsize < 0] = 0.
    return boxsize
