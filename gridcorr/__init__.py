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

# The version is stored in _version.py as recommended here:
# http://stackoverflow.com/questions/458550/standard-way-to-embed-version-into-python-package
from ._version import __version__, __version_info__

# Also let gridcorr.version show the version.
version = __version__

from .config import read_config, setup_logger
from .util import set_num_threads, get_num_threads

from .binning import SBinning, MuBinning
from .weights import BitVector, Weights, NoWeights, PairProductWeights, InverseBitwiseWeights
from .weights import PairWeightTable, make_weights, pair_weight, MAX_NUM_WEIGHTS
from .catalog import Catalog
from .grid import Grid, GridGeometry
from .executor import ParallelExecutor
from .histogram import SMuHistogram
from .smucorrelation import SMuCorrelation
