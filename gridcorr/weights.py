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
.. module:: weights
"""

import numpy as np

from . import _kernels

# The maximum number of weight components allowed per point.
MAX_NUM_WEIGHTS = 8

# These need to match the method codes used by the kernels.
NONE = _kernels.NONE
PAIR_PRODUCT = _kernels.PAIR_PRODUCT
INVERSE_BITWISE = _kernels.INVERSE_BITWISE

weight_methods = ['none', 'pair_product', 'inverse_bitwise']


def weight_method_enum(weight_method):
    """Return the kernel-layer enum for the given string value of weight_method.
    """
    if weight_method == 'none':
        return NONE
    elif weight_method == 'pair_product':
        return PAIR_PRODUCT
    elif weight_method == 'inverse_bitwise':
        return INVERSE_BITWISE
    else:
        raise ValueError("Unknown weight_method %s"%weight_method)


class BitVector(object):
    """A fixed-width bit vector for each of a set of points.

    The vector for each point is made of one or more 64-bit integer components.
    Internally, the bits are stored as a contiguous (npoints, 8*ncomponents) array of
    uint8, which is also the layout used by the pair counting kernels.

    Parameters:
        masks (array):  An integer array of shape (npoints,) or (npoints, ncomponents).
                        Negative values of a signed type are taken as their two's complement
                        bit pattern (so -1 means all 64 bits set).
    """
    bits_per_component = 64

    def __init__(self, masks):
        masks = np.asarray(masks)
        if masks.ndim == 1:
            masks = masks[:,np.newaxis]
        if masks.ndim != 2:
            raise ValueError("Bit masks must be 1-d or 2-d")
        if not np.issubdtype(masks.dtype, np.integer):
            raise TypeError("Bit masks must be an integer type, not %s"%masks.dtype)
        words = np.ascontiguousarray(masks.astype(np.uint64))
        self._bytes = np.ascontiguousarray(words.view(np.uint8).reshape(len(words), -1))
        self._bytes.flags.writeable = False
        self._ncomponents = masks.shape[1]

    @classmethod
    def _from_bytes(cls, b, ncomponents):
        ret = cls.__new__(cls)
        ret._bytes = b
        ret._ncomponents = ncomponents
        return ret

    @property
    def bytes(self): return self._bytes
    @property
    def ncomponents(self): return self._ncomponents
    @property
    def width(self):
        """The total number of bits in each vector."""
        return self.bits_per_component * self._ncomponents

    def __len__(self):
        return len(self._bytes)

    def __and__(self, other):
        if not isinstance(other, BitVector) or other.width != self.width:
            raise ValueError("Cannot combine bit vectors of different widths")
        return BitVector._from_bytes(self._bytes & other._bytes, self._ncomponents)

    def popcount(self):
        """The number of set bits in each vector.

        Returns:
            An integer array of length npoints.
        """
        return _kernels.POPCOUNT8[self._bytes].sum(axis=1, dtype=np.int64)

    def take(self, index):
        """Return a new BitVector with the points reordered (or selected) by index."""
        return BitVector._from_bytes(np.ascontiguousarray(self._bytes[index]), self._ncomponents)

    def __eq__(self, other):
        return isinstance(other, BitVector) and np.array_equal(self._bytes, other._bytes)

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None


class Weights(object):
    """The per-point weight payload used for one weighting scheme.

    This is a base class.  Use `make_weights` or one of the concrete subclasses,
    `NoWeights`, `PairProductWeights` or `InverseBitwiseWeights`, each of which carries
    exactly the components its scheme needs.

    All of them expose the arrays that the kernels use:

    Attributes:
        bits:       A (npoints, nbytes) uint8 array of bit masks (nbytes = 0 if unused)
        scalar:     A (npoints,) float64 array of scalar weights (all 1 if unused)
    """
    method = None

    def __init__(self):
        raise NotImplementedError("Weights is an abstract base class.")

    @property
    def npoints(self): return len(self.scalar)
    @property
    def ncomponents(self): return 0
    @property
    def width(self): return 0

    def take(self, index):
        """Return a copy with the points reordered (or selected) by index."""
        ret = self.__class__.__new__(self.__class__)
        ret.__dict__.update(self.__dict__)
        ret.bits = np.ascontiguousarray(self.bits[index])
        ret.scalar = np.ascontiguousarray(self.scalar[index])
        return ret

    def _check_compatible(self, other):
        if type(self) is not type(other):
            raise ValueError("Weights of type %s and %s cannot be combined"%(
                             self.method, other.method))
        if self.ncomponents != other.ncomponents:
            raise ValueError("Weights have different numbers of components: %d and %d"%(
                             self.ncomponents, other.ncomponents))

    def __repr__(self):
        return '%s(npoints=%d)'%(self.__class__.__name__, self.npoints)


class NoWeights(Weights):
    """The payload for weight_method = 'none'.  Every pair has weight 1.

    Parameters:
        npoints (int):  The number of points.
    """
    method = 'none'

    def __init__(self, npoints):
        self.bits = np.zeros((npoints, 0), dtype=np.uint8)
        self.scalar = np.ones(npoints, dtype=float)


class PairProductWeights(Weights):
    """The payload for weight_method = 'pair_product'.  The weight of a pair is the product
    of the two points' scalar weights.

    Parameters:
        w (array):      The scalar weight for each point.
    """
    method = 'pair_product'

    def __init__(self, w):
        w = np.array(w, dtype=float)
        if w.ndim != 1:
            raise ValueError("pair_product weights must be 1-d")
        if np.any(~np.isfinite(w)):
            raise ValueError("pair_product weights must be finite")
        self.bits = np.zeros((len(w), 0), dtype=np.uint8)
        self.scalar = np.ascontiguousarray(w)

    @property
    def ncomponents(self): return 1


class InverseBitwiseWeights(Weights):
    """The payload for weight_method = 'inverse_bitwise'.

    Each point has a `BitVector` of one or more 64-bit components and one trailing scalar
    weight.  The weight of a pair is

    .. math::

        w = \\frac{N_{\\rm bits}}{{\\rm popcount}(b_1 \\& b_2)} w_1 w_2

    where :math:`N_{\\rm bits}` is the width of the bit vectors.  Pairs with no bits in
    common get zero weight.  If angular pair weights are also given, they multiply this.

    Parameters:
        bitvector (BitVector):  The bit masks.
        w (array):              The trailing scalar weight for each point.
    """
    method = 'inverse_bitwise'

    def __init__(self, bitvector, w):
        if not isinstance(bitvector, BitVector):
            bitvector = BitVector(bitvector)
        w = np.array(w, dtype=float)
        if w.ndim != 1:
            raise ValueError("inverse_bitwise scalar weights must be 1-d")
        if len(w) != len(bitvector):
            raise ValueError("Bit masks and scalar weights have different lengths: %d and %d"%(
                             len(bitvector), len(w)))
        if np.any(~np.isfinite(w)):
            raise ValueError("inverse_bitwise scalar weights must be finite")
        self.bitvector = bitvector
        self.bits = bitvector.bytes
        self.scalar = np.ascontiguousarray(w)

    @property
    def ncomponents(self): return self.bitvector.ncomponents + 1
    @property
    def width(self): return self.bitvector.width

    def take(self, index):
        ret = super().take(index)
        ret.bitvector = BitVector._from_bytes(ret.bits, self.bitvector.ncomponents)
        return ret


def _as_columns(weights):
    # A list of 1-d arrays, one per weight component.
    if isinstance(weights, (list, tuple)) and all(np.ndim(c) == 1 for c in weights):
        columns = [np.asarray(c) for c in weights]
    else:
        weights = np.asarray(weights)
        if weights.ndim == 1:
            columns = [weights]
        elif weights.ndim == 2:
            columns = [weights[:,k] for k in range(weights.shape[1])]
        else:
            raise ValueError("weights must be 1-d or 2-d")
    for c in columns:
        if c.ndim != 1:
            raise ValueError("Each weight component must be 1-d")
    return columns

def _as_mask(c, k):
    if np.issubdtype(c.dtype, np.integer):
        return c
    # Floats are only exact integers below 2**53.  Larger masks must be given as integers.
    c = np.asarray(c, dtype=float)
    if np.any(c != np.floor(c)) or np.any(c < 0) or np.any(c >= 2.**53):
        raise ValueError("Bit mask component %d has non-integral or out of range values.  "
                         "Masks of 2**53 or more must use an integer type."%k)
    return c.astype(np.uint64)

def make_weights(weight_method, weights, npoints):
    """Build the weight payload for the given scheme from the user input.

    For 'pair_product', ``weights`` should be a single column of scalar weights.
    For 'inverse_bitwise', all but the last column are taken to be 64-bit bit masks and
    the last column is the scalar weight.  This matches the column layout of the weight
    files that go with this kind of analysis.

    Parameters:
        weight_method (str):    One of 'none', 'pair_product', 'inverse_bitwise'.
        weights:                Either None, a 1-d or 2-d array (columns are components),
                                or a list of 1-d arrays.
        npoints (int):          The number of points the weights should describe.

    Returns:
        A `Weights` instance.
    """
    weight_method_enum(weight_method)  # Just check that it's valid.
    if weight_method == 'none':
        if weights is not None:
            raise ValueError("weights given, but weight_method is 'none'")
        return NoWeights(npoints)

    if weights is None:
        raise ValueError("weights are required for weight_method = %s"%weight_method)
    columns = _as_columns(weights)
    if len(columns) > MAX_NUM_WEIGHTS:
        raise ValueError("Too many weight components: %d > %d"%(len(columns), MAX_NUM_WEIGHTS))
    for c in columns:
        if len(c) != npoints:
            raise ValueError("weights have %d rows, but there are %d points"%(len(c), npoints))

    if weight_method == 'pair_product':
        if len(columns) != 1:
            raise ValueError("pair_product requires exactly 1 weight component, got %d"%(
                             len(columns)))
        return PairProductWeights(columns[0])
    else:
        if len(columns) < 2:
            raise ValueError("inverse_bitwise requires at least one bit mask and one scalar "
                             "weight component, got %d"%len(columns))
        masks = np.column_stack([_as_mask(c, k) for k, c in enumerate(columns[:-1])])
        return InverseBitwiseWeights(BitVector(masks), columns[-1])


class PairWeightTable(object):
    """A table of angular pair weights as a function of the cosine of the angle between
    the two points, as seen from the origin.

    The weight applied to a pair is the linear interpolation of the table at the pair's
    costheta.  Outside the range of the table, the nearest end value is used.

    Parameters:
        costheta (array):   The cosine values, strictly increasing, in [-1, 1].
        weight (array):     The weight at each costheta value.
    """
    def __init__(self, costheta, weight):
        costheta = np.array(costheta, dtype=float)
        weight = np.array(weight, dtype=float)
        if costheta.ndim != 1 or weight.ndim != 1:
            raise ValueError("costheta and weight must be 1-d")
        if len(costheta) != len(weight):
            raise ValueError("costheta and weight have different lengths: %d and %d"%(
                             len(costheta), len(weight)))
        if len(costheta) == 0:
            raise ValueError("Pair weight table is empty")
        if np.any(~np.isfinite(costheta)) or np.any(~np.isfinite(weight)):
            raise ValueError("Pair weight table values must be finite")
        if np.any(np.diff(costheta) <= 0):
            raise ValueError("costheta must be strictly increasing")
        if costheta[0] < -1 or costheta[-1] > 1:
            raise ValueError("costheta must be in [-1, 1]")
        self.costheta = costheta
        self.weight = weight

    @classmethod
    def from_file(cls, file_name):
        """Read a pair weight table from an ASCII file with columns ``costheta weight``.

        Parameters:
            file_name (str):    The name of the file.

        Returns:
            A PairWeightTable instance.
        """
        data = np.loadtxt(file_name, dtype=float, comments='#', ndmin=2)
        if data.size == 0:
            raise ValueError("No pair weights found in %s"%file_name)
        if data.shape[1] != 2:
            raise ValueError("Pair weight file %s should have 2 columns, found %d"%(
                             file_name, data.shape[1]))
        return cls(data[:,0], data[:,1])

    def __len__(self):
        return len(self.costheta)

    def __call__(self, costheta):
        """Evaluate the table at the given costheta value(s)."""
        return np.interp(costheta, self.costheta, self.weight)

    def __eq__(self, other):
        return (isinstance(other, PairWeightTable) and
                np.array_equal(self.costheta, other.costheta) and
                np.array_equal(self.weight, other.weight))

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None


def _empty_table():
    return np.zeros(0, dtype=float), np.zeros(0, dtype=float)

def pair_weight(weights1, i, weights2, j, costheta=1., pair_weights=None):
    """Compute the weight of a single pair.

    This uses the same code as the pair counting kernels, so it is mostly useful for
    checking the weights of individual pairs.

    Parameters:
        weights1 (Weights):             The payload of the first point set.
        i (int):                        The index of the first point.
        weights2 (Weights):             The payload of the second point set.
        j (int):                        The index of the second point.
        costheta (float):               The cosine of the angle between the two points as
                                        seen from the origin. (default: 1)
        pair_weights (PairWeightTable): Optional angular pair weights. (default: None)

    Returns:
        The weight of the pair.
    """
    weights1._check_compatible(weights2)
    method = weight_method_enum(weights1.method)
    if pair_weights is not None:
        if method != INVERSE_BITWISE:
            raise ValueError("Pair weights are only valid for weight_method = inverse_bitwise")
        pw_x, pw_y = pair_weights.costheta, pair_weights.weight
    else:
        pw_x, pw_y = _empty_table()
    return _kernels.pair_weight(method, weights1.bits, weights1.scalar, i,
                                weights2.bits, weights2.scalar, j,
                                float(weights1.width), float(costheta), pw_x, pw_y)
