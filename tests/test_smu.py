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

import os
import numpy as np
import gridcorr

from test_helper import assert_raises, timer, CaptureLog, do_pickle, brute_force_smu


def make_points(rng, n, lo=0., hi=100.):
    pos = rng.uniform(lo, hi, size=(n, 3))
    return pos, gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2])


@timer
def test_direct_auto():
    """Compare the auto-correlation with a brute force count.
    """
    rng = np.random.RandomState(8675309)
    ngal = 200
    pos, cat = make_points(rng, ngal)
    edges = [1., 5., 10., 20., 35.]

    for mu_max, nmu_bins in [(1., 1), (1., 5), (0.5, 3), (0.8, 10)]:
        smu = gridcorr.SMuCorrelation(sbins=edges, mu_max=mu_max, nmu_bins=nmu_bins,
                                      output_savg=True)
        smu.process(cat)
        npairs, wsum, ssum = brute_force_smu(pos, None, edges, mu_max, nmu_bins)
        print('npairs = ',smu.npairs)
        print('true npairs = ',npairs)
        assert smu.npairs.dtype == np.uint64
        assert smu.npairs.shape == (4, nmu_bins)
        np.testing.assert_array_equal(smu.npairs, npairs)
        np.testing.assert_allclose(smu.weightsum, wsum)
        mask = npairs > 0
        np.testing.assert_allclose(smu.savg[mask], ssum[mask] / npairs[mask])
        np.testing.assert_array_equal(smu.savg[~mask], 0.)

    # With no weights, the mean weight is 1 in every occupied bin.
    assert np.all(smu.weightsum == smu.npairs)
    np.testing.assert_array_equal(smu.weightavg[mask], 1.)
    np.testing.assert_array_equal(smu.weightavg[~mask], 0.)


@timer
def test_direct_cross():
    """Compare the cross-correlation with a brute force count.
    """
    rng = np.random.RandomState(8675309)
    pos1, cat1 = make_points(rng, 150)
    pos2, cat2 = make_points(rng, 180, lo=20., hi=80.)
    edges = [0., 3., 10., 25.]

    smu = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=4)
    smu.process(cat1, cat2)
    npairs, wsum, ssum = brute_force_smu(pos1, pos2, edges, 1., 4)
    np.testing.assert_array_equal(smu.npairs, npairs)
    np.testing.assert_allclose(smu.weightsum, wsum)
    # savg is only computed if requested.
    np.testing.assert_array_equal(smu.savg, 0.)

    # The order of the catalogs doesn't matter for the counts.
    smu2 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=4)
    smu2.process(cat2, cat1)
    np.testing.assert_array_equal(smu2.npairs, npairs)

    # Different refine factors and cell limits give the same answer.
    for refine, max_cells in [([1,1,1], 100), ([3,3,3], 100), ([2,2,1], 2), ([5,1,2], 1)]:
        smu3 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=4, bin_refine_factors=refine,
                                       max_cells_per_dim=max_cells)
        smu3.process(cat1, cat2)
        np.testing.assert_array_equal(smu3.npairs, npairs)

    # Cross-correlating a catalog with itself counts each pair twice, plus the self pairs
    # if the smallest separation is 0.
    smu4 = gridcorr.SMuCorrelation(sbins=[1., 5., 10., 20.])
    smu4.process_cross(cat1, cat1)
    smu5 = gridcorr.SMuCorrelation(sbins=[1., 5., 10., 20.])
    smu5.process(cat1)
    np.testing.assert_array_equal(smu4.npairs, 2*smu5.npairs)


@timer
def test_two_points():
    """Test the simplest possible cross-correlation.
    """
    cat1 = gridcorr.Catalog(x=[0.], y=[0.], z=[0.])
    cat2 = gridcorr.Catalog(x=[0.], y=[0.], z=[0.5])
    smu = gridcorr.SMuCorrelation(sbins=[0., 1.])
    smu.process(cat1, cat2)

    results = smu.results
    assert len(results) == 1
    assert results['smin'][0] == 0.
    assert results['smax'][0] == 1.
    assert results['mu_max'][0] == 1.
    assert results['npairs'][0] == 1
    assert results['weightavg'][0] == 1.
    assert results['savg'][0] == 0.
    assert results.npairs.dtype == np.uint64

    # The same pair as an autocorrelation of a 2 point catalog.
    cat = gridcorr.Catalog(x=[0., 0.], y=[0., 0.], z=[0., 0.5])
    smu.process(cat)
    assert smu.npairs[0,0] == 1
    smu.process(cat, cat)
    assert smu.npairs[0,0] == 1


@timer
def test_edges():
    """Test pairs right on the bin edges.
    """
    origin = gridcorr.Catalog(x=[0.], y=[0.], z=[0.])

    # The radial bins include their lower edge, but not their upper edge.
    cat = gridcorr.Catalog(x=[0.5, 1., 2., 3.], y=[0., 0., 0., 0.], z=[0., 0., 0., 0.])
    smu = gridcorr.SMuCorrelation(sbins=[0.5, 1., 2.])
    smu.process(origin, cat)
    np.testing.assert_array_equal(smu.npairs[:,0], [1, 1])

    # mu == mu_max is included in the last mu bin, mu > mu_max is not.
    # Points at (3,0,4) and (0,0,5) have mu = 0.8 and 1 respectively.
    cat = gridcorr.Catalog(x=[3., 0., 5.], y=[0., 0., 0.], z=[4., 5., 0.])
    smu = gridcorr.SMuCorrelation(sbins=[1., 10.], mu_max=0.8, nmu_bins=4)
    smu.process(origin, cat)
    np.testing.assert_array_equal(smu.npairs, [[1, 0, 0, 1]])

    smu = gridcorr.SMuCorrelation(sbins=[1., 10.], mu_max=1., nmu_bins=2)
    smu.process(origin, cat)
    np.testing.assert_array_equal(smu.npairs, [[1, 2]])

    # Coincident points have s = 0 and are counted with mu = 0 when the first bin starts at 0.
    dup = gridcorr.Catalog(x=[1., 1.], y=[2., 2.], z=[3., 3.])
    smu = gridcorr.SMuCorrelation(sbins=[0., 1.], nmu_bins=2)
    smu.process(dup)
    np.testing.assert_array_equal(smu.npairs, [[1, 0]])
    smu = gridcorr.SMuCorrelation(sbins=[0.1, 1.], nmu_bins=2)
    smu.process(dup)
    np.testing.assert_array_equal(smu.npairs, [[0, 0]])


@timer
def test_npairs_total():
    """Test that an auto-correlation with wide enough bins counts every pair once.
    """
    rng = np.random.RandomState(8675309)
    for ngal in [2, 17, 200, 1000]:
        pos, cat = make_points(rng, ngal, hi=10.)
        # The largest separation in a cube of side 10 is 10 sqrt(3) < 20.
        smu = gridcorr.SMuCorrelation(sbins=[0., 20.], nmu_bins=3)
        smu.process(cat)
        assert np.sum(smu.npairs) == ngal*(ngal-1)//2


@timer
def test_precision():
    """Test single precision positions.
    """
    rng = np.random.RandomState(8675309)
    pos, cat = make_points(rng, 200)
    edges = [1., 5., 10., 20., 35.]
    npairs, wsum, ssum = brute_force_smu(pos, None, edges, 1., 5)

    smu = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=5, precision='float')
    assert smu.dtype == np.float32
    with CaptureLog() as cl:
        smu.logger = cl.logger
        smu.process(cat)
    assert "Converting the positions" in cl.output
    # Rounding can move a rare pair across a bin edge.
    np.testing.assert_allclose(smu.npairs.astype(float), npairs.astype(float), atol=1)

    fcat = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2], precision='float')
    smu2 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=5, precision='float')
    smu2.process(fcat)
    np.testing.assert_array_equal(smu2.npairs, smu.npairs)


@timer
def test_pair_product():
    """Test weight_method = pair_product
    """
    rng = np.random.RandomState(8675309)
    ngal = 200
    pos = rng.uniform(0, 50, size=(ngal, 3))
    w = rng.uniform(0.5, 2., ngal)
    cat = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2], weights=w)
    edges = [0.5, 2., 8., 15.]

    smu = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3, weight_method='pair_product')
    smu.process(cat)
    npairs, wsum, ssum = brute_force_smu(pos, None, edges, 1., 3, w1=w)
    np.testing.assert_array_equal(smu.npairs, npairs)
    np.testing.assert_allclose(smu.weightsum, wsum)
    mask = npairs > 0
    np.testing.assert_allclose(smu.weightavg[mask], wsum[mask] / npairs[mask])

    # Cross with a second weighted catalog
    pos2 = rng.uniform(0, 50, size=(150, 3))
    w2 = rng.uniform(0.5, 2., 150)
    cat2 = gridcorr.Catalog(x=pos2[:,0], y=pos2[:,1], z=pos2[:,2], weights=w2)
    smu.process(cat, cat2)
    npairs, wsum, ssum = brute_force_smu(pos, pos2, edges, 1., 3, w1=w, w2=w2)
    np.testing.assert_array_equal(smu.npairs, npairs)
    np.testing.assert_allclose(smu.weightsum, wsum)

    # Weights given to a catalog are an error with weight_method = none.
    smu0 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3)
    with assert_raises(ValueError):
        smu0.process(cat)
    # And an unweighted catalog can't be used with pair_product.
    cat0 = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2])
    with assert_raises(ValueError):
        smu.process(cat0)


def pair_popcount(m1, m2):
    # The number of bits in common for every pair.  m1, m2 have shape (n, k).
    n1, n2 = len(m1), len(m2)
    both = m1[:,np.newaxis,:] & m2[np.newaxis,:,:]
    return gridcorr.BitVector(both.reshape(n1*n2, -1)).popcount().reshape(n1, n2)


@timer
def test_inverse_bitwise():
    """Test weight_method = inverse_bitwise
    """
    rng = np.random.RandomState(8675309)
    ngal = 150
    pos = rng.uniform(0, 50, size=(ngal, 3))
    w = rng.uniform(0.5, 2., ngal)
    # Make the masks fairly dense, so most pairs have bits in common.
    masks = (rng.randint(0, 2**62, size=(ngal, 2), dtype=np.int64) |
             rng.randint(0, 2**62, size=(ngal, 2), dtype=np.int64))
    masks[:5] = 0   # A few points with no bits set get zero weight.
    cat = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2],
                           weights=[masks[:,0], masks[:,1], w])
    edges = [0.5, 2., 8., 15.]

    pc = pair_popcount(masks, masks)
    with np.errstate(divide='ignore'):
        pair_w = np.where(pc > 0, 128. / pc, 0.) * np.outer(w, w)

    smu = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3, weight_method='inverse_bitwise')
    smu.process(cat)
    npairs, wsum, ssum = brute_force_smu(pos, None, edges, 1., 3, pair_w=pair_w)
    np.testing.assert_array_equal(smu.npairs, npairs)
    np.testing.assert_allclose(smu.weightsum, wsum)

    # With all bits set and all scalar weights 2, every pair has weight 4.
    ones = np.full(ngal, -1, dtype=np.int64)
    cat1 = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2],
                            weights=[ones, np.full(ngal, 2.)])
    smu.process(cat1)
    mask = smu.npairs > 0
    np.testing.assert_allclose(smu.weightavg[mask], 4.)

    # With angular pair weights, the weight is multiplied by the interpolated table value.
    table = gridcorr.PairWeightTable.from_file('data/pair_weights.txt')
    smu2 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3, weight_method='inverse_bitwise',
                                   pair_weights=table)
    smu2.process(cat)
    r = np.sqrt(np.sum(pos**2, axis=1))
    cost = np.clip(pos.dot(pos.T) / np.outer(r, r), -1, 1)
    npairs, wsum, ssum = brute_force_smu(pos, None, edges, 1., 3,
                                         pair_w=pair_w * np.interp(cost, table.costheta,
                                                                   table.weight))
    np.testing.assert_array_equal(smu2.npairs, npairs)
    np.testing.assert_allclose(smu2.weightsum, wsum)

    # Or from a file
    smu3 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3, weight_method='inverse_bitwise',
                                   pair_weights_file='data/pair_weights.txt')
    assert smu3.pair_weights == table
    smu3.process(cat)
    np.testing.assert_allclose(smu3.weightsum, smu2.weightsum)

    # Cross-correlations need the same number of components.
    pos2 = rng.uniform(0, 50, size=(100, 3))
    cat2 = gridcorr.Catalog(x=pos2[:,0], y=pos2[:,1], z=pos2[:,2],
                            weights=[ones[:100], np.ones(100)])
    with assert_raises(ValueError):
        smu.process(cat, cat2)
    cat3 = gridcorr.Catalog(x=pos2[:,0], y=pos2[:,1], z=pos2[:,2],
                            weights=[masks[:100,1], masks[:100,0], np.ones(100)])
    smu.process(cat, cat3)
    pc = pair_popcount(masks, masks[:100,::-1])
    with np.errstate(divide='ignore'):
        pair_w = np.where(pc > 0, 128. / pc, 0.) * w[:,np.newaxis]
    npairs, wsum, ssum = brute_force_smu(pos, pos2, edges, 1., 3, pair_w=pair_w)
    np.testing.assert_array_equal(smu.npairs, npairs)
    np.testing.assert_allclose(smu.weightsum, wsum)


@timer
def test_config():
    """Test building an SMuCorrelation from config files.
    """
    config = gridcorr.read_config('configs/smu.json')
    smu = gridcorr.SMuCorrelation(config)
    assert smu.nbins == 4
    np.testing.assert_array_equal(smu.left_edges, [0.5, 1., 2., 4.])
    np.testing.assert_array_equal(smu.right_edges, [1., 2., 4., 8.])
    assert smu.mu_max == 0.8
    assert smu.nmu_bins == 4
    assert smu.weight_method == 'pair_product'
    assert smu.output_savg
    assert not smu.periodic
    assert smu.precision == 'double'
    assert smu.bin_refine_factors == (2,2,1)
    assert smu.max_cells_per_dim == 100

    config = gridcorr.read_config('configs/smu.yaml')
    smu = gridcorr.SMuCorrelation(config)
    assert smu.periodic
    np.testing.assert_array_equal(smu.boxsize, [20., 20., 20.])
    assert smu.weight_method == 'none'
    assert smu.nmu_bins == 5

    config = gridcorr.read_config('configs/smu_include.params')
    smu2 = gridcorr.SMuCorrelation(config)
    assert smu2.nmu_bins == 10
    assert smu2.bin_refine_factors == (1,1,1)
    assert smu2.sbinning == smu.sbinning

    # kwargs take precedence over the config dict.
    smu3 = gridcorr.SMuCorrelation(config, nmu_bins=3, boxsize=[20, 30, 40])
    assert smu3.nmu_bins == 3
    np.testing.assert_array_equal(smu3.boxsize, [20., 30., 40.])

    assert repr(gridcorr.SMuCorrelation(sbins=[1,2], nmu_bins=3)) == \
        'SMuCorrelation(sbins=[1.0, 2.0], nmu_bins=3)'


@timer
def test_config_errors():
    """Test the invalid ways to make an SMuCorrelation.
    """
    with assert_raises(TypeError):
        gridcorr.SMuCorrelation()
    with assert_raises(TypeError):
        gridcorr.SMuCorrelation(sbins=[1,2], bin_file='data/sbins.txt')
    with assert_raises(TypeError):
        gridcorr.SMuCorrelation(sbins=[1,2], nbins=10)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[2,1])
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1])
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], mu_max=0.)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], mu_max=1.5)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], nmu_bins=0)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], weight_method='pair_sum')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], weight_method='nonesuch')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], weight_method='pair_product_v2')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], pair_weights_file='data/pair_weights.txt')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], weight_method='pair_product',
                                pair_weights_file='data/pair_weights.txt')
    with assert_raises(TypeError):
        gridcorr.SMuCorrelation(sbins=[1,2], weight_method='inverse_bitwise',
                                pair_weights_file='data/pair_weights.txt',
                                pair_weights=gridcorr.PairWeightTable([0.], [1.]))
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,20], periodic=True, boxsize=30)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], precision='half')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], precision='double_xyz')
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], num_threads=0)
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], bin_refine_factors=[1,1])
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], bin_refine_factors=[1,0,1])
    with assert_raises(ValueError):
        gridcorr.SMuCorrelation(sbins=[1,2], max_cells_per_dim=0)


@timer
def test_accumulate():
    """Test process_auto, process_cross, +=, copy and pickling.
    """
    rng = np.random.RandomState(8675309)
    pos1, cat1 = make_points(rng, 120)
    pos2, cat2 = make_points(rng, 130)
    edges = [1., 10., 30.]

    smu = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=2, output_savg=True)
    assert not smu.nonzero
    smu.process(cat1)
    assert smu.nonzero
    do_pickle(smu)
    npairs1 = smu.npairs.copy()
    savg1 = smu.savg.copy()

    # process_auto accumulates.
    smu.clear()
    assert not smu.nonzero
    smu.process_auto(cat1)
    smu.process_auto(cat1)
    smu.finalize()
    np.testing.assert_array_equal(smu.npairs, 2*npairs1)
    np.testing.assert_allclose(smu.savg, savg1)

    # process clears any previous results.
    smu.process(cat1)
    np.testing.assert_array_equal(smu.npairs, npairs1)

    # Auto of the union = auto1 + auto2 + cross12
    smu1 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=2, output_savg=True)
    smu1.process_auto(cat1)
    smu2 = smu1.copy()
    smu2.clear()
    smu2.process_auto(cat2)
    smu12 = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=2, output_savg=True)
    smu12.process_cross(cat1, cat2)
    assert not np.array_equal(smu1.npairs, smu2.npairs)

    smu_sum = smu1.copy()
    smu_sum += smu2
    smu_sum += smu12
    smu_sum.finalize()

    pos = np.concatenate([pos1, pos2])
    cat = gridcorr.Catalog(x=pos[:,0], y=pos[:,1], z=pos[:,2])
    smu_all = gridcorr.SMuCorrelation(sbins=edges, nmu_bins=2, output_savg=True)
    smu_all.process(cat)
    np.testing.assert_array_equal(smu_sum.npairs, smu_all.npairs)
    np.testing.assert_allclose(smu_sum.savg, smu_all.savg)

    # _sum does the same thing.
    smu_sum2 = smu1.copy()
    smu_sum2._sum([smu1, smu2, smu12])
    np.testing.assert_array_equal(smu_sum2.npairs, smu_all.npairs)

    # The copy is independent of the original.
    smu3 = smu_all.copy()
    assert smu3 == smu_all
    smu3.clear()
    assert smu3 != smu_all
    assert smu_all.nonzero

    # Incompatible objects can't be added.
    with assert_raises(TypeError):
        smu1 += cat1
    with assert_raises(ValueError):
        smu1 += gridcorr.SMuCorrelation(sbins=[1., 10.], nmu_bins=2, output_savg=True)
    with assert_raises(ValueError):
        smu1 += gridcorr.SMuCorrelation(sbins=edges, nmu_bins=3, output_savg=True)
    with assert_raises(ValueError):
        smu1 += gridcorr.SMuCorrelation(sbins=edges, nmu_bins=2, weight_method='pair_product',
                                        output_savg=True)


@timer
def test_logging():
    """Test the logging output while processing.
    """
    rng = np.random.RandomState(8675309)
    pos, cat = make_points(rng, 100)

    with CaptureLog() as cl:
        smu = gridcorr.SMuCorrelation(sbins=[1., 10.], logger=cl.logger, num_threads=2)
        smu.process(cat)
    assert "Starting process SMu auto-correlations" in cl.output
    assert "Grid has" in cl.output
    assert "using 2 threads" in cl.output

    if not os.path.exists('output'):
        os.makedirs('output')
    log_file = os.path.join('output', 'smu.log')
    if os.path.exists(log_file):
        os.remove(log_file)
    smu = gridcorr.SMuCorrelation(sbins=[1., 10.], verbose=2, log_file=log_file)
    smu.process(cat)
    for h in smu.logger.handlers:
        h.flush()
    with open(log_file) as f:
        assert "Starting process SMu auto-correlations" in f.read()


if __name__ == '__main__':
    test_direct_auto()
    test_direct_cross()
    test_two_points()
    test_edges()
    test_npairs_total()
    test_precision()
    test_pair_product()
    test_inverse_bitwise()
    test_config()
    test_config_errors()
    test_accumulate()
    test_logging()
