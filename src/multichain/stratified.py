"""
Latin hypercube (stratified) quantile sampling.

U(0,1) is split into N bins of equal probability per dimension; each column
of the returned matrix puts exactly one value in each bin, and the bin
order is permuted independently per column. Rows are then pushed through a
distribution's inverse CDF to get evenly spread candidate points.
"""

import numpy as np
from scipy.stats import qmc

# Largest double below 1.0. Inverse CDFs of unbounded priors map 1.0 to inf.
_BELOW_ONE = np.nextafter(1.0, 0.0)


def stratified_quantiles(sample_size: int, dimension: int = 1, seed=None,
                         centered: bool = False) -> np.ndarray:
    """
    Generate a Latin hypercube quantile matrix.

    Args:
        sample_size: Number of rows (and bins per column)
        dimension: Number of columns
        seed: int, numpy Generator, or None
        centered: Put every value at the middle of its bin ("median" LHS)
            instead of a uniform random position inside it

    Returns:
        Array of shape (sample_size, dimension) with values in [0, 1)
    """
    if sample_size < 1:
        raise ValueError(f"sample_size must be >= 1, got {sample_size}")
    if dimension < 1:
        raise ValueError(f"dimension must be >= 1, got {dimension}")

    sampler = qmc.LatinHypercube(d=dimension, scramble=not centered, seed=seed)
    quantiles = sampler.random(sample_size)
    return np.minimum(quantiles, _BELOW_ONE)
