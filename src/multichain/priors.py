"""
Prior distributions for MCMC parameters.

The engine only needs four things from a prior: its mean, the bounds of its
support, and its inverse CDF. Any object providing those works (see the
Prior protocol). PriorDistribution adapts a scipy.stats distribution.

Example:
    from multichain.priors import PriorDistribution

    priors = [
        PriorDistribution('uniform', low=0.0, high=10.0),
        PriorDistribution('normal', mean=1.0, std=0.5),
    ]
"""

from typing import Protocol, Sequence, runtime_checkable

import numpy as np
from scipy import stats


@runtime_checkable
class Prior(Protocol):
    """Interface the engine uses for a single-parameter prior."""

    @property
    def mean(self) -> float: ...

    @property
    def minimum(self) -> float: ...

    @property
    def maximum(self) -> float: ...

    def inverse_cdf(self, u): ...


class PriorDistribution:
    """
    Prior backed by a frozen scipy.stats distribution.

    Supported types:
    - 'normal': mean, std
    - 'uniform': low, high
    - 'lognormal': mean, std (of the log)
    - 'gamma': shape, scale
    - 'beta': alpha, beta
    - 'exponential': scale

    Alternatively pass any frozen scipy.stats distribution via from_scipy().
    """

    def __init__(self, distribution_type: str, **params):
        self.distribution_type = distribution_type
        self.params = params

        if distribution_type == 'normal':
            self.dist = stats.norm(loc=params.get('mean', 0.0), scale=params.get('std', 1.0))

        elif distribution_type == 'uniform':
            low = params.get('low', 0.0)
            high = params.get('high', 1.0)
            if high <= low:
                raise ValueError(f"Uniform prior needs high > low, got low={low}, high={high}")
            self.dist = stats.uniform(loc=low, scale=high - low)

        elif distribution_type == 'lognormal':
            self.dist = stats.lognorm(s=params.get('std', 1.0), scale=np.exp(params.get('mean', 0.0)))

        elif distribution_type == 'gamma':
            self.dist = stats.gamma(a=params.get('shape', 2.0), scale=params.get('scale', 1.0))

        elif distribution_type == 'beta':
            self.dist = stats.beta(a=params.get('alpha', 2.0), b=params.get('beta', 2.0))

        elif distribution_type == 'exponential':
            self.dist = stats.expon(scale=params.get('scale', 1.0))

        else:
            raise ValueError(f"Unsupported distribution type: {distribution_type}")

    @classmethod
    def from_scipy(cls, frozen) -> 'PriorDistribution':
        """Wrap an already-frozen scipy.stats distribution."""
        prior = cls.__new__(cls)
        prior.distribution_type = frozen.dist.name
        prior.params = {'args': frozen.args, 'kwds': frozen.kwds}
        prior.dist = frozen
        return prior

    @property
    def mean(self) -> float:
        return float(self.dist.mean())

    @property
    def minimum(self) -> float:
        return float(self.dist.support()[0])

    @property
    def maximum(self) -> float:
        return float(self.dist.support()[1])

    def inverse_cdf(self, u):
        return self.dist.ppf(u)

    def log_pdf(self, x):
        return self.dist.logpdf(x)

    def __repr__(self):
        return f"PriorDistribution(type='{self.distribution_type}', params={self.params})"


def prior_means(priors: Sequence[Prior]) -> np.ndarray:
    return np.array([p.mean for p in priors], dtype=np.float64)


def prior_bounds(priors: Sequence[Prior]):
    """Lower and upper support bounds as two arrays."""
    lower = np.array([p.minimum for p in priors], dtype=np.float64)
    upper = np.array([p.maximum for p in priors], dtype=np.float64)
    return lower, upper


def log_prior(priors: Sequence[PriorDistribution], values) -> float:
    """Sum of independent prior log densities, for building log-likelihoods."""
    return float(sum(p.log_pdf(v) for p, v in zip(priors, values)))
