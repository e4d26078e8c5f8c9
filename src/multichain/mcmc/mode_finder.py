"""
Mode finding for MAP initialization.

- ModeFinder: Protocol for anything that can maximize a log-likelihood
- ModeResult: Outcome of a mode search (best point plus Hessian)
- DifferentialEvolutionModeFinder: Default finder using scipy's global optimizer
- numerical_hessian: Central-difference Hessian of a scalar function

A mode finder never raises for an unsuccessful search; it returns a result
with success=False and the initialization layer falls back to Randomize.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
from scipy.optimize import differential_evolution

from .types import TrialPoint


@dataclass(frozen=True)
class ModeResult:
    """
    Result of a mode search.

    Attributes:
        success: Whether the optimizer converged to a usable mode
        best: Best point found (fitness is the log-likelihood there)
        hessian: Hessian of the log-likelihood at best.values, or None
        message: Optimizer status message
    """
    success: bool
    best: TrialPoint
    hessian: Optional[np.ndarray] = None
    message: str = ''


class ModeFinder(Protocol):
    def maximize(self, log_likelihood: Callable[[np.ndarray], float],
                 lower: np.ndarray, upper: np.ndarray,
                 seed: Optional[int] = None) -> ModeResult: ...


def numerical_hessian(f: Callable[[np.ndarray], float], x, step) -> np.ndarray:
    """
    Hessian of f at x by central finite differences.

    Args:
        f: Scalar function of a 1D array
        x: Evaluation point, shape (n,)
        step: Step size, scalar or shape (n,)

    Returns:
        Symmetric (n, n) array
    """
    x = np.asarray(x, dtype=np.float64)
    n = x.shape[0]
    h = np.broadcast_to(np.asarray(step, dtype=np.float64), (n,))
    f0 = f(x)
    hessian = np.empty((n, n))

    for i in range(n):
        ei = np.zeros(n)
        ei[i] = h[i]
        hessian[i, i] = (f(x + ei) - 2.0 * f0 + f(x - ei)) / h[i] ** 2
        for j in range(i + 1, n):
            ej = np.zeros(n)
            ej[j] = h[j]
            value = (f(x + ei + ej) - f(x + ei - ej) - f(x - ei + ej) + f(x - ei - ej)) / (4.0 * h[i] * h[j])
            hessian[i, j] = value
            hessian[j, i] = value

    return hessian


class DifferentialEvolutionModeFinder:
    """
    Global mode search with scipy.optimize.differential_evolution.

    The search box is [prior.minimum, prior.maximum] per parameter, so every
    prior must have finite support. The Hessian is taken at the optimum with
    a step of relative_step times the width of each bound.
    """

    def __init__(self, maxiter: int = 1000, popsize: int = 15, tol: float = 1e-8,
                 relative_step: float = 1e-4, polish: bool = True):
        self.maxiter = maxiter
        self.popsize = popsize
        self.tol = tol
        self.relative_step = relative_step
        self.polish = polish

    def maximize(self, log_likelihood, lower, upper, seed=None) -> ModeResult:
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)

        if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
            return ModeResult(False, TrialPoint.empty(), None,
                              "Mode search requires finite prior bounds")

        def objective(x):
            value = log_likelihood(x)
            return -value if np.isfinite(value) else np.inf

        result = differential_evolution(
            objective,
            bounds=list(zip(lower, upper)),
            maxiter=self.maxiter,
            popsize=self.popsize,
            tol=self.tol,
            polish=self.polish,
            seed=seed,
        )

        best = TrialPoint(result.x, -result.fun)
        if not result.success or not np.isfinite(best.fitness):
            return ModeResult(False, best, None, str(result.message))

        hessian = numerical_hessian(log_likelihood, best.values, self.relative_step * (upper - lower))
        return ModeResult(True, best, hessian, str(result.message))
