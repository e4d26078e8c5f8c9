"""
Post-run summaries.

MCMCResults snapshots a sampler's run state and computes per-parameter
summaries from the pooled output buffers:
- ParameterSummary: mean, standard deviation, median, credible interval,
  R-hat (post-warmup traces) and effective sample size
- autocorrelation (first 50 lags), histogram and kernel density curve
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np
from scipy.stats import gaussian_kde

from .diagnostics import autocorrelation, compute_rhat, effective_sample_size
from .types import TrialPoint

MAX_ACF_LAG = 50
KDE_POINTS = 100


@dataclass(frozen=True)
class ParameterSummary:
    """Summary statistics of one parameter's posterior output."""
    n: int
    mean: float
    standard_deviation: float
    median: float
    lower_ci: float
    upper_ci: float
    rhat: float
    ess: float


@dataclass
class ParameterResults:
    """Summary plus the curves used to plot one parameter."""
    summary: ParameterSummary
    autocorrelation: np.ndarray
    histogram: tuple
    kernel_density: np.ndarray = field(default_factory=lambda: np.empty((0, 2)))


def _kernel_density(x: np.ndarray) -> np.ndarray:
    """(KDE_POINTS, 2) array of (x, pdf); empty for degenerate samples."""
    if x.shape[0] < 2 or np.ptp(x) == 0:
        return np.empty((0, 2))
    try:
        kde = gaussian_kde(x)
    except np.linalg.LinAlgError:
        return np.empty((0, 2))
    grid = np.linspace(x.min(), x.max(), KDE_POINTS)
    return np.column_stack([grid, kde(grid)])


def summarize_parameter(x, rhat: float = np.nan, alpha: float = 0.1) -> ParameterResults:
    """
    Summarize the output of one parameter.

    Args:
        x: 1D output sample
        rhat: R-hat for this parameter (computed from the traces)
        alpha: Credible interval is [alpha/2, 1 - alpha/2]
    """
    x = np.asarray(x, dtype=np.float64)
    lower, median, upper = np.quantile(x, [alpha / 2.0, 0.5, 1.0 - alpha / 2.0])
    summary = ParameterSummary(
        n=int(x.shape[0]),
        mean=float(np.mean(x)),
        standard_deviation=float(np.std(x, ddof=1)) if x.shape[0] > 1 else float('nan'),
        median=float(median),
        lower_ci=float(lower),
        upper_ci=float(upper),
        rhat=float(rhat),
        ess=effective_sample_size(x),
    )
    return ParameterResults(
        summary=summary,
        autocorrelation=autocorrelation(x, MAX_ACF_LAG),
        histogram=np.histogram(x, bins='auto'),
        kernel_density=_kernel_density(x),
    )


@dataclass
class MCMCResults:
    """
    Snapshot of a finished run with per-parameter summaries.

    Build with MCMCResults.from_sampler(sampler) after sample() returns.
    """
    chain_traces: List[List[TrialPoint]]
    output: List[TrialPoint]
    mean_log_likelihood: List[float]
    acceptance_rates: np.ndarray
    map: TrialPoint
    parameters: List[ParameterResults]

    @classmethod
    def from_sampler(cls, sampler, alpha: float = 0.1) -> 'MCMCResults':
        """
        Summarize a sampler's current run state.

        R-hat uses the chain traces after discarding warmup_iterations
        entries; the other statistics use the pooled output buffers.

        Raises:
            ValueError: If the run produced no output
        """
        state = sampler.run_state
        output = [point for buffer in state.output_buffers for point in buffer]
        if not output:
            raise ValueError("Run state has no output; call sample() first")

        values = np.stack([point.values for point in output])
        history = state.history()
        warmup = sampler.config.warmup_iterations
        if history.shape[0] - warmup >= 2:
            rhat = compute_rhat(history, warmup)
        else:
            rhat = np.full(values.shape[1], np.nan)

        parameters = [summarize_parameter(values[:, i], rhat[i], alpha) for i in range(values.shape[1])]
        return cls(
            chain_traces=[list(trace) for trace in state.chain_traces],
            output=output,
            mean_log_likelihood=list(state.mean_log_likelihood),
            acceptance_rates=state.acceptance_rates,
            map=state.map.clone(),
            parameters=parameters,
        )

    @property
    def summaries(self) -> List[ParameterSummary]:
        return [p.summary for p in self.parameters]
