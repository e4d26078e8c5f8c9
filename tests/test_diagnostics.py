"""
Diagnostics Tests - R-hat, Autocorrelation, ESS and Run Summaries

Tests post-run diagnostics:
- Gelman-Rubin R-hat against a direct numpy computation
- Autocorrelation and effective sample size
- Raftery-Lewis minimum sample size
- MCMCResults per-parameter summaries
- diagnose_sampler_issues / print_diagnostics

Run with: pytest tests/test_diagnostics.py -v
"""

import logging

import numpy as np
import pytest

from multichain import MCMCResults
from multichain.error_handling import diagnose_sampler_issues, print_diagnostics
from multichain.mcmc.diagnostics import (
    autocorrelation,
    compute_rhat,
    effective_sample_size,
    minimum_sample_size,
    print_acceptance_summary,
    print_rhat_summary,
)

from conftest import identity_transition


def reference_rhat(history):
    n = history.shape[0]
    chain_means = history.mean(axis=0)
    B = n * chain_means.var(axis=0, ddof=1)
    W = history.var(axis=0, ddof=1).mean(axis=0)
    V = ((n - 1) * W + B) / n
    return np.sqrt(V / W)


def ar1_series(phi, n, seed=0):
    rng = np.random.default_rng(seed)
    x = np.empty(n)
    x[0] = rng.normal()
    for t in range(1, n):
        x[t] = phi * x[t - 1] + rng.normal()
    return x


# ============================================================================
# R-HAT
# ============================================================================

class TestRhat:
    """Test the Gelman-Rubin statistic."""

    def test_iid_chains_near_one(self):
        history = np.random.default_rng(1).normal(size=(2000, 4, 3))
        rhat = compute_rhat(history)
        assert rhat.shape == (3,)
        np.testing.assert_allclose(rhat, 1.0, atol=0.01)

    def test_matches_reference(self):
        rng = np.random.default_rng(2)
        history = rng.normal(size=(300, 3, 2)) + np.array([0.0, 0.5, 1.0])[None, :, None]
        np.testing.assert_allclose(compute_rhat(history), reference_rhat(history), rtol=1e-4)

    def test_separated_chains_flagged(self):
        rng = np.random.default_rng(3)
        history = rng.normal(size=(500, 2, 1)) + np.array([0.0, 5.0])[None, :, None]
        assert compute_rhat(history)[0] > 1.1

    def test_warmup_discarded(self):
        rng = np.random.default_rng(4)
        history = rng.normal(size=(400, 3, 1))
        history[:100, 0, 0] += 50.0
        np.testing.assert_allclose(compute_rhat(history, 100), reference_rhat(history[100:]), rtol=1e-4)

    def test_single_chain_is_nan(self):
        assert np.all(np.isnan(compute_rhat(np.zeros((50, 1, 2)))))

    def test_too_few_entries_after_warmup(self):
        with pytest.raises(ValueError, match="two post-warmup"):
            compute_rhat(np.zeros((10, 2, 1)), warmup_iterations=9)

    def test_negative_warmup(self):
        with pytest.raises(ValueError):
            compute_rhat(np.zeros((10, 2, 1)), warmup_iterations=-1)

    def test_summary_logging(self, caplog):
        with caplog.at_level(logging.INFO, logger='multichain'):
            assert print_rhat_summary(np.array([1.01, 1.02]))
            assert not print_rhat_summary(np.array([1.01, 1.5]))
            assert not print_rhat_summary(np.array([np.nan]))
        assert "Converged" in caplog.text
        assert "Not Converged" in caplog.text


# ============================================================================
# AUTOCORRELATION / ESS
# ============================================================================

class TestEffectiveSampleSize:
    """Test the ACF and ESS estimators."""

    def test_acf_lag_zero_is_one(self):
        acf = autocorrelation(np.random.default_rng(5).normal(size=100))
        assert acf[0] == pytest.approx(1.0)
        assert len(acf) == 51

    def test_acf_max_lag(self):
        assert len(autocorrelation(np.arange(10.0), max_lag=3)) == 4
        assert len(autocorrelation(np.arange(10.0), max_lag=50)) == 10

    def test_constant_series(self):
        assert np.all(np.isnan(autocorrelation(np.ones(20))))

    def test_iid_ess_close_to_n(self):
        x = np.random.default_rng(6).normal(size=2000)
        assert effective_sample_size(x) > 0.8 * 2000
        assert effective_sample_size(x) <= 2000

    def test_correlated_ess_is_small(self):
        x = ar1_series(0.9, 5000)
        assert effective_sample_size(x) < 0.3 * 5000

    def test_minimum_sample_size(self):
        assert minimum_sample_size(0.025, 0.005, 0.95) == 3700

    def test_acceptance_summary(self, caplog):
        with caplog.at_level(logging.INFO, logger='multichain'):
            print_acceptance_summary(np.array([0.05, 0.3, np.nan]))
        assert "Acceptance Rates (2 chains)" in caplog.text
        assert "1 chain(s) have acceptance rate < 10%" in caplog.text


# ============================================================================
# RESULTS
# ============================================================================

class TestResults:
    """Test MCMCResults summaries of a finished run."""

    def test_summaries(self, make_sampler):
        sampler = make_sampler(number_of_chains=3)
        sampler.sample()
        results = MCMCResults.from_sampler(sampler)

        assert len(results.summaries) == 2
        output = sampler.run_state.output_values()
        for i, summary in enumerate(results.summaries):
            assert summary.n == 100
            assert summary.mean == pytest.approx(output[:, i].mean())
            assert summary.lower_ci <= summary.median <= summary.upper_ci
            assert np.isfinite(summary.rhat)
            assert 0 < summary.ess <= 100

        assert results.map == sampler.run_state.map
        assert len(results.parameters[0].autocorrelation) == 51
        assert results.parameters[0].kernel_density.shape == (100, 2)

    def test_no_output_raises(self, make_sampler):
        with pytest.raises(ValueError, match="no output"):
            MCMCResults.from_sampler(make_sampler())

    def test_single_chain_rhat_is_nan(self, make_sampler):
        sampler = make_sampler(number_of_chains=1)
        sampler.sample()
        assert all(np.isnan(s.rhat) for s in MCMCResults.from_sampler(sampler).summaries)


# ============================================================================
# SAMPLER ISSUE DIAGNOSIS
# ============================================================================

class TestDiagnoseSamplerIssues:
    """Test post-run issue detection."""

    def test_stuck_chains_reported(self, make_sampler, caplog):
        state = make_sampler(transition=identity_transition).sample()
        diagnostics = diagnose_sampler_issues(state)

        assert any("appear stuck" in w for w in diagnostics['warnings'])
        assert any("below 10%" in w for w in diagnostics['warnings'])
        assert "Total output samples: 100" in diagnostics['info']

        with caplog.at_level(logging.INFO, logger='multichain'):
            print_diagnostics(diagnostics)
        assert "WARNINGS" in caplog.text

    def test_existing_diagnostics_are_extended(self, make_sampler):
        state = make_sampler(transition=identity_transition).sample()
        existing = {'issues': ['earlier issue'], 'warnings': [], 'info': ['earlier info'],
                    'run': 'first'}
        diagnostics = diagnose_sampler_issues(state, existing)

        assert diagnostics is existing
        assert diagnostics['issues'][0] == 'earlier issue'
        assert diagnostics['info'][0] == 'earlier info'
        assert len(diagnostics['info']) == 4
        assert any("appear stuck" in w for w in diagnostics['warnings'])
        assert diagnostics['run'] == 'first'

    def test_healthy_run(self, make_sampler, caplog):
        state = make_sampler().sample()
        diagnostics = diagnose_sampler_issues(state, high_acceptance=1.0)
        assert diagnostics['issues'] == []
        assert diagnostics['warnings'] == []

        with caplog.at_level(logging.INFO, logger='multichain'):
            print_diagnostics(diagnostics)
        assert "No issues detected" in caplog.text


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
