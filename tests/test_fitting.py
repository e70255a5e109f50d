"""Tests for sampling, optimization and fit memoization."""

from __future__ import annotations

import numpy as np
import pytest

from hierloo.config import SamplerConfig
from hierloo.fitting import FitCache, FitResult, fit_key, fit_polls, fit_variant, optimize_variant, poll_key, variant_key
from hierloo.models import IMPROPER_SCALE, INDEPENDENT, fixed_scale
from hierloo.records import ShotData
from hierloo.simulate import simulate_polls, simulate_shots


def test_sampler_config_validation() -> None:
    SamplerConfig().validate()
    with pytest.raises(ValueError):
        SamplerConfig(draws=0).validate()
    with pytest.raises(ValueError):
        SamplerConfig(target_accept=1.2).validate()
    with pytest.raises(ValueError):
        SamplerConfig(nuts_sampler="numpyro").validate()


def test_fit_result_accessors_check_kind() -> None:
    point = FitResult(name="map", kind="optimize", observations="x", point={"tau": np.array(1.0)})

    assert point.estimate()["tau"] == 1.0
    assert not point.has_log_likelihood
    with pytest.raises(RuntimeError):
        point.draws()
    with pytest.raises(ValueError):
        FitResult(name="broken", kind="sample", observations="x")
    with pytest.raises(ValueError):
        FitResult(name="broken", kind="anneal", observations="x", point={})


def test_fit_key_depends_on_every_part(fast_config: SamplerConfig) -> None:
    base = fit_key("a", "obs", fast_config)

    assert base == fit_key("a", "obs", fast_config)
    assert base != fit_key("b", "obs", fast_config)
    assert base != fit_key("a", "other", fast_config)
    assert base != fit_key("a", "obs", SamplerConfig(draws=10))


# ---------------------------------------------------------------------------
# Sampling


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_independent_posterior_mean_matches_closed_form(counted_shots: ShotData) -> None:
    config = SamplerConfig(draws=1000, tune=500, random_seed=5)
    fit = fit_variant(INDEPENDENT, counted_shots, config)

    posterior_mean = fit.draws().posterior["p_save"].mean(("chain", "draw")).values
    closed_form = counted_shots.summary()["closed_form_mean"].to_numpy()
    assert fit.draws().posterior.sizes["chain"] == 1
    assert np.allclose(posterior_mean, closed_form, atol=0.02)
    assert not fit.has_log_likelihood


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_fit_cache_reuses_identical_fits(counted_shots: ShotData) -> None:
    config = SamplerConfig(draws=100, tune=100, random_seed=2)
    cache = FitCache()
    variant = fixed_scale(0.5, log_likelihood=True)

    first = fit_variant(variant, counted_shots, config, cache)
    second = fit_variant(variant, counted_shots, config, cache)

    assert first is second
    assert len(cache) == 1
    assert first.has_log_likelihood
    assert first.observations == counted_shots.fingerprint()

    fit_variant(fixed_scale(1.0, log_likelihood=True), counted_shots, config, cache)
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_cache_keys_name_the_stored_fits(counted_shots: ShotData) -> None:
    config = SamplerConfig(draws=100, tune=100, random_seed=2)
    polls = simulate_polls(n_polls=8, seed=6)
    cache = FitCache()
    key = variant_key(fixed_scale(0.5), counted_shots, config)

    assert key not in cache
    fit_variant(fixed_scale(0.5), counted_shots, config, cache)
    assert key in cache
    # Another seed, scale or dataset is another fit
    assert variant_key(fixed_scale(0.5), counted_shots, SamplerConfig(draws=100, tune=100, random_seed=3)) not in cache
    assert variant_key(fixed_scale(0.25), counted_shots, config) not in cache
    assert variant_key(fixed_scale(0.5), simulate_shots(("A", "B"), seed=1), config) not in cache

    assert poll_key(polls, config) not in cache
    fit_polls(polls, config, cache=cache)
    assert poll_key(polls, config) in cache
    assert poll_key(polls, config, log_likelihood=True) not in cache


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_same_seed_gives_same_draws(counted_shots: ShotData) -> None:
    config = SamplerConfig(draws=100, tune=100, random_seed=8)
    first = fit_variant(fixed_scale(0.5), counted_shots, config)
    second = fit_variant(fixed_scale(0.5), counted_shots, config)

    assert np.array_equal(
        first.draws().posterior["alpha"].values,
        second.draws().posterior["alpha"].values,
    )


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_fit_polls_returns_latent_draws() -> None:
    polls = simulate_polls(n_polls=15, seed=6)
    fit = fit_polls(polls, SamplerConfig(draws=200, tune=300, random_seed=1), log_likelihood=True)

    posterior = fit.draws().posterior
    assert {"mu", "sigma", "rho", "latent", "p_share"}.issubset(posterior.data_vars)
    assert posterior["latent"].shape[-1] == 15
    assert fit.has_log_likelihood
    assert fit.draws().log_likelihood["polled"].shape[-1] == 15


# ---------------------------------------------------------------------------
# Optimization


@pytest.mark.filterwarnings("ignore::UserWarning")
def test_independent_optimum_is_the_raw_rate(counted_shots: ShotData) -> None:
    fit = optimize_variant(INDEPENDENT, counted_shots)
    raw = counted_shots.summary()["raw_rate"].to_numpy()

    assert fit.kind == "optimize"
    assert np.allclose(fit.estimate()["p_save"], raw, atol=1e-3)


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_improper_scale_runs_to_the_boundary() -> None:
    # Equal true rates: no interior mode, only the tau -> 0 singularity
    data = simulate_shots(("a", "b", "c", "d"), seed=21, rates=[0.7] * 4, min_shots=60, max_shots=60)

    loose = optimize_variant(IMPROPER_SCALE, data, tol=1e-1)
    tight = optimize_variant(IMPROPER_SCALE, data, tol=1e-12, maxeval=50_000)

    tau_loose = float(loose.estimate()["tau"])
    tau_tight = float(tight.estimate()["tau"])
    assert tau_tight <= tau_loose
    assert tau_tight < 1e-2
