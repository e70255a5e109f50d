"""Tests for posterior summaries, shrinkage and held-out scoring."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import special

from hierloo.config import SamplerConfig
from hierloo.fitting import FitResult, fit_variant, optimize_variant
from hierloo.models import fixed_scale
from hierloo.records import ShotData
from hierloo.simulate import simulate_shots
from hierloo.summaries import (
    SUMMARY_COLUMNS,
    closed_form_rates,
    group_rate_table,
    heldout_log_likelihood,
    population_rate,
    shrinkage_ok,
    summarize,
)


@pytest.fixture(scope="module")
def small_tau_fit(counted_shots: ShotData) -> tuple[ShotData, FitResult]:
    config = SamplerConfig(draws=1000, tune=1000, random_seed=3)
    return counted_shots, fit_variant(fixed_scale(0.1), counted_shots, config)


def test_closed_form_rates_match_beta_posterior(counted_shots: ShotData) -> None:
    table = closed_form_rates(counted_shots, interval=0.9)

    assert np.allclose(table["estimate"], table["closed_form_mean"])
    assert np.all(table["low"] < table["estimate"])
    assert np.all(table["estimate"] < table["high"])


def test_shrinkage_ok_is_strict() -> None:
    result = shrinkage_ok([0.6, 0.8, 0.5, 0.7], [0.9, 0.9, 0.5, 0.7], 0.5)
    assert list(result) == [True, True, False, False]


def test_heldout_log_likelihood_for_a_point_fit() -> None:
    heldout = ShotData(group_idx=[0, 0, 1], saved=[1, 0, 1], groups=("a", "b"))
    fit = FitResult(name="p", kind="optimize", observations="", point={"p_save": np.array([0.8, 0.4])})

    expected = np.log(0.8) + np.log(0.2) + np.log(0.4)
    assert heldout_log_likelihood(fit, heldout) == pytest.approx(expected)


def test_heldout_log_likelihood_rejects_other_keepers() -> None:
    heldout = ShotData(group_idx=[0, 1, 2], saved=[1, 0, 1], groups=("a", "b", "c"))
    fit = FitResult(name="p", kind="optimize", observations="", point={"p_save": np.array([0.8, 0.4])})
    with pytest.raises(ValueError):
        heldout_log_likelihood(fit, heldout)


def test_summarize_point_fit_has_no_interval() -> None:
    fit = FitResult(
        name="p",
        kind="optimize",
        observations="",
        point={"mu": np.array(0.3), "p_save": np.array([0.6, 0.7])},
    )
    table = summarize(fit, truth={"mu": 0.25})

    assert list(table.columns) == SUMMARY_COLUMNS
    assert list(table["parameter"]) == ["mu", "p_save[0]", "p_save[1]"]
    assert np.allclose(table["mean"], [0.3, 0.6, 0.7])
    assert table["low"].isna().all() and table["high"].isna().all()
    assert table["true"].iloc[0] == 0.25
    assert table["true"].iloc[1:].isna().all()


def test_summarize_rejects_bad_interval_and_truth() -> None:
    fit = FitResult(name="p", kind="optimize", observations="", point={"p_save": np.array([0.6, 0.7])})
    with pytest.raises(ValueError):
        summarize(fit, truth={"p_save": [0.5]})
    with pytest.raises(KeyError):
        summarize(fit, ["tau"])


# ---------------------------------------------------------------------------
# Sampled fits


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_summarize_sampled_fit(small_tau_fit: tuple[ShotData, FitResult]) -> None:
    data, fit = small_tau_fit
    table = summarize(fit, ["mu", "p_save"], truth={"p_save": [0.7, 0.4, 0.9, 0.3]}, interval=0.9)

    assert list(table["parameter"]) == ["mu", "p_save[A]", "p_save[B]", "p_save[C]", "p_save[D]"]
    assert np.all(table["low"] < table["mean"])
    assert np.all(table["mean"] < table["high"])
    assert np.isnan(table["true"].iloc[0])
    assert np.allclose(table["true"].iloc[1:], [0.7, 0.4, 0.9, 0.3])
    with pytest.raises(ValueError):
        summarize(fit, ["mu"], interval=1.5)


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_small_fixed_scale_shrinks_every_keeper(small_tau_fit: tuple[ShotData, FitResult]) -> None:
    data, fit = small_tau_fit
    table = group_rate_table(fit, data)

    assert list(table["group"]) == ["A", "B", "C", "D"]
    assert shrinkage_ok(table["estimate"], table["raw_rate"], population_rate(fit)).all()


@pytest.mark.filterwarnings("ignore::UserWarning")
def test_small_fixed_scale_shrinks_every_keeper_at_the_optimum(counted_shots: ShotData) -> None:
    fit = optimize_variant(fixed_scale(0.1), counted_shots)
    point = fit.estimate()
    table = group_rate_table(fit, counted_shots)

    assert population_rate(fit) == pytest.approx(special.expit(point["mu"]))
    assert shrinkage_ok(table["estimate"], table["raw_rate"], population_rate(fit)).all()
    assert table["low"].isna().all()


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_heldout_log_likelihood_prefers_the_fitted_rates(small_tau_fit: tuple[ShotData, FitResult]) -> None:
    data, fit = small_tau_fit
    heldout = simulate_shots(data.groups, seed=4, rates=[0.75, 0.375, 0.875, 0.25], min_shots=100, max_shots=100)
    wrong = FitResult(name="wrong", kind="optimize", observations="", point={"p_save": np.full(4, 0.1)})

    score = heldout_log_likelihood(fit, heldout)
    assert np.isfinite(score)
    assert score > heldout_log_likelihood(wrong, heldout)


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_summarize_bounds_are_central_percentiles(small_tau_fit: tuple[ShotData, FitResult]) -> None:
    _, fit = small_tau_fit
    mu = fit.draws().posterior["mu"].values.ravel()
    table = summarize(fit, ["mu"], interval=0.8)

    assert table["mean"].iloc[0] == pytest.approx(mu.mean())
    assert table["low"].iloc[0] == pytest.approx(np.quantile(mu, 0.1))
    assert table["high"].iloc[0] == pytest.approx(np.quantile(mu, 0.9))


@pytest.mark.filterwarnings("ignore::UserWarning")
@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_heldout_log_likelihood_accepts_a_posterior_dataset(small_tau_fit: tuple[ShotData, FitResult]) -> None:
    data, fit = small_tau_fit
    heldout = simulate_shots(data.groups, seed=9, rates=[0.75, 0.375, 0.875, 0.25], min_shots=30, max_shots=30)

    assert heldout_log_likelihood(fit.draws().posterior, heldout) == pytest.approx(heldout_log_likelihood(fit, heldout))
