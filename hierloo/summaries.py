"""Reduce fits to tables: point summaries, intervals and held-out scores."""

from __future__ import annotations

import itertools
from functools import partial
from typing import Mapping, Optional, Sequence, Union

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr
from scipy import special
from scipy import stats as st

from .config import INTERVAL_PROB
from .fitting import SAMPLE, FitResult
from .records import ShotData

SUMMARY_COLUMNS = ["parameter", "mean", "low", "high", "true"]


def _bounds(interval: float) -> tuple[float, float]:
    if not 0 < interval < 1:
        raise ValueError("interval must fall within (0, 1).")
    tail = (1 - interval) / 2
    return tail, 1 - tail


def _element_labels(name: str, coords: Sequence[Sequence]) -> list[str]:
    if not coords:
        return [name]
    return [f"{name}[{', '.join(str(c) for c in combo)}]" for combo in itertools.product(*coords)]


def _posterior_rows(idata: az.InferenceData, name: str, interval: float) -> pd.DataFrame:
    if name not in idata.posterior:
        raise KeyError(f"Variable {name} not found in posterior")
    lo, hi = _bounds(interval)
    table = az.summary(
        idata,
        var_names=[name],
        stat_funcs={
            "mean": np.mean,
            "low": partial(np.quantile, q=lo),
            "high": partial(np.quantile, q=hi),
        },
        extend=False,
        round_to="none",
    )
    return table.rename_axis("parameter").reset_index()


def _point_rows(point: Mapping[str, np.ndarray], name: str) -> pd.DataFrame:
    if name not in point:
        raise KeyError(f"Variable {name} not found in point estimate")
    value = np.asarray(point[name], dtype=float)
    coords = [range(size) for size in value.shape]
    return pd.DataFrame(
        {
            "parameter": _element_labels(name, coords),
            "mean": value.ravel(),
            "low": np.nan,
            "high": np.nan,
        }
    )


def summarize(
    fit: FitResult,
    var_names: Optional[Sequence[str]] = None,
    truth: Optional[Mapping[str, Union[float, np.ndarray]]] = None,
    interval: float = INTERVAL_PROB,
) -> pd.DataFrame:
    """
    Mean and central percentile interval for each element of each variable.

    Point-estimate fits report the optimizer value as ``mean`` and leave the
    bounds empty. ``truth`` maps variable names to known simulation values and
    fills the ``true`` column; missing entries stay NaN.
    """
    if fit.kind == SAMPLE:
        idata = fit.draws()
        names = list(var_names) if var_names is not None else list(idata.posterior.data_vars)
        frames = [_posterior_rows(idata, name, interval) for name in names]
    else:
        point = fit.estimate()
        names = list(var_names) if var_names is not None else list(point)
        frames = [_point_rows(point, name) for name in names]

    truth = truth or {}
    for name, frame in zip(names, frames):
        if name in truth:
            true = np.ravel(np.asarray(truth[name], dtype=float))
            if true.size != len(frame):
                raise ValueError(f"Truth for {name} has {true.size} values, expected {len(frame)}.")
            frame["true"] = true
        else:
            frame["true"] = np.nan
    return pd.concat(frames, ignore_index=True)[SUMMARY_COLUMNS]


def closed_form_rates(data: ShotData, interval: float = INTERVAL_PROB) -> pd.DataFrame:
    """Beta(1 + saves, 1 + misses) posterior for each keeper under a uniform prior."""
    shots, saves = data.counts()
    rv = st.beta(saves + 1, shots - saves + 1)
    low, high = rv.interval(interval)
    frame = data.summary()
    frame["estimate"] = rv.mean()
    frame["low"] = low
    frame["high"] = high
    return frame


def group_rate_table(
    fit: FitResult,
    data: ShotData,
    var_name: str = "p_save",
    interval: float = INTERVAL_PROB,
) -> pd.DataFrame:
    """Per-keeper save rate estimates joined with the raw data summary."""
    rows = summarize(fit, [var_name], interval=interval)
    if len(rows) != data.n_groups:
        raise ValueError(f"{var_name} has {len(rows)} entries but the data has {data.n_groups} keepers.")
    frame = data.summary()
    frame["estimate"] = rows["mean"].to_numpy()
    frame["low"] = rows["low"].to_numpy()
    frame["high"] = rows["high"].to_numpy()
    return frame


def population_rate(fit: FitResult, var_name: str = "p_population") -> float:
    if fit.kind == SAMPLE:
        return float(fit.draws().posterior[var_name].mean())
    return float(fit.estimate()[var_name])


def shrinkage_ok(estimates, raw, population) -> np.ndarray:
    """True where an estimate lies strictly between the raw rate and the population value."""
    estimates = np.asarray(estimates, dtype=float)
    raw = np.asarray(raw, dtype=float)
    return (estimates - raw) * (estimates - population) < 0


def _rate_draws(fit: Union[FitResult, xr.Dataset], var_name: str) -> np.ndarray:
    if isinstance(fit, xr.Dataset):
        draws = fit[var_name].stack(sample=("chain", "draw"))
        return np.asarray(draws.transpose("sample", ...).values, dtype=float)
    if fit.kind == SAMPLE:
        return _rate_draws(fit.draws().posterior, var_name)
    return np.asarray(fit.estimate()[var_name], dtype=float)[None, :]


def heldout_log_likelihood(
    fit: Union[FitResult, xr.Dataset],
    heldout: ShotData,
    var_name: str = "p_save",
) -> float:
    """
    Log pointwise predictive density of held-out shots.

    Averages the Bernoulli likelihood of each held-out shot over the posterior
    draws of its keeper's save rate, then sums the logs over shots. ``fit`` may
    also be a bare posterior dataset.
    """
    rates = _rate_draws(fit, var_name)
    if rates.shape[1] != heldout.n_groups:
        raise ValueError("Held-out data must cover the same keepers as the fitted data.")
    p = np.clip(rates[:, heldout.group_idx], 1e-12, 1 - 1e-12)
    log_lik = np.where(heldout.saved == 1, np.log(p), np.log1p(-p))
    lppd = special.logsumexp(log_lik, axis=0) - np.log(rates.shape[0])
    return float(lppd.sum())
