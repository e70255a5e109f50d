"""Plotting utilities for the deck."""

from __future__ import annotations

from typing import Mapping, Optional

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.axes import Axes
from scipy import stats as st

from .fitting import FitResult
from .records import PollData, ShotData


def format_percentage(ax: Axes, axis: str = "y") -> Axes:
    formatter = plt.FuncFormatter(lambda x, _: f"{int(round(x * 100))}%")
    target = ax.yaxis if axis == "y" else ax.xaxis
    target.set_major_formatter(formatter)
    return ax


def plot_group_rates(
    data: ShotData,
    estimates: Optional[pd.DataFrame] = None,
    ax: Optional[Axes] = None,
    color: str = "C0",
    label: str = "Estimate",
) -> Axes:
    """
    Raw save rate per keeper with a 68% Beta interval.

    ``estimates`` is a table from ``group_rate_table`` and is drawn beside the
    raw rates; true rates are marked when the data carries them.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 5))
    bg_color = ax.get_facecolor()
    shots, saves = data.counts()
    x = np.arange(data.n_groups)
    rv = st.beta(saves + 1, shots - saves + 1)
    ax.vlines(x - 0.1, *rv.interval(0.68), color=color)
    ax.plot(x - 0.1, saves / shots, "o", mec=color, mfc=bg_color, label="Raw rate")
    if estimates is not None:
        ax.vlines(x + 0.1, estimates["low"], estimates["high"], color="C1")
        ax.plot(x + 0.1, estimates["estimate"], "s", color="C1", label=label)
    if data.true_rates is not None:
        ax.plot(x, data.true_rates, "x", color="k", label="True rate")
    ax.axhline(data.pooled_rate, linestyle="--", color="grey", linewidth=1, label="Pooled rate")
    ax.set_xticks(x)
    ax.set_xticklabels(data.groups, rotation=30, ha="right")
    ax.set_ylabel("Save rate")
    ax.set_ylim(bottom=0, top=1)
    format_percentage(ax)
    ax.grid(True, axis="y", alpha=0.7)
    ax.legend()
    return ax


def plot_shrinkage(tables: Mapping[str, pd.DataFrame], ax: Optional[Axes] = None) -> Axes:
    """Raw rate against estimate for each fit; points pulled toward the middle show pooling."""
    ax = ax or plt.gca()
    for idx, (name, table) in enumerate(tables.items()):
        ax.plot(table["raw_rate"], table["estimate"], "o", color=f"C{idx}", label=name)
    lims = [0, 1]
    ax.plot(lims, lims, color="grey", linestyle="--", linewidth=1)
    ax.set_xlabel("Raw save rate")
    ax.set_ylabel("Estimated save rate")
    format_percentage(ax, "x")
    format_percentage(ax, "y")
    ax.legend()
    return ax


def plot_scale_sweep(table: pd.DataFrame, ax: Optional[Axes] = None) -> Axes:
    """ELPD with one standard error per fixed prior scale."""
    ax = ax or plt.gca()
    ax.errorbar(table["scale"], table["elpd_loo"], yerr=table["se"], fmt="o-", capsize=3)
    flagged = table[table["warning"]]
    if len(flagged):
        ax.plot(flagged["scale"], flagged["elpd_loo"], "rx", ms=10, label="High Pareto k")
        ax.legend()
    ax.set_xscale("log")
    ax.set_xlabel("Prior scale (tau)")
    ax.set_ylabel("ELPD (PSIS-LOO)")
    return ax


def plot_polls(polls: PollData, fit: Optional[FitResult] = None, ax: Optional[Axes] = None, hdi_prob: float = 0.9) -> Axes:
    if ax is None:
        _, ax = plt.subplots(figsize=(9, 4))
    ax.plot(polls.day, polls.successes / polls.trials, "o", ms=4, color="C0", label="Polled share")
    if fit is not None:
        share = fit.draws().posterior["p_share"]
        hdi = az.hdi(share, hdi_prob=hdi_prob)["p_share"]
        ax.fill_between(
            polls.day,
            hdi.sel(hdi="lower"),
            hdi.sel(hdi="higher"),
            alpha=0.3,
            color="C1",
            label=f"{int(hdi_prob * 100)}% HDI",
        )
        ax.plot(polls.day, share.mean(("chain", "draw")), color="C1", label="Posterior mean")
    if polls.true_prob is not None:
        ax.plot(polls.day, polls.true_prob, color="k", linestyle="--", linewidth=1, label="True share")
    ax.set_xlabel("Day")
    ax.set_ylabel("Share")
    format_percentage(ax)
    ax.legend()
    return ax
