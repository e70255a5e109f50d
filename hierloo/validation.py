"""Approximate leave-one-out cross-validation and model comparison."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import arviz as az
import numpy as np
import pandas as pd

from .config import PARETO_K_THRESHOLD, SamplerConfig
from .fitting import FitCache, FitResult, fit_variant
from .models import LOGIT, PROBIT, ModelVariant, fixed_scale
from .records import ShotData

logger = logging.getLogger(__name__)

LINK_VARIANTS = (LOGIT, PROBIT)


class IncompatibleFitsError(ValueError):
    """Fits whose log-likelihoods come from different observations."""


class ParetoKWarning(UserWarning):
    """PSIS-LOO importance weights are unreliable for some observations."""


@dataclass(frozen=True)
class LooResult:
    name: str
    elpd: float
    se: float
    p_loo: float
    max_pareto_k: float
    warning: bool
    pointwise: np.ndarray = field(repr=False)
    pareto_k: np.ndarray = field(repr=False)

    @property
    def n_high_k(self) -> int:
        return int(np.sum(self.pareto_k > PARETO_K_THRESHOLD))


def _require_log_likelihood(fit: FitResult) -> None:
    if not fit.has_log_likelihood:
        raise ValueError(
            f"Fit {fit.name!r} has no pointwise log-likelihood; "
            "sample it from a variant with log_likelihood=True."
        )


def loo(fit: FitResult) -> LooResult:
    """
    PSIS-LOO estimate of expected log predictive density for one fit.

    Large Pareto-k values do not stop the computation. ArviZ warns about them
    and so do we, naming the fit.
    """
    _require_log_likelihood(fit)
    elpd = az.loo(fit.draws(), pointwise=True)
    pareto_k = np.asarray(elpd.pareto_k, dtype=float)
    max_k = float(pareto_k.max())
    flagged = bool(elpd.warning) or max_k > PARETO_K_THRESHOLD
    if flagged:
        logger.warning("%s: max Pareto k %.2f exceeds %.1f", fit.name, max_k, PARETO_K_THRESHOLD)
        warnings.warn(
            f"PSIS-LOO for {fit.name!r} is unreliable: max Pareto k {max_k:.2f}",
            ParetoKWarning,
            stacklevel=2,
        )
    return LooResult(
        name=fit.name,
        elpd=float(elpd.elpd_loo),
        se=float(elpd.se),
        p_loo=float(elpd.p_loo),
        max_pareto_k=max_k,
        warning=flagged,
        pointwise=np.asarray(elpd.loo_i, dtype=float),
        pareto_k=pareto_k,
    )


def check_comparable(fits: Mapping[str, FitResult]) -> None:
    """Every fit must carry log-likelihoods of the same observations in the same order."""
    if len(fits) < 2:
        raise ValueError("Comparison needs at least two fits.")
    for fit in fits.values():
        _require_log_likelihood(fit)
    fingerprints = {fit.observations for fit in fits.values()}
    if len(fingerprints) != 1:
        raise IncompatibleFitsError("Fits were made on different observation sets.")
    sizes = {
        name: sum(
            int(np.prod([n for dim, n in da.sizes.items() if dim not in ("chain", "draw")]))
            for da in fit.draws().log_likelihood.data_vars.values()
        )
        for name, fit in fits.items()
    }
    if len(set(sizes.values())) != 1:
        raise IncompatibleFitsError(f"Log-likelihood lengths differ between fits: {sizes}")


def compare(fits: Mapping[str, FitResult]) -> pd.DataFrame:
    """
    Rank fits by PSIS-LOO with ``az.compare``.

    Fits are passed to ArviZ in name order and ties in rank are broken by
    name, so the table does not depend on the order of ``fits``.
    """
    check_comparable(fits)
    ordered = {name: fits[name].draws() for name in sorted(fits)}
    table = az.compare(ordered, ic="loo")
    table = table.rename_axis("model").reset_index()
    table = table.sort_values(["rank", "model"], kind="mergesort").set_index("model")
    for name, flagged in table["warning"].items():
        if flagged:
            logger.warning("Comparison entry %s has unreliable PSIS-LOO estimates", name)
    return table


def loo_table(fits: Mapping[str, FitResult]) -> pd.DataFrame:
    rows = []
    for name, fit in fits.items():
        result = loo(fit)
        rows.append(
            {
                "model": name,
                "elpd_loo": result.elpd,
                "se": result.se,
                "p_loo": result.p_loo,
                "max_pareto_k": result.max_pareto_k,
                "warning": result.warning,
            }
        )
    return pd.DataFrame(rows).set_index("model")


def sweep_variants(scales: Sequence[float]) -> list[ModelVariant]:
    """Fixed-scale variants for a sweep, one per distinct scale."""
    if not scales:
        raise ValueError("At least one scale is required.")
    variants = [fixed_scale(tau, log_likelihood=True) for tau in scales]
    names = [variant.name for variant in variants]
    if len(set(names)) != len(names):
        raise ValueError(f"Scales must be distinct, got {list(scales)}.")
    return variants


def scale_sweep(
    data: ShotData,
    scales: Sequence[float],
    config: Optional[SamplerConfig] = None,
    cache: Optional[FitCache] = None,
) -> tuple[pd.DataFrame, dict[str, FitResult]]:
    """Fit the fixed-scale model at each scale and score each one with PSIS-LOO."""
    fits: dict[str, FitResult] = {}
    scale_of: dict[str, float] = {}
    for variant in sweep_variants(scales):
        fits[variant.name] = fit_variant(variant, data, config, cache)
        scale_of[variant.name] = float(variant.scale)
    table = loo_table(fits)
    table.insert(0, "scale", [scale_of[name] for name in table.index])
    return table.sort_values("scale"), fits


def link_comparison(
    data: ShotData,
    config: Optional[SamplerConfig] = None,
    cache: Optional[FitCache] = None,
) -> tuple[pd.DataFrame, dict[str, FitResult]]:
    fits = {variant.name: fit_variant(variant, data, config, cache) for variant in LINK_VARIANTS}
    return compare(fits), fits
