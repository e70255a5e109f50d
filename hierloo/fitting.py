"""Run PyMC against a declared model: NUTS draws or an optimizer point."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

import arviz as az
import numpy as np
import pymc as pm

from .config import SamplerConfig
from .models import ModelVariant, build_model, define_poll_model
from .records import PollData, ShotData

logger = logging.getLogger(__name__)

SAMPLE = "sample"
OPTIMIZE = "optimize"


@dataclass(frozen=True)
class FitResult:
    """Output of one fit of one model to one dataset. Never mutated."""

    name: str
    kind: str
    observations: str
    idata: Optional[az.InferenceData] = field(default=None, repr=False)
    point: Optional[Mapping[str, np.ndarray]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.kind == SAMPLE and self.idata is None:
            raise ValueError("A sampling fit needs an InferenceData object.")
        if self.kind == OPTIMIZE and self.point is None:
            raise ValueError("An optimization fit needs a point estimate.")
        if self.kind not in (SAMPLE, OPTIMIZE):
            raise ValueError(f"Unknown fit kind {self.kind!r}.")

    def draws(self) -> az.InferenceData:
        if self.kind != SAMPLE:
            raise RuntimeError(f"Fit {self.name!r} is a point estimate and has no posterior draws.")
        return self.idata

    def estimate(self) -> Mapping[str, np.ndarray]:
        if self.kind != OPTIMIZE:
            raise RuntimeError(f"Fit {self.name!r} holds posterior draws, not a point estimate.")
        return self.point

    @property
    def has_log_likelihood(self) -> bool:
        return self.kind == SAMPLE and "log_likelihood" in self.idata.groups()


def sample(
    model: pm.Model,
    config: Optional[SamplerConfig] = None,
    name: str = "model",
    observations: str = "",
    log_likelihood: bool = False,
) -> FitResult:
    """Draw from the posterior with NUTS. No convergence checks are applied."""
    config = config or SamplerConfig()
    config.validate()
    start = time.perf_counter()
    idata = pm.sample(
        draws=config.draws,
        tune=config.tune,
        chains=config.chains,
        target_accept=config.target_accept,
        nuts_sampler=config.nuts_sampler,
        random_seed=config.random_seed,
        progressbar=config.progressbar,
        model=model,
    )
    if log_likelihood:
        pm.compute_log_likelihood(idata, model=model, progressbar=False)
    logger.info(
        "Sampled %s: %d draws x %d chain(s) in %.1fs",
        name,
        config.draws,
        config.chains,
        time.perf_counter() - start,
    )
    return FitResult(name=name, kind=SAMPLE, observations=observations, idata=idata)


def optimize(
    model: pm.Model,
    name: str = "model",
    observations: str = "",
    tol: Optional[float] = None,
    maxeval: int = 5000,
    start: Optional[Mapping[str, np.ndarray]] = None,
) -> FitResult:
    """
    Maximize the joint density with ``pm.find_MAP``.

    ``tol`` goes straight to ``scipy.optimize.minimize``. When the density has
    no finite maximum the returned point depends on it, which is the whole
    point of the improper-scale slide.
    """
    kwargs = {} if tol is None else {"tol": tol}
    t0 = time.perf_counter()
    point = pm.find_MAP(
        start=start,
        method="L-BFGS-B",
        maxeval=maxeval,
        model=model,
        include_transformed=False,
        progressbar=False,
        **kwargs,
    )
    logger.info("Optimized %s (tol=%s) in %.1fs", name, tol, time.perf_counter() - t0)
    point = {key: np.asarray(value) for key, value in point.items()}
    return FitResult(name=name, kind=OPTIMIZE, observations=observations, point=point)


def fit_key(label: str, observations: str, config: Optional[SamplerConfig] = None) -> str:
    """Content hash identifying one (model, dataset, configuration) triple."""
    h = hashlib.sha256()
    h.update(label.encode())
    h.update(observations.encode())
    h.update(repr(config).encode())
    return h.hexdigest()


class FitCache:
    """Fits memoized by content hash, so each model is sampled once per process."""

    def __init__(self) -> None:
        self._fits: dict[str, FitResult] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._fits

    def __len__(self) -> int:
        return len(self._fits)

    def get_or_fit(self, key: str, fit: Callable[[], FitResult]) -> FitResult:
        if key not in self._fits:
            self._fits[key] = fit()
        else:
            logger.debug("Reusing cached fit %s", key[:12])
        return self._fits[key]

    def clear(self) -> None:
        self._fits.clear()


def variant_key(variant: ModelVariant, data: ShotData, config: Optional[SamplerConfig] = None) -> str:
    return fit_key(repr(variant), data.fingerprint(), config or SamplerConfig())


def poll_key(polls: PollData, config: Optional[SamplerConfig] = None, log_likelihood: bool = False) -> str:
    return fit_key(f"polls:{log_likelihood}", polls.fingerprint(), config or SamplerConfig())


def fit_variant(
    variant: ModelVariant,
    data: ShotData,
    config: Optional[SamplerConfig] = None,
    cache: Optional[FitCache] = None,
) -> FitResult:
    config = config or SamplerConfig()
    observations = data.fingerprint()

    def run() -> FitResult:
        return sample(
            build_model(variant, data),
            config,
            name=variant.name,
            observations=observations,
            log_likelihood=variant.log_likelihood,
        )

    if cache is None:
        return run()
    return cache.get_or_fit(variant_key(variant, data, config), run)


def optimize_variant(
    variant: ModelVariant,
    data: ShotData,
    tol: Optional[float] = None,
    maxeval: int = 5000,
) -> FitResult:
    return optimize(
        build_model(variant, data),
        name=variant.name,
        observations=data.fingerprint(),
        tol=tol,
        maxeval=maxeval,
    )


def fit_polls(
    polls: PollData,
    config: Optional[SamplerConfig] = None,
    log_likelihood: bool = False,
    cache: Optional[FitCache] = None,
) -> FitResult:
    config = config or SamplerConfig()
    observations = polls.fingerprint()

    def run() -> FitResult:
        return sample(
            define_poll_model(polls),
            config,
            name="polls",
            observations=observations,
            log_likelihood=log_likelihood,
        )

    if cache is None:
        return run()
    return cache.get_or_fit(poll_key(polls, config, log_likelihood), run)
