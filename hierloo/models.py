"""PyMC model declarations for the save-rate and polling examples."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional

import numpy as np
import pymc as pm
import pytensor.tensor as pt

from .records import PollData, ShotData


# Utility for standard normal CDF
def phi(x):
    return 0.5 + 0.5 * pt.erf(x / pt.sqrt(2.0))


LINKS: dict[str, Callable] = {
    "logit": pm.math.invlogit,
    "probit": phi,
}
POOLINGS = ("none", "hierarchical")
SCALE_PRIORS = ("half_normal", "flat")


@dataclass(frozen=True)
class ModelVariant:
    """
    One point in the space of save-rate models.

    ``pooling="none"`` gives each keeper an independent uniform prior. With
    ``pooling="hierarchical"`` the keeper effects share a normal prior whose
    scale is either fixed (``scale``) or estimated under ``scale_prior``;
    ``"flat"`` is the improper prior used to show a posterior with no mode.
    ``log_likelihood`` asks the fit step to keep pointwise log-likelihoods
    for cross-validation.
    """

    name: str
    pooling: str = "hierarchical"
    scale: Optional[float] = None
    scale_prior: str = "half_normal"
    link: str = "logit"
    log_likelihood: bool = False

    def __post_init__(self) -> None:
        if self.pooling not in POOLINGS:
            raise ValueError(f"Unknown pooling {self.pooling!r}; expected one of {POOLINGS}.")
        if self.link not in LINKS:
            raise ValueError(f"Unknown link {self.link!r}; expected one of {tuple(LINKS)}.")
        if self.scale_prior not in SCALE_PRIORS:
            raise ValueError(f"Unknown scale prior {self.scale_prior!r}; expected one of {SCALE_PRIORS}.")
        if self.scale is not None and self.scale <= 0:
            raise ValueError("A fixed scale must be strictly positive.")

    @property
    def estimates_scale(self) -> bool:
        return self.pooling == "hierarchical" and self.scale is None

    def with_log_likelihood(self) -> ModelVariant:
        return replace(self, log_likelihood=True)


def fixed_scale(tau: float, link: str = "logit", log_likelihood: bool = False) -> ModelVariant:
    # repr keeps distinct scales distinct: 0.1 and 0.1000001 both print as 0.1 under :g
    name = f"fixed_scale_{float(tau)!r}"
    if link != "logit":
        name = f"{name}_{link}"
    return ModelVariant(
        name=name,
        scale=tau,
        link=link,
        log_likelihood=log_likelihood,
    )


INDEPENDENT = ModelVariant("independent", pooling="none")
ESTIMATED_SCALE = ModelVariant("estimated_scale")
IMPROPER_SCALE = ModelVariant("improper_scale", scale_prior="flat")
LOGIT = ModelVariant("logit", log_likelihood=True)
PROBIT = ModelVariant("probit", link="probit", log_likelihood=True)

VARIANTS: dict[str, ModelVariant] = {
    variant.name: variant
    for variant in (INDEPENDENT, ESTIMATED_SCALE, IMPROPER_SCALE, LOGIT, PROBIT)
}


def initialize_model(data: ShotData) -> pm.Model:
    coords = {"keeper": list(data.groups), "shot": np.arange(data.n_shots)}
    with pm.Model(coords=coords) as model:
        pm.Data("keeper_idx", data.group_idx, dims="shot")
        pm.Data("saved", data.saved, dims="shot")
    return model


def define_independent_model(data: ShotData, variant: ModelVariant = INDEPENDENT) -> pm.Model:
    with initialize_model(data) as model:
        p = pm.Beta("p_save", alpha=1.0, beta=1.0, dims="keeper")
        pm.Bernoulli(
            "save",
            p=p[model["keeper_idx"]],
            observed=model["saved"],
            dims="shot",
        )
    return model


def define_hierarchical_model(data: ShotData, variant: ModelVariant = ESTIMATED_SCALE) -> pm.Model:
    link = LINKS[variant.link]
    with initialize_model(data) as model:
        mu = pm.Normal("mu", mu=0.0, sigma=1.5)
        if variant.scale is not None:
            tau = pm.Data("tau", float(variant.scale))
        elif variant.scale_prior == "flat":
            tau = pm.HalfFlat("tau")
        else:
            tau = pm.HalfNormal("tau", sigma=1.0)
        alpha = pm.Normal("alpha", mu=mu, sigma=tau, dims="keeper")
        pm.Deterministic("p_population", link(mu))
        p = pm.Deterministic("p_save", link(alpha), dims="keeper")
        pm.Bernoulli(
            "save",
            p=p[model["keeper_idx"]],
            observed=model["saved"],
            dims="shot",
        )
    return model


def build_model(variant: ModelVariant, data: ShotData) -> pm.Model:
    define = {
        "none": define_independent_model,
        "hierarchical": define_hierarchical_model,
    }[variant.pooling]
    return define(data, variant)


def define_poll_model(polls: PollData) -> pm.Model:
    """
    Latent mean-reverting walk observed through binomial polls.

    The walk is written in non-centred form: ``latent = weights @ innovation``
    where ``weights[t, s] = rho**(day_t - day_s) * step_sd_s`` below the
    diagonal, which unrolls ``z_t = rho**dt * z_{t-1} + step_sd_t * eps_t``.
    """
    lag = polls.day[:, None] - polls.day[None, :]
    lower = (lag >= 0).astype(float)
    lag = np.where(lag >= 0, lag, 0).astype(float)
    follows = (np.arange(polls.n_polls) > 0).astype(float)

    coords = {"poll": polls.day}
    with pm.Model(coords=coords) as model:
        pm.Data("elapsed", polls.elapsed.astype(float), dims="poll")
        pm.Data("trials", np.full(polls.n_polls, polls.trials), dims="poll")
        pm.Data("successes", polls.successes, dims="poll")

        mu = pm.Normal("mu", mu=0.0, sigma=1.5)
        sigma = pm.HalfNormal("sigma", sigma=1.0)
        rho = pm.Beta("rho", alpha=9.0, beta=1.0)
        innovation = pm.Normal("innovation", mu=0.0, sigma=1.0, dims="poll")

        step_sd = sigma * pt.sqrt(1 - follows * rho ** (2 * model["elapsed"]))
        weights = lower * rho**lag * step_sd[None, :]
        latent = pm.Deterministic("latent", pt.dot(weights, innovation), dims="poll")
        p = pm.Deterministic("p_share", pm.math.invlogit(mu + latent), dims="poll")
        pm.Binomial(
            "polled",
            n=model["trials"],
            p=p,
            observed=model["successes"],
            dims="poll",
        )
    return model
