"""Synthetic data for the deck: keeper shots and a polling series."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from scipy import special

from .config import (
    KEEPERS,
    MAX_POLL_GAP,
    MAX_SHOTS,
    MIN_SHOTS,
    N_POLLS,
    POLL_MU,
    POLL_RHO,
    POLL_SIGMA,
    POLL_TRIALS,
    TRUE_MU,
    TRUE_TAU,
)
from .records import PollData, ShotData

logger = logging.getLogger(__name__)


def simulate_shots(
    groups: Sequence[str] = KEEPERS,
    seed: Optional[int] = None,
    mu: float = TRUE_MU,
    tau: float = TRUE_TAU,
    min_shots: int = MIN_SHOTS,
    max_shots: int = MAX_SHOTS,
    rates: Optional[Sequence[float]] = None,
) -> ShotData:
    """
    Simulate shots faced by each keeper.

    Each keeper gets a save probability, drawn as ``logistic(N(mu, tau))``
    unless ``rates`` is given, a shot count uniform on
    ``[min_shots, max_shots]`` and that many Bernoulli outcomes. The shots are
    shuffled before returning, so nothing downstream may rely on order.
    """
    groups = tuple(groups)
    if not groups:
        raise ValueError("At least one group is required.")
    if tau < 0:
        raise ValueError("tau must be non-negative.")
    if not 0 < min_shots <= max_shots:
        raise ValueError("Shot counts must satisfy 0 < min_shots <= max_shots.")

    rng = np.random.default_rng(seed)
    if rates is None:
        true_rates = special.expit(rng.normal(mu, tau, size=len(groups)))
    else:
        true_rates = np.asarray(rates, dtype=float)
        if true_rates.shape != (len(groups),):
            raise ValueError("rates needs one entry per group.")

    shots = rng.integers(min_shots, max_shots, size=len(groups), endpoint=True)
    group_idx = np.repeat(np.arange(len(groups)), shots)
    saved = rng.binomial(1, true_rates[group_idx])

    order = rng.permutation(group_idx.size)
    logger.debug("Simulated %d shots for %d keepers", group_idx.size, len(groups))
    return ShotData(
        group_idx=group_idx[order],
        saved=saved[order],
        groups=groups,
        true_rates=true_rates,
    )


def simulate_heldout(
    data: ShotData,
    seed: Optional[int] = None,
    min_shots: int = MIN_SHOTS,
    max_shots: int = MAX_SHOTS,
) -> ShotData:
    """Fresh shots for the same keepers at the same true save rates."""
    if data.true_rates is None:
        raise ValueError("Held-out shots need the true rates of the original data.")
    return simulate_shots(
        data.groups,
        seed=seed,
        min_shots=min_shots,
        max_shots=max_shots,
        rates=data.true_rates,
    )


def simulate_polls(
    n_polls: int = N_POLLS,
    seed: Optional[int] = None,
    mu: float = POLL_MU,
    sigma: float = POLL_SIGMA,
    rho: float = POLL_RHO,
    trials: int = POLL_TRIALS,
    max_gap: int = MAX_POLL_GAP,
) -> PollData:
    """
    Simulate a polling series driven by a mean-reverting latent walk.

    The latent value starts at ``N(0, sigma)`` and after ``dt`` days moves to
    ``N(rho**dt * z, sigma * sqrt(1 - rho**(2 * dt)))``, which keeps its
    marginal spread at ``sigma``. Each poll reports
    ``Binomial(trials, logistic(mu + z))`` successes.
    """
    if n_polls <= 0:
        raise ValueError("n_polls must be positive.")
    if sigma <= 0:
        raise ValueError("sigma must be positive.")
    if not 0 < rho < 1:
        raise ValueError("rho must fall within (0, 1).")
    if max_gap < 1:
        raise ValueError("max_gap must be at least one day.")

    rng = np.random.default_rng(seed)
    gaps = rng.integers(1, max_gap, size=n_polls - 1, endpoint=True)
    day = np.concatenate([[0], np.cumsum(gaps)])

    latent = np.empty(n_polls)
    latent[0] = rng.normal(0.0, sigma)
    for t in range(1, n_polls):
        decay = rho ** gaps[t - 1]
        latent[t] = rng.normal(decay * latent[t - 1], sigma * np.sqrt(1 - decay**2))

    successes = rng.binomial(trials, special.expit(mu + latent))
    return PollData(
        day=day,
        successes=successes,
        trials=trials,
        true_latent=latent,
        true_mu=mu,
    )
