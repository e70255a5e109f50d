"""Defaults shared by the deck and the library."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

# Seeds for the deck are RANDOM_SEED plus a fixed per-step offset
RANDOM_SEED = 20240531

KEEPERS = (
    "Alisson",
    "Courtois",
    "Donnarumma",
    "Ederson",
    "Maignan",
    "Neuer",
    "Oblak",
    "ter Stegen",
)

# Save-rate simulation, on the logit scale
TRUE_MU = 0.9
TRUE_TAU = 0.4
MIN_SHOTS = 20
MAX_SHOTS = 120

# Polling simulation
N_POLLS = 60
POLL_TRIALS = 800
POLL_MU = -0.1
POLL_SIGMA = 0.3
POLL_RHO = 0.95  # daily persistence of the latent walk
MAX_POLL_GAP = 7

INTERVAL_PROB = 0.95
PARETO_K_THRESHOLD = 0.7


@dataclass(frozen=True)
class SamplerConfig:
    """Settings passed through to ``pm.sample``."""

    draws: int = 1000
    tune: int = 1000
    chains: int = 1
    target_accept: float = 0.9
    nuts_sampler: str = "pymc"
    random_seed: Optional[int] = RANDOM_SEED
    progressbar: bool = False

    def validate(self) -> None:
        if self.draws <= 0 or self.tune < 0 or self.chains <= 0:
            raise ValueError("draws and chains must be positive and tune non-negative.")
        if not 0 < self.target_accept < 1:
            raise ValueError("target_accept must fall within (0, 1).")
        if self.nuts_sampler not in ("pymc", "nutpie"):
            raise ValueError(f"Unsupported NUTS sampler: {self.nuts_sampler!r}")


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
