"""Hierarchical save-rate and polling models with approximate leave-one-out."""

from .config import SamplerConfig, configure_logging
from .fitting import FitCache, FitResult, fit_polls, fit_variant, optimize, optimize_variant, poll_key, sample, variant_key
from .models import (
    ESTIMATED_SCALE,
    IMPROPER_SCALE,
    INDEPENDENT,
    LOGIT,
    PROBIT,
    VARIANTS,
    ModelVariant,
    build_model,
    define_poll_model,
    fixed_scale,
)
from .records import PollData, ShotData
from .simulate import simulate_heldout, simulate_polls, simulate_shots
from .summaries import (
    closed_form_rates,
    group_rate_table,
    heldout_log_likelihood,
    population_rate,
    shrinkage_ok,
    summarize,
)
from .validation import (
    LINK_VARIANTS,
    IncompatibleFitsError,
    LooResult,
    ParetoKWarning,
    check_comparable,
    compare,
    link_comparison,
    loo,
    loo_table,
    scale_sweep,
    sweep_variants,
)

__all__ = [
    "ESTIMATED_SCALE",
    "IMPROPER_SCALE",
    "INDEPENDENT",
    "LINK_VARIANTS",
    "LOGIT",
    "PROBIT",
    "VARIANTS",
    "FitCache",
    "FitResult",
    "IncompatibleFitsError",
    "LooResult",
    "ModelVariant",
    "ParetoKWarning",
    "PollData",
    "SamplerConfig",
    "ShotData",
    "build_model",
    "check_comparable",
    "closed_form_rates",
    "compare",
    "configure_logging",
    "define_poll_model",
    "fit_polls",
    "fit_variant",
    "fixed_scale",
    "group_rate_table",
    "heldout_log_likelihood",
    "link_comparison",
    "loo",
    "loo_table",
    "optimize",
    "optimize_variant",
    "poll_key",
    "population_rate",
    "sample",
    "scale_sweep",
    "shrinkage_ok",
    "simulate_heldout",
    "simulate_polls",
    "simulate_shots",
    "summarize",
    "sweep_variants",
    "variant_key",
]
