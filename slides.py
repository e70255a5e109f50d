# /// script
# [tool.marimo.runtime]
# auto_instantiate = false
# ///

import marimo

__generated_with = "0.18.4"
app = marimo.App(width="medium")


@app.cell
def _():
    import marimo as mo
    return (mo,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    # Shrinkage, Improper Posteriors and Leave-One-Out with PyMC

    Two toy problems show what a hierarchical model buys you and how to check it.

    - **Goalkeeper save rates**: independent rates, partial pooling with a fixed prior scale, an estimated scale, and two link functions
    - **Polling time series**: a latent mean-reverting walk observed through binomial polls

    Every dataset is simulated, so each estimate can be held up against the truth.
    """)
    return


@app.cell
def _():
    import pandas as pd
    import matplotlib.pyplot as plt
    import arviz as az

    from hierloo import (
        ESTIMATED_SCALE,
        IMPROPER_SCALE,
        INDEPENDENT,
        LINK_VARIANTS,
        FitCache,
        SamplerConfig,
        configure_logging,
        fit_polls,
        fit_variant,
        fixed_scale,
        group_rate_table,
        heldout_log_likelihood,
        link_comparison,
        optimize_variant,
        poll_key,
        population_rate,
        scale_sweep,
        shrinkage_ok,
        simulate_heldout,
        simulate_polls,
        simulate_shots,
        summarize,
        closed_form_rates,
        sweep_variants,
        variant_key,
    )
    from hierloo.config import KEEPERS, POLL_MU, POLL_RHO, POLL_SIGMA, RANDOM_SEED, TRUE_MU, TRUE_TAU
    from hierloo.plots import plot_group_rates, plot_polls, plot_scale_sweep, plot_shrinkage

    az.style.use("arviz-darkgrid")
    configure_logging()

    # Prior scales compared with leave-one-out
    SCALES = (0.05, 0.1, 0.25, 0.5, 1.0, 2.0)
    # Optimizer tolerances for the improper posterior
    TOLERANCES = (1e-1, 1e-3, 1e-6, 1e-9)
    return (
        ESTIMATED_SCALE,
        FitCache,
        IMPROPER_SCALE,
        INDEPENDENT,
        KEEPERS,
        LINK_VARIANTS,
        POLL_MU,
        POLL_RHO,
        POLL_SIGMA,
        RANDOM_SEED,
        SCALES,
        SamplerConfig,
        TOLERANCES,
        TRUE_MU,
        TRUE_TAU,
        closed_form_rates,
        fit_polls,
        fit_variant,
        fixed_scale,
        group_rate_table,
        heldout_log_likelihood,
        link_comparison,
        optimize_variant,
        pd,
        plot_group_rates,
        plot_polls,
        plot_scale_sweep,
        plot_shrinkage,
        plt,
        poll_key,
        population_rate,
        scale_sweep,
        shrinkage_ok,
        simulate_heldout,
        simulate_polls,
        simulate_shots,
        summarize,
        sweep_variants,
        variant_key,
    )


@app.cell
def _(RANDOM_SEED, mo):
    seed_ui = mo.ui.number(start=0, stop=2**31 - 1, value=RANDOM_SEED, label="Seed")
    draws_ui = mo.ui.slider(start=250, stop=2000, step=250, value=1000, label="Draws", show_value=True)
    sampler_ui = mo.ui.dropdown(
        options={"PyMC NUTS": "pymc", "nutpie": "nutpie"},
        value="PyMC NUTS",
        label="Sampler",
    )

    mo.hstack([seed_ui, draws_ui, sampler_ui], justify="start")
    return draws_ui, sampler_ui, seed_ui


@app.cell
def _(SamplerConfig, draws_ui, sampler_ui, seed_ui):
    # One chain on purpose: this deck is about models, not diagnostics
    sampler_config = SamplerConfig(
        draws=draws_ui.value,
        tune=draws_ui.value,
        chains=1,
        nuts_sampler=sampler_ui.value,
        random_seed=seed_ui.value,
    )
    return (sampler_config,)


@app.cell
def _(FitCache):
    cache = FitCache()
    return (cache,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## The Data

    Each keeper gets a true save rate $p_j = \text{logit}^{-1}(\alpha_j)$ with $\alpha_j \sim N(\mu, \tau)$,
    faces a random number of shots, and saves each one with probability $p_j$.

    ```python
    shots = simulate_shots(KEEPERS, seed=seed)
    ```
    """)
    return


@app.cell
def _(KEEPERS, seed_ui, simulate_heldout, simulate_shots):
    shots = simulate_shots(KEEPERS, seed=seed_ui.value)
    heldout = simulate_heldout(shots, seed=seed_ui.value + 1)
    return heldout, shots


@app.cell
def _(mo, shots):
    mo.md(f"""
    {shots.n_shots:,} shots across {shots.n_groups} keepers. The pooled save rate is {shots.pooled_rate:.1%}.
    """)
    return


@app.cell
def _(shots):
    shots.summary()
    return


@app.cell
def _(plot_group_rates, shots):
    plot_group_rates(shots)
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Sampling

    Everything below draws from a posterior. Sampling is single-chain and takes a few seconds per model.
    """)
    return


@app.cell
def _(mo):
    run_button = mo.ui.run_button(label="click to sample")

    run_button
    return (run_button,)


@app.cell
def _(cache, mo, run_button):
    # Sample only on a click; cached fits for the current data and settings show straight away
    def gate(keys, what):
        mo.stop(
            not run_button.value and not all(key in cache for key in keys),
            mo.callout(
                f"{what} has not been sampled on this dataset yet. Click the button above to sample.",
                kind="warn",
            ),
        )

    return (gate,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## No Pooling

    With $p_j \sim \text{Beta}(1, 1)$ the posterior is $\text{Beta}(1 + \text{saves}_j, 1 + \text{misses}_j)$,
    so its mean is $(\text{saves}_j + 1) / (\text{shots}_j + 2)$. The sampler should agree.
    """)
    return


@app.cell
def _(
    INDEPENDENT,
    cache,
    closed_form_rates,
    fit_variant,
    gate,
    group_rate_table,
    sampler_config,
    shots,
    variant_key,
):
    gate([variant_key(INDEPENDENT, shots, sampler_config)], "The no-pooling model")
    independent_table = group_rate_table(fit_variant(INDEPENDENT, shots, sampler_config, cache), shots)

    _closed = closed_form_rates(shots)
    independent_table.assign(closed_form_low=_closed["low"], closed_form_high=_closed["high"])
    return (independent_table,)


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Partial Pooling with a Fixed Scale

    $$\alpha_j \sim N(\mu, \tau), \quad \mu \sim N(0, 1.5)$$

    With $\tau$ fixed and small every keeper is pulled toward the population rate.
    Each estimate should land strictly between the keeper's raw rate and the population rate.
    """)
    return


@app.cell
def _(mo):
    tau_ui = mo.ui.slider(start=0.05, stop=2.0, step=0.05, value=0.1, label="Prior scale (tau)", show_value=True)

    tau_ui
    return (tau_ui,)


@app.cell
def _(
    cache,
    fit_variant,
    fixed_scale,
    gate,
    group_rate_table,
    population_rate,
    sampler_config,
    shots,
    shrinkage_ok,
    tau_ui,
    variant_key,
):
    _variant = fixed_scale(tau_ui.value)
    gate([variant_key(_variant, shots, sampler_config)], f"The model with tau = {tau_ui.value:g}")
    fixed_fit = fit_variant(_variant, shots, sampler_config, cache)
    fixed_table = group_rate_table(fixed_fit, shots)
    fixed_table["shrunk"] = shrinkage_ok(
        fixed_table["estimate"],
        fixed_table["raw_rate"],
        population_rate(fixed_fit),
    )
    fixed_table
    return (fixed_table,)


@app.cell
def _(
    fixed_table,
    independent_table,
    mo,
    plot_group_rates,
    plot_shrinkage,
    plt,
    shots,
    tau_ui,
):
    _fig, (_left, _right) = plt.subplots(1, 2, figsize=(13, 5))
    plot_group_rates(shots, fixed_table, ax=_left, label=f"tau = {tau_ui.value:g}")
    plot_shrinkage({"No pooling": independent_table, f"tau = {tau_ui.value:g}": fixed_table}, ax=_right)
    _fig.tight_layout()

    mo.as_html(_fig)
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Estimating the Scale

    Put a prior on $\tau$ and let the data decide how much to pool.

    ```python
    tau = pm.HalfNormal("tau", sigma=1.0)
    ```
    """)
    return


@app.cell
def _(
    ESTIMATED_SCALE,
    TRUE_MU,
    TRUE_TAU,
    cache,
    fit_variant,
    gate,
    sampler_config,
    shots,
    summarize,
    variant_key,
):
    gate([variant_key(ESTIMATED_SCALE, shots, sampler_config)], "The estimated-scale model")
    estimated_fit = fit_variant(ESTIMATED_SCALE, shots, sampler_config, cache)
    summarize(
        estimated_fit,
        ["mu", "tau", "p_save"],
        truth={"mu": TRUE_MU, "tau": TRUE_TAU, "p_save": shots.true_rates},
    )
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## An Improper Posterior

    Swap the half-normal for a flat prior on $\tau > 0$ and ask the optimizer for the mode.
    As $\tau \to 0$ with every $\alpha_j = \mu$, the density of the $\alpha_j$ grows without bound:
    there is no mode to find. The optimizer still reports success, and the "answer" moves with its tolerance.

    ```python
    tau = pm.HalfFlat("tau")
    pm.find_MAP(model=model, tol=tol)
    ```
    """)
    return


@app.cell
def _(IMPROPER_SCALE, TOLERANCES, optimize_variant, pd, shots):
    _rows = []
    for _tol in TOLERANCES:
        _point = optimize_variant(IMPROPER_SCALE, shots, tol=_tol).estimate()
        _rows.append({"tol": _tol, "tau": float(_point["tau"]), "mu": float(_point["mu"])})
    pd.DataFrame(_rows)
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Choosing the Scale with Leave-One-Out

    Refitting once per held-out shot is out of the question.
    PSIS-LOO approximates it from a single fit, given the pointwise log-likelihood.

    ```python
    az.loo(idata, pointwise=True)
    ```

    The held-out column scores each fit on fresh shots from the same keepers.
    """)
    return


@app.cell
def _(
    SCALES,
    cache,
    gate,
    heldout,
    heldout_log_likelihood,
    sampler_config,
    scale_sweep,
    shots,
    sweep_variants,
    variant_key,
):
    gate([variant_key(_v, shots, sampler_config) for _v in sweep_variants(SCALES)], "The scale sweep")
    sweep_table, sweep_fits = scale_sweep(shots, SCALES, sampler_config, cache)
    sweep_table["heldout_lppd"] = [heldout_log_likelihood(sweep_fits[_name], heldout) for _name in sweep_table.index]
    sweep_table
    return (sweep_table,)


@app.cell
def _(plot_scale_sweep, plt, sweep_table):
    _, _ax = plt.subplots(figsize=(8, 4))
    plot_scale_sweep(sweep_table, ax=_ax)
    _ax.set_title("Expected log predictive density by prior scale")
    plt.gca()
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Choosing a Link Function

    The same hierarchical model with two ways of turning $\alpha_j$ into a probability:
    the logistic function and the standard normal CDF. `az.compare` ranks them.
    """)
    return


@app.cell
def _(
    LINK_VARIANTS,
    cache,
    gate,
    link_comparison,
    sampler_config,
    shots,
    variant_key,
):
    gate([variant_key(_v, shots, sampler_config) for _v in LINK_VARIANTS], "The link comparison")
    link_table, _ = link_comparison(shots, sampler_config, cache)
    link_table
    return


@app.cell(hide_code=True)
def _(mo):
    mo.md(r"""
    ## Polling Time Series

    A latent value drifts between polls and decays toward zero with the elapsed time:

    $$z_t \sim N\left(\rho^{\Delta t} z_{t-1},\ \sigma \sqrt{1 - \rho^{2 \Delta t}}\right), \quad
    y_t \sim \text{Binomial}\left(n, \text{logit}^{-1}(\mu + z_t)\right)$$
    """)
    return


@app.cell
def _(seed_ui, simulate_polls):
    polls = simulate_polls(seed=seed_ui.value + 2)
    return (polls,)


@app.cell
def _(
    POLL_MU,
    POLL_RHO,
    POLL_SIGMA,
    cache,
    fit_polls,
    gate,
    poll_key,
    polls,
    sampler_config,
    summarize,
):
    gate([poll_key(polls, sampler_config)], "The polling model")
    poll_fit = fit_polls(polls, sampler_config, cache=cache)
    summarize(
        poll_fit,
        ["mu", "sigma", "rho"],
        truth={"mu": POLL_MU, "sigma": POLL_SIGMA, "rho": POLL_RHO},
    )
    return (poll_fit,)


@app.cell
def _(plot_polls, plt, poll_fit, polls):
    plot_polls(polls, poll_fit)
    plt.gca()
    return


@app.cell
def _(mo):
    mo.md("""
    <br>
    <br>
    ---
    ## Resources

    Vehtari, Gelman and Gabry (2017), *Practical Bayesian model evaluation using leave-one-out cross-validation and WAIC*.

    The [ArviZ](https://www.arviz.org/en/latest/) documentation for `az.loo` and `az.compare`.
    """)
    return


if __name__ == "__main__":
    app.run()
