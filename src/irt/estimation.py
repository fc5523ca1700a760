# ABOUTME: Estimates learner ability from scored responses via MLE or EAP.
# ABOUTME: MLE uses capped Fisher scoring; EAP integrates a normal prior with Gauss-Hermite quadrature.

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from src.common.config import IrtConfig
from src.common.schemas import ItemParameter, THETA_MAX, THETA_MIN, clamp_theta

from .model import log_likelihood, response_arrays, score_and_information

Responses = Sequence[Tuple[ItemParameter, bool]]

METHOD_MLE = "mle"
METHOD_EAP = "eap"


@dataclass(frozen=True)
class EstimationResult:
    """Ability estimate plus the diagnostics callers need to trust it."""

    theta: float
    se: float
    iterations: int
    converged: bool
    method: str


@lru_cache(maxsize=32)
def gauss_hermite_rule(n_nodes: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Physicists' Gauss-Hermite nodes rescaled for a standard normal density.

    Returns (nodes, weights) with weights summing to 1, so that
    E[f(Z)] ~= sum(weights * f(nodes)) for Z ~ N(0, 1).
    """

    x, w = np.polynomial.hermite.hermgauss(n_nodes)
    nodes = math.sqrt(2.0) * x
    weights = w / math.sqrt(math.pi)
    nodes.setflags(write=False)
    weights.setflags(write=False)
    return nodes, weights


def estimate_theta_mle(
    responses: Responses,
    prior_theta: float = 0.0,
    max_iterations: int = 50,
    convergence_epsilon: float = 1e-4,
    probability_epsilon: float = 1e-6,
) -> EstimationResult:
    """
    Maximum-likelihood ability via Fisher scoring (Newton-Raphson with expected information).

    The likelihood has no finite maximum for all-correct or all-incorrect
    patterns, so those return the prior. Hitting `max_iterations` without
    convergence also returns the prior with converged=False.
    """

    prior = clamp_theta(prior_theta)
    if not responses:
        return EstimationResult(theta=prior, se=float("inf"), iterations=0, converged=False, method=METHOD_MLE)

    a, b, c, u = response_arrays(responses)
    if u.min() == u.max():
        logger.debug("MLE undefined for a uniform response pattern; keeping prior")
        return EstimationResult(theta=prior, se=float("inf"), iterations=0, converged=False, method=METHOD_MLE)

    theta = prior
    for iteration in range(1, max_iterations + 1):
        score, info = score_and_information(theta, a, b, c, u, probability_epsilon)
        if not math.isfinite(info) or info <= 0.0:
            logger.warning("MLE information vanished; falling back to prior")
            return EstimationResult(theta=prior, se=float("inf"), iterations=iteration, converged=False, method=METHOD_MLE)
        step = score / info
        new_theta = min(max(theta + step, THETA_MIN), THETA_MAX)
        delta = abs(new_theta - theta)
        theta = new_theta
        if delta < convergence_epsilon:
            _, info = score_and_information(theta, a, b, c, u, probability_epsilon)
            se = 1.0 / math.sqrt(info) if info > 0 else float("inf")
            return EstimationResult(theta=theta, se=se, iterations=iteration, converged=True, method=METHOD_MLE)

    logger.warning(f"MLE did not converge within {max_iterations} iterations; falling back to prior")
    return EstimationResult(theta=prior, se=float("inf"), iterations=max_iterations, converged=False, method=METHOD_MLE)


def estimate_theta_eap(
    responses: Responses,
    prior_mean: float = 0.0,
    prior_sd: float = 1.0,
    n_nodes: int = 20,
    probability_epsilon: float = 1e-6,
) -> EstimationResult:
    """
    Expected-a-posteriori ability under a N(prior_mean, prior_sd^2) prior.

    Works for any response count, including perfect and zero scores, because
    the prior keeps the posterior proper.
    """

    mean = clamp_theta(prior_mean)
    sd = prior_sd if prior_sd and prior_sd > 0 and math.isfinite(prior_sd) else 1.0
    if not responses:
        return EstimationResult(theta=mean, se=sd, iterations=0, converged=False, method=METHOD_EAP)

    nodes, weights = gauss_hermite_rule(n_nodes)
    grid = mean + sd * nodes
    a, b, c, u = response_arrays(responses)
    ll = log_likelihood(grid, a, b, c, u, probability_epsilon)
    # shift before exponentiating so the largest term is exp(0)
    posterior = weights * np.exp(ll - ll.max())
    total = posterior.sum()
    if not math.isfinite(total) or total <= 0.0:
        return EstimationResult(theta=mean, se=sd, iterations=0, converged=False, method=METHOD_EAP)

    posterior /= total
    theta = float(np.dot(posterior, grid))
    variance = float(np.dot(posterior, (grid - theta) ** 2))
    se = math.sqrt(max(variance, 0.0))
    logger.debug(f"EAP theta={theta:.4f} posterior_sd={se:.4f} nodes={n_nodes}")
    return EstimationResult(theta=clamp_theta(theta), se=se, iterations=1, converged=True, method=METHOD_EAP)


def estimate_ability(
    responses: Responses,
    prior_theta: Optional[float] = None,
    method: Optional[str] = None,
    config: Optional[IrtConfig] = None,
) -> EstimationResult:
    """
    Estimate ability with the configured estimator (EAP unless told otherwise).

    The prior theta is the MLE starting point and fallback, and the EAP prior mean;
    `config.prior_mean` stands in when no prior theta is given.
    """

    config = config or IrtConfig()
    if prior_theta is None:
        prior_theta = config.prior_mean
    chosen = (method or config.default_method).lower()
    if chosen == METHOD_MLE:
        return estimate_theta_mle(
            responses,
            prior_theta=prior_theta,
            max_iterations=config.max_iterations,
            convergence_epsilon=config.convergence_epsilon,
            probability_epsilon=config.probability_epsilon,
        )
    if chosen == METHOD_EAP:
        return estimate_theta_eap(
            responses,
            prior_mean=prior_theta,
            prior_sd=config.prior_sd,
            n_nodes=config.quadrature_nodes,
            probability_epsilon=config.probability_epsilon,
        )
    raise ValueError(f"Unsupported estimation method '{method}'. Expected one of: {METHOD_MLE}, {METHOD_EAP}.")
