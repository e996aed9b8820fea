"""Grid search for SISD parameters.

Candidates are ``(training_window, mu, beta)`` triples, generated in the
order window (outer), mu, beta (inner).  Every candidate replays the
training window with the recurrence and is scored by the RMSE of the
cumulative-infected curve over the last ``loss_limit`` days.  The best
candidate is the first one reaching the minimum, so a later candidate with
an equal score never replaces it.
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from sisd.config import GridConfig
from sisd.simulator import reconstruct
from sisd.types import CompartmentSeries, FitParameters, FitResult

logger = logging.getLogger(__name__)


class NonConvergentFitError(RuntimeError):
    """No grid candidate produced a finite RMSE."""


class GridFitter:
    """Exhaustive search over training window, mortality and transmission.

    Parameters
    ----------
    population : float
    gamma : float
        Recovery rate (fixed, not searched).
    grid : GridConfig, optional
        Mortality / transmission grid; ``grid.max_workers`` enables a
        thread pool over training windows.
    """

    def __init__(
        self,
        population: float,
        gamma: float,
        grid: GridConfig | None = None,
    ) -> None:
        self.population = population
        self.gamma = gamma
        self.grid = grid or GridConfig()

    # ---------------------------------------------------------------
    # Candidate generation
    # ---------------------------------------------------------------

    def windows(self, initial: int, last_limit: int) -> range:
        return range(initial, initial + last_limit + 1)

    def candidate_grid(
        self,
        initial: int,
        last_limit: int,
        mu: float | None = None,
    ) -> Iterator[FitParameters]:
        """All candidates, in tie-break order."""
        for window, mu_k, beta_k in itertools.product(
            self.windows(initial, last_limit),
            self.grid.mu_grid(mu),
            self.grid.beta_grid(),
        ):
            yield FitParameters(
                training_window=window, mu=float(mu_k), beta=float(beta_k),
            )

    # ---------------------------------------------------------------
    # Scoring
    # ---------------------------------------------------------------

    def score_window(
        self,
        observed: CompartmentSeries,
        anchor: int,
        window: int,
        loss_limit: int,
        mu_grid: NDArray,
        beta_grid: NDArray,
    ) -> NDArray:
        """RMSE of every (mu, beta) pair for one training window.

        Returns
        -------
        array of shape (len(mu_grid), len(beta_grid))
            Non-finite scores are replaced by ``inf``.
        """
        traj = reconstruct(
            self.population,
            beta_grid[np.newaxis, :],
            self.gamma,
            mu_grid[:, np.newaxis],
            observed,
            anchor,
            window,
        )
        simulated = traj.C[-loss_limit:]
        actual = observed.C[anchor - loss_limit + 1:anchor + 1]
        with np.errstate(over="ignore", invalid="ignore"):
            err = simulated - actual[:, np.newaxis, np.newaxis]
            rmse = np.sqrt(np.mean(err ** 2, axis=0))
        return np.where(np.isfinite(rmse), rmse, np.inf)

    # ---------------------------------------------------------------
    # Search
    # ---------------------------------------------------------------

    def fit(
        self,
        observed: CompartmentSeries,
        anchor: int,
        initial: int,
        last_limit: int,
        mu: float | None = None,
    ) -> FitResult:
        """Find the best ``(training_window, mu, beta)``.

        Parameters
        ----------
        observed : CompartmentSeries
            Compartments the reconstruction starts from and is scored on.
        anchor : int
            0-based position of the last training day.
        initial : int
            Smallest training window; also the number of final days scored.
        last_limit : int
            Extra training days searched beyond ``initial``.
        mu : float, optional
            Fixed mortality rate.

        Returns
        -------
        FitResult

        Raises
        ------
        ValueError
            If the largest window reaches before the series start or the
            anchor lies outside the series.
        NonConvergentFitError
            If every candidate has a non-finite RMSE.
        """
        if initial < 1:
            raise ValueError(f"initial window must be >= 1, got {initial}")
        if not 0 <= anchor < len(observed):
            raise ValueError(
                f"anchor {anchor} outside series of length {len(observed)}"
            )
        windows = list(self.windows(initial, last_limit))
        if anchor - windows[-1] < 0:
            raise ValueError(
                f"Not enough history: a {windows[-1]}-day window needs the "
                f"anchor at position >= {windows[-1]}, got {anchor}"
            )

        mu_grid = self.grid.mu_grid(mu)
        beta_grid = self.grid.beta_grid()
        loss_limit = initial

        def _score(window: int) -> NDArray:
            return self.score_window(
                observed, anchor, window, loss_limit, mu_grid, beta_grid,
            )

        if self.grid.max_workers and self.grid.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.grid.max_workers) as pool:
                scores = list(pool.map(_score, windows))
        else:
            scores = [_score(w) for w in windows]

        # Per-window bests, first minimum in (mu, beta) order
        history: list[dict] = []
        for window, rmse in zip(windows, scores):
            j_mu, j_beta = np.unravel_index(int(np.argmin(rmse)), rmse.shape)
            history.append({
                "training_window": window,
                "mu": float(mu_grid[j_mu]),
                "beta": float(beta_grid[j_beta]),
                "rmse": float(rmse[j_mu, j_beta]),
            })

        # Scores are row-major per window, the same order candidate_grid yields
        flat = np.concatenate([s.ravel() for s in scores])
        best: FitParameters | None = None
        best_rmse = np.inf
        for candidate, score in zip(
            self.candidate_grid(initial, last_limit, mu), flat
        ):
            if score < best_rmse:
                best_rmse = float(score)
                best = candidate

        n_candidates = len(flat)
        if best is None:
            raise NonConvergentFitError(
                f"None of {n_candidates} grid candidates produced a finite RMSE"
            )

        logger.info(
            "Best fit: window=%d mu=%.4f beta=%.2f rmse=%.2f (%d candidates)",
            best.training_window, best.mu, best.beta, best_rmse, n_candidates,
        )
        return FitResult(
            params=best,
            rmse=best_rmse,
            n_candidates=n_candidates,
            window_history=history,
        )
