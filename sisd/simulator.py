"""Discrete-time SISD recurrence.

One day of the model::

    S' = S - S*I*beta/N + gamma*I
    I' = I + S*I*beta/N - gamma*I - mu*I
    C' = C + S*I*beta/N
    D' = D + mu*I

``beta`` and ``mu`` may be numpy arrays.  The recurrence then broadcasts
and a single call evaluates a whole parameter grid with exactly the
arithmetic of the scalar call.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from sisd.types import CompartmentSeries, CompartmentState


@dataclass
class SISTrajectory:
    """States along a simulation, first axis is time."""
    S: NDArray
    I: NDArray
    C: NDArray
    D: NDArray
    first_day: int = 0

    def __len__(self) -> int:
        return len(self.C)

    def state(self, k: int) -> CompartmentState:
        return CompartmentState(
            susceptible=float(self.S[k]),
            active_infected=float(self.I[k]),
            cumulative_infected=float(self.C[k]),
            cumulative_deceased=float(self.D[k]),
            day=self.first_day + k,
        )


def step(S, I, C, D, N: float, beta, gamma: float, mu):
    """Advance the model by one day."""
    new_infections = S * I * beta / N
    S_next = S - new_infections + gamma * I
    I_next = I + new_infections - gamma * I - mu * I
    C_next = C + new_infections
    D_next = D + mu * I
    return S_next, I_next, C_next, D_next


def simulate(
    N: float,
    beta: float | NDArray,
    gamma: float,
    mu: float | NDArray,
    start: CompartmentState,
    n_steps: int,
) -> SISTrajectory:
    """Run the recurrence ``n_steps`` times from ``start``.

    Parameters
    ----------
    N : float
        Total population.
    beta, mu : float or array
        Transmission and mortality rates; arrays broadcast together.
    gamma : float
        Recovery rate.
    start : CompartmentState
    n_steps : int

    Returns
    -------
    SISTrajectory
        ``n_steps + 1`` states including ``start``; each state has the
        broadcast shape of ``beta`` and ``mu``.
    """
    if n_steps < 0:
        raise ValueError(f"n_steps must be non-negative, got {n_steps}")
    shape = np.broadcast(np.asarray(beta), np.asarray(mu)).shape

    S = np.empty((n_steps + 1,) + shape)
    I = np.empty_like(S)
    C = np.empty_like(S)
    D = np.empty_like(S)
    S[0] = start.susceptible
    I[0] = start.active_infected
    C[0] = start.cumulative_infected
    D[0] = start.cumulative_deceased

    s, i, c, d = S[0], I[0], C[0], D[0]
    for k in range(1, n_steps + 1):
        s, i, c, d = step(s, i, c, d, N, beta, gamma, mu)
        S[k], I[k], C[k], D[k] = s, i, c, d

    return SISTrajectory(S=S, I=I, C=C, D=D, first_day=start.day)


def reconstruct(
    N: float,
    beta: float | NDArray,
    gamma: float,
    mu: float | NDArray,
    observed: CompartmentSeries,
    anchor: int,
    window: int,
) -> SISTrajectory:
    """Replay the last ``window`` days up to the anchor.

    Starts from the observed state ``window`` days before ``anchor`` and
    steps forward to it, covering positions ``anchor - window .. anchor``.
    """
    first = anchor - window
    if first < 0:
        raise ValueError(
            f"Window of {window} days reaches before the series start "
            f"(anchor at position {anchor})"
        )
    return simulate(N, beta, gamma, mu, observed.state(first), window)


def forecast(
    N: float,
    beta: float | NDArray,
    gamma: float,
    mu: float | NDArray,
    observed: CompartmentSeries,
    anchor: int,
    n_days: int,
) -> SISTrajectory:
    """Project ``n_days`` beyond the anchor.

    The anchor state itself is dropped: the trajectory covers positions
    ``anchor + 1 .. anchor + n_days``.
    """
    traj = simulate(N, beta, gamma, mu, observed.state(anchor), n_days)
    return SISTrajectory(
        S=traj.S[1:],
        I=traj.I[1:],
        C=traj.C[1:],
        D=traj.D[1:],
        first_day=traj.first_day + 1,
    )
