"""Cumulative compartment states from daily case counts."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from sisd.types import CaseTable, CompartmentSeries


def derive_compartments(
    confirmed: NDArray,
    recovered: NDArray,
    deceased: NDArray,
    population: float,
    dates: NDArray | None = None,
) -> CompartmentSeries:
    """Susceptible, active, cumulative and deceased counts per day.

    Day 0 is seeded from the first observations::

        S = N - c[0],  I = c[0] - r[0],  C = c[0],  D = d[0]

    and every later day follows::

        C[t] = C[t-1] + c[t]
        I[t] = I[t-1] + c[t] - r[t] - d[t]
        S[t] = N - I[t]
        D[t] = D[t-1] + d[t]

    Parameters
    ----------
    confirmed, recovered, deceased : arrays of shape (n,)
        Daily new counts.
    population : float
        Total population N.
    dates : array of shape (n,), optional

    Returns
    -------
    CompartmentSeries
    """
    c = np.asarray(confirmed, dtype=np.float64)
    r = np.asarray(recovered, dtype=np.float64)
    d = np.asarray(deceased, dtype=np.float64)
    n = len(c)
    if n == 0:
        raise ValueError("Cannot derive compartments from an empty series")
    if len(r) != n or len(d) != n:
        raise ValueError(
            f"Length mismatch: confirmed={n}, recovered={len(r)}, deceased={len(d)}"
        )

    C = np.cumsum(c)
    D = np.cumsum(d)
    # The seed day does not subtract deaths from the active count
    flow = c - r - d
    flow[0] = c[0] - r[0]
    I = np.cumsum(flow)
    S = population - I
    S[0] = population - c[0]

    if dates is None:
        dates = np.arange(n).astype("datetime64[D]")

    return CompartmentSeries(
        S=S,
        I=I,
        C=C,
        D=D,
        day=np.arange(n),
        dates=np.asarray(dates, dtype="datetime64[D]"),
    )


def compartments_from_table(table: CaseTable, population: float) -> CompartmentSeries:
    """Derive compartments from a :class:`CaseTable`."""
    return derive_compartments(
        table.confirmed,
        table.recovered,
        table.deceased,
        population,
        dates=table.dates,
    )
