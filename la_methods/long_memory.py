"""
long_memory.py

Long-range dependence in students' time series (e.g. daily activity,
response times, self-reports).

The Hurst exponent H is estimated with the Whittle approximation to the
Gaussian likelihood of fractional Gaussian noise: the periodogram at the
Fourier frequencies is compared with the fGn spectral density and the scale
is profiled out, leaving a one-dimensional bounded minimization over H.
H = 0.5 is short memory, H > 0.5 persistent, H < 0.5 anti-persistent; the
fractional differencing parameter is d = H - 0.5.
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy.optimize import minimize_scalar
from scipy.signal import fftconvolve
from scipy.special import gamma

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_histogram, plot_time_series, save_figure

logger = get_logger("la_methods.long_memory")

MIN_LENGTH = 16
HURST_BOUNDS = (0.01, 0.99)
D_BOUNDS = (-0.49, 0.99)


def _as_series(x) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    x = x[np.isfinite(x)]
    if x.size < MIN_LENGTH:
        raise ValueError(f"Series has {x.size} finite values; at least {MIN_LENGTH} are needed")
    if np.ptp(x) == 0:
        raise ValueError("Series has zero variance")
    return x


def periodogram(x):
    """
    Periodogram I(λ_k) = |Σ x_t exp(-iλ_k t)|² / (2πn) of the demeaned
    series at λ_k = 2πk/n, k = 1..⌊(n-1)/2⌋. Returns (freqs, I).
    """
    x = _as_series(x)
    n = x.size
    m = (n - 1) // 2
    spectrum = np.fft.fft(x - x.mean())
    k = np.arange(1, m + 1)
    freqs = 2 * np.pi * k / n
    power = np.abs(spectrum[k]) ** 2 / (2 * np.pi * n)
    return freqs, power


def fgn_spectral_density(freqs, hurst: float, n_terms: int = 200):
    """
    Spectral density of unit-variance fractional Gaussian noise, with the
    aliasing sum truncated at |j| <= n_terms.
    """
    freqs = np.asarray(freqs, dtype=float)
    j = np.arange(-n_terms, n_terms + 1)
    aliased = np.abs(2 * np.pi * j[None, :] + freqs[:, None]) ** (-2 * hurst - 1)
    scale = 2 * np.sin(np.pi * hurst) * gamma(2 * hurst + 1)
    return scale * (1 - np.cos(freqs)) * aliased.sum(axis=1)


def whittle_objective(hurst: float, freqs, power) -> float:
    f = fgn_spectral_density(freqs, hurst)
    return np.log(np.mean(power / f)) + np.mean(np.log(f))


def whittle_estimate(x) -> dict:
    """
    Whittle estimate of the Hurst exponent (fGn model).
    """
    x = _as_series(x)
    freqs, power = periodogram(x)
    res = minimize_scalar(whittle_objective, bounds=HURST_BOUNDS, args=(freqs, power),
                          method="bounded", options={"xatol": 1e-5})
    hurst = float(res.x)
    return {"hurst": hurst, "d": hurst - 0.5, "n": int(x.size), "objective": float(res.fun)}


def local_whittle_estimate(x, bandwidth: int = None) -> float:
    """
    Semiparametric (Robinson) local Whittle estimate of d using the lowest
    `bandwidth` Fourier frequencies (default ⌊n^0.65⌋).
    """
    x = _as_series(x)
    freqs, power = periodogram(x)
    m = bandwidth or int(np.floor(x.size ** 0.65))
    m = max(2, min(m, len(freqs)))
    lam, I = freqs[:m], power[:m]
    log_lam = np.log(lam)

    def objective(d):
        return np.log(np.mean(lam ** (2 * d) * I)) - 2 * d * np.mean(log_lam)

    res = minimize_scalar(objective, bounds=D_BOUNDS, method="bounded", options={"xatol": 1e-5})
    return float(res.x)


def simulate_arfima(n: int, d: float, seed: int = None, burn_in: int = None) -> np.ndarray:
    """
    ARFIMA(0, d, 0) sample from the truncated MA(∞) representation
    ψ_k = ψ_{k-1} (k - 1 + d) / k.
    """
    rng = np.random.default_rng(seed)
    burn_in = n if burn_in is None else burn_in
    total = n + burn_in
    k = np.arange(1, total)
    psi = np.concatenate([[1.0], np.cumprod((k - 1 + d) / k)])
    noise = rng.standard_normal(total)
    return fftconvolve(noise, psi)[:total][burn_in:]


def classify_memory(hurst: float, tolerance: float = 0.05) -> str:
    if hurst < 0.5 - tolerance:
        return "anti-persistent"
    if hurst > 0.5 + tolerance:
        return "long memory"
    return "short memory"


def estimate_by_person(df: pd.DataFrame, person: str, value: str, time: str = None,
                       min_length: int = 64) -> pd.DataFrame:
    """
    Whittle H and local-Whittle d for each person's series. Persons with
    fewer than `min_length` observations (or constant series) are skipped.
    """
    for col in [person, value] + ([time] if time else []):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found")

    rows = []
    for pid, block in df.groupby(person, sort=True):
        if time:
            block = block.sort_values(time)
        series = block[value].dropna().to_numpy(dtype=float)
        if series.size < max(min_length, MIN_LENGTH):
            logger.debug(f"Skipping {pid}: only {series.size} observations")
            continue
        try:
            est = whittle_estimate(series)
            d_local = local_whittle_estimate(series)
        except ValueError as exc:
            logger.warning(f"Skipping {pid}: {exc}")
            continue
        rows.append({
            person: pid,
            "n": int(series.size),
            "hurst": est["hurst"],
            "d": est["d"],
            "d_local_whittle": d_local,
            "memory": classify_memory(est["hurst"]),
        })
    return pd.DataFrame(rows, columns=[person, "n", "hurst", "d", "d_local_whittle", "memory"])


def run_long_memory(df: pd.DataFrame, value: str, person: str = None, time: str = None,
                    results_dir: str = None, min_length: int = 64) -> pd.DataFrame:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)

    if person is None:
        series = (df.sort_values(time) if time else df)[value].to_numpy(dtype=float)
        est = whittle_estimate(series)
        table = pd.DataFrame([{
            "n": int(np.isfinite(series).sum()),
            "hurst": est["hurst"],
            "d": est["d"],
            "d_local_whittle": local_whittle_estimate(series),
            "memory": classify_memory(est["hurst"]),
        }])
        freqs, power = periodogram(series)
        fitted = fgn_spectral_density(freqs, est["hurst"])
        fitted *= np.mean(power / fitted)
        plt.figure(figsize=(6, 4))
        plt.loglog(freqs, power, ".", alpha=0.5, label="Periodogram")
        plt.loglog(freqs, fitted, color="red", lw=2, label=f"fGn, H = {est['hurst']:.2f}")
        plt.xlabel("Frequency (radians)")
        plt.ylabel("Power")
        plt.title(f"Whittle Fit: {value}")
        plt.legend()
        plt.tight_layout()
        save_figure(os.path.join(results_dir, "whittle_fit.png"))

        plot_time_series(np.arange(series.size), series, xlabel=time or "index", ylabel=value,
                         title=f"{value} over time")
        save_figure(os.path.join(results_dir, "series.png"))
    else:
        table = estimate_by_person(df, person, value, time, min_length)
        if not table.empty:
            plot_histogram(table["hurst"], bins=20, xlabel="Hurst exponent",
                           title=f"Hurst Exponents of {value} per {person}")
            save_figure(os.path.join(results_dir, "hurst_by_person.png"))
            logger.info(f"Memory classes:\n{table['memory'].value_counts().to_string()}")

    table.to_csv(os.path.join(results_dir, "long_memory_estimates.csv"), index=False)
    logger.info(f"Long-memory estimates for '{value}':\n{table.head(20).to_string(index=False)}")
    return table
