import os

import numpy as np
import pandas as pd
import pytest

from la_methods.long_memory import (
    classify_memory,
    estimate_by_person,
    fgn_spectral_density,
    local_whittle_estimate,
    periodogram,
    run_long_memory,
    simulate_arfima,
    whittle_estimate,
)


def test_periodogram_peaks_at_signal_frequency():
    t = np.arange(128)
    freqs, power = periodogram(np.sin(2 * np.pi * 8 * t / 128))
    assert len(freqs) == 63
    assert np.argmax(power) == 7
    assert freqs[7] == pytest.approx(2 * np.pi * 8 / 128)


def test_fgn_density_is_flat_for_white_noise():
    freqs = np.linspace(0.05, np.pi, 50)
    f = fgn_spectral_density(freqs, 0.5)
    np.testing.assert_allclose(f, f.mean(), rtol=0.01)
    # persistent noise concentrates power at low frequencies
    g = fgn_spectral_density(freqs, 0.8)
    assert g[0] > g[-1]


def test_whittle_on_white_noise():
    x = np.random.default_rng(0).standard_normal(2048)
    est = whittle_estimate(x)
    assert 0.42 < est["hurst"] < 0.58
    assert est["d"] == pytest.approx(est["hurst"] - 0.5)
    assert est["n"] == 2048
    assert abs(local_whittle_estimate(x)) < 0.15


def test_whittle_detects_long_memory():
    x = simulate_arfima(4096, d=0.3, seed=1)
    assert len(x) == 4096
    assert whittle_estimate(x)["hurst"] > 0.65
    assert 0.15 < local_whittle_estimate(x) < 0.45


def test_invalid_series():
    with pytest.raises(ValueError):
        whittle_estimate(np.arange(10.0))
    with pytest.raises(ValueError):
        whittle_estimate(np.ones(100))
    # small measurement scales are not mistaken for constant series
    tiny = np.random.default_rng(6).standard_normal(512) * 1e-9
    assert 0.38 < whittle_estimate(tiny)["hurst"] < 0.62
    # non-finite values are dropped before estimation
    x = np.random.default_rng(2).standard_normal(300)
    x[::10] = np.nan
    assert whittle_estimate(x)["n"] == 270


@pytest.mark.parametrize("hurst, expected", [
    (0.3, "anti-persistent"), (0.52, "short memory"), (0.8, "long memory"),
])
def test_classify_memory(hurst, expected):
    assert classify_memory(hurst) == expected


def test_estimate_by_person_skips_short_series():
    rng = np.random.default_rng(3)
    df = pd.concat([
        pd.DataFrame({"student": "p1", "day": np.arange(512), "clicks": rng.standard_normal(512)}),
        pd.DataFrame({"student": "p2", "day": np.arange(512), "clicks": simulate_arfima(512, 0.4, seed=4)}),
        pd.DataFrame({"student": "p3", "day": np.arange(20), "clicks": rng.standard_normal(20)}),
    ])
    table = estimate_by_person(df.sample(frac=1.0, random_state=0), "student", "clicks", time="day")
    assert table["student"].tolist() == ["p1", "p2"]
    h = table.set_index("student")["hurst"]
    assert h["p2"] > h["p1"]
    with pytest.raises(KeyError):
        estimate_by_person(df, "student", "missing")


def test_run_long_memory_single_series(results_dir):
    df = pd.DataFrame({"t": np.arange(600), "rt": simulate_arfima(600, 0.2, seed=5)})
    table = run_long_memory(df, "rt", time="t", results_dir=results_dir)
    assert len(table) == 1
    assert os.path.exists(os.path.join(results_dir, "whittle_fit.png"))
    assert os.path.exists(os.path.join(results_dir, "long_memory_estimates.csv"))
