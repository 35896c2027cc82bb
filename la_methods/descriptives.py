# descriptives.py

import json
import os

import numpy as np
import pandas as pd

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import (
    plot_correlation_heatmap,
    plot_histogram,
    plot_missingness_bar,
    plot_univariate_bar,
    save_figure,
)

logger = get_logger("la_methods.descriptives")


def numeric_summary(df: pd.DataFrame) -> pd.DataFrame:
    numeric = df.select_dtypes(include=[np.number])
    if numeric.empty:
        return pd.DataFrame()
    summary = numeric.describe().T
    summary["missing"] = numeric.isnull().sum()
    summary["skew"] = numeric.skew()
    return summary


def categorical_summary(df: pd.DataFrame, max_levels: int = 50) -> dict:
    """
    Value counts for every non-numeric column (at most `max_levels` levels each).
    """
    summary = {}
    for col in df.select_dtypes(exclude=[np.number]).columns:
        summary[col] = df[col].value_counts(dropna=False).head(max_levels).to_dict()
    return summary


def missingness(df: pd.DataFrame) -> pd.DataFrame:
    out = pd.DataFrame({
        "missing": df.isnull().sum(),
        "fraction": df.isnull().mean(),
    })
    return out.sort_values("missing", ascending=False)


def correlation_matrix(df: pd.DataFrame, method: str = "pearson") -> pd.DataFrame:
    if method not in ("pearson", "spearman", "kendall"):
        raise ValueError(f"Unknown correlation method '{method}'")
    return df.select_dtypes(include=[np.number]).corr(method=method)


def describe_dataset(df: pd.DataFrame, results_dir: str = None, name: str = "dataset") -> dict:
    """
    Writes `<name>_summary.json` plus missingness, correlation and per-column
    distribution figures to `results_dir`. Returns the summary dict.
    """
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    logger.info(f"Describing {name}: {df.shape[0]} rows x {df.shape[1]} columns")

    num_summary = numeric_summary(df)
    cat_summary = categorical_summary(df)
    summary = {
        "n_rows": int(df.shape[0]),
        "n_columns": int(df.shape[1]),
        "numeric": json.loads(num_summary.to_json(orient="index")) if not num_summary.empty else {},
        "categorical": {k: {str(level): int(n) for level, n in v.items()}
                        for k, v in cat_summary.items()},
    }
    summary_path = os.path.join(results_dir, f"{name}_summary.json")
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Saved summary to '{summary_path}'")

    miss = missingness(df)
    if miss["missing"].sum() > 0:
        plot_missingness_bar(miss["missing"].head(20), title=f"{name}: Missing Values per Column")
        save_figure(os.path.join(results_dir, f"{name}_missingness.png"))

    corr = correlation_matrix(df)
    if corr.shape[0] >= 2:
        plot_correlation_heatmap(corr, title=f"{name}: Pearson Correlations")
        save_figure(os.path.join(results_dir, f"{name}_correlations.png"))

    for col in df.select_dtypes(include=[np.number]).columns:
        plot_histogram(df[col], bins=30, xlabel=col, title=f"Distribution of {col}")
        save_figure(os.path.join(results_dir, f"{name}_hist_{col}.png"))

    for col, counts in cat_summary.items():
        if 1 < len(counts) <= 20:
            plot_univariate_bar(pd.Series(counts), xlabel=col, ylabel="Count",
                                title=f"Counts of {col}")
            save_figure(os.path.join(results_dir, f"{name}_bar_{col}.png"))

    return summary
