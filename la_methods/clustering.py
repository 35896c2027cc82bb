# clustering.py

import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.cluster import KMeans
from sklearn.metrics import calinski_harabasz_score, davies_bouldin_score, silhouette_score
from sklearn.mixture import GaussianMixture
from sklearn.preprocessing import StandardScaler

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import save_figure

logger = get_logger("la_methods.clustering")


def _check_k_range(X, k_range):
    k_range = [k for k in k_range if 2 <= k < len(X)]
    if not k_range:
        raise ValueError("k_range must contain values between 2 and n_samples - 1")
    return k_range


def select_kmeans(X, k_range=range(2, 8), random_state: int = None) -> pd.DataFrame:
    """
    Silhouette, Davies-Bouldin and Calinski-Harabasz indices for each k.
    """
    random_state = config.RANDOM_STATE if random_state is None else random_state
    rows = []
    for k in _check_k_range(X, k_range):
        labels = KMeans(n_clusters=k, n_init=10, random_state=random_state).fit_predict(X)
        rows.append({
            "k": k,
            "silhouette": silhouette_score(X, labels),
            "davies_bouldin": davies_bouldin_score(X, labels),
            "calinski_harabasz": calinski_harabasz_score(X, labels),
        })
    return pd.DataFrame(rows)


def fit_kmeans(X, k: int, random_state: int = None) -> KMeans:
    random_state = config.RANDOM_STATE if random_state is None else random_state
    return KMeans(n_clusters=k, n_init=10, random_state=random_state).fit(X)


def select_gaussian_mixture(X, k_range=range(1, 8), covariance_type: str = "full",
                            random_state: int = None) -> pd.DataFrame:
    random_state = config.RANDOM_STATE if random_state is None else random_state
    rows = []
    for k in [k for k in k_range if 1 <= k < len(X)]:
        gm = GaussianMixture(n_components=k, covariance_type=covariance_type,
                             n_init=3, random_state=random_state).fit(X)
        rows.append({"k": k, "bic": gm.bic(X), "aic": gm.aic(X)})
    return pd.DataFrame(rows)


def cluster_profiles(df: pd.DataFrame, labels) -> pd.DataFrame:
    """
    Mean of every numeric column per cluster, plus cluster size.
    """
    grouped = df.select_dtypes(include=[np.number]).assign(cluster=np.asarray(labels)).groupby("cluster")
    profiles = grouped.mean()
    profiles.insert(0, "size", grouped.size())
    return profiles


def run_clustering(df: pd.DataFrame, features=None, k: int = None, method: str = "kmeans",
                   results_dir: str = None, random_state: int = None):
    """
    Standardize `features`, choose k (silhouette for k-means, BIC for the
    mixture) unless given, fit, and write cluster_profiles.csv.
    Returns (labels, profiles).
    """
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    random_state = config.RANDOM_STATE if random_state is None else random_state
    features = features or df.select_dtypes(include=[np.number]).columns.tolist()
    data = df[features].dropna()
    X = StandardScaler().fit_transform(data)

    if method == "kmeans":
        if k is None:
            scores = select_kmeans(X, random_state=random_state)
            scores.to_csv(os.path.join(results_dir, "kmeans_selection.csv"), index=False)
            k = int(scores.loc[scores["silhouette"].idxmax(), "k"])
        labels = fit_kmeans(X, k, random_state).labels_
    elif method == "gmm":
        if k is None:
            scores = select_gaussian_mixture(X, random_state=random_state)
            scores.to_csv(os.path.join(results_dir, "gmm_selection.csv"), index=False)
            k = int(scores.loc[scores["bic"].idxmin(), "k"])
        labels = GaussianMixture(n_components=k, n_init=3, random_state=random_state).fit_predict(X)
    else:
        raise ValueError(f"Unknown clustering method '{method}'")
    logger.info(f"{method}: {k} clusters for {len(data)} students")

    profiles = cluster_profiles(data, labels)
    profiles.to_csv(os.path.join(results_dir, f"{method}_cluster_profiles.csv"))
    logger.info(f"Cluster profiles:\n{profiles.round(2).to_string()}")

    z_means = pd.DataFrame(X, columns=features).assign(cluster=labels).groupby("cluster").mean()
    plt.figure(figsize=(max(6, len(features) * 0.6), 4))
    sns.heatmap(z_means, annot=True, fmt=".2f", cmap="vlag", center=0)
    plt.title(f"Standardized Cluster Means ({method}, k={k})")
    plt.tight_layout()
    save_figure(os.path.join(results_dir, f"{method}_cluster_means.png"))

    return pd.Series(labels, index=data.index, name="cluster"), profiles
