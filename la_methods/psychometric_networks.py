"""
psychometric_networks.py

Network psychometrics for questionnaire and experience-sampling data.

* Exploratory graph analysis: a regularized partial-correlation network
  (graphical lasso) whose communities are read as latent dimensions, with a
  bootstrap check of how stable the dimensions and item assignments are.
* Idiographic networks: a lag-1 vector autoregression per person giving a
  temporal network (who predicts whom at the next time point) and a
  contemporaneous network (partial correlations of the VAR residuals).
"""

import os

import networkx as nx
import numpy as np
import pandas as pd
from sklearn.covariance import GraphicalLassoCV
from statsmodels.tsa.api import VAR

from la_methods import config
from la_methods.data_loading import standardize
from la_methods.logging_utils import get_logger
from la_methods.network_analysis import detect_communities
from la_methods.plotting_utils import plot_network, save_figure

logger = get_logger("la_methods.psychometric")


def precision_to_partial_correlation(precision) -> np.ndarray:
    precision = np.asarray(precision, dtype=float)
    d = np.sqrt(np.diag(precision))
    pcor = -precision / np.outer(d, d)
    np.fill_diagonal(pcor, 0.0)
    return pcor


def _inverse(matrix):
    try:
        return np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        logger.warning("Singular matrix; using the pseudo-inverse")
        return np.linalg.pinv(matrix)


def partial_correlation_network(df: pd.DataFrame, method: str = "glasso") -> pd.DataFrame:
    """
    Partial correlations between the columns of `df`, from the graphical lasso
    precision matrix (cross-validated penalty) or, with method="pcor", from
    the plain inverse of the correlation matrix.
    """
    data = df.dropna()
    if data.shape[1] < 3:
        raise ValueError("At least three variables are needed for a network")
    if data.shape[0] <= data.shape[1]:
        raise ValueError(f"Need more observations ({data.shape[0]}) than variables ({data.shape[1]})")
    Z = standardize(data).to_numpy()

    if method == "glasso":
        model = GraphicalLassoCV().fit(Z)
        logger.debug(f"Graphical lasso alpha = {model.alpha_:.4f}")
        precision = model.precision_
    elif method == "pcor":
        precision = _inverse(np.corrcoef(Z, rowvar=False))
    else:
        raise ValueError(f"Unknown network estimation method '{method}'")

    pcor = precision_to_partial_correlation(precision)
    return pd.DataFrame(pcor, index=data.columns, columns=data.columns)


def network_to_graph(weights: pd.DataFrame, directed: bool = False, threshold: float = 1e-8):
    G = nx.DiGraph() if directed else nx.Graph()
    G.add_nodes_from(weights.index)
    for i, src in enumerate(weights.index):
        for j, dst in enumerate(weights.columns):
            if i == j or (not directed and j <= i):
                continue
            w = weights.iloc[i, j]
            if abs(w) > threshold:
                G.add_edge(src, dst, weight=float(w))
    return G


def exploratory_graph_analysis(df: pd.DataFrame, method: str = "glasso", seed: int = None) -> dict:
    """
    Returns the network, item -> dimension (1-based; NaN for isolated items),
    the number of dimensions and each item's node strength.
    """
    network = partial_correlation_network(df, method)
    G = network_to_graph(network)
    A = nx.Graph()
    A.add_nodes_from(G.nodes())
    A.add_weighted_edges_from((u, v, abs(d["weight"])) for u, v, d in G.edges(data=True))

    membership = detect_communities(A, seed=seed)
    sizes = pd.Series(membership).value_counts()
    dims = {}
    next_dim = 1
    for community in sorted(set(membership.values())):
        if sizes[community] >= 2:
            dims[community] = next_dim
            next_dim += 1
    dimension = pd.Series({item: dims.get(membership[item], np.nan) for item in network.index},
                          name="dimension")
    strength = network.abs().sum(axis=1).rename("strength")
    n_dim = int(dimension.nunique())
    logger.info(f"EGA: {n_dim} dimensions for {len(network)} items")
    return {"network": network, "graph": G, "dimension": dimension, "n_dimensions": n_dim,
            "strength": strength}


def _align(reference: pd.Series, replicate: pd.Series) -> pd.Series:
    """
    Relabel replicate dimensions to the reference dimension they overlap most.
    """
    mapping = {}
    for dim in replicate.dropna().unique():
        items = replicate.index[replicate == dim]
        overlap = reference.loc[items].value_counts()
        mapping[dim] = overlap.index[0] if len(overlap) else np.nan
    return replicate.map(mapping)


def bootstrap_ega(df: pd.DataFrame, n_boot: int = 100, method: str = "glasso", seed: int = None) -> dict:
    """
    Re-run EGA on `n_boot` bootstrap samples. Returns the frequency of each
    number of dimensions and per-item stability (share of replicates in which
    the item lands in its empirical dimension).
    """
    seed = config.RANDOM_STATE if seed is None else seed
    data = df.dropna()
    empirical = exploratory_graph_analysis(data, method, seed)["dimension"]
    rng = np.random.default_rng(seed)

    counts, hits, done = [], pd.Series(0.0, index=empirical.index), 0
    for b in range(n_boot):
        sample = data.iloc[rng.integers(0, len(data), size=len(data))]
        try:
            rep = exploratory_graph_analysis(sample, method, seed + b + 1)
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as exc:
            logger.warning(f"Bootstrap replicate {b} failed: {exc}")
            continue
        counts.append(rep["n_dimensions"])
        aligned = _align(empirical, rep["dimension"])
        # an item isolated in both solutions counts as stable
        hits += ((aligned == empirical) | (aligned.isna() & empirical.isna())).astype(float)
        done += 1

    if done == 0:
        raise ValueError("All bootstrap replicates failed")
    frequency = pd.Series(counts).value_counts(normalize=True).sort_index()
    stability = (hits / done).rename("stability")
    logger.info(f"Bootstrap EGA ({done} replicates): dimensions {frequency.to_dict()}")
    return {"dimension_frequency": frequency, "item_stability": stability,
            "empirical_dimension": empirical, "replicates": done}


def _fit_var(data: pd.DataFrame, lags: int) -> dict:
    data = standardize(data)
    results = VAR(data.to_numpy()).fit(lags)
    # coefs[0][i, j]: effect of variable j at t-1 on variable i at t
    temporal = pd.DataFrame(results.coefs[0].T, index=data.columns, columns=data.columns)
    precision = _inverse(np.asarray(results.sigma_u))
    contemporaneous = pd.DataFrame(precision_to_partial_correlation(precision),
                                   index=data.columns, columns=data.columns)
    return {"temporal": temporal, "contemporaneous": contemporaneous, "results": results}


def fit_idiographic_var(df: pd.DataFrame, variables, person: str = None, time: str = None,
                        lags: int = 1) -> dict:
    """
    Temporal (rows = predictor at t-1, columns = outcome at t) and
    contemporaneous networks. With `person`, returns {person: networks}
    for every person whose series could be fitted.
    """
    variables = list(variables)
    missing = [c for c in variables + [c for c in (person, time) if c] if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")

    def fit_one(block, label):
        if time:
            block = block.sort_values(time)
        data = block[variables].dropna()
        if len(data) <= lags * len(variables) + 2:
            raise ValueError(f"{label}: {len(data)} observations are too few for a VAR({lags})")
        if (data.std(ddof=1) == 0).any():
            raise ValueError(f"{label}: constant variable(s) {list(data.columns[data.std(ddof=1) == 0])}")
        return _fit_var(data, lags)

    if person is None:
        return fit_one(df, "series")

    fits = {}
    for pid, block in df.groupby(person, sort=True):
        try:
            fits[pid] = fit_one(block, pid)
        except (ValueError, np.linalg.LinAlgError) as exc:
            logger.warning(f"Skipping {pid}: {exc}")
    logger.info(f"Fitted idiographic VAR for {len(fits)} of {df[person].nunique()} persons")
    return fits


def run_ega(df: pd.DataFrame, items=None, n_boot: int = 100, method: str = "glasso",
            results_dir: str = None, seed: int = None) -> dict:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    data = df[items] if items else df.select_dtypes(include=[np.number])
    ega = exploratory_graph_analysis(data, method, seed)
    ega["network"].to_csv(os.path.join(results_dir, "ega_network.csv"))
    pd.concat([ega["dimension"], ega["strength"]], axis=1).to_csv(
        os.path.join(results_dir, "ega_dimensions.csv"))

    membership = {k: int(v) for k, v in ega["dimension"].fillna(0).items()}
    plot_network(ega["graph"], communities=membership,
                 title=f"EGA: {ega['n_dimensions']} dimensions", seed=seed)
    save_figure(os.path.join(results_dir, "ega_network.png"))

    if n_boot:
        boot = bootstrap_ega(data, n_boot, method, seed)
        boot["item_stability"].to_csv(os.path.join(results_dir, "ega_item_stability.csv"))
        boot["dimension_frequency"].to_csv(os.path.join(results_dir, "ega_dimension_frequency.csv"),
                                           header=["frequency"])
        ega["bootstrap"] = boot
    return ega


def run_idiographic(df: pd.DataFrame, variables, person: str = None, time: str = None,
                    results_dir: str = None, seed: int = None) -> dict:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    fits = fit_idiographic_var(df, variables, person, time)
    if person is None:
        fits = {"all": fits}

    for pid, fit in fits.items():
        fit["temporal"].to_csv(os.path.join(results_dir, f"var_temporal_{pid}.csv"))
        fit["contemporaneous"].to_csv(os.path.join(results_dir, f"var_contemporaneous_{pid}.csv"))

    if fits:
        mean_temporal = sum(f["temporal"] for f in fits.values()) / len(fits)
        mean_temporal.to_csv(os.path.join(results_dir, "var_temporal_mean.csv"))
        plot_network(network_to_graph(mean_temporal, directed=True, threshold=0.05),
                     title="Average Temporal Network", seed=seed)
        save_figure(os.path.join(results_dir, "var_temporal_mean.png"))
    return fits
