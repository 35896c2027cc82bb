"""
transition_networks.py

Transition network analysis (TNA) of coded event sequences, e.g. the
discourse codes of a group discussion or the learning actions of a session.

A TNA model is the matrix of transition probabilities between states
(row = from, column = to; rows sum to one for states that are ever left)
plus the distribution of initial states. It is read as a weighted directed
network and summarized with centralities; two groups are compared with a
permutation test on their transition probabilities.
"""

import os

import networkx as nx
import numpy as np
import pandas as pd

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_network, plot_state_distribution, save_figure
from la_methods.psychometric_networks import network_to_graph

logger = get_logger("la_methods.tna")


def sequences_from_long(df: pd.DataFrame, actor: str, code: str, order: str = None):
    """
    One sequence per `actor` (session, group or student) from long data with
    one row per event. Events are ordered by `order` when given, else by row.
    """
    for col in [actor, code] + ([order] if order else []):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found")
    frame = df.dropna(subset=[code])
    if order:
        frame = frame.sort_values([actor, order], kind="mergesort")
    return {key: block[code].tolist() for key, block in frame.groupby(actor, sort=True)}


def _as_list(sequences):
    if isinstance(sequences, dict):
        sequences = list(sequences.values())
    return [[s for s in seq if not (isinstance(s, float) and np.isnan(s))] for seq in sequences]


def _states(sequences, states=None):
    if states is not None:
        return list(states)
    return sorted({s for seq in sequences for s in seq}, key=str)


def transition_counts(sequences, states=None) -> pd.DataFrame:
    sequences = _as_list(sequences)
    states = _states(sequences, states)
    index = {s: i for i, s in enumerate(states)}
    counts = np.zeros((len(states), len(states)))
    for seq in sequences:
        for a, b in zip(seq[:-1], seq[1:]):
            if a in index and b in index:
                counts[index[a], index[b]] += 1
    return pd.DataFrame(counts, index=states, columns=states)


def fit_tna(sequences, states=None):
    """
    Returns (weights, initial): row-normalized transition probabilities and
    initial-state probabilities.
    """
    sequences = [seq for seq in _as_list(sequences) if len(seq) > 0]
    if not sequences:
        raise ValueError("No non-empty sequences to model")
    states = _states(sequences, states)
    counts = transition_counts(sequences, states)
    totals = counts.sum(axis=1)
    weights = counts.div(totals.where(totals > 0, 1.0), axis=0)

    first = pd.Series([seq[0] for seq in sequences]).value_counts()
    initial = first.reindex(states, fill_value=0) / len(sequences)
    initial.name = "initial"
    return weights, initial


def prune(weights: pd.DataFrame, threshold: float = 0.05) -> pd.DataFrame:
    return weights.where(weights >= threshold, 0.0)


def tna_centralities(weights: pd.DataFrame) -> pd.DataFrame:
    """
    In/out strength (self-transitions excluded), betweenness and closeness
    (distance = 1 / probability) for each state.
    """
    values = weights.to_numpy(dtype=float, copy=True)
    np.fill_diagonal(values, 0.0)
    W = pd.DataFrame(values, index=weights.index, columns=weights.columns)
    G = network_to_graph(W, directed=True)
    for _, _, d in G.edges(data=True):
        d["distance"] = 1.0 / d["weight"]

    table = pd.DataFrame(index=W.index)
    table["out_strength"] = W.sum(axis=1)
    table["in_strength"] = W.sum(axis=0)
    table["betweenness"] = pd.Series(nx.betweenness_centrality(G, weight="distance", normalized=True))
    table["closeness"] = pd.Series(nx.closeness_centrality(G, distance="distance"))
    return table


def state_distribution(sequences, states=None) -> pd.DataFrame:
    """
    Proportion of sequences in each state at every position (1-based),
    among the sequences that are still running at that position.
    """
    sequences = _as_list(sequences)
    states = _states(sequences, states)
    length = max((len(s) for s in sequences), default=0)
    rows = []
    for pos in range(length):
        present = pd.Series([seq[pos] for seq in sequences if len(seq) > pos])
        rows.append(present.value_counts(normalize=True).reindex(states, fill_value=0.0))
    return pd.DataFrame(rows, index=pd.RangeIndex(1, length + 1, name="position"), columns=states)


def permutation_test(group_a, group_b, n_perm: int = 1000, states=None, seed: int = None) -> dict:
    """
    Compare transition probabilities of two groups of sequences. Group labels
    are permuted across sequences; p = (1 + #|perm diff| >= |observed diff|) / (1 + n_perm).
    """
    seed = config.RANDOM_STATE if seed is None else seed
    group_a, group_b = _as_list(group_a), _as_list(group_b)
    if not group_a or not group_b:
        raise ValueError("Both groups need at least one sequence")
    states = _states(group_a + group_b, states)

    observed = fit_tna(group_a, states)[0] - fit_tna(group_b, states)[0]
    pooled = group_a + group_b
    n_a = len(group_a)
    rng = np.random.default_rng(seed)
    exceed = np.zeros(observed.shape)
    for _ in range(n_perm):
        perm = rng.permutation(len(pooled))
        diff = (fit_tna([pooled[i] for i in perm[:n_a]], states)[0]
                - fit_tna([pooled[i] for i in perm[n_a:]], states)[0])
        exceed += np.abs(diff.values) >= np.abs(observed.values) - 1e-12
    p_values = pd.DataFrame((exceed + 1) / (n_perm + 1), index=states, columns=states)
    return {"difference": observed, "p_values": p_values}


def run_tna(df: pd.DataFrame, actor: str, code: str, order: str = None, group: str = None,
            threshold: float = 0.05, n_perm: int = 1000, results_dir: str = None,
            seed: int = None) -> dict:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    sequences = sequences_from_long(df, actor, code, order)
    weights, initial = fit_tna(sequences)
    logger.info(f"TNA: {len(sequences)} sequences, {len(weights)} states")

    weights.to_csv(os.path.join(results_dir, "tna_weights.csv"))
    initial.to_csv(os.path.join(results_dir, "tna_initial.csv"))
    centralities = tna_centralities(weights)
    centralities.to_csv(os.path.join(results_dir, "tna_centralities.csv"))
    logger.info(f"Centralities:\n{centralities.round(3).to_string()}")

    plot_network(network_to_graph(prune(weights, threshold), directed=True),
                 title="Transition Network", seed=seed)
    save_figure(os.path.join(results_dir, "tna_network.png"))
    plot_state_distribution(state_distribution(sequences), title="State Distribution by Position")
    save_figure(os.path.join(results_dir, "tna_state_distribution.png"))

    out = {"weights": weights, "initial": initial, "centralities": centralities}
    if group is not None:
        labels = df.dropna(subset=[code]).groupby(actor)[group].first()
        levels = sorted(labels.dropna().unique().tolist())
        if len(levels) != 2:
            raise ValueError(f"Group comparison needs exactly two levels of '{group}', got {levels}")
        a = [sequences[k] for k in labels.index[labels == levels[0]]]
        b = [sequences[k] for k in labels.index[labels == levels[1]]]
        comparison = permutation_test(a, b, n_perm=n_perm, states=list(weights.index), seed=seed)
        comparison["difference"].to_csv(os.path.join(results_dir, "tna_group_difference.csv"))
        comparison["p_values"].to_csv(os.path.join(results_dir, "tna_group_pvalues.csv"))
        out["comparison"] = comparison
    return out
