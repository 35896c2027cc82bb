# network_analysis.py

import os

import networkx as nx
import numpy as np
import pandas as pd

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_network, save_figure

logger = get_logger("la_methods.sna")


def build_interaction_graph(edges: pd.DataFrame, source: str, target: str, weight: str = None,
                            directed: bool = True, self_loops: bool = False):
    """
    Build a graph from an edge list (e.g. forum replies: who replied to whom).
    Repeated source/target pairs are summed into a single `weight`.
    """
    for col in [source, target] + ([weight] if weight else []):
        if col not in edges.columns:
            raise KeyError(f"Column '{col}' not found in edge list")

    frame = edges[[source, target]].copy()
    frame["weight"] = edges[weight].astype(float) if weight else 1.0
    frame = frame.dropna(subset=[source, target])
    if not self_loops:
        frame = frame[frame[source] != frame[target]]
    if not directed:
        swap = frame[source].astype(str) > frame[target].astype(str)
        frame.loc[swap, [source, target]] = frame.loc[swap, [target, source]].values
    agg = frame.groupby([source, target], as_index=False)["weight"].sum()

    G = nx.DiGraph() if directed else nx.Graph()
    G.add_weighted_edges_from(agg.itertuples(index=False, name=None))
    logger.info(f"Built {'directed' if directed else 'undirected'} graph: "
                f"{G.number_of_nodes()} nodes, {G.number_of_edges()} edges")
    return G


def _inverse_weights(G):
    H = G.copy()
    for _, _, d in H.edges(data=True):
        d["distance"] = 1.0 / d["weight"] if d.get("weight", 1.0) > 0 else np.inf
    return H


def centrality_table(G) -> pd.DataFrame:
    """
    Degree, strength (weighted degree), betweenness and closeness (using
    1/weight as distance), eigenvector centrality and PageRank per node.
    """
    H = _inverse_weights(G)
    table = pd.DataFrame(index=pd.Index(list(G.nodes()), name="node"))
    if G.is_directed():
        table["in_degree"] = pd.Series(dict(G.in_degree()))
        table["out_degree"] = pd.Series(dict(G.out_degree()))
        table["in_strength"] = pd.Series(dict(G.in_degree(weight="weight")))
        table["out_strength"] = pd.Series(dict(G.out_degree(weight="weight")))
    else:
        table["degree"] = pd.Series(dict(G.degree()))
        table["strength"] = pd.Series(dict(G.degree(weight="weight")))
    table["betweenness"] = pd.Series(nx.betweenness_centrality(H, weight="distance", normalized=True))
    table["closeness"] = pd.Series(nx.closeness_centrality(H, distance="distance"))
    try:
        eig = nx.eigenvector_centrality_numpy(G, weight="weight")
    except (nx.NetworkXException, np.linalg.LinAlgError, RuntimeError, TypeError, ValueError):
        logger.warning("Eigenvector centrality did not converge. Skipping.")
        eig = {}
    table["eigenvector"] = pd.Series(eig, dtype=float)
    table["pagerank"] = pd.Series(nx.pagerank(G, weight="weight")) if G.number_of_edges() else np.nan
    return table


def graph_summary(G) -> dict:
    undirected = G.to_undirected()
    summary = {
        "nodes": G.number_of_nodes(),
        "edges": G.number_of_edges(),
        "density": nx.density(G),
        "transitivity": nx.transitivity(undirected),
        "components": nx.number_connected_components(undirected) if G.number_of_nodes() else 0,
    }
    if G.is_directed():
        summary["reciprocity"] = nx.reciprocity(G) if G.number_of_edges() else 0.0
    if G.number_of_nodes():
        largest = max(nx.connected_components(undirected), key=len)
        summary["diameter_largest_component"] = nx.diameter(undirected.subgraph(largest))
    return summary


def detect_communities(G, method: str = "louvain", seed: int = None) -> dict:
    """
    node -> community index (communities ordered by size, largest first).
    Directed graphs are symmetrized before detection.
    """
    seed = config.RANDOM_STATE if seed is None else seed
    U = G.to_undirected() if G.is_directed() else G
    if method == "louvain":
        communities = nx.community.louvain_communities(U, weight="weight", seed=seed)
    elif method == "greedy":
        communities = nx.community.greedy_modularity_communities(U, weight="weight")
    else:
        raise ValueError(f"Unknown community detection method '{method}'")
    communities = sorted(communities, key=len, reverse=True)
    return {node: i for i, members in enumerate(communities) for node in members}


def modularity(G, membership: dict) -> float:
    U = G.to_undirected() if G.is_directed() else G
    groups = {}
    for node, c in membership.items():
        groups.setdefault(c, set()).add(node)
    return nx.community.modularity(U, list(groups.values()), weight="weight")


def run_sna(edges: pd.DataFrame, source: str, target: str, weight: str = None, directed: bool = True,
            results_dir: str = None, seed: int = None) -> dict:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    G = build_interaction_graph(edges, source, target, weight, directed)

    summary = graph_summary(G)
    for key, value in summary.items():
        logger.info(f"  {key}: {value}")

    centralities = centrality_table(G)
    membership = detect_communities(G, seed=seed)
    centralities["community"] = pd.Series(membership)
    centralities.to_csv(os.path.join(results_dir, "sna_centralities.csv"))
    summary["modularity"] = modularity(G, membership)
    summary["communities"] = len(set(membership.values()))
    pd.Series(summary).to_csv(os.path.join(results_dir, "sna_summary.csv"), header=["value"])

    plot_network(G, communities=membership, title="Interaction Network", seed=seed)
    save_figure(os.path.join(results_dir, "sna_network.png"))
    return {"graph": G, "summary": summary, "centralities": centralities}
