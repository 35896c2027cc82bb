import os

import networkx as nx
import pandas as pd
import pytest

from la_methods.network_analysis import (
    build_interaction_graph,
    centrality_table,
    detect_communities,
    graph_summary,
    modularity,
    run_sna,
)


def test_repeated_replies_are_summed(forum_edges):
    G = build_interaction_graph(forum_edges, "from", "to")
    assert G.is_directed()
    assert G["ana"]["ben"]["weight"] == 3
    assert G["ben"]["ana"]["weight"] == 1
    assert G.number_of_edges() == 25


def test_undirected_graph_merges_both_directions(forum_edges):
    G = build_interaction_graph(forum_edges, "from", "to", directed=False)
    assert not G.is_directed()
    assert G.number_of_edges() == 13
    assert G["ben"]["ana"]["weight"] == 4
    assert G["fay"]["eli"]["weight"] == 2


def test_self_loops_and_weights():
    edges = pd.DataFrame({"s": ["a", "a", "b"], "t": ["a", "b", "a"], "n": [5, 2, 1]})
    G = build_interaction_graph(edges, "s", "t", weight="n")
    assert not G.has_edge("a", "a")
    assert G["a"]["b"]["weight"] == 2.0
    G = build_interaction_graph(edges, "s", "t", weight="n", self_loops=True)
    assert G["a"]["a"]["weight"] == 5.0
    with pytest.raises(KeyError):
        build_interaction_graph(edges, "s", "missing")


def test_graph_summary(forum_edges):
    summary = graph_summary(build_interaction_graph(forum_edges, "from", "to"))
    assert summary["nodes"] == 8
    assert summary["components"] == 1
    assert summary["reciprocity"] == pytest.approx(24 / 25)
    assert summary["diameter_largest_component"] == 3


def test_bridge_students_have_highest_betweenness(forum_edges):
    table = centrality_table(build_interaction_graph(forum_edges, "from", "to"))
    top_two = set(table["betweenness"].nlargest(2).index)
    assert top_two == {"dee", "eli"}
    assert table.loc["ana", "out_strength"] == 5
    assert table.loc["ben", "in_strength"] == 5
    assert table["pagerank"].sum() == pytest.approx(1.0)


def test_communities_split_the_cliques(forum_edges):
    G = build_interaction_graph(forum_edges, "from", "to")
    membership = detect_communities(G, seed=1)
    assert len(set(membership.values())) == 2
    assert membership["ana"] == membership["dee"]
    assert membership["ana"] != membership["eli"]
    assert modularity(G, membership) > 0.3
    greedy = detect_communities(G, method="greedy")
    assert greedy["fay"] == greedy["hal"]
    with pytest.raises(ValueError):
        detect_communities(G, method="walktrap")


def test_run_sna_writes_outputs(forum_edges, results_dir):
    out = run_sna(forum_edges, "from", "to", results_dir=results_dir, seed=1)
    assert isinstance(out["graph"], nx.DiGraph)
    assert out["summary"]["communities"] == 2
    assert "community" in out["centralities"].columns
    for fname in ("sna_centralities.csv", "sna_summary.csv", "sna_network.png"):
        assert os.path.exists(os.path.join(results_dir, fname))
