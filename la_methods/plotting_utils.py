# plotting_utils.py

import os

import matplotlib
import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd
import seaborn as sns

from la_methods import config


def save_figure(path: str, dpi: int = None) -> str:
    """
    Save the current figure to `path` and close it.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    plt.savefig(path, dpi=dpi or config.FIGURE_DPI)
    plt.close()
    return path


def plot_missingness_bar(missing_counts, title="Missingness"):
    """
    missing_counts: pandas Series indexed by column name, with number of missing values.
    """
    plt.figure(figsize=(10, 6))
    plt.barh(missing_counts.index.astype(str), missing_counts.values, color='steelblue')
    plt.xlabel("Number of Missing Values")
    plt.title(title)
    plt.tight_layout()


def plot_univariate_bar(value_counts, xlabel="", ylabel="", title="", horizontal=False):
    """
    value_counts: pandas Series with index=category, values=count.
    """
    plt.figure(figsize=(8, 5))
    if horizontal:
        plt.barh(value_counts.index.astype(str), value_counts.values, color='teal')
    else:
        plt.bar(value_counts.index.astype(str), value_counts.values, color='teal')
        plt.xticks(rotation=45, ha="right")
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()


def plot_histogram(series, bins=30, xlabel="", ylabel="Frequency", title=""):
    plt.figure(figsize=(8, 5))
    plt.hist(series.dropna(), bins=bins, color='coral', edgecolor='black')
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()


def plot_correlation_heatmap(corr: pd.DataFrame, title="Correlation Matrix"):
    size = max(6, 0.5 * len(corr))
    plt.figure(figsize=(size, size * 0.8))
    sns.heatmap(corr, annot=len(corr) <= 12, fmt=".2f", cmap="vlag",
                vmin=-1, vmax=1, square=True)
    plt.title(title)
    plt.tight_layout()


def plot_confusion_matrix(cm, class_names, title="Confusion Matrix"):
    plt.figure(figsize=(6, 5))
    sns.heatmap(cm, annot=True, fmt="d", cmap="Blues",
                xticklabels=class_names, yticklabels=class_names)
    plt.xlabel("Predicted")
    plt.ylabel("Actual")
    plt.title(title)
    plt.tight_layout()


def plot_roc_curve(fpr, tpr, roc_auc, title="ROC Curve"):
    plt.figure(figsize=(6, 4))
    plt.plot(fpr, tpr, color="navy", lw=2, label=f"AUC = {roc_auc:.3f}")
    plt.plot([0, 1], [0, 1], color="gray", linestyle="--")
    plt.xlabel("False Positive Rate")
    plt.ylabel("True Positive Rate")
    plt.title(title)
    plt.legend(loc="lower right")
    plt.tight_layout()


def plot_predicted_vs_actual(y_true, y_pred, title="Predicted vs. Actual"):
    plt.figure(figsize=(6, 5))
    plt.scatter(y_true, y_pred, s=10, alpha=0.6)
    lo = min(np.min(y_true), np.min(y_pred))
    hi = max(np.max(y_true), np.max(y_pred))
    plt.plot([lo, hi], [lo, hi], color="red", linewidth=1)
    plt.xlabel("Actual")
    plt.ylabel("Predicted")
    plt.title(title)
    plt.tight_layout()


def plot_residuals(fitted, resid, title="Residuals vs. Fitted"):
    plt.figure(figsize=(6, 4))
    plt.scatter(fitted, resid, s=10, alpha=0.6)
    plt.axhline(0, color="black", linewidth=1)
    plt.xlabel("Fitted Values")
    plt.ylabel("Residuals")
    plt.title(title)
    plt.tight_layout()


def plot_importance_bar(importances: pd.Series, title="", xlabel="Importance", top_n=20):
    top = importances.sort_values(ascending=False).head(top_n).iloc[::-1]
    plt.figure(figsize=(8, max(3, 0.3 * len(top) + 1)))
    plt.barh(top.index.astype(str), top.values, color="teal", edgecolor="k")
    plt.xlabel(xlabel)
    plt.title(title)
    plt.tight_layout()


def plot_network(G, communities=None, title="", weight="weight", seed=None):
    """
    Spring-layout drawing; edge widths follow |weight|, node colours follow
    community membership when given (dict node -> community id).
    """
    plt.figure(figsize=(8, 8))
    pos = nx.spring_layout(G, weight=None, seed=seed)
    weights = np.array([abs(d.get(weight, 1.0)) for _, _, d in G.edges(data=True)])
    widths = 0.5 + 4 * weights / weights.max() if len(weights) and weights.max() > 0 else 1.0
    edge_colors = ["firebrick" if d.get(weight, 1.0) < 0 else "darkgreen"
                   for _, _, d in G.edges(data=True)]
    if communities:
        cmap = matplotlib.colormaps["tab10"]
        node_colors = [cmap(communities.get(n, 0) % 10) for n in G.nodes()]
    else:
        node_colors = "lightsteelblue"
    nx.draw_networkx_nodes(G, pos, node_color=node_colors, node_size=500, edgecolors="k")
    nx.draw_networkx_labels(G, pos, font_size=8)
    edge_kwargs = {"arrows": True, "connectionstyle": "arc3,rad=0.1"} if G.is_directed() else {}
    nx.draw_networkx_edges(G, pos, width=widths, edge_color=edge_colors, alpha=0.7, **edge_kwargs)
    plt.title(title)
    plt.axis("off")
    plt.tight_layout()


def plot_state_distribution(distribution: pd.DataFrame, title="State Distribution"):
    """
    distribution: rows = sequence positions, columns = states, values = proportions.
    """
    plt.figure(figsize=(10, 5))
    plt.stackplot(distribution.index, distribution.T.values,
                  labels=[str(c) for c in distribution.columns], alpha=0.9)
    plt.xlabel("Position")
    plt.ylabel("Proportion")
    plt.ylim(0, 1)
    plt.legend(loc="center left", bbox_to_anchor=(1.0, 0.5), fontsize=8)
    plt.title(title)
    plt.tight_layout()


def plot_time_series(x, y, xlabel="", ylabel="", title=""):
    plt.figure(figsize=(10, 5))
    plt.plot(x, y, marker='o', markersize=2, linestyle='-')
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()
