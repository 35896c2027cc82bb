"""
explainability.py

Post-hoc explanations for the fitted prediction pipelines.

Global: permutation importance (on the raw columns), partial dependence,
mean |SHAP|. Local: SHAP values and LIME weights for single students.
SHAP and LIME operate on the preprocessed design matrix, so one-hot encoded
levels of a categorical variable get their own attribution.
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import shap
from lime.lime_tabular import LimeTabularExplainer
from sklearn.inspection import partial_dependence, permutation_importance
from sklearn.pipeline import Pipeline

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_importance_bar, save_figure

logger = get_logger("la_methods.explainability")


def _split_pipeline(model, X: pd.DataFrame):
    """
    Returns (transformed matrix, feature names, final estimator).
    """
    if isinstance(model, Pipeline) and len(model.steps) > 1:
        pre = model[:-1]
        Z = np.asarray(pre.transform(X), dtype=float)
        names = [n.split("__", 1)[-1] for n in pre.get_feature_names_out()]
        return Z, names, model[-1]
    return np.asarray(X, dtype=float), list(getattr(X, "columns", range(X.shape[1]))), model


def _is_classifier(estimator) -> bool:
    return hasattr(estimator, "predict_proba")


def permutation_importance_table(model, X, y, n_repeats: int = 10, scoring=None,
                                 random_state: int = None) -> pd.DataFrame:
    random_state = config.RANDOM_STATE if random_state is None else random_state
    result = permutation_importance(model, X, y, n_repeats=n_repeats, scoring=scoring,
                                    random_state=random_state)
    table = pd.DataFrame({
        "feature": list(X.columns),
        "importance_mean": result.importances_mean,
        "importance_sd": result.importances_std,
    })
    return table.sort_values("importance_mean", ascending=False).reset_index(drop=True)


def partial_dependence_table(model, X: pd.DataFrame, feature: str, grid_resolution: int = 20) -> pd.DataFrame:
    """
    Average prediction (positive-class probability for classifiers) over a
    grid of `feature` values.
    """
    if feature not in X.columns:
        raise KeyError(f"Feature '{feature}' not found")
    result = partial_dependence(model, X, features=[feature], grid_resolution=grid_resolution,
                                kind="average")
    return pd.DataFrame({
        feature: result["grid_values"][0],
        "partial_dependence": result["average"][-1],
    })


def _positive_class(values):
    if isinstance(values, list):
        return np.asarray(values[-1])
    values = np.asarray(values)
    if values.ndim == 3:
        return values[:, :, -1]
    return values


def shap_values(model, X: pd.DataFrame, background: pd.DataFrame = None, max_background: int = 100,
                random_state: int = None) -> pd.DataFrame:
    """
    SHAP attributions for every row of X (one column per design-matrix
    feature). Tree models use TreeExplainer; other models a permutation
    explainer over a background sample. Classifiers are explained on the
    positive (last) class probability.
    """
    random_state = config.RANDOM_STATE if random_state is None else random_state
    Z, names, estimator = _split_pipeline(model, X)

    if hasattr(estimator, "feature_importances_"):
        explainer = shap.TreeExplainer(estimator)
        values = _positive_class(explainer.shap_values(Z))
    else:
        bg = background if background is not None else X
        Z_bg, _, _ = _split_pipeline(model, bg)
        if len(Z_bg) > max_background:
            rng = np.random.default_rng(random_state)
            Z_bg = Z_bg[rng.choice(len(Z_bg), size=max_background, replace=False)]
        if _is_classifier(estimator):
            f = lambda data: estimator.predict_proba(data)[:, -1]
        else:
            f = estimator.predict
        explainer = shap.Explainer(f, Z_bg, algorithm="permutation", seed=random_state)
        values = explainer(Z, max_evals=max(500, 2 * Z.shape[1] + 1)).values

    return pd.DataFrame(values, columns=names, index=X.index)


def shap_importance(values: pd.DataFrame) -> pd.Series:
    return values.abs().mean().sort_values(ascending=False)


def lime_explanation(model, X_train: pd.DataFrame, instance: pd.DataFrame, num_features: int = 10,
                     random_state: int = None):
    """
    LIME weights for a single row (`instance` is a one-row DataFrame).
    Returns a list of (feature condition, weight). Classifiers are explained
    on the last class, as in shap_values and partial_dependence_table.
    """
    random_state = config.RANDOM_STATE if random_state is None else random_state
    Z_train, names, estimator = _split_pipeline(model, X_train)
    Z_row, _, _ = _split_pipeline(model, instance)

    if _is_classifier(estimator):
        explainer = LimeTabularExplainer(Z_train, feature_names=names, mode="classification",
                                         discretize_continuous=False, random_state=random_state)
        label = len(estimator.classes_) - 1
        exp = explainer.explain_instance(Z_row[0], estimator.predict_proba,
                                         num_features=num_features, labels=(label,))
        return exp.as_list(label=label)

    explainer = LimeTabularExplainer(Z_train, feature_names=names, mode="regression",
                                     discretize_continuous=False, random_state=random_state)
    exp = explainer.explain_instance(Z_row[0], estimator.predict, num_features=num_features)
    return exp.as_list()


def explain_model(model, X: pd.DataFrame, y, results_dir: str = None, features=None,
                  instance_index=None, model_name: str = "model") -> dict:
    """
    Writes permutation importance, partial dependence for `features` (default:
    top three by permutation importance), SHAP importance and one LIME
    explanation to `results_dir`.
    """
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    out = {}

    perm = permutation_importance_table(model, X, y)
    perm.to_csv(os.path.join(results_dir, f"{model_name}_permutation_importance.csv"), index=False)
    plot_importance_bar(perm.set_index("feature")["importance_mean"],
                        title=f"Permutation Importance: {model_name}")
    save_figure(os.path.join(results_dir, f"{model_name}_permutation_importance.png"))
    logger.info(f"Permutation importance:\n{perm.head(10).to_string(index=False)}")
    out["permutation"] = perm

    numeric = set(X.select_dtypes(include=[np.number]).columns)
    features = features or [f for f in perm["feature"] if f in numeric][:3]
    pdps = {}
    for feature in features:
        pdp = partial_dependence_table(model, X, feature)
        pdps[feature] = pdp
        plt.figure(figsize=(6, 4))
        plt.plot(pdp[feature], pdp["partial_dependence"], color="navy", lw=2)
        plt.xlabel(feature)
        plt.ylabel("Partial dependence")
        plt.title(f"Partial Dependence: {feature}")
        plt.tight_layout()
        save_figure(os.path.join(results_dir, f"{model_name}_pdp_{feature}.png"))
    out["partial_dependence"] = pdps

    values = shap_values(model, X)
    importance = shap_importance(values)
    importance.to_csv(os.path.join(results_dir, f"{model_name}_shap_importance.csv"), header=["mean_abs_shap"])
    plot_importance_bar(importance, title=f"Mean |SHAP|: {model_name}", xlabel="Mean |SHAP value|")
    save_figure(os.path.join(results_dir, f"{model_name}_shap_importance.png"))
    out["shap"] = values

    idx = instance_index if instance_index is not None else X.index[0]
    weights = lime_explanation(model, X, X.loc[[idx]])
    pd.DataFrame(weights, columns=["condition", "weight"]).to_csv(
        os.path.join(results_dir, f"{model_name}_lime_{idx}.csv"), index=False)
    for condition, weight in weights[:5]:
        logger.info(f"  LIME {condition}: {weight:+.3f}")
    out["lime"] = weights
    return out
