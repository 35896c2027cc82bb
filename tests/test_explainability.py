import os

import numpy as np
import pandas as pd
import pytest

from la_methods.classification import build_classifier, prepare_classification_data, split_feature_types
from la_methods.explainability import (
    explain_model,
    lime_explanation,
    partial_dependence_table,
    permutation_importance_table,
    shap_importance,
    shap_values,
)
from la_methods.regression import build_regressor

FEATURES = ["sessions", "active_days", "forum_posts", "video_minutes", "gender"]


@pytest.fixture
def grade_model(student_df):
    X = student_df[FEATURES]
    model = build_regressor("random_forest", *split_feature_types(X))
    model.set_params(regressor__n_estimators=100)
    return model.fit(X, student_df["grade"]), X, student_df["grade"]


@pytest.fixture
def achievement_model(student_df):
    X, y, _ = prepare_classification_data(student_df, "achievement", FEATURES, "High")
    return build_classifier("logistic", *split_feature_types(X)).fit(X, y), X, y


def test_permutation_importance_ranks_sessions_first(grade_model):
    model, X, y = grade_model
    table = permutation_importance_table(model, X, y, n_repeats=5)
    assert table.loc[0, "feature"] == "sessions"
    assert set(table["feature"]) == set(FEATURES)


def test_partial_dependence_increases(grade_model):
    model, X, _ = grade_model
    pdp = partial_dependence_table(model, X, "sessions", grid_resolution=10)
    assert len(pdp) <= 10
    assert pdp["partial_dependence"].iloc[-1] > pdp["partial_dependence"].iloc[0]
    with pytest.raises(KeyError):
        partial_dependence_table(model, X, "nope")


def test_tree_shap_values(grade_model):
    model, X, _ = grade_model
    values = shap_values(model, X.iloc[:30])
    assert values.shape[0] == 30
    assert "sessions" in values.columns and "gender_F" in values.columns
    assert shap_importance(values).index[0] == "sessions"


def test_model_agnostic_shap_for_classifier(achievement_model):
    model, X, _ = achievement_model
    values = shap_values(model, X.iloc[:5], background=X, max_background=30)
    assert values.shape == (5, 6)
    assert np.isfinite(values.to_numpy()).all()


def test_lime_explanation(achievement_model, grade_model):
    model, X, _ = achievement_model
    weights = lime_explanation(model, X, X.iloc[[0]], num_features=3)
    assert len(weights) == 3
    assert all(isinstance(w, float) for _, w in weights)

    reg, Xr, _ = grade_model
    assert len(lime_explanation(reg, Xr, Xr.iloc[[1]], num_features=4)) == 4


def test_lime_explains_last_class_of_multiclass_model(student_df):
    bands = pd.qcut(student_df["grade"], 3, labels=["1_low", "2_mid", "3_high"]).astype(str)
    X, y, class_names = prepare_classification_data(student_df.assign(band=bands), "band", FEATURES)
    assert class_names[-1] == "3_high"
    model = build_classifier("logistic", *split_feature_types(X)).fit(X, y)
    weights = dict(lime_explanation(model, X, X.iloc[[0]], num_features=6))
    # more sessions push towards the top band
    assert weights["sessions"] > 0


def test_explain_model_writes_artifacts(achievement_model, results_dir):
    model, X, y = achievement_model
    out = explain_model(model, X.iloc[:60], y[:60], results_dir=results_dir, model_name="logit")
    assert set(out) == {"permutation", "partial_dependence", "shap", "lime"}
    assert len(out["partial_dependence"]) == 3
    assert os.path.exists(os.path.join(results_dir, "logit_shap_importance.csv"))
    assert os.path.exists(os.path.join(results_dir, "logit_permutation_importance.png"))
