import os

import joblib
import pytest

from la_methods.classification import split_feature_types
from la_methods.regression import build_regressor, regression_metrics, run_regression, tune_regressor

FEATURES = ["sessions", "active_days", "forum_posts", "video_minutes", "gender"]


def test_regression_metrics():
    m = regression_metrics([1.0, 2.0, 3.0], [1.0, 2.0, 5.0])
    assert m["mae"] == pytest.approx(2 / 3)
    assert m["rmse"] == pytest.approx((4 / 3) ** 0.5)
    assert m["r2"] == pytest.approx(1 - 4 / 2)


def test_build_regressor_unknown_name():
    with pytest.raises(ValueError):
        build_regressor("gam", ["a"], [])


def test_run_regression(student_df, results_dir):
    results = run_regression(student_df, "grade", FEATURES, models=["linear", "random_forest", "xgboost"],
                             results_dir=results_dir, cv=3)
    assert results.loc[0, "r2"] > 0.85
    linear = results.set_index("model").loc["linear"]
    assert linear["r2"] > 0.9 and linear["cv_r2"] > 0.9
    best = results.loc[0, "model"]
    assert os.path.exists(os.path.join(results_dir, f"{best}_regressor.joblib"))
    assert os.path.exists(os.path.join(results_dir, "linear_residuals.png"))


def test_tune_regressor(student_df):
    X = student_df[FEATURES]
    gs = tune_regressor("elastic_net", X, student_df["grade"],
                        {"regressor__alpha": [0.001, 10.0]}, cv=3)
    assert gs.best_params_["regressor__alpha"] == 0.001
