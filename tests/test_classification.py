import os

import joblib
import numpy as np
import pandas as pd
import pytest
from sklearn.model_selection import train_test_split

from la_methods.classification import (
    build_classifier,
    cross_validate_classifier,
    evaluate_classifier,
    prepare_classification_data,
    run_classification,
    split_feature_types,
    tune_classifier,
)

FEATURES = ["sessions", "active_days", "forum_posts", "video_minutes", "gender"]


def test_prepare_classification_data_positive_label(student_df):
    X, y, class_names = prepare_classification_data(student_df, "achievement", FEATURES,
                                                     positive_label="High")
    assert class_names == ["not_High", "High"]
    assert y.sum() == (student_df["achievement"] == "High").sum()
    assert list(X.columns) == FEATURES


def test_positive_label_matches_float_target():
    # a 0/1 column with a missing value is stored as float
    df = pd.DataFrame({"x": np.arange(8.0), "dropout": [0, 1, 0, 1, 0, 1, 1, None]})
    X, y, class_names = prepare_classification_data(df, "dropout", ["x"], positive_label="1")
    assert y.tolist() == [0, 1, 0, 1, 0, 1, 1]
    assert class_names == ["not_1", "1"]
    _, y_int, _ = prepare_classification_data(df, "dropout", ["x"], positive_label=1)
    assert y_int.tolist() == y.tolist()


def test_prepare_classification_data_errors(student_df):
    with pytest.raises(KeyError):
        prepare_classification_data(student_df, "nope")
    with pytest.raises(KeyError):
        prepare_classification_data(student_df, "achievement", ["sessions", "nope"])
    single = student_df.assign(achievement="High")
    with pytest.raises(ValueError, match="single class"):
        prepare_classification_data(single, "achievement", FEATURES)


def test_build_classifier_unknown_name():
    with pytest.raises(ValueError, match="Unknown classifier"):
        build_classifier("deep_forest", ["a"], [])


@pytest.mark.parametrize("name", ["random_forest", "svm", "logistic", "xgboost"])
def test_classifiers_beat_chance(student_df, name):
    X, y, class_names = prepare_classification_data(student_df, "achievement", FEATURES, "High")
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.3, stratify=y, random_state=0)
    model = build_classifier(name, *split_feature_types(X))
    model.fit(X_train, y_train)
    metrics = evaluate_classifier(model, X_test, y_test, name, class_names)
    assert metrics["accuracy"] > 0.75
    assert metrics["auc"] > 0.8
    assert metrics["confusion_matrix"].sum() == len(y_test)


def test_evaluate_multiclass_writes_confusion_only(student_df, results_dir):
    df = student_df.assign(band=pd.qcut(student_df["grade"], 3, labels=["low", "mid", "top"]).astype(str))
    X, y, class_names = prepare_classification_data(df, "band", FEATURES)
    model = build_classifier("logistic", *split_feature_types(X)).fit(X, y)
    metrics = evaluate_classifier(model, X, y, "logistic", class_names, results_dir)
    assert metrics["confusion_matrix"].shape == (3, 3)
    assert os.path.exists(os.path.join(results_dir, "logistic_confusion.png"))
    assert not os.path.exists(os.path.join(results_dir, "logistic_roc.png"))


def test_cross_validate_and_tune(student_df):
    X, y, _ = prepare_classification_data(student_df, "achievement", FEATURES, "High")
    model = build_classifier("logistic", *split_feature_types(X))
    scores = cross_validate_classifier(model, X, y, cv=3)
    assert scores["cv_accuracy_mean"] > 0.75
    gs = tune_classifier("logistic", X, y, {"classifier__C": [0.1, 1.0]}, cv=3)
    assert gs.best_params_["classifier__C"] in (0.1, 1.0)


def test_run_classification_saves_best_model(student_df, results_dir):
    results = run_classification(student_df, "achievement", FEATURES, models=["logistic", "random_forest"],
                                 positive_label="High", results_dir=results_dir)
    assert set(results["model"]) == {"logistic", "random_forest"}
    assert results["f1"].is_monotonic_decreasing
    best = results.loc[0, "model"]
    model = joblib.load(os.path.join(results_dir, f"{best}_classifier.joblib"))
    assert set(np.unique(model.predict(student_df[FEATURES]))) <= {0, 1}
    assert model.class_names_ == ["not_High", "High"]
    assert os.path.exists(os.path.join(results_dir, "classification_metrics.csv"))
    assert os.path.exists(os.path.join(results_dir, "logistic_roc.png"))


def test_run_classification_keeps_label_names(student_df, results_dir):
    run_classification(student_df, "achievement", FEATURES, models=["logistic"], results_dir=results_dir)
    model = joblib.load(os.path.join(results_dir, "logistic_classifier.joblib"))
    codes = model.predict(student_df[FEATURES].head(20))
    labels = [model.class_names_[c] for c in codes]
    assert set(labels) <= {"High", "Low"}
    assert model.class_names_ == ["High", "Low"]
