"""
classification.py

Predicting a categorical student outcome (e.g. high vs. low achievement,
dropout) from engagement indicators.

Every model is a scikit-learn Pipeline: a ColumnTransformer that imputes and
scales numeric columns and one-hot encodes categorical ones, followed by one
of Random Forest, SVM, Logistic Regression or XGBoost. Models are compared on
a stratified hold-out set; the best one (by F1) is saved with joblib.
"""

import os
from datetime import datetime

import joblib
import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import (
    accuracy_score,
    auc,
    balanced_accuracy_score,
    classification_report,
    cohen_kappa_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
    roc_curve,
)
from sklearn.model_selection import GridSearchCV, StratifiedKFold, cross_validate, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import LabelEncoder, OneHotEncoder, StandardScaler
from sklearn.svm import SVC
from xgboost import XGBClassifier

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_confusion_matrix, plot_roc_curve, save_figure

logger = get_logger("la_methods.classification")

CLASSIFIERS = ("random_forest", "svm", "logistic", "xgboost")


def split_feature_types(X: pd.DataFrame):
    numeric_cols = X.select_dtypes(include=[np.number, "bool"]).columns.tolist()
    categorical_cols = [c for c in X.columns if c not in numeric_cols]
    return numeric_cols, categorical_cols


def build_preprocessor(numeric_cols, categorical_cols):
    """
    Constructs a ColumnTransformer that:
      - Imputes (median) and scales numeric columns
      - Imputes and One-Hot encodes categorical columns
    """
    numeric_pipeline = Pipeline([
        ("imputer", SimpleImputer(strategy="median")),
        ("scaler", StandardScaler())
    ])

    categorical_pipeline = Pipeline([
        ("imputer", SimpleImputer(strategy="constant", fill_value="Unknown")),
        ("onehot", OneHotEncoder(handle_unknown="ignore"))
    ])

    transformers = []
    if numeric_cols:
        transformers.append(("num", numeric_pipeline, list(numeric_cols)))
    if categorical_cols:
        transformers.append(("cat", categorical_pipeline, list(categorical_cols)))

    return ColumnTransformer(transformers=transformers, remainder="drop", sparse_threshold=0)


def _label_mask(values: pd.Series, label) -> pd.Series:
    # 0/1 targets with missing values are read as float, so "1" must match 1.0
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        try:
            return values == float(label)
        except (TypeError, ValueError):
            pass
    return values.astype(str) == str(label)


def prepare_classification_data(df: pd.DataFrame, target: str, features=None, positive_label=None):
    """
    Returns X, y (integer-encoded) and the class names in code order.

    With `positive_label` the target is binarized: 1 for that label, 0 otherwise.
    """
    if target not in df.columns:
        raise KeyError(f"Target column '{target}' not found")
    df = df.dropna(subset=[target])
    if features is None:
        features = [c for c in df.columns if c != target]
    missing = [c for c in features if c not in df.columns]
    if missing:
        raise KeyError(f"Feature columns not found: {missing}")

    if positive_label is not None:
        y = _label_mask(df[target], positive_label).astype(int).to_numpy()
        class_names = [f"not_{positive_label}", str(positive_label)]
    else:
        encoder = LabelEncoder()
        y = encoder.fit_transform(df[target].astype(str))
        class_names = list(encoder.classes_)
    if len(np.unique(y)) < 2:
        raise ValueError(f"Target '{target}' has a single class; nothing to classify")

    X = df[list(features)].copy()
    logger.info(f"Classification data: X {X.shape}, classes {class_names}")
    return X, y, class_names


def build_classifier(name: str, numeric_cols, categorical_cols, random_state: int = None) -> Pipeline:
    random_state = config.RANDOM_STATE if random_state is None else random_state
    if name == "random_forest":
        clf = RandomForestClassifier(n_estimators=500, class_weight="balanced",
                                     random_state=random_state, n_jobs=-1)
    elif name == "svm":
        clf = SVC(kernel="rbf", C=1.0, probability=True, class_weight="balanced",
                  random_state=random_state)
    elif name == "logistic":
        clf = LogisticRegression(max_iter=1000, class_weight="balanced",
                                 random_state=random_state)
    elif name == "xgboost":
        clf = XGBClassifier(n_estimators=200, max_depth=4, learning_rate=0.1,
                            subsample=0.8, colsample_bytree=0.8,
                            eval_metric="logloss", random_state=random_state, n_jobs=4)
    else:
        raise ValueError(f"Unknown classifier '{name}'. Choose from {CLASSIFIERS}")

    return Pipeline([
        ("preprocessor", build_preprocessor(numeric_cols, categorical_cols)),
        ("classifier", clf),
    ])


def evaluate_classifier(model, X_test, y_test, model_name: str, class_names=None,
                        results_dir: str = None) -> dict:
    """
    Evaluates a trained pipeline on the test set. Binary problems report
    positive-class precision/recall/F1 and a ROC curve; multiclass problems
    report macro averages and one-vs-rest AUC.
    """
    logger.info(f"Evaluating model: {model_name} on hold-out test set")
    y_test = np.asarray(y_test)
    y_pred = model.predict(X_test)
    y_prob = model.predict_proba(X_test)
    labels = np.arange(y_prob.shape[1])
    binary = y_prob.shape[1] == 2
    average = "binary" if binary else "macro"
    class_names = [str(c) for c in (class_names if class_names is not None else labels)]

    metrics = {
        "model": model_name,
        "accuracy": accuracy_score(y_test, y_pred),
        "balanced_accuracy": balanced_accuracy_score(y_test, y_pred),
        "precision": precision_score(y_test, y_pred, average=average, zero_division=0),
        "recall": recall_score(y_test, y_pred, average=average, zero_division=0),
        "f1": f1_score(y_test, y_pred, average=average, zero_division=0),
        "kappa": cohen_kappa_score(y_test, y_pred),
    }
    try:
        if binary:
            metrics["auc"] = roc_auc_score(y_test, y_prob[:, 1])
        else:
            metrics["auc"] = roc_auc_score(y_test, y_prob, multi_class="ovr", labels=labels)
    except ValueError:
        # only one class present in y_test
        metrics["auc"] = np.nan

    for key in ("accuracy", "balanced_accuracy", "precision", "recall", "f1", "kappa", "auc"):
        logger.info(f"{model_name} Test {key}: {metrics[key]:.4f}")

    cm = confusion_matrix(y_test, y_pred, labels=labels)
    metrics["confusion_matrix"] = cm
    report = classification_report(y_test, y_pred, labels=labels, target_names=class_names,
                                   zero_division=0)
    logger.info(f"{model_name} Classification Report:\n{report}")

    if results_dir is not None:
        plot_confusion_matrix(cm, class_names, title=f"Confusion Matrix: {model_name}")
        save_figure(os.path.join(results_dir, f"{model_name}_confusion.png"))
        if binary and not np.isnan(metrics["auc"]):
            fpr, tpr, _ = roc_curve(y_test, y_prob[:, 1])
            plot_roc_curve(fpr, tpr, auc(fpr, tpr), title=f"ROC Curve: {model_name}")
            roc_path = save_figure(os.path.join(results_dir, f"{model_name}_roc.png"))
            logger.info(f"Saved ROC curve to: {roc_path}")

    return metrics


def cross_validate_classifier(model, X, y, cv: int = None, random_state: int = None) -> dict:
    cv = cv or config.CV_FOLDS
    random_state = config.RANDOM_STATE if random_state is None else random_state
    folds = StratifiedKFold(n_splits=cv, shuffle=True, random_state=random_state)
    scoring = {"accuracy": "accuracy", "f1": "f1_macro"}
    scores = cross_validate(model, X, y, cv=folds, scoring=scoring)
    out = {}
    for key in scoring:
        out[f"cv_{key}_mean"] = float(np.mean(scores[f"test_{key}"]))
        out[f"cv_{key}_sd"] = float(np.std(scores[f"test_{key}"], ddof=1))
    logger.info(f"CV ({cv}-fold) accuracy = {out['cv_accuracy_mean']:.3f} ± {out['cv_accuracy_sd']:.3f}")
    return out


def tune_classifier(name: str, X, y, param_grid: dict, cv: int = None, scoring: str = "f1_macro"):
    """
    Grid search over `param_grid` (keys prefixed with 'classifier__').
    """
    numeric_cols, categorical_cols = split_feature_types(X)
    pipeline = build_classifier(name, numeric_cols, categorical_cols)
    gs = GridSearchCV(pipeline, param_grid, cv=cv or config.CV_FOLDS, scoring=scoring,
                      n_jobs=-1, error_score="raise")
    gs.fit(X, y)
    logger.info(f"{name} best params: {gs.best_params_}, CV {scoring} = {gs.best_score_:.4f}")
    return gs


def run_classification(df: pd.DataFrame, target: str, features=None, models=CLASSIFIERS,
                       positive_label=None, results_dir: str = None, test_size: float = None,
                       random_state: int = None) -> pd.DataFrame:
    """
    Fit and compare `models`; writes classification_metrics.csv, figures and
    the best pipeline (by F1) to `results_dir`.
    """
    models = models or CLASSIFIERS
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    random_state = config.RANDOM_STATE if random_state is None else random_state
    X, y, class_names = prepare_classification_data(df, target, features, positive_label)
    numeric_cols, categorical_cols = split_feature_types(X)

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size or config.TEST_SIZE, stratify=y, random_state=random_state
    )
    logger.info(f"  X_train: {X_train.shape}, X_test: {X_test.shape}")

    rows, fitted = [], {}
    for name in models:
        model = build_classifier(name, numeric_cols, categorical_cols, random_state)
        start = datetime.now()
        model.fit(X_train, y_train)
        logger.info(f"{name} training time: {datetime.now() - start}")
        metrics = evaluate_classifier(model, X_test, y_test, name, class_names, results_dir)
        metrics.pop("confusion_matrix")
        rows.append(metrics)
        fitted[name] = model

    results = pd.DataFrame(rows).sort_values("f1", ascending=False).reset_index(drop=True)
    results.to_csv(os.path.join(results_dir, "classification_metrics.csv"), index=False)
    logger.info(f"Model comparison:\n{results.to_string(index=False)}")

    best = results.loc[0, "model"]
    # integer codes map back to labels through class_names_
    fitted[best].class_names_ = list(class_names)
    model_path = os.path.join(results_dir, f"{best}_classifier.joblib")
    joblib.dump(fitted[best], model_path)
    logger.info(f"Saved best classifier ({best}) to '{model_path}'")
    return results
