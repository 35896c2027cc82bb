# regression.py

import os
from datetime import datetime

import joblib
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import ElasticNet, LinearRegression
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import GridSearchCV, KFold, cross_val_score, train_test_split
from sklearn.pipeline import Pipeline
from sklearn.svm import SVR
from xgboost import XGBRegressor

from la_methods import config
from la_methods.classification import build_preprocessor, split_feature_types
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_predicted_vs_actual, plot_residuals, save_figure

logger = get_logger("la_methods.regression")

REGRESSORS = ("linear", "elastic_net", "random_forest", "svr", "xgboost")


def build_regressor(name: str, numeric_cols, categorical_cols, random_state: int = None) -> Pipeline:
    random_state = config.RANDOM_STATE if random_state is None else random_state
    if name == "linear":
        reg = LinearRegression()
    elif name == "elastic_net":
        reg = ElasticNet(alpha=0.01, l1_ratio=0.5, max_iter=10000, random_state=random_state)
    elif name == "random_forest":
        reg = RandomForestRegressor(n_estimators=500, random_state=random_state, n_jobs=-1)
    elif name == "svr":
        reg = SVR(kernel="rbf", C=1.0, epsilon=0.1)
    elif name == "xgboost":
        reg = XGBRegressor(objective="reg:squarederror", n_estimators=300, max_depth=4,
                           learning_rate=0.05, subsample=0.8, colsample_bytree=0.8,
                           random_state=random_state, n_jobs=4)
    else:
        raise ValueError(f"Unknown regressor '{name}'. Choose from {REGRESSORS}")

    return Pipeline([
        ("preprocessor", build_preprocessor(numeric_cols, categorical_cols)),
        ("regressor", reg),
    ])


def regression_metrics(y_true, y_pred) -> dict:
    return {
        "rmse": float(np.sqrt(mean_squared_error(y_true, y_pred))),
        "mae": float(mean_absolute_error(y_true, y_pred)),
        "r2": float(r2_score(y_true, y_pred)),
    }


def evaluate_regressor(model, X_test, y_test, model_name: str, results_dir: str = None) -> dict:
    y_pred = model.predict(X_test)
    metrics = {"model": model_name, **regression_metrics(y_test, y_pred)}
    logger.info(f"{model_name} Test RMSE = {metrics['rmse']:.3f}, "
                f"MAE = {metrics['mae']:.3f}, R² = {metrics['r2']:.3f}")

    if results_dir is not None:
        plot_predicted_vs_actual(np.asarray(y_test), y_pred, title=f"Predicted vs. Actual: {model_name}")
        save_figure(os.path.join(results_dir, f"{model_name}_pred_vs_actual.png"))
        plot_residuals(y_pred, np.asarray(y_test) - y_pred, title=f"Residuals vs. Fitted: {model_name}")
        save_figure(os.path.join(results_dir, f"{model_name}_residuals.png"))
    return metrics


def tune_regressor(name: str, X, y, param_grid: dict, cv: int = None):
    """
    Grid search (R²) over `param_grid`; keys are prefixed with 'regressor__'.
    """
    numeric_cols, categorical_cols = split_feature_types(X)
    gs = GridSearchCV(
        build_regressor(name, numeric_cols, categorical_cols),
        param_grid,
        cv=cv or config.CV_FOLDS,
        scoring="r2",
        n_jobs=-1,
        error_score="raise",
    )
    gs.fit(X, y)
    logger.info(f"{name} best params: {gs.best_params_}, CV R² = {gs.best_score_:.4f}")
    return gs


def run_regression(df: pd.DataFrame, target: str, features=None, models=REGRESSORS,
                   results_dir: str = None, test_size: float = None, cv: int = None,
                   random_state: int = None) -> pd.DataFrame:
    """
    Compare `models` on a hold-out split plus k-fold CV R² on the training
    part. Writes regression_metrics.csv and saves the best pipeline (test R²).
    """
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    models = models or REGRESSORS
    random_state = config.RANDOM_STATE if random_state is None else random_state
    if target not in df.columns:
        raise KeyError(f"Target column '{target}' not found")
    df = df.dropna(subset=[target])
    features = features or [c for c in df.columns if c != target]
    X = df[list(features)]
    y = df[target].astype(float)
    numeric_cols, categorical_cols = split_feature_types(X)

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size or config.TEST_SIZE, random_state=random_state
    )
    folds = KFold(n_splits=cv or config.CV_FOLDS, shuffle=True, random_state=random_state)

    rows, fitted = [], {}
    for name in models:
        model = build_regressor(name, numeric_cols, categorical_cols, random_state)
        start = datetime.now()
        model.fit(X_train, y_train)
        logger.info(f"{name} training time: {datetime.now() - start}")
        metrics = evaluate_regressor(model, X_test, y_test, name, results_dir)
        metrics["cv_r2"] = float(np.mean(cross_val_score(model, X_train, y_train, cv=folds, scoring="r2")))
        rows.append(metrics)
        fitted[name] = model

    results = pd.DataFrame(rows).sort_values("r2", ascending=False).reset_index(drop=True)
    results.to_csv(os.path.join(results_dir, "regression_metrics.csv"), index=False)
    logger.info(f"Model comparison:\n{results.to_string(index=False)}")

    best = results.loc[0, "model"]
    model_path = os.path.join(results_dir, f"{best}_regressor.joblib")
    joblib.dump(fitted[best], model_path)
    logger.info(f"Saved best regressor ({best}) to '{model_path}'")
    return results
