# inferential.py

import os
from itertools import combinations

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from scipy import stats
from scipy.stats import linregress

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_residuals, save_figure

logger = get_logger("la_methods.inferential")


def _describe(series: pd.Series) -> dict:
    return {"mean": float(series.mean()), "sd": float(series.std(ddof=1)), "n": int(series.size)}


def two_group_ttest(df: pd.DataFrame, outcome: str, group: str, a, b, equal_var: bool = True) -> dict:
    """
    Independent-samples t-test of `outcome` between group levels `a` and `b`.
    Cohen's d uses the pooled SD and is signed as mean(b) - mean(a).
    """
    df = df.dropna(subset=[outcome, group])
    ga = df.loc[df[group] == a, outcome]
    gb = df.loc[df[group] == b, outcome]
    if ga.size < 2 or gb.size < 2:
        raise ValueError(f"Need at least two observations in '{a}' and '{b}' of '{group}'")

    tstat, pval = stats.ttest_ind(ga, gb, equal_var=equal_var)
    dfree = ga.size + gb.size - 2
    pooled_sd = np.sqrt(((ga.size - 1) * ga.var(ddof=1) + (gb.size - 1) * gb.var(ddof=1)) / dfree)
    d = (gb.mean() - ga.mean()) / pooled_sd if pooled_sd > 0 else 0.0

    result = {
        "t": float(tstat),
        "df": int(dfree),
        "p_value": float(pval),
        "cohens_d": float(d),
        str(a): _describe(ga),
        str(b): _describe(gb),
    }
    logger.info(f"t({dfree}) = {tstat:.2f}, p = {pval:.3f}, d = {d:.2f}")
    return result


def one_way_anova(df: pd.DataFrame, outcome: str, factor: str):
    """
    Returns the type-II ANOVA table and eta-squared for outcome ~ C(factor).
    """
    df = df.dropna(subset=[outcome, factor])
    anova_mod = smf.ols(f"Q('{outcome}') ~ C(Q('{factor}'))", data=df).fit()
    anova_table = sm.stats.anova_lm(anova_mod, typ=2)

    ss_total = ((df[outcome] - df[outcome].mean()) ** 2).sum()
    ss_between = anova_table["sum_sq"].iloc[0]
    eta2 = float(ss_between / ss_total) if ss_total > 0 else 0.0

    grp = df.groupby(factor)[outcome].agg(["mean", "std", "count"])
    for lvl, row in grp.iterrows():
        logger.info(f"  {str(lvl):10s}: {row['mean']:.2f} ± {row['std']:.2f} (n={int(row['count'])})")
    logger.info(f"ANOVA {outcome} ~ {factor}: F = {anova_table['F'].iloc[0]:.2f}, "
                f"p = {anova_table['PR(>F)'].iloc[0]:.4f}, eta² = {eta2:.3f}")
    return anova_table, eta2


def fit_ols(df: pd.DataFrame, formula: str):
    model = smf.ols(formula, data=df).fit()
    # pinv fits do not raise on collinear designs
    exog = model.model.exog
    if np.linalg.matrix_rank(exog) < exog.shape[1]:
        raise np.linalg.LinAlgError(f"Singular design matrix for '{formula}'")
    logger.info(f"OLS '{formula}': R² = {model.rsquared:.3f}, n = {int(model.nobs)}")
    logger.debug(str(model.summary()))
    return model


def regression_scan(df: pd.DataFrame, columns=None) -> pd.DataFrame:
    """
    Simple linear regression for every pair of numeric columns, most
    significant first. Pairs with fewer than 3 complete rows are skipped.
    """
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()
    results = []
    for x_key, y_key in combinations(columns, 2):
        sub = df[[x_key, y_key]].dropna()
        if len(sub) < 3 or sub[x_key].nunique() < 2:
            continue
        slope, intercept, r_val, p_val, _ = linregress(sub[x_key], sub[y_key])
        results.append({
            "x": x_key,
            "y": y_key,
            "n": len(sub),
            "slope": slope,
            "intercept": intercept,
            "r2": r_val ** 2,
            "p_value": p_val,
        })
    out = pd.DataFrame(results, columns=["x", "y", "n", "slope", "intercept", "r2", "p_value"])
    return out.sort_values("p_value").reset_index(drop=True)


def run_inferential(df: pd.DataFrame, outcome: str, group: str = None, predictors=None,
                    results_dir: str = None) -> dict:
    """
    t-test (if `group` has exactly two levels) or ANOVA (more levels), an OLS
    of outcome on `predictors`, and a pairwise regression scan.
    """
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    out = {}

    if group is not None:
        levels = sorted(df[group].dropna().unique().tolist())
        if len(levels) == 2:
            out["ttest"] = two_group_ttest(df, outcome, group, levels[0], levels[1])
        elif len(levels) > 2:
            table, eta2 = one_way_anova(df, outcome, group)
            table.to_csv(os.path.join(results_dir, "anova_table.csv"))
            out["anova"] = {"table": table, "eta2": eta2}

    if predictors:
        formula = f"Q('{outcome}') ~ " + " + ".join(f"Q('{p}')" for p in predictors)
        try:
            model = fit_ols(df, formula)
        except np.linalg.LinAlgError:
            logger.warning("OLS failed due to singular design matrix. Skipping.")
        else:
            model.summary2().tables[1].to_csv(os.path.join(results_dir, "ols_coefficients.csv"))
            plot_residuals(model.fittedvalues, model.resid, title="OLS Residuals vs. Fitted")
            save_figure(os.path.join(results_dir, "ols_residuals.png"))
            out["ols"] = model

    scan = regression_scan(df)
    scan.to_csv(os.path.join(results_dir, "regression_scan.csv"), index=False)
    logger.info(f"Top pairs by p-value:\n{scan.head(10).to_string(index=False)}")
    out["scan"] = scan
    return out
