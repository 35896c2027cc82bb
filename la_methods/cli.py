# cli.py

import argparse
import sys

from la_methods import config
from la_methods.data_loading import load_dataset


def _csv_list(value):
    return [v.strip() for v in value.split(",") if v.strip()] if value else None


def _describe(df, args):
    from la_methods.descriptives import describe_dataset
    describe_dataset(df, args.results_dir, name=args.name)


def _inferential(df, args):
    from la_methods.inferential import run_inferential
    run_inferential(df, args.outcome, group=args.group, predictors=_csv_list(args.predictors),
                    results_dir=args.results_dir)


def _classify(df, args):
    from la_methods.classification import run_classification
    run_classification(df, args.target, features=_csv_list(args.features),
                       models=_csv_list(args.models), positive_label=args.positive_label,
                       results_dir=args.results_dir)


def _regress(df, args):
    from la_methods.regression import run_regression
    run_regression(df, args.target, features=_csv_list(args.features),
                   models=_csv_list(args.models), results_dir=args.results_dir)


def _explain(df, args):
    import joblib
    from la_methods.explainability import explain_model
    model = joblib.load(args.model)
    features = _csv_list(args.features)
    if hasattr(model, "predict_proba"):
        from la_methods.classification import prepare_classification_data
        X, y, _ = prepare_classification_data(df, args.target, features, args.positive_label)
    else:
        df = df.dropna(subset=[args.target])
        X = df[features or [c for c in df.columns if c != args.target]]
        y = df[args.target].astype(float)
    explain_model(model, X, y, results_dir=args.results_dir, model_name=args.name)


def _cluster(df, args):
    from la_methods.clustering import run_clustering
    run_clustering(df, features=_csv_list(args.features), k=args.k, method=args.method,
                   results_dir=args.results_dir)


def _topics(df, args):
    from la_methods.text_mining import run_topic_modeling
    run_topic_modeling(df, args.text, n_topics=args.n_topics, group=args.group,
                       results_dir=args.results_dir)


def _sna(df, args):
    from la_methods.network_analysis import run_sna
    run_sna(df, args.source, args.target, weight=args.weight, directed=not args.undirected,
            results_dir=args.results_dir)


def _long_memory(df, args):
    from la_methods.long_memory import run_long_memory
    run_long_memory(df, args.value, person=args.person, time=args.time,
                    results_dir=args.results_dir, min_length=args.min_length)


def _ega(df, args):
    from la_methods.psychometric_networks import run_ega
    run_ega(df, items=_csv_list(args.items), n_boot=args.n_boot, method=args.method,
            results_dir=args.results_dir)


def _idiographic(df, args):
    from la_methods.psychometric_networks import run_idiographic
    run_idiographic(df, _csv_list(args.variables), person=args.person, time=args.time,
                    results_dir=args.results_dir)


def _tna(df, args):
    from la_methods.transition_networks import run_tna
    run_tna(df, args.actor, args.code, order=args.order, group=args.group,
            threshold=args.threshold, n_perm=args.n_perm, results_dir=args.results_dir)


def _code_discourse(df, args):
    from la_methods.discourse_coding import code_discourse
    code_discourse(df, args.text, args.code, train_fraction=args.train_fraction,
                   classifier=args.classifier, model_name=args.embedding_model,
                   backend=args.backend, results_dir=args.results_dir)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="la-methods",
        description="Run a learning-analytics method on a CSV/XLSX/Parquet dataset."
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--data", "-d", required=True,
                        help="Local path, URL, or file name in the remote data repository")
    common.add_argument("--sheet", default=None, help="Excel sheet name")
    common.add_argument("--results-dir", "-o", default=config.RESULTS_DIR)

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("describe", parents=[common], help="Descriptive statistics and EDA figures")
    p.add_argument("--name", default="dataset")
    p.set_defaults(func=_describe)

    p = sub.add_parser("inferential", parents=[common], help="t-test / ANOVA, OLS, regression scan")
    p.add_argument("--outcome", required=True)
    p.add_argument("--group")
    p.add_argument("--predictors", help="Comma-separated predictor columns")
    p.set_defaults(func=_inferential)

    p = sub.add_parser("classify", parents=[common], help="Compare classifiers")
    p.add_argument("--target", required=True)
    p.add_argument("--features")
    p.add_argument("--models", default="random_forest,svm,logistic,xgboost")
    p.add_argument("--positive-label")
    p.set_defaults(func=_classify)

    p = sub.add_parser("regress", parents=[common], help="Compare regression models")
    p.add_argument("--target", required=True)
    p.add_argument("--features")
    p.add_argument("--models", default="linear,elastic_net,random_forest,svr,xgboost")
    p.set_defaults(func=_regress)

    p = sub.add_parser("explain", parents=[common], help="Explain a saved pipeline")
    p.add_argument("--model", required=True, help="joblib file written by classify/regress")
    p.add_argument("--target", required=True)
    p.add_argument("--features")
    p.add_argument("--positive-label")
    p.add_argument("--name", default="model")
    p.set_defaults(func=_explain)

    p = sub.add_parser("cluster", parents=[common], help="k-means / Gaussian mixture profiles")
    p.add_argument("--features")
    p.add_argument("--k", type=int)
    p.add_argument("--method", choices=["kmeans", "gmm"], default="kmeans")
    p.set_defaults(func=_cluster)

    p = sub.add_parser("topics", parents=[common], help="Term frequencies and LDA topics")
    p.add_argument("--text", required=True)
    p.add_argument("--n-topics", type=int, default=5)
    p.add_argument("--group")
    p.set_defaults(func=_topics)

    p = sub.add_parser("sna", parents=[common], help="Social network analysis of an edge list")
    p.add_argument("--source", required=True)
    p.add_argument("--target", required=True)
    p.add_argument("--weight")
    p.add_argument("--undirected", action="store_true")
    p.set_defaults(func=_sna)

    p = sub.add_parser("long-memory", parents=[common], help="Whittle Hurst exponent estimation")
    p.add_argument("--value", required=True)
    p.add_argument("--person")
    p.add_argument("--time")
    p.add_argument("--min-length", type=int, default=64)
    p.set_defaults(func=_long_memory)

    p = sub.add_parser("ega", parents=[common], help="Exploratory graph analysis")
    p.add_argument("--items")
    p.add_argument("--n-boot", type=int, default=100)
    p.add_argument("--method", choices=["glasso", "pcor"], default="glasso")
    p.set_defaults(func=_ega)

    p = sub.add_parser("idiographic", parents=[common], help="Per-person VAR networks")
    p.add_argument("--variables", required=True)
    p.add_argument("--person")
    p.add_argument("--time")
    p.set_defaults(func=_idiographic)

    p = sub.add_parser("tna", parents=[common], help="Transition network analysis")
    p.add_argument("--actor", required=True)
    p.add_argument("--code", required=True)
    p.add_argument("--order")
    p.add_argument("--group")
    p.add_argument("--threshold", type=float, default=0.05)
    p.add_argument("--n-perm", type=int, default=1000)
    p.set_defaults(func=_tna)

    p = sub.add_parser("code-discourse", parents=[common], help="Automated discourse coding")
    p.add_argument("--text", required=True)
    p.add_argument("--code", required=True)
    p.add_argument("--train-fraction", type=float, default=0.5)
    p.add_argument("--classifier", choices=["logistic", "random_forest", "svm"], default="logistic")
    p.add_argument("--embedding-model", default=config.EMBEDDING_MODEL)
    p.add_argument("--backend", choices=["sentence-transformers", "tfidf"], default="sentence-transformers")
    p.set_defaults(func=_code_discourse)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    df = load_dataset(args.data, sheet_name=args.sheet)
    args.func(df, args)
    print(f"\nDone. Check '{args.results_dir}' for tables and figures.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
