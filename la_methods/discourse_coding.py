"""
discourse_coding.py

Automated coding of conversational turns.

Utterances are embedded with a pretrained sentence encoder (BERT-family
models through sentence-transformers), a classifier is trained on the turns
that were coded by hand, and the rest of the corpus is coded automatically.
Agreement with held-out human codes is reported as accuracy and Cohen's
kappa, the usual reliability check for qualitative coding.
"""

import os

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score, classification_report, cohen_kappa_score, confusion_matrix
from sklearn.model_selection import train_test_split
from sklearn.svm import SVC

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_confusion_matrix, save_figure

logger = get_logger("la_methods.discourse")

_ENCODERS = {}


def load_encoder(model_name: str = None):
    """Load (once) a sentence-transformers model."""
    model_name = model_name or config.EMBEDDING_MODEL
    if model_name not in _ENCODERS:
        from sentence_transformers import SentenceTransformer
        logger.info(f"Loading sentence encoder '{model_name}'...")
        _ENCODERS[model_name] = SentenceTransformer(model_name)
    return _ENCODERS[model_name]


def embed_texts(texts, model_name: str = None, encoder=None, backend: str = "sentence-transformers",
                batch_size: int = 32) -> np.ndarray:
    """
    One row per text. `encoder` may be any object with a sentence-transformers
    style `encode(texts, batch_size=..., show_progress_bar=...)` method.
    backend="tfidf" gives a dense TF-IDF baseline instead.
    """
    texts = ["" if t is None or (isinstance(t, float) and np.isnan(t)) else str(t) for t in texts]
    if not texts:
        raise ValueError("No texts to embed")

    if backend == "tfidf":
        return TfidfVectorizer(min_df=1, ngram_range=(1, 2)).fit_transform(texts).toarray()
    if backend != "sentence-transformers":
        raise ValueError(f"Unknown embedding backend '{backend}'")

    encoder = encoder or load_encoder(model_name)
    embeddings = encoder.encode(texts, batch_size=batch_size, show_progress_bar=False)
    return np.asarray(embeddings, dtype=float)


def build_coder(name: str = "logistic", random_state: int = None):
    random_state = config.RANDOM_STATE if random_state is None else random_state
    if name == "logistic":
        return LogisticRegression(max_iter=2000, class_weight="balanced", random_state=random_state)
    if name == "random_forest":
        return RandomForestClassifier(n_estimators=500, class_weight="balanced",
                                      random_state=random_state, n_jobs=-1)
    if name == "svm":
        return SVC(kernel="linear", class_weight="balanced", random_state=random_state)
    raise ValueError(f"Unknown classifier '{name}'")


def train_coder(embeddings, labels, classifier: str = "logistic", random_state: int = None):
    labels = np.asarray(labels)
    if len(np.unique(labels)) < 2:
        raise ValueError("Training data must contain at least two codes")
    model = build_coder(classifier, random_state)
    model.fit(embeddings, labels)
    return model


def agreement(human, machine) -> dict:
    human, machine = np.asarray(human).astype(str), np.asarray(machine).astype(str)
    report = classification_report(human, machine, output_dict=True, zero_division=0)
    per_code = pd.DataFrame({
        code: {"precision": r["precision"], "recall": r["recall"], "f1": r["f1-score"],
               "support": r["support"]}
        for code, r in report.items() if isinstance(r, dict) and code not in
        ("macro avg", "weighted avg", "micro avg")
    }).T
    return {
        "accuracy": accuracy_score(human, machine),
        "kappa": cohen_kappa_score(human, machine),
        "per_code": per_code,
    }


def code_discourse(df: pd.DataFrame, text: str, code: str, train_fraction: float = 0.5,
                   classifier: str = "logistic", model_name: str = None, encoder=None,
                   backend: str = "sentence-transformers", results_dir: str = None,
                   random_state: int = None) -> dict:
    """
    Rows with a value in `code` are human-coded: `train_fraction` of them
    trains the classifier and the remainder measures agreement. Every row
    (including uncoded ones) gets a predicted code in the returned
    `predictions` Series.
    """
    random_state = config.RANDOM_STATE if random_state is None else random_state
    for col in (text, code):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found")
    if not 0 < train_fraction < 1:
        raise ValueError("train_fraction must be between 0 and 1")

    embeddings = embed_texts(df[text].tolist(), model_name=model_name, encoder=encoder, backend=backend)
    coded = np.flatnonzero(df[code].notna().to_numpy())
    labels = df[code].astype(object).to_numpy()
    logger.info(f"{len(coded)} of {len(df)} turns are human-coded")

    counts = pd.Series(labels[coded]).value_counts()
    # both parts must be able to hold every code
    n_train = int(np.floor(train_fraction * len(coded)))
    stratified = counts.min() >= 2 and min(n_train, len(coded) - n_train) >= len(counts)
    stratify = labels[coded] if stratified else None
    if not stratified:
        logger.warning("Too few coded turns per code for a stratified split; splitting at random")
    train_idx, test_idx = train_test_split(coded, train_size=train_fraction,
                                           random_state=random_state, stratify=stratify)
    model = train_coder(embeddings[train_idx], labels[train_idx].astype(str), classifier, random_state)

    predictions = pd.Series(model.predict(embeddings), index=df.index, name=f"{code}_predicted")
    metrics = agreement(labels[test_idx], predictions.iloc[test_idx])
    logger.info(f"Held-out agreement: accuracy = {metrics['accuracy']:.3f}, "
                f"kappa = {metrics['kappa']:.3f} (n = {len(test_idx)})")

    if results_dir is not None:
        config.ensure_dir(results_dir)
        metrics["per_code"].to_csv(os.path.join(results_dir, "discourse_per_code.csv"))
        predictions.to_frame().join(df[[text, code]]).to_csv(
            os.path.join(results_dir, "discourse_predictions.csv"))
        codes = sorted(model.classes_)
        cm = confusion_matrix(labels[test_idx].astype(str), predictions.iloc[test_idx].astype(str),
                              labels=codes)
        plot_confusion_matrix(cm, codes, title="Human vs. Automated Codes")
        save_figure(os.path.join(results_dir, "discourse_confusion.png"))

    return {"predictions": predictions, "model": model, "train_index": df.index[train_idx],
            "test_index": df.index[test_idx], **metrics}
