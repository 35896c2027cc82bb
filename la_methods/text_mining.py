# text_mining.py

import os
import re
from collections import Counter

import numpy as np
import pandas as pd
from sklearn.decomposition import LatentDirichletAllocation
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS, CountVectorizer, TfidfVectorizer

from la_methods import config
from la_methods.logging_utils import get_logger
from la_methods.plotting_utils import plot_univariate_bar, save_figure

logger = get_logger("la_methods.text")

TOKEN_PATTERN = re.compile(r"[a-z][a-z']+")


def tokenize(text: str, stop_words=ENGLISH_STOP_WORDS, min_length: int = 3):
    if not isinstance(text, str):
        return []
    tokens = (t.strip("'") for t in TOKEN_PATTERN.findall(text.lower()))
    return [t for t in tokens if len(t) >= min_length and t not in stop_words]


def term_frequencies(texts, stop_words=ENGLISH_STOP_WORDS, min_length: int = 3) -> pd.DataFrame:
    """
    Term counts over all texts, with the number of documents each term occurs in.
    """
    counts, doc_counts = Counter(), Counter()
    for text in texts:
        tokens = tokenize(text, stop_words, min_length)
        counts.update(tokens)
        doc_counts.update(set(tokens))
    table = pd.DataFrame({
        "term": list(counts.keys()),
        "count": list(counts.values()),
        "documents": [doc_counts[t] for t in counts.keys()],
    }, columns=["term", "count", "documents"])
    return table.sort_values(["count", "term"], ascending=[False, True]).reset_index(drop=True)


def _vectorizer_kwargs(min_df, max_df):
    return dict(tokenizer=tokenize, lowercase=False, token_pattern=None,
                min_df=min_df, max_df=max_df)


def top_tfidf_terms(texts, groups, n: int = 10, min_df=1) -> pd.DataFrame:
    """
    Concatenate texts per group and return the `n` highest TF-IDF terms of
    each group (groups act as documents).
    """
    frame = pd.DataFrame({"text": list(texts), "group": list(groups)}).dropna()
    joined = frame.groupby("group")["text"].apply(lambda s: " ".join(s))
    vec = TfidfVectorizer(**_vectorizer_kwargs(min_df, 1.0))
    matrix = vec.fit_transform(joined.values)
    terms = np.array(vec.get_feature_names_out())

    rows = []
    for i, group in enumerate(joined.index):
        weights = matrix[i].toarray().ravel()
        for j in np.argsort(weights)[::-1][:n]:
            if weights[j] > 0:
                rows.append({"group": group, "term": terms[j], "tfidf": weights[j]})
    return pd.DataFrame(rows, columns=["group", "term", "tfidf"])


def fit_lda(texts, n_topics: int = 5, min_df=2, max_df=0.95, max_iter: int = 50,
            random_state: int = None):
    """
    Returns (lda model, fitted CountVectorizer, document-topic DataFrame).
    """
    random_state = config.RANDOM_STATE if random_state is None else random_state
    if n_topics < 2:
        raise ValueError("n_topics must be at least 2")
    vec = CountVectorizer(**_vectorizer_kwargs(min_df, max_df))
    dtm = vec.fit_transform(texts)
    logger.info(f"Document-term matrix: {dtm.shape[0]} documents x {dtm.shape[1]} terms")

    lda = LatentDirichletAllocation(n_components=n_topics, max_iter=max_iter,
                                    learning_method="batch", random_state=random_state)
    doc_topics = lda.fit_transform(dtm)
    logger.info(f"LDA ({n_topics} topics) perplexity: {lda.perplexity(dtm):.1f}")
    columns = [f"topic_{k + 1}" for k in range(n_topics)]
    return lda, vec, pd.DataFrame(doc_topics, columns=columns)


def top_topic_terms(lda, vectorizer, n: int = 10) -> pd.DataFrame:
    terms = np.array(vectorizer.get_feature_names_out())
    rows = []
    for k, weights in enumerate(lda.components_):
        probs = weights / weights.sum()
        for rank, j in enumerate(np.argsort(weights)[::-1][:n], start=1):
            rows.append({"topic": f"topic_{k + 1}", "rank": rank, "term": terms[j], "beta": probs[j]})
    return pd.DataFrame(rows)


def run_topic_modeling(df: pd.DataFrame, text: str, n_topics: int = 5, group: str = None,
                       results_dir: str = None, random_state: int = None) -> dict:
    results_dir = config.ensure_dir(results_dir or config.RESULTS_DIR)
    if text not in df.columns:
        raise KeyError(f"Text column '{text}' not found")
    texts = df[text].fillna("").astype(str).tolist()

    freqs = term_frequencies(texts)
    freqs.to_csv(os.path.join(results_dir, "term_frequencies.csv"), index=False)
    plot_univariate_bar(freqs.head(20).set_index("term")["count"].iloc[::-1], horizontal=True,
                        xlabel="Count", title="Top 20 Terms")
    save_figure(os.path.join(results_dir, "top_terms.png"))

    lda, vec, doc_topics = fit_lda(texts, n_topics=n_topics, random_state=random_state)
    terms = top_topic_terms(lda, vec)
    terms.to_csv(os.path.join(results_dir, "topic_terms.csv"), index=False)
    doc_topics.index = df.index
    doc_topics.to_csv(os.path.join(results_dir, "document_topics.csv"))
    for topic, block in terms.groupby("topic"):
        logger.info(f"{topic}: {', '.join(block['term'].head(8))}")

    out = {"frequencies": freqs, "topic_terms": terms, "document_topics": doc_topics, "model": lda}
    if group is not None:
        tfidf = top_tfidf_terms(texts, df[group])
        tfidf.to_csv(os.path.join(results_dir, "group_tfidf_terms.csv"), index=False)
        out["group_terms"] = tfidf
    return out
