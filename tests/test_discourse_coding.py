import os

import numpy as np
import pandas as pd
import pytest

from la_methods import discourse_coding
from la_methods.discourse_coding import agreement, code_discourse, embed_texts, load_encoder, train_coder


def test_embed_texts_with_encoder(fake_encoder):
    emb = embed_texts(["because it works", None, float("nan")], encoder=fake_encoder)
    assert emb.shape == (3, len(fake_encoder.vocabulary))
    assert emb[0, 0] == 1.0
    assert emb[1].sum() == 0
    assert fake_encoder.calls == 1


def test_embed_texts_tfidf_and_errors():
    emb = embed_texts(["yes I agree", "why not?"], backend="tfidf")
    assert emb.shape[0] == 2
    with pytest.raises(ValueError):
        embed_texts(["text"], backend="word2vec")
    with pytest.raises(ValueError):
        embed_texts([])


def test_load_encoder_is_cached(monkeypatch):
    created = []

    class DummyModel:
        def __init__(self, name):
            created.append(name)

    monkeypatch.setattr("sentence_transformers.SentenceTransformer", DummyModel)
    monkeypatch.setattr(discourse_coding, "_ENCODERS", {})
    first = load_encoder("tiny-model")
    assert load_encoder("tiny-model") is first
    assert created == ["tiny-model"]


def test_train_coder_needs_two_codes():
    with pytest.raises(ValueError):
        train_coder(np.zeros((4, 2)), ["Question"] * 4)
    with pytest.raises(ValueError):
        train_coder(np.zeros((4, 2)), ["a", "b", "a", "b"], classifier="bert")


def test_agreement_perfect():
    out = agreement(["a", "b", "a"], ["a", "b", "a"])
    assert out["accuracy"] == 1.0
    assert out["kappa"] == pytest.approx(1.0)
    assert set(out["per_code"].index) == {"a", "b"}


def test_code_discourse_with_embeddings(discourse_df, fake_encoder, results_dir):
    out = code_discourse(discourse_df, "text", "code", encoder=fake_encoder, results_dir=results_dir)
    assert out["accuracy"] > 0.9
    assert out["kappa"] > 0.85
    assert len(out["train_index"]) == 45
    assert len(out["test_index"]) == 45
    assert set(out["train_index"]).isdisjoint(out["test_index"])
    predictions = out["predictions"]
    assert len(predictions) == len(discourse_df)
    assert predictions.iloc[-2] == "Agreement"
    assert predictions.iloc[-1] == "Question"
    for fname in ("discourse_per_code.csv", "discourse_predictions.csv", "discourse_confusion.png"):
        assert os.path.exists(os.path.join(results_dir, fname))


@pytest.mark.parametrize("classifier", ["random_forest", "svm"])
def test_code_discourse_tfidf_baseline(discourse_df, classifier):
    out = code_discourse(discourse_df, "text", "code", backend="tfidf", classifier=classifier)
    assert out["accuracy"] > 0.8


def test_code_discourse_small_sample_splits_without_stratifying(fake_encoder):
    df = pd.DataFrame({
        "text": ["because it works", "the reason is time", "I agree", "exactly right",
                 "what is this?", "why now?", "how so?"],
        "code": ["Reasoning", "Reasoning", "Agreement", "Agreement", "Question", "Question", None],
    })
    out = code_discourse(df, "text", "code", train_fraction=0.8, encoder=fake_encoder)
    assert len(out["train_index"]) == 4
    assert len(out["test_index"]) == 2
    assert 6 not in set(out["train_index"]) | set(out["test_index"])
    assert len(out["predictions"]) == 7


def test_code_discourse_argument_checks(discourse_df, fake_encoder):
    with pytest.raises(KeyError):
        code_discourse(discourse_df, "utterance", "code", encoder=fake_encoder)
    with pytest.raises(ValueError):
        code_discourse(discourse_df, "text", "code", train_fraction=1.0, encoder=fake_encoder)
