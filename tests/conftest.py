"""
Shared pytest fixtures: small synthetic educational datasets (no network).
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def results_dir(tmp_path):
    return str(tmp_path / "results")


@pytest.fixture
def student_df():
    """
    Engagement indicators with a final grade driven mostly by sessions and
    active days, and a High/Low achievement label split at the median grade.
    """
    rng = np.random.default_rng(0)
    n = 240
    sessions = rng.poisson(30, n).astype(float)
    active_days = rng.integers(5, 60, n).astype(float)
    forum_posts = rng.poisson(5, n).astype(float)
    video_minutes = rng.normal(300, 60, n)
    gender = rng.choice(["F", "M"], n)
    grade = 20 + 2.0 * sessions + 0.3 * active_days + 0.1 * forum_posts + rng.normal(0, 3, n)
    df = pd.DataFrame({
        "sessions": sessions,
        "active_days": active_days,
        "forum_posts": forum_posts,
        "video_minutes": video_minutes,
        "gender": gender,
        "grade": grade,
    })
    df["achievement"] = np.where(df["grade"] > df["grade"].median(), "High", "Low")
    return df


@pytest.fixture
def forum_edges():
    # two dense cliques joined by a single reply
    edges = []
    group_a = ["ana", "ben", "cai", "dee"]
    group_b = ["eli", "fay", "gus", "hal"]
    for group in (group_a, group_b):
        for s in group:
            for t in group:
                if s != t:
                    edges.append((s, t))
    edges += [("ana", "ben"), ("ana", "ben"), ("dee", "eli")]
    return pd.DataFrame(edges, columns=["from", "to"])


@pytest.fixture
def questionnaire_df():
    """
    Six items loading on two uncorrelated factors (three items each).
    """
    rng = np.random.default_rng(1)
    n = 600
    f1, f2 = rng.standard_normal(n), rng.standard_normal(n)
    items = {}
    for i in range(3):
        items[f"motivation_{i + 1}"] = 0.8 * f1 + 0.5 * rng.standard_normal(n)
        items[f"anxiety_{i + 1}"] = 0.8 * f2 + 0.5 * rng.standard_normal(n)
    return pd.DataFrame(items)


@pytest.fixture
def esm_df():
    """
    Two students, 150 prompts each, where 'effort' at t-1 drives 'focus' at t.
    """
    rng = np.random.default_rng(2)
    frames = []
    for student in ("s1", "s2"):
        n = 150
        effort, focus, mood = np.zeros(n), np.zeros(n), np.zeros(n)
        for t in range(1, n):
            effort[t] = 0.3 * effort[t - 1] + rng.standard_normal()
            focus[t] = 0.6 * effort[t - 1] + 0.1 * focus[t - 1] + rng.standard_normal()
            mood[t] = 0.2 * mood[t - 1] + rng.standard_normal()
        frames.append(pd.DataFrame({"student": student, "beep": np.arange(n),
                                    "effort": effort, "focus": focus, "mood": mood}))
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def coded_events():
    """
    Long-format discourse codes: 'plan' is always followed by 'monitor' in
    group A, and by 'evaluate' in group B.
    """
    rows = []
    for g, follow in (("A", "monitor"), ("B", "evaluate")):
        for s in range(10):
            session = f"{g}{s}"
            seq = ["plan", follow, "plan", follow, "discuss", "plan", follow]
            for i, code in enumerate(seq):
                rows.append({"session": session, "turn": i, "code": code, "group": g})
    return pd.DataFrame(rows)


@pytest.fixture
def discourse_df():
    rng = np.random.default_rng(3)
    templates = {
        "Reasoning": ["because the data shows {}", "so it follows that {} matters",
                      "the reason is {} therefore"],
        "Agreement": ["yes I agree with {}", "exactly, {} is right", "agreed, good point about {}"],
        "Question": ["what do you mean by {}?", "why would {} happen?", "how does {} work?"],
    }
    topics = ["feedback", "the rubric", "our essay", "the graph", "the task", "motivation"]
    rows = []
    for code, forms in templates.items():
        for i in range(30):
            text = forms[i % len(forms)].format(topics[rng.integers(len(topics))])
            rows.append({"text": text, "code": code})
    df = pd.DataFrame(rows).sample(frac=1.0, random_state=3).reset_index(drop=True)
    # a block of turns nobody has coded yet
    extra = pd.DataFrame({"text": ["I agree with the rubric", "why is the graph wrong?"],
                          "code": [None, None]})
    return pd.concat([df, extra], ignore_index=True)


class FakeEncoder:
    """Bag-of-keywords stand-in for a sentence-transformers model."""

    vocabulary = ["because", "reason", "follows", "therefore", "agree", "exactly", "agreed",
                  "right", "what", "why", "how", "?"]

    def __init__(self):
        self.calls = 0

    def encode(self, texts, batch_size=32, show_progress_bar=False):
        self.calls += 1
        return np.array([[float(w in t.lower()) for w in self.vocabulary] for t in texts])


@pytest.fixture
def fake_encoder():
    return FakeEncoder()
