# config.py

import os

# -----------------------------------------------------------------------------
# Paths and remote data
# -----------------------------------------------------------------------------

RESULTS_DIR = os.environ.get("LA_RESULTS_DIR", "results")
DATA_CACHE_DIR = os.environ.get("LA_DATA_CACHE_DIR", "data_cache")
DATA_BASE_URL = os.environ.get("LA_DATA_BASE_URL", "https://github.com/lamethods/data/raw/main")
MODEL_PATH = os.environ.get("LA_MODEL_PATH", os.path.join("models", "pipeline.joblib"))

# -----------------------------------------------------------------------------
# Modeling defaults
# -----------------------------------------------------------------------------

RANDOM_STATE = int(os.environ.get("LA_RANDOM_STATE", "42"))
TEST_SIZE = float(os.environ.get("LA_TEST_SIZE", "0.2"))
CV_FOLDS = int(os.environ.get("LA_CV_FOLDS", "5"))
FIGURE_DPI = int(os.environ.get("LA_FIGURE_DPI", "150"))
DOWNLOAD_TIMEOUT = float(os.environ.get("LA_DOWNLOAD_TIMEOUT", "60"))

# Sentence-transformers checkpoint used for discourse coding
EMBEDDING_MODEL = os.environ.get("LA_EMBEDDING_MODEL", "all-MiniLM-L6-v2")

# Ordinal survey levels as used across the student datasets
ORDINAL_LEVELS = {"Low": 1, "Medium": 2, "High": 3}


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path
