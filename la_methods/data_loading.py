# data_loading.py

import os
import re
from urllib.parse import urlparse

import numpy as np
import pandas as pd
import requests

from la_methods import config
from la_methods.logging_utils import get_logger

logger = get_logger("la_methods.data")

READERS = {
    ".csv": "csv",
    ".xlsx": "excel",
    ".xls": "excel",
    ".parquet": "parquet",
}


class DatasetError(RuntimeError):
    """Raised when a remote dataset cannot be downloaded."""


def _is_url(source: str) -> bool:
    return urlparse(str(source)).scheme in ("http", "https")


def resolve_source(name: str) -> str:
    """
    URLs and existing local files are returned unchanged; anything else is
    treated as a file name inside the remote data repository.
    """
    if _is_url(name) or os.path.exists(name):
        return name
    return f"{config.DATA_BASE_URL.rstrip('/')}/{name.lstrip('/')}"


def fetch_remote(url: str, cache_dir: str = None) -> str:
    """
    Download `url` into `cache_dir` (once) and return the local path.
    """
    cache_dir = cache_dir or config.DATA_CACHE_DIR
    os.makedirs(cache_dir, exist_ok=True)
    filename = os.path.basename(urlparse(url).path) or "download"
    local_path = os.path.join(cache_dir, filename)

    if os.path.exists(local_path):
        logger.debug(f"Using cached copy of '{url}' at '{local_path}'")
        return local_path

    logger.info(f"Downloading '{url}'...")
    try:
        response = requests.get(url, timeout=config.DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise DatasetError(f"Could not download '{url}': {exc}") from exc

    with open(local_path, "wb") as f:
        f.write(response.content)
    logger.info(f"Saved {len(response.content)} bytes to '{local_path}'")
    return local_path


def load_dataset(source: str, sheet_name=None, cache_dir: str = None) -> pd.DataFrame:
    """
    Load a CSV, Excel or Parquet dataset from a local path, a URL, or a file
    name in the remote data repository.
    """
    source = resolve_source(source)
    path = fetch_remote(source, cache_dir) if _is_url(source) else source

    ext = os.path.splitext(urlparse(str(path)).path)[1].lower()
    kind = READERS.get(ext)
    if kind is None:
        raise ValueError(f"Unsupported file type '{ext}' for '{source}'")

    if kind == "csv":
        df = pd.read_csv(path)
    elif kind == "excel":
        df = pd.read_excel(path, sheet_name=sheet_name if sheet_name is not None else 0)
    else:
        df = pd.read_parquet(path)

    logger.info(f"Loaded '{source}' with shape {df.shape}")
    return df


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    'Frequency.Total ' -> 'frequency_total'
    """
    df = df.copy()
    df.columns = [
        re.sub(r"[^0-9a-z]+", "_", str(c).strip().lower()).strip("_")
        for c in df.columns
    ]
    return df


def standardize(df: pd.DataFrame, columns=None) -> pd.DataFrame:
    """
    Z-score numeric columns (sample SD). Constant columns are set to 0.
    """
    df = df.copy()
    if columns is None:
        columns = df.select_dtypes(include=[np.number]).columns.tolist()
    for col in columns:
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found")
        sd = df[col].std(ddof=1)
        if pd.isna(sd) or sd == 0:
            df[col] = 0.0
        else:
            df[col] = (df[col] - df[col].mean()) / sd
    return df


def drop_incomplete(df: pd.DataFrame, columns) -> pd.DataFrame:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not found: {missing}")
    before = len(df)
    df = df.dropna(subset=list(columns))
    if len(df) < before:
        logger.info(f"Dropped {before - len(df)} rows with missing values in {list(columns)}")
    return df


def encode_ordinal(df: pd.DataFrame, column: str, mapping=None, suffix: str = "_num") -> pd.DataFrame:
    """
    Map an ordinal string column (e.g. Low/Medium/High) to integers in a new
    column `<column><suffix>`. Unmapped levels become NaN.
    """
    if column not in df.columns:
        raise KeyError(f"Column '{column}' not found")
    mapping = mapping or config.ORDINAL_LEVELS
    df = df.copy()
    df[f"{column}{suffix}"] = df[column].map(mapping)
    return df
