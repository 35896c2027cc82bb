# server/app.py
import os
from functools import lru_cache
from typing import Dict, List, Optional, Union

import joblib
import pandas as pd
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, model_validator

from la_methods import config
from la_methods.logging_utils import get_logger

logger = get_logger("la_methods.server")

FeatureValue = Union[float, int, str, bool, None]


class PredictionRequest(BaseModel):
    features: Optional[Dict[str, FeatureValue]] = None
    records: Optional[List[Dict[str, FeatureValue]]] = None

    @model_validator(mode="after")
    def one_payload(self):
        if (self.features is None) == (self.records is None):
            raise ValueError("Provide exactly one of 'features' or 'records'")
        if self.records is not None and not self.records:
            raise ValueError("'records' must not be empty")
        return self


class PredictionResponse(BaseModel):
    predictions: List[Union[float, str]]
    probabilities: Optional[List[List[float]]] = None
    classes: Optional[List[str]] = None


def model_path() -> str:
    return os.environ.get("LA_MODEL_PATH", config.MODEL_PATH)


@lru_cache(maxsize=4)
def load_model(path: str):
    logger.info(f"Loading model pipeline from '{path}'")
    return joblib.load(path)


app = FastAPI(title="la-methods prediction service")


@app.get("/health")
def health():
    path = model_path()
    return {"status": "ok", "model_path": path, "model_available": os.path.exists(path)}


@app.post("/predict", response_model=PredictionResponse)
def predict(request: PredictionRequest):
    path = model_path()
    if not os.path.exists(path):
        raise HTTPException(status_code=503, detail=f"No model found at '{path}'")
    model = load_model(path)

    rows = request.records if request.records is not None else [request.features]
    df = pd.DataFrame(rows)
    try:
        yhat = model.predict(df)
    except (KeyError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=f"Could not score features: {exc}")

    # pipelines saved by run_classification carry their label names
    class_names = getattr(model, "class_names_", None)
    if class_names is not None:
        predictions = [class_names[int(v)] for v in yhat]
    else:
        predictions = [v.item() if hasattr(v, "item") else v for v in yhat]
    probabilities = None
    if hasattr(model, "predict_proba"):
        probabilities = model.predict_proba(df).tolist()
    return {"predictions": predictions, "probabilities": probabilities, "classes": class_names}
