"""
State estimation components of the tag-aided VIO filter.

Available components:
    - State vector codec (full and Euclidean flat vectors)
    - Predict engine (adaptive RK integration + exponential-map rotations)
"""

from tagvio.estimators.base import StatePredictor
from tagvio.estimators.config import PredictConfig, ProcessNoiseParams
from tagvio.estimators.state_codec import RotationBlocks, StateLayout, decode, encode
from tagvio.estimators.vio_predict import (
    IntegrationError,
    RateModel,
    TagVioPredictor,
    integrate_euclidean,
    predict,
)

__all__ = [
    # Configuration
    "PredictConfig",
    "ProcessNoiseParams",
    # Codec
    "RotationBlocks",
    "StateLayout",
    "encode",
    "decode",
    # Predict
    "StatePredictor",
    "IntegrationError",
    "RateModel",
    "TagVioPredictor",
    "integrate_euclidean",
    "predict",
]
