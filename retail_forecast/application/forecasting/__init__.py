"""
Forecasting Package

Model families implementing the ForecastModel capability and the numpy
structures they train on.
"""

from .base import FORMAT_VERSION, ForecastModel, SeriesFrame, TrainingFrame
from .factory import ModelCache, create_model, load_model, model_class
from .metrics import absolute_percentage_error, mape, regression_metrics
from .regression_model import ClimateRegressionModel

__all__ = [
    "FORMAT_VERSION",
    "ClimateRegressionModel",
    "ForecastModel",
    "ModelCache",
    "SeriesFrame",
    "TrainingFrame",
    "absolute_percentage_error",
    "create_model",
    "load_model",
    "mape",
    "model_class",
    "regression_metrics",
]
