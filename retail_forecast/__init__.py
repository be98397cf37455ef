"""Retail forecasting and drift-management pipeline."""

__version__ = "0.1.0"
