"""Application layer: use cases, DTOs and forecasting models."""
