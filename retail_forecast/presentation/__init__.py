"""Presentation layer: FastAPI routers."""
