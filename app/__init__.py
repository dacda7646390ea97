"""FastAPI service exposing the voice capture pipeline."""
