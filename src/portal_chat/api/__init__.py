"""Superfície HTTP (FastAPI) do gateway de chat."""
