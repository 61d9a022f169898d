"""Schemas module - Pydantic request/response and payload models."""
