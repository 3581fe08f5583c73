"""Traktr - field-service job tracker backend."""

__version__ = "0.3.0"
