"""Traktr feature modules."""
