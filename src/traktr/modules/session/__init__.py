"""Traktr Session Module - session resolution, routing and the session provider."""
