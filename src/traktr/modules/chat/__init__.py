"""Traktr Chat Module - per-job message threads for company crews."""
