"""Traktr Jobs Module - job normalization, fetch strategies and local job list."""
