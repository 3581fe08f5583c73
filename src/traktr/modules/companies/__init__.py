"""Traktr Companies Module - company create/join and employee profile setup."""
