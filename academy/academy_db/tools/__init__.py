"""Operator tooling for the academy store."""
