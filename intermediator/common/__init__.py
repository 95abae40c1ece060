"""Shared helpers used across the intermediator pipelines."""
