"""Sync gate and the order pipeline orchestrator."""
