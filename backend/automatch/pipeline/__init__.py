"""Matching pipeline stages and the run orchestrator."""
