"""Marketplace support triage engine."""
