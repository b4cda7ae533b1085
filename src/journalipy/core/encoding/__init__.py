"""Encoders for journal records."""
