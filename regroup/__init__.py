"""Regroup service: HTTP API and CLI around the clustering engine."""
