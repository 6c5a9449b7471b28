"""Ingestion workflows."""
