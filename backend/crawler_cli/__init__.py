"""Typer CLI for the catalog ingest service."""
