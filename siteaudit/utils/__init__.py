"""Shared helpers: URL canonicalization, markup parsing, text processing."""
