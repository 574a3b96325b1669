"""Audit pipeline modules."""
