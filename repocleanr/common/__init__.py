"""Shared helpers used across repocleanr packages."""
