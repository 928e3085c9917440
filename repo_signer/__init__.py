"""Signing and publishing engine for APT and DNF package repositories."""

__version__ = "1.0.0"
