"""Helpers shared across the installer: logging and HTTP."""
