"""Lumen command line interface."""
