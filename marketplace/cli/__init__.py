"""Marketplace command-line interface."""
