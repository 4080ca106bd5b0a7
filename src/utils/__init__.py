"""Utilities package for the menu catalog importer."""
