"""Configuration constants for the barprinter worker."""
