"""Command line interface for cutintake."""
