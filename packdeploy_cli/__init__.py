"""Command line driver for platform install, upgrade and status."""
