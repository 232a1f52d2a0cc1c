"""Core infrastructure shared by the restic client and the CLI."""
