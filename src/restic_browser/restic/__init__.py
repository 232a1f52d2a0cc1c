"""restic binary integration: process runner, credentials, client and repository."""
