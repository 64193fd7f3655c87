"""
LogVault Test Suite.

This package contains:
- unit/: Unit tests (severity, store, provisioner, service, config, CLI)
- integration/: Integration tests (HTTP API over a temporary SQLite file)
"""
