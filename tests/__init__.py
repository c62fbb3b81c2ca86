"""
Sentinela Backup Test Suite.

This package contains:
- unit/: Unit tests (no I/O beyond temporary files)
- integration/: Integration tests (restore pipeline, scheduler cycles,
  remote adapters against fake HTTP / S3 backends, the service facade)
"""
