"""
TigrisDB SDK Test Suite.

This package contains:
- unit/: Unit tests (fakes, no network)
- integration/: Integration tests (in-process gRPC server)
"""
