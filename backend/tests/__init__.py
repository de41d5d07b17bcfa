"""
Tests package for SunnyCloud backend.

This package contains test suites organized by type:
- unit/: Fast tests against in-memory fakes
- contracts/: Contract tests for the object storage interface
- integration/: Integration tests with a real Redis server
- property/: Property-based tests using Hypothesis
"""
