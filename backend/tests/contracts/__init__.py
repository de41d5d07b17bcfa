"""Contract tests shared by every object storage implementation."""
