"""Integration tests: concurrent resolution, layer swaps and real directories."""
