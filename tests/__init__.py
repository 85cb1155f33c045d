"""
Test suite for Script Layers.

Test structure:
- unit/ - Unit tests (fast, isolated)
- integration/ - Integration tests (threads, real files)
- fixtures/ - Sample scripts, mock sources and layer helpers

Run tests:
    pytest                    # All tests
    pytest tests/unit         # Unit tests only
    pytest tests/integration  # Integration tests only
    pytest -k "conflict"      # Tests matching name

Philosophy:
    The engine must never hand out a half-swapped view of its layers.
    Unit tests pin each component; integration tests hammer the swap.
"""
