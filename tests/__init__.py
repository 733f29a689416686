"""
Test suite for showfile-backup.

Test Categories:
- Unit tests: exclusion rules, traversal planning, archive writers, progress
- Integration tests: configuration loading, backup orchestration, the CLI
"""
