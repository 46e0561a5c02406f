"""
Common Utilities

Shared infrastructure: log sanitization, resilience helpers and tracing.
"""
