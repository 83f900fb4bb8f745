"""Utility module for the theme sync tool.

This module provides cross-cutting utilities:
- Logging: Configured logging with PII redaction
- Validators: Input validation for host, port, timeouts and FTP paths
- Paths: Local/remote path translation
"""
