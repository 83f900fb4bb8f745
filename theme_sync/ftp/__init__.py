"""FTP operations module for the theme sync tool.

This module handles all FTP-related functionality:
- FTPConnectionManager: Pooled session with idle timeout and invalidation
- FTPService: Retrying file operations and recursive tree transfers
- Listing: Remote directory entries and type-code discrimination
- Exceptions: Classified FTP error types
"""
