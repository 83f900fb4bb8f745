"""Local theme folder module.

This module provides:
- ThemeWatcher: Watches the theme folder and syncs changes over FTP
"""
