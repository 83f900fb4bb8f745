"""Tienda Nube / Nuvemshop theme synchronization over FTP."""

__version__ = "1.0.0"
