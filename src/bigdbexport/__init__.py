"""
BigDB Export - Terminal-first exporter for BigDB tables.

A CLI tool that reads the key sets out of BigDB snapshot archives,
provisions a temporary read-only connection to the live store, and
re-fetches every record to disk with safe resume.
"""

__version__ = "0.1.0"
__app_name__ = "bigdbexport"
