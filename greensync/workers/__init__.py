"""
Workers module for command-line entry points.

This module contains:
- sync_cli: run one sync against the greenhouse API without the web server
"""
