"""
apiguard - HTTP request security-policy layer for the marketplace API
"""

__version__ = "0.1.0"
