"""
GMB Hub - Google Business Profile sync and analytics core
"""
__version__ = "1.0.0"
