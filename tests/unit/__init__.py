"""
Unit tests for the Digi Storage Client for Python
"""
