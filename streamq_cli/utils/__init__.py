"""
Small helpers for paths and formatting.
"""
