"""
Shared helpers for dates, text and display formatting.
"""
