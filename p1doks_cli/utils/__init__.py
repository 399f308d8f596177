"""
Helpers for folder layout, calendar arithmetic and display formatting.
"""
