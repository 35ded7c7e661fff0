"""
Command-line interface for the quote desk
"""
