"""
Core protocol layer for CDP Page: connection, sessions, events and errors.
"""
