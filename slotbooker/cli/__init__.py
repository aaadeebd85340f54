"""
Command line host for the booking engine.
"""
