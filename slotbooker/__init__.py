"""
slotbooker - Conflict-free appointment booking against weekly provider availability.
"""

__version__ = "0.1.0"
