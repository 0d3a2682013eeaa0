"""
salonslots - appointment availability and slot reservation for salons.
"""

__version__ = "0.1.0"
