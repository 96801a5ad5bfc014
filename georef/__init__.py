"""
georef - Philippine geographic reference data (PSGC) hierarchy service.
"""

__version__ = "1.0.0"
