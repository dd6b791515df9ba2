"""
Vaultline: import personal-data exports into a private, encrypted store
and read them back as a timeline.
"""

__version__ = "0.1.0"
