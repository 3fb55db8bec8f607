"""
nepaltools: a local file store with quota accounting, history and backups.
"""

__version__ = "2.0.0"
