"""
Utility helpers: human-readable formatting and structured event logging.
"""
