"""
SmartQueue

A FastAPI-based patient service for booking hospital appointments,
assigning daily queue tokens and tracking live queue position.
"""

__version__ = "1.0.0"
