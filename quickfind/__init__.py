"""
quickfind - find empty appointment spots for a dental practice.
"""

__version__ = "0.3.0"
