"""Timed quiz assessment service - Micro Learning System"""

__version__ = "1.0.0"
