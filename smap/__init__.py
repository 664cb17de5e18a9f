"""SMAP: social media analytics, scheduling and publishing API."""

__version__ = "1.0.0"
