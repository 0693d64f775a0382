"""
sitecrawl

A bounded, polite, resumable breadth-first site crawler driven by a
headless browser, with hooks for page, request and console auditing.
"""

__version__ = "1.0.0"
__description__ = "Same-origin site crawler with pluggable page and request hooks"
