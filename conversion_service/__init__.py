"""
Conversion Service - HTML and URL to PDF conversion.

Renders documents through headless Chromium, merges batches in request
order, and optionally watermarks and encrypts the result.
"""

__version__ = "0.1.0"
