"""
Order matching engine for a simulated asset-tokenization marketplace.
"""

__version__ = "1.0.0"
