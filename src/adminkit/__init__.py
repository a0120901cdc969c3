"""
adminkit: session-gated administrative backend on an embedded key-value store.
"""

__version__ = "0.1.0"
