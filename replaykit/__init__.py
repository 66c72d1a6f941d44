"""
replaykit
---------
Capture user interactions as locator bundles and replay them against a
possibly-changed page.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
