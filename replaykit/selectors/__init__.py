# replaykit/selectors/__init__.py
"""
Selectors package
-----------------
Structural paths, the ordered locator strategies and the polling finder that
re-finds a captured element in the live document.
"""

from .paths import build_css_selector, build_xpath, evaluate_xpath
from .strategies import DEFAULT_STRATEGIES, Strategy, StrategyRegistry, text_similarity
from .finder import ElementFinder, FinderOptions

__all__ = [
    "build_css_selector",
    "build_xpath",
    "evaluate_xpath",
    "DEFAULT_STRATEGIES",
    "Strategy",
    "StrategyRegistry",
    "text_similarity",
    "ElementFinder",
    "FinderOptions",
]
