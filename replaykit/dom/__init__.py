# replaykit/dom/__init__.py
"""
DOM hosts
---------
Capability protocols plus two hosts: an offline BeautifulSoup snapshot and a
Playwright-backed live page. Import hosts from their submodules, e.g.
  from replaykit.dom.snapshot import SnapshotDocument
  from replaykit.dom.playwright_host import PlaywrightHost
"""

from .protocols import Clock, DocumentAccessor, EventDispatcher, NodeInspector, TimerHandle

__all__ = [
    "Clock",
    "DocumentAccessor",
    "EventDispatcher",
    "NodeInspector",
    "TimerHandle",
]
