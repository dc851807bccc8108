"""Application package root.

Builds static manual sites from markdown sources (``app.services``) and
serves them with language negotiation and campaign fallbacks
(``app.routes``). ``app.startup.wiring`` ties both together.
"""

__all__ = [
]
