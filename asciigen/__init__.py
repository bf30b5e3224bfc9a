"""ASCII animation engine.

Turns a natural-language request into a fixed-size sequence of text frames
through repeated model calls, and merges finished animations together.
"""

from .pipeline import AsciiAnimator  # noqa: F401

__all__ = ["AsciiAnimator"]
