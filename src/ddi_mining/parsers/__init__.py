"""
Parsers module for DDI mining.

Pattern-based readers of source text.
"""

from ddi_mining.parsers.interaction_text import InteractionSignal, InteractionTextParser

__all__ = [
    "InteractionSignal",
    "InteractionTextParser",
]
