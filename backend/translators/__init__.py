"""
Deterministic Translator Layer

Converts a laid-out FlowGraph to the render format.
All rendering payload logic is deterministic and separate from layout.
"""

from .flow_translator import FlowRenderTranslator

__all__ = ['FlowRenderTranslator']
