"""Lookup precedence between the layers and the outer namespace."""

from enum import Enum


class Precedence(Enum):
    """Which side is asked first when a name could come from either"""
    OUTER_FIRST = 'outer_first'
    SELF_FIRST = 'self_first'
