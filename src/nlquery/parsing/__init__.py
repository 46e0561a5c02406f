"""
Semantic Parsers

Deterministic, network-free conversion of time expressions, quantities and
fee size tiers into canonical values.
"""

from src.nlquery.parsing.numbers import NumberCalculator
from src.nlquery.parsing.size_tiers import TIERS, SizeTierCalculator
from src.nlquery.parsing.time_parser import SemanticTimeParser, parse_time_reference

__all__ = [
    "NumberCalculator",
    "SemanticTimeParser",
    "SizeTierCalculator",
    "TIERS",
    "parse_time_reference",
]
