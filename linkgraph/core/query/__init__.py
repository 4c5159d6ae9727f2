"""Hybrid query language: parser and evaluator."""

from linkgraph.core.query.evaluator import QueryEvaluator, matches
from linkgraph.core.query.parser import Lexer, QueryParser, Token, parse_query

__all__ = [
    "Lexer",
    "QueryParser",
    "Token",
    "parse_query",
    "QueryEvaluator",
    "matches",
]
