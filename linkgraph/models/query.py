"""
Hybrid query AST.

A closed set of node types produced by the parser and consumed by the
evaluator. Nodes are frozen so parsed queries can be compared and cached.
"""

from typing import Union

from pydantic import BaseModel


class TagFilter(BaseModel):
    """`tag:foo` - hard filter on the node's tag set."""

    model_config = {"frozen": True}

    tag: str

    def __str__(self) -> str:
        return f"tag({self.tag})"


class SimilarityTerm(BaseModel):
    """`"vector db"` or bare words - rank by similarity to the phrase."""

    model_config = {"frozen": True}

    phrase: str

    def __str__(self) -> str:
        return f'similarity("{self.phrase}")'


class Not(BaseModel):
    model_config = {"frozen": True}

    operand: "QueryNode"

    def __str__(self) -> str:
        return f"NOT({self.operand})"


class And(BaseModel):
    model_config = {"frozen": True}

    operands: tuple["QueryNode", ...]

    def __str__(self) -> str:
        return f"AND({', '.join(str(op) for op in self.operands)})"


class Or(BaseModel):
    model_config = {"frozen": True}

    operands: tuple["QueryNode", ...]

    def __str__(self) -> str:
        return f"OR({', '.join(str(op) for op in self.operands)})"


QueryNode = Union[TagFilter, SimilarityTerm, Not, And, Or]

Not.model_rebuild()
And.model_rebuild()
Or.model_rebuild()


def similarity_terms(node: QueryNode) -> list[SimilarityTerm]:
    """Collect similarity terms in left-to-right order, de-duplicated."""
    found: list[SimilarityTerm] = []

    def walk(current: QueryNode) -> None:
        if isinstance(current, SimilarityTerm):
            if current not in found:
                found.append(current)
        elif isinstance(current, Not):
            walk(current.operand)
        elif isinstance(current, (And, Or)):
            for operand in current.operands:
                walk(operand)

    walk(node)
    return found
