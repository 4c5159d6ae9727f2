"""
Hybrid query parser.

Grammar (precedence NOT > AND > OR, parentheses override):

    query    := or_expr EOF
    or_expr  := and_expr ("OR" and_expr)*
    and_expr := unary (["AND"] unary)*        adjacent terms are AND-ed
    unary    := "NOT" unary | primary
    primary  := "tag:" NAME | "-tag:" NAME | '"' phrase '"' | WORD+ | "(" or_expr ")"

Adjacent bare words form one similarity phrase. Keywords are upper-case
only; lower-case "and"/"or"/"not" are ordinary words. Similarity terms
rank rather than filter, so negating one is rejected.
"""

from typing import NamedTuple

from linkgraph.models.node import normalize_tags
from linkgraph.models.query import (
    And,
    Not,
    Or,
    QueryNode,
    SimilarityTerm,
    TagFilter,
    similarity_terms,
)
from linkgraph.utils.exceptions import QueryParseError

KEYWORDS = {"AND", "OR", "NOT"}
TAG_PREFIX = "tag:"
DEFAULT_MAX_LENGTH = 1000


class Token(NamedTuple):
    kind: str  # LPAREN, RPAREN, AND, OR, NOT, TAG, NOT_TAG, PHRASE, WORD, EOF
    value: str
    position: int


class Lexer:
    """Splits a query string into positioned tokens."""

    def __init__(self, query: str):
        self.query = query
        self.length = len(query)

    def tokens(self) -> list[Token]:
        tokens: list[Token] = []
        pos = 0
        while pos < self.length:
            char = self.query[pos]
            if char.isspace():
                pos += 1
            elif char == "(":
                tokens.append(Token("LPAREN", char, pos))
                pos += 1
            elif char == ")":
                tokens.append(Token("RPAREN", char, pos))
                pos += 1
            elif char == '"':
                phrase, end = self._read_quoted(pos)
                if not phrase.strip():
                    raise QueryParseError("Empty quoted phrase", self.query, pos)
                tokens.append(Token("PHRASE", " ".join(phrase.split()), pos))
                pos = end
            elif self.query.startswith("-" + TAG_PREFIX, pos):
                name, end = self._read_tag_name(pos + 1 + len(TAG_PREFIX))
                tokens.append(Token("NOT_TAG", name, pos))
                pos = end
            elif self.query.startswith(TAG_PREFIX, pos):
                name, end = self._read_tag_name(pos + len(TAG_PREFIX))
                tokens.append(Token("TAG", name, pos))
                pos = end
            elif char == "-" and (pos + 1 >= self.length or not self.query[pos + 1].isspace()):
                raise QueryParseError("'-' can only negate a tag filter", self.query, pos)
            else:
                word, end = self._read_word(pos)
                kind = word if word in KEYWORDS else "WORD"
                tokens.append(Token(kind, word, pos))
                pos = end

        tokens.append(Token("EOF", "", self.length))
        return tokens

    def _read_quoted(self, start: int) -> tuple[str, int]:
        end = self.query.find('"', start + 1)
        if end == -1:
            raise QueryParseError("Unterminated quoted phrase", self.query, start)
        return self.query[start + 1 : end], end + 1

    def _read_tag_name(self, start: int) -> tuple[str, int]:
        if start < self.length and self.query[start] == '"':
            raw, end = self._read_quoted(start)
        else:
            raw, end = self._read_word(start)
        names = normalize_tags([raw])
        if not names:
            raise QueryParseError("Expected tag name after 'tag:'", self.query, start)
        return names[0], end

    def _read_word(self, start: int) -> tuple[str, int]:
        end = start
        while end < self.length and not self.query[end].isspace() and self.query[end] not in '()"':
            end += 1
        return self.query[start:end], end


class QueryParser:
    """Recursive-descent parser producing the query AST."""

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self.max_length = max_length
        self._tokens: list[Token] = []
        self._index = 0
        self._query = ""

    def parse(self, query: str) -> QueryNode:
        """
        Parse a query string.

        Args:
            query: Raw query, e.g. `tag:ml AND "vector db"`

        Returns:
            Root AST node

        Raises:
            QueryParseError: Malformed query; `position` marks the offending offset
        """
        if len(query) > self.max_length:
            raise QueryParseError(
                f"Query longer than {self.max_length} characters", query, self.max_length
            )
        if not query.strip():
            raise QueryParseError("Empty query", query, 0)

        self._query = query
        self._tokens = Lexer(query).tokens()
        self._index = 0

        node = self._parse_or()
        token = self._peek()
        if token.kind == "RPAREN":
            raise QueryParseError("Unbalanced ')'", query, token.position)
        if token.kind != "EOF":
            raise QueryParseError(f"Unexpected '{token.value}'", query, token.position)
        return node

    # ═══════════════════════════════════════════════════════════
    # GRAMMAR RULES
    # ═══════════════════════════════════════════════════════════

    def _parse_or(self) -> QueryNode:
        operands = [self._parse_and()]
        while self._peek().kind == "OR":
            operator = self._advance()
            operands.append(self._parse_and(after=operator))
        return _combine(Or, operands)

    def _parse_and(self, after: Token | None = None) -> QueryNode:
        operands = [self._parse_unary(after)]
        while True:
            token = self._peek()
            if token.kind == "AND":
                operator = self._advance()
                operands.append(self._parse_unary(after=operator))
            elif token.kind in ("NOT", "TAG", "NOT_TAG", "PHRASE", "WORD", "LPAREN"):
                operands.append(self._parse_unary())
            else:
                break
        return _combine(And, operands)

    def _parse_unary(self, after: Token | None = None) -> QueryNode:
        token = self._peek()
        if token.kind == "NOT":
            self._advance()
            operand = self._parse_unary(after=token)
            if similarity_terms(operand):
                raise QueryParseError(
                    "NOT cannot apply to a similarity term", self._query, token.position
                )
            return Not(operand=operand)
        return self._parse_primary(after)

    def _parse_primary(self, after: Token | None = None) -> QueryNode:
        token = self._peek()

        if token.kind == "TAG":
            self._advance()
            return TagFilter(tag=token.value)

        if token.kind == "NOT_TAG":
            self._advance()
            return Not(operand=TagFilter(tag=token.value))

        if token.kind == "PHRASE":
            self._advance()
            return SimilarityTerm(phrase=token.value)

        if token.kind == "WORD":
            words = [self._advance().value]
            while self._peek().kind == "WORD":
                words.append(self._advance().value)
            return SimilarityTerm(phrase=" ".join(words))

        if token.kind == "LPAREN":
            self._advance()
            if self._peek().kind == "RPAREN":
                raise QueryParseError("Empty parentheses", self._query, self._peek().position)
            node = self._parse_or()
            closing = self._peek()
            if closing.kind != "RPAREN":
                raise QueryParseError("Expected ')'", self._query, closing.position)
            self._advance()
            return node

        if after is not None:
            message = f"Expected a term after {after.value}"
        elif token.kind == "EOF":
            message = "Unexpected end of query"
        else:
            message = f"Unexpected '{token.value}'"
        raise QueryParseError(message, self._query, token.position)

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "EOF":
            self._index += 1
        return token


def _combine(kind: type[And] | type[Or], operands: list[QueryNode]) -> QueryNode:
    """Build an n-ary node, flattening nested nodes of the same kind."""
    if len(operands) == 1:
        return operands[0]
    flat: list[QueryNode] = []
    for operand in operands:
        if isinstance(operand, kind):
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    return kind(operands=tuple(flat))


def parse_query(query: str, max_length: int = DEFAULT_MAX_LENGTH) -> QueryNode:
    """Parse a query string into its AST."""
    return QueryParser(max_length=max_length).parse(query)
