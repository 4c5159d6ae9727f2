"""
Tests for the hybrid query lexer and parser.
"""

import pytest

from linkgraph.core.query.parser import Lexer, QueryParser, parse_query
from linkgraph.models.query import And, Not, Or, SimilarityTerm, TagFilter
from linkgraph.utils.exceptions import QueryParseError


@pytest.mark.unit
class TestLexer:
    def test_token_kinds_and_positions(self):
        tokens = Lexer('tag:ml AND "vector db"').tokens()

        assert [(t.kind, t.value, t.position) for t in tokens] == [
            ("TAG", "ml", 0),
            ("AND", "AND", 7),
            ("PHRASE", "vector db", 11),
            ("EOF", "", 22),
        ]

    def test_lowercase_keywords_are_words(self):
        kinds = [t.kind for t in Lexer("cats and dogs").tokens()]

        assert kinds == ["WORD", "WORD", "WORD", "EOF"]

    def test_negated_tag(self):
        token = Lexer("-tag:draft").tokens()[0]

        assert (token.kind, token.value) == ("NOT_TAG", "draft")

    def test_tag_name_is_normalized(self):
        assert Lexer("tag:ML").tokens()[0].value == "ml"


@pytest.mark.unit
class TestParser:
    def test_tag_and_phrase(self):
        ast = parse_query('tag:ml AND "vector db"')

        assert ast == And(operands=(TagFilter(tag="ml"), SimilarityTerm(phrase="vector db")))
        assert str(ast) == 'AND(tag(ml), similarity("vector db"))'

    def test_adjacent_terms_are_anded(self):
        assert parse_query('tag:ml "vector db"') == parse_query('tag:ml AND "vector db"')

    def test_adjacent_words_form_one_phrase(self):
        assert parse_query("vector database tuning") == SimilarityTerm(
            phrase="vector database tuning"
        )

    def test_precedence_and_binds_tighter_than_or(self):
        ast = parse_query("tag:a OR tag:b AND tag:c")

        assert ast == Or(
            operands=(
                TagFilter(tag="a"),
                And(operands=(TagFilter(tag="b"), TagFilter(tag="c"))),
            )
        )

    def test_parentheses_override_precedence(self):
        ast = parse_query("(tag:a OR tag:b) AND tag:c")

        assert ast == And(
            operands=(
                Or(operands=(TagFilter(tag="a"), TagFilter(tag="b"))),
                TagFilter(tag="c"),
            )
        )

    def test_same_operator_chains_are_flattened(self):
        ast = parse_query("tag:a AND tag:b AND tag:c")

        assert isinstance(ast, And)
        assert len(ast.operands) == 3

    def test_not_and_minus_are_equivalent(self):
        assert parse_query("NOT tag:draft") == parse_query("-tag:draft")
        assert parse_query("-tag:draft") == Not(operand=TagFilter(tag="draft"))

    def test_not_over_group_of_tags(self):
        ast = parse_query("NOT (tag:a OR tag:b)")

        assert ast == Not(operand=Or(operands=(TagFilter(tag="a"), TagFilter(tag="b"))))


@pytest.mark.unit
class TestParseErrors:
    @pytest.mark.parametrize(
        ("query", "position", "fragment"),
        [
            ("tag:ml AND", 10, "Expected a term after AND"),
            ("tag:ml OR", 9, "Expected a term after OR"),
            ("(tag:a", 6, "Expected ')'"),
            ("tag:a)", 5, "Unbalanced ')'"),
            ("()", 1, "Empty parentheses"),
            ('"unterminated', 0, "Unterminated"),
            ('""', 0, "Empty quoted phrase"),
            ("tag:", 4, "Expected tag name"),
            ("-foo", 0, "'-' can only negate"),
            ('NOT "vector db"', 0, "NOT cannot apply"),
            ("NOT", 3, "Expected a term after NOT"),
        ],
    )
    def test_error_positions(self, query, position, fragment):
        with pytest.raises(QueryParseError) as exc_info:
            parse_query(query)

        assert exc_info.value.position == position
        assert fragment in exc_info.value.message

    def test_empty_query(self):
        with pytest.raises(QueryParseError) as exc_info:
            parse_query("   ")

        assert exc_info.value.position == 0

    def test_query_too_long(self):
        with pytest.raises(QueryParseError) as exc_info:
            QueryParser(max_length=10).parse("tag:abcdefgh")

        assert exc_info.value.position == 10

    def test_pointer_marks_position(self):
        with pytest.raises(QueryParseError) as exc_info:
            parse_query("tag:ml AND")

        assert exc_info.value.pointer() == "tag:ml AND\n          ^"
