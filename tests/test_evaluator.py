"""ConditionalEvaluator unit tests — operators, combinators, and visibility.

Covers every condition operator (positive and negative case), the
missing-field policy, nested groups, and how branching rules combine with a
target's own ``visible_when`` predicate.
"""

import pytest

from packet_pipeline.evaluator import ConditionalEvaluator, is_missing
from packet_pipeline.models.question import QuestionBlock, ShortTextQuestion
from packet_pipeline.models.rule import BranchingRule, Condition, ConditionGroup


# --- Helpers to reduce boilerplate ---


def _cond(field, operator, value=None):
    """Shorthand to build a Condition."""
    return Condition(field=field, operator=operator, value=value)


def _group(*conditions, combinator="all"):
    """Shorthand to build a ConditionGroup."""
    return ConditionGroup(combinator=combinator, conditions=list(conditions))


def _block(block_id, visible_when=None):
    """Minimal block with one question."""
    return QuestionBlock(
        id=block_id,
        title=block_id,
        questions=[ShortTextQuestion(id=f"{block_id}-q", label="Q")],
        visible_when=visible_when,
    )


def _rule(target, when, rule_id=None):
    return BranchingRule(id=rule_id or f"rule-{target}", target=target, when=when)


@pytest.fixture
def ev():
    return ConditionalEvaluator()


# =====================================================================
# Operators
# =====================================================================


class TestOperators:

    def test_equals(self, ev):
        assert ev.evaluate(_cond("goal", "equals", "lose-weight"), {"goal": "lose-weight"})
        assert not ev.evaluate(_cond("goal", "equals", "lose-weight"), {"goal": "gain-muscle"})

    def test_equals_numeric_string(self, ev):
        """A numeric string answer equals the same number."""
        assert ev.evaluate(_cond("days", "equals", 5), {"days": "5"})

    def test_equals_list_value_means_membership(self, ev):
        cond = _cond("phase", "equals", ["pre-season", "in-season"])
        assert ev.evaluate(cond, {"phase": "in-season"})
        assert not ev.evaluate(cond, {"phase": "off-season"})

    def test_not_equals(self, ev):
        assert ev.evaluate(_cond("goal", "not_equals", "a"), {"goal": "b"})
        assert not ev.evaluate(_cond("goal", "not_equals", "a"), {"goal": "a"})

    def test_contains_list_answer(self, ev):
        assert ev.evaluate(_cond("focus", "contains", "sleep"), {"focus": ["stress", "sleep"]})
        assert not ev.evaluate(_cond("focus", "contains", "energy"), {"focus": ["sleep"]})

    def test_contains_string_answer(self, ev):
        assert ev.evaluate(_cond("goals", "contains", "nutrition"), {"goals": "better nutrition"})

    def test_not_contains(self, ev):
        assert ev.evaluate(_cond("allergies", "not_contains", "none"), {"allergies": ["dairy"]})
        assert not ev.evaluate(_cond("allergies", "not_contains", "none"), {"allergies": ["none"]})

    @pytest.mark.parametrize(
        "operator,value,answer,expected",
        [
            ("greater_than", 18, 21, True),
            ("greater_than", 18, 18, False),
            ("less_than", 18, "17", True),
            ("less_than", 18, 18, False),
            ("greater_than_or_equal", 18, 18, True),
            ("greater_than_or_equal", 18, 17.5, False),
            ("less_than_or_equal", 18, 18, True),
            ("less_than_or_equal", 18, 19, False),
        ],
    )
    def test_numeric_comparisons(self, ev, operator, value, answer, expected):
        assert ev.evaluate(_cond("age", operator, value), {"age": answer}) is expected

    def test_numeric_comparison_non_numeric_is_false(self, ev):
        assert not ev.evaluate(_cond("age", "greater_than", 18), {"age": "old"})

    def test_is_set_and_is_not_set(self, ev):
        assert ev.evaluate(_cond("name", "is_set"), {"name": "Jo"})
        assert not ev.evaluate(_cond("name", "is_not_set"), {"name": "Jo"})
        assert ev.evaluate(_cond("name", "is_not_set"), {})
        assert not ev.evaluate(_cond("name", "is_set"), {})


class TestMissingFields:
    """Absent, None, blank and empty answers behave identically."""

    @pytest.mark.parametrize("responses", [{}, {"x": None}, {"x": "  "}, {"x": []}])
    def test_missing_answer(self, ev, responses):
        assert ev.evaluate(_cond("x", "is_not_set"), responses)
        assert not ev.evaluate(_cond("x", "is_set"), responses)
        assert not ev.evaluate(_cond("x", "equals", "a"), responses)
        assert not ev.evaluate(_cond("x", "not_equals", "a"), responses)
        assert not ev.evaluate(_cond("x", "not_contains", "a"), responses)

    def test_is_missing(self):
        assert is_missing(None)
        assert is_missing("")
        assert is_missing([])
        assert not is_missing(0)
        assert not is_missing(False)
        assert not is_missing(["a"])


# =====================================================================
# Combinators
# =====================================================================


class TestGroups:

    def test_all(self, ev):
        group = _group(_cond("a", "equals", 1), _cond("b", "equals", 2))
        assert ev.evaluate(group, {"a": 1, "b": 2})
        assert not ev.evaluate(group, {"a": 1, "b": 3})

    def test_any(self, ev):
        group = _group(_cond("a", "equals", 1), _cond("b", "equals", 2), combinator="any")
        assert ev.evaluate(group, {"a": 0, "b": 2})
        assert not ev.evaluate(group, {"a": 0, "b": 0})

    def test_none(self, ev):
        group = _group(_cond("a", "equals", 1), combinator="none")
        assert ev.evaluate(group, {"a": 2})
        assert not ev.evaluate(group, {"a": 1})

    def test_nested(self, ev):
        group = _group(
            _cond("goal", "equals", "lose-weight"),
            _group(_cond("age", "less_than", 18), _cond("guardian", "is_set"), combinator="any"),
        )
        assert ev.evaluate(group, {"goal": "lose-weight", "age": 30, "guardian": "Mom"})
        assert not ev.evaluate(group, {"goal": "lose-weight", "age": 30})

    def test_referenced_fields(self):
        group = _group(_cond("a", "is_set"), _group(_cond("b", "is_set"), _cond("c", "is_set")))
        assert group.referenced_fields() == {"a", "b", "c"}


# =====================================================================
# Visibility
# =====================================================================


class TestVisibility:

    def test_no_rules_everything_visible_in_order(self, ev):
        blocks = [_block("one"), _block("two"), _block("three")]
        assert ev.visible_blocks(blocks, [], {}) == ["one", "two", "three"]

    def test_rule_hides_block(self, ev):
        blocks = [_block("profile"), _block("nutrition")]
        rules = [_rule("nutrition", _group(_cond("include-nutrition", "equals", "yes")))]
        assert ev.visible_blocks(blocks, rules, {}) == ["profile"]
        assert ev.visible_blocks(blocks, rules, {"include-nutrition": "yes"}) == [
            "profile", "nutrition",
        ]

    def test_rules_on_same_target_are_anded(self, ev):
        blocks = [_block("b")]
        rules = [
            _rule("b", _group(_cond("x", "is_set")), "r1"),
            _rule("b", _group(_cond("y", "is_set")), "r2"),
        ]
        assert ev.visible_blocks(blocks, rules, {"x": 1}) == []
        assert ev.visible_blocks(blocks, rules, {"x": 1, "y": 1}) == ["b"]

    def test_own_predicate_anded_with_rule(self, ev):
        blocks = [_block("b", visible_when=_group(_cond("x", "is_set")))]
        rules = [_rule("b", _group(_cond("y", "is_set")))]
        assert ev.visible_blocks(blocks, rules, {"y": 1}) == []
        assert ev.visible_blocks(blocks, rules, {"x": 1, "y": 1}) == ["b"]

    def test_duplicate_blocks_reported_once(self, ev):
        b = _block("dup")
        assert ev.visible_blocks([b, b], [], {}) == ["dup"]

    def test_rules_for_other_targets_ignored(self, ev):
        rules = [_rule("some-question", _group(_cond("x", "is_set")))]
        assert ev.visible_blocks([_block("b")], rules, {}) == ["b"]

    def test_visible_questions(self, ev):
        questions = [
            ShortTextQuestion(id="goal", label="Goal"),
            ShortTextQuestion(
                id="target-weight",
                label="Target",
                visible_when=_group(_cond("goal", "equals", "lose-weight")),
            ),
        ]
        visible = ev.visible_questions(questions, {"goal": "general"})
        assert [q.id for q in visible] == ["goal"]
        visible = ev.visible_questions(questions, {"goal": "lose-weight"})
        assert [q.id for q in visible] == ["goal", "target-weight"]

    def test_does_not_mutate_responses(self, ev):
        responses = {"x": ["a"]}
        ev.visible_blocks([_block("b")], [_rule("b", _group(_cond("x", "contains", "a")))], responses)
        assert responses == {"x": ["a"]}
