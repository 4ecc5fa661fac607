"""ConditionalEvaluator — decides which blocks and questions are visible.

Visibility of a target (block or question) is the AND of:

  - the target's own ``visible_when`` predicate, if any
  - every ``BranchingRule`` whose ``target`` is the target's id

A target with neither is always visible.  Evaluation is a pure function of
the catalog and the current responses: it never raises, never mutates its
inputs, and returns ids in source order.

Missing-field policy: when the referenced field has no answer (absent,
``None``, blank string, or empty list), ``is_set`` is False, ``is_not_set``
is True, and every other operator is False.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Mapping, Sequence

from packet_pipeline.models.question import Question, QuestionBlock
from packet_pipeline.models.rule import BranchingRule, Condition, ConditionGroup

logger = logging.getLogger(__name__)


def is_missing(value: Any) -> bool:
    """True if *value* counts as "no answer"."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ConditionalEvaluator:
    """Evaluates predicate trees and branching rules against responses."""

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def visible_blocks(
        self,
        blocks: Sequence[QuestionBlock],
        rules: Iterable[BranchingRule],
        responses: Mapping[str, Any],
    ) -> list[str]:
        """Return the ids of visible blocks, in source order.

        Args:
            blocks: every block on the intake path, in display order
            rules: branching rules for the path; rules targeting ids that
                   are not blocks are ignored here
            responses: current answers keyed by question id

        Returns:
            De-duplicated list of visible block ids.
        """
        by_target = self._index_rules(rules)
        seen: set[str] = set()
        out: list[str] = []
        for block in blocks:
            if block.id in seen:
                continue
            seen.add(block.id)
            if self._target_visible(block.id, block.visible_when, by_target, responses):
                out.append(block.id)
        return out

    def visible_questions(
        self,
        questions: Sequence[Question],
        responses: Mapping[str, Any],
        rules: Iterable[BranchingRule] = (),
    ) -> list[Question]:
        """Filter *questions* down to the visible ones, preserving order."""
        by_target = self._index_rules(rules)
        return [
            q for q in questions
            if self._target_visible(q.id, q.visible_when, by_target, responses)
        ]

    def _target_visible(
        self,
        target_id: str,
        own: ConditionGroup | None,
        by_target: Mapping[str, list[BranchingRule]],
        responses: Mapping[str, Any],
    ) -> bool:
        if own is not None and not self.evaluate(own, responses):
            return False
        return all(self.evaluate(r.when, responses) for r in by_target.get(target_id, ()))

    @staticmethod
    def _index_rules(rules: Iterable[BranchingRule]) -> dict[str, list[BranchingRule]]:
        by_target: dict[str, list[BranchingRule]] = defaultdict(list)
        for rule in rules:
            by_target[rule.target].append(rule)
        return by_target

    # ------------------------------------------------------------------
    # Predicate evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        node: Condition | ConditionGroup,
        responses: Mapping[str, Any],
    ) -> bool:
        """Evaluate a condition or group against the responses."""
        if isinstance(node, ConditionGroup):
            results = (self.evaluate(child, responses) for child in node.conditions)
            if node.combinator == "all":
                return all(results)
            if node.combinator == "any":
                return any(results)
            return not any(results)
        return self._eval_condition(node, responses)

    def _eval_condition(self, cond: Condition, responses: Mapping[str, Any]) -> bool:
        answer = responses.get(cond.field)
        if is_missing(answer):
            return cond.operator == "is_not_set"
        if cond.operator == "is_set":
            return True
        if cond.operator == "is_not_set":
            return False
        try:
            return self._compare(cond.operator, answer, cond.value)
        except (TypeError, ValueError):
            logger.warning(
                "Condition on %s (%s) failed to evaluate; treating as false",
                cond.field, cond.operator, exc_info=True,
            )
            return False

    @staticmethod
    def _equals(answer: Any, value: Any) -> bool:
        if isinstance(value, (list, tuple)):
            if isinstance(answer, (list, tuple)):
                return set(map(str, answer)) == set(map(str, value))
            return any(ConditionalEvaluator._equals(answer, v) for v in value)
        if isinstance(answer, (list, tuple)):
            return False
        if answer == value:
            return True
        # "5" vs 5: compare numerically when either side is a real number
        if isinstance(answer, (int, float)) or isinstance(value, (int, float)):
            a, b = _to_number(answer), _to_number(value)
            return a is not None and b is not None and a == b
        return False

    @staticmethod
    def _contains(answer: Any, value: Any) -> bool:
        if isinstance(answer, (list, tuple, set, frozenset)):
            return value in answer or str(value) in {str(a) for a in answer}
        if isinstance(answer, str):
            return str(value) in answer
        return False

    @staticmethod
    def _compare(op: str, answer: Any, value: Any) -> bool:
        """Apply an operator to a present answer and an expected value.

        Numeric operators coerce both sides with ``float()``; anything that
        does not coerce makes the comparison false.
        """
        if op == "equals":
            return ConditionalEvaluator._equals(answer, value)

        if op == "not_equals":
            return not ConditionalEvaluator._equals(answer, value)

        if op == "contains":
            return ConditionalEvaluator._contains(answer, value)

        if op == "not_contains":
            return not ConditionalEvaluator._contains(answer, value)

        # --- Numeric comparisons ---
        if op in ("greater_than", "less_than", "greater_than_or_equal", "less_than_or_equal"):
            ans_num, val_num = _to_number(answer), _to_number(value)
            if ans_num is None or val_num is None:
                return False
            if op == "greater_than":
                return ans_num > val_num
            if op == "less_than":
                return ans_num < val_num
            if op == "greater_than_or_equal":
                return ans_num >= val_num
            return ans_num <= val_num

        logger.warning("Unknown condition operator: %s", op)
        return False
