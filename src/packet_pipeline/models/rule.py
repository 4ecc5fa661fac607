"""Predicate and branching-rule models.

A predicate tree is built from two node kinds:

  - **Condition**: a leaf comparing one response field against a value
  - **ConditionGroup**: combines child nodes with ``all`` (AND), ``any``
    (OR) or ``none`` (NOT ANY)

Branching rules attach a predicate tree to a target block or question id.
They are stateless and re-evaluated on every response change.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

Operator = Literal[
    "equals", "not_equals",
    "contains", "not_contains",
    "greater_than", "less_than",
    "greater_than_or_equal", "less_than_or_equal",
    "is_set", "is_not_set",
]


class Condition(BaseModel):
    """A single comparison against one response field.

    Operators:
      - equals, not_equals: equality; a list ``value`` means membership
      - contains, not_contains: element (list answer) or substring (str answer)
      - greater_than, less_than, greater_than_or_equal, less_than_or_equal:
        numeric comparisons (strings are coerced to float)
      - is_set, is_not_set: presence checks, ``value`` is ignored
    """

    field: str
    operator: Operator
    value: Any = None


class ConditionGroup(BaseModel):
    """Combines child conditions or groups under one combinator."""

    combinator: Literal["all", "any", "none"] = "all"
    conditions: List[Union[Condition, ConditionGroup]] = Field(min_length=1)

    def referenced_fields(self) -> set[str]:
        """All response field ids referenced anywhere in the tree."""
        out: set[str] = set()
        for node in self.conditions:
            if isinstance(node, ConditionGroup):
                out |= node.referenced_fields()
            else:
                out.add(node.field)
        return out


ConditionGroup.model_rebuild()


class BranchingRule(BaseModel):
    """Makes ``target`` visible only while ``when`` holds.

    When several rules name the same target, the target is visible only if
    every one of them holds.
    """

    id: str
    target: str
    when: ConditionGroup


class IntakePath(BaseModel):
    """Ordered block list and branching rules for one client type."""

    id: str
    client_type: str
    name: str
    description: str = ""
    estimated_time: Optional[str] = None
    block_ids: List[str]
    rules: List[BranchingRule] = Field(default_factory=list)
