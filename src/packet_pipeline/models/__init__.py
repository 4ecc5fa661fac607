"""Typed models for the intake catalog, packet templates, and generation jobs."""

from packet_pipeline.models.job import (
    ALLOWED_TRANSITIONS,
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    AnswerSnapshot,
    EscalationPayload,
    HealthIssue,
    HealthReport,
    Job,
    JobOutcomes,
    JobState,
    JobStats,
)
from packet_pipeline.models.question import (
    DateQuestion,
    LongTextQuestion,
    MultiChoiceQuestion,
    MultiSelectQuestion,
    NumberQuestion,
    Option,
    Question,
    QuestionBlock,
    RangeQuestion,
    ShortTextQuestion,
    SingleChoiceQuestion,
    SingleSelectQuestion,
    question_mapper,
)
from packet_pipeline.models.rule import (
    BranchingRule,
    Condition,
    ConditionGroup,
    IntakePath,
)
from packet_pipeline.models.template import (
    ContentBlock,
    PacketSection,
    PacketTemplate,
    RenderedBlock,
    RenderedPacket,
    RenderedSection,
)

__all__ = [
    # Questions
    "Question",
    "QuestionBlock",
    "Option",
    "ShortTextQuestion",
    "LongTextQuestion",
    "NumberQuestion",
    "RangeQuestion",
    "SingleSelectQuestion",
    "SingleChoiceQuestion",
    "MultiSelectQuestion",
    "MultiChoiceQuestion",
    "DateQuestion",
    "question_mapper",
    # Rules
    "Condition",
    "ConditionGroup",
    "BranchingRule",
    "IntakePath",
    # Templates
    "ContentBlock",
    "PacketSection",
    "PacketTemplate",
    "RenderedBlock",
    "RenderedSection",
    "RenderedPacket",
    # Jobs
    "AnswerSnapshot",
    "Job",
    "JobState",
    "JobStats",
    "JobOutcomes",
    "EscalationPayload",
    "HealthIssue",
    "HealthReport",
    "ALLOWED_TRANSITIONS",
    "IN_FLIGHT_STATES",
    "TERMINAL_STATES",
]
