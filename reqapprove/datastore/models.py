"""
Requisition Data Models

Enums and dataclasses describing a requisition row and its two
approval stages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Stage(Enum):
    """Sequential approval round"""
    FIRST = 1
    SECOND = 2

    @property
    def ordinal(self) -> str:
        return "1st" if self is Stage.FIRST else "2nd"


class Decision(Enum):
    """Decision recorded for a stage"""
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"

    @classmethod
    def from_cell(cls, value: Any) -> 'Decision':
        """
        Read a status cell. An empty cell is Pending; case and surrounding
        whitespace are ignored.

        Raises:
            ValueError: The cell holds anything else
        """
        text = "" if value is None else str(value).strip()
        if not text:
            return cls.PENDING
        for member in cls:
            if member.value.casefold() == text.casefold():
                return member
        raise ValueError(f"Unrecognised decision value: {text!r}")


class RowState(Enum):
    """Workflow state of a requisition, derived from its decision fields"""
    AWAITING_STAGE_1 = "AwaitingStage1"
    AWAITING_STAGE_2 = "AwaitingStage2"
    APPROVED = "Approved"
    DENIED = "Denied"

    @property
    def is_terminal(self) -> bool:
        return self in (RowState.APPROVED, RowState.DENIED)

    @property
    def awaiting_stage(self) -> Optional[Stage]:
        """Stage currently accepting a decision, or None when terminal"""
        if self is RowState.AWAITING_STAGE_1:
            return Stage.FIRST
        if self is RowState.AWAITING_STAGE_2:
            return Stage.SECOND
        return None


@dataclass
class StageDecision:
    """Decision fields for one stage"""
    decision: Decision = Decision.PENDING
    timestamp: Optional[str] = None
    approver: Optional[str] = None


@dataclass
class RequisitionRow:
    """One submitted requisition"""
    row_id: int
    fields: Dict[str, Any] = field(default_factory=dict)
    stage_1: StageDecision = field(default_factory=StageDecision)
    stage_2: StageDecision = field(default_factory=StageDecision)

    @property
    def requestor_name(self) -> Optional[str]:
        return self.fields.get("Requestor Name") or None

    @property
    def requestor_email(self) -> Optional[str]:
        value = self.fields.get("Email Address")
        return str(value).strip() if value else None

    @property
    def title(self) -> str:
        return str(self.fields.get("Requisition Title") or f"Requisition #{self.row_id}")

    def decision_for(self, stage: Stage) -> StageDecision:
        return self.stage_1 if stage is Stage.FIRST else self.stage_2

    @property
    def state(self) -> RowState:
        """
        Derive the workflow state.

        Stage-2 fields are only consulted once stage 1 is Approved.
        """
        first = self.stage_1.decision
        if first is Decision.PENDING:
            return RowState.AWAITING_STAGE_1
        if first is Decision.DENIED:
            return RowState.DENIED

        second = self.stage_2.decision
        if second is Decision.PENDING:
            return RowState.AWAITING_STAGE_2
        if second is Decision.DENIED:
            return RowState.DENIED
        return RowState.APPROVED

    @property
    def final_decision(self) -> Optional[Decision]:
        state = self.state
        if state is RowState.APPROVED:
            return Decision.APPROVED
        if state is RowState.DENIED:
            return Decision.DENIED
        return None
