"""
Approval State Machine

Drives a requisition through two sequential approval stages:

    AwaitingStage1 --Approved--> AwaitingStage2 --Approved/Denied--> Terminal
    AwaitingStage1 --Denied----> Terminal(Denied)

State is derived from the row's decision fields; nothing else is stored.
Every decision is recorded under the process-wide DocumentLock, and the
acting token is consumed inside that lock before the row is written, so a
token can be processed at most once even under concurrent clicks.

On each transition all tokens of the decided stage are invalidated for the
whole stakeholder set, so sibling links from an earlier stage stop working.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Mapping, Any, Optional

from reqapprove.datastore.models import (
    Decision, RequisitionRow, RowState, Stage, StageDecision
)
from reqapprove.datastore.row_store import RowStoreAdapter
from reqapprove.errors import InvalidRequest, InvalidToken, RowNotFound, Unauthorized
from reqapprove.logging.logger import with_context
from reqapprove.monitoring.metrics import track_decision
from reqapprove.notifications.service import NotificationService, build_action_urls
from reqapprove.utils.config_loader import WorkflowConfig
from reqapprove.workflow.locking import DocumentLock
from reqapprove.workflow.token_store import ApprovalTokenStore


@dataclass
class DecisionOutcome:
    """Result of a successfully recorded decision"""
    row_id: int
    stage: Stage
    decision: Decision
    approver: str
    timestamp: str
    state: RowState

    def to_dict(self) -> dict:
        return {
            'row_id': self.row_id,
            'stage': self.stage.value,
            'decision': self.decision.value,
            'approver': self.approver,
            'timestamp': self.timestamp,
            'state': self.state.value
        }


class ApprovalStateMachine:
    """
    Records stakeholder decisions and triggers the follow-up for each
    transition.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        rows: RowStoreAdapter,
        tokens: ApprovalTokenStore,
        notifications: NotificationService,
        lock: DocumentLock
    ):
        """
        Initialize the state machine.

        Args:
            config: Immutable workflow configuration (stakeholders, base URL)
            rows: Row store adapter, sole writer of decision fields
            tokens: Token store, sole owner of token lifecycle
            notifications: Email service
            lock: Document lock serializing decision writes
        """
        self.config = config
        self.rows = rows
        self.tokens = tokens
        self.notifications = notifications
        self.lock = lock
        self.logger = logging.getLogger(__name__)

    def open_stage(self, row_id: int, stage: Stage, row_data: Mapping[str, Any]) -> List[str]:
        """
        Issue a fresh token per stakeholder and send the stage's request batch.

        Re-opening a stage overwrites earlier tokens, which invalidates any
        links from a previous batch.

        Returns:
            Stakeholders whose email was delivered
        """
        action_urls = {}
        for approver in self.config.stakeholders:
            token = self.tokens.issue(row_id, stage, approver)
            action_urls[approver] = build_action_urls(
                self.config.base_url, row_id, stage, approver, token
            )

        self.logger.info(
            f"Opened stage {stage.value} for row {row_id} "
            f"({len(action_urls)} stakeholders)"
        )
        return self.notifications.send_stage_request(stage, row_id, row_data, action_urls)

    def handle_decision(
        self,
        row_id: int,
        stage: Stage,
        decision: Decision,
        approver_email: str,
        token: str,
        acting_email: Optional[str]
    ) -> DecisionOutcome:
        """
        Validate and record one stakeholder decision.

        Args:
            row_id: Requisition row from the link
            stage: Stage from the link
            decision: Approved or Denied
            approver_email: Approver the link was issued to
            token: Token from the link
            acting_email: Identity of the user who clicked, from the identity provider

        Returns:
            DecisionOutcome describing the recorded decision and new state

        Raises:
            InvalidRequest: decision is not Approved/Denied
            InvalidToken: token absent, mismatched or already used, or the
                row no longer accepts a decision for this stage
            Unauthorized: acting identity differs from the link's approver
            LockTimeout: document lock not acquired in time
        """
        if decision is Decision.PENDING:
            raise InvalidRequest("Decision must be Approved or Denied")

        approver = approver_email.strip().lower()
        log = with_context(self.logger, row=row_id, stage=stage.value, approver=approver)

        # Failures before the lock leave the token untouched
        if approver not in self.config.stakeholders or not self.tokens.verify(row_id, stage, approver, token):
            raise InvalidToken(f"Token rejected for row {row_id} stage {stage.value} ({approver})")

        if not acting_email or acting_email.strip().lower() != approver:
            raise Unauthorized(
                f"Link for {approver} used by {acting_email or 'unauthenticated user'}"
            )

        with self.lock.hold(holder=f"{approver}@row{row_id}"):
            # Another click may have consumed the token while this one waited
            if not self.tokens.verify(row_id, stage, approver, token):
                raise InvalidToken(f"Token for row {row_id} stage {stage.value} already consumed")
            self.tokens.invalidate(row_id, stage, approver)

            try:
                requisition = self.rows.load_requisition(row_id)
            except RowNotFound:
                raise InvalidToken(f"Row {row_id} no longer exists") from None

            current = requisition.state
            if current.awaiting_stage is not stage:
                raise InvalidToken(
                    f"Row {row_id} is {current.value}, not accepting stage {stage.value}"
                )

            timestamp = datetime.now(timezone.utc).isoformat()
            self.rows.write_decision_fields(row_id, stage, decision, timestamp, approver)
            track_decision(stage.value, decision.value)

            recorded = StageDecision(decision=decision, timestamp=timestamp, approver=approver)
            if stage is Stage.FIRST:
                requisition.stage_1 = recorded
            else:
                requisition.stage_2 = recorded

            new_state = self._transition(requisition, stage)

        log.info(
            f"Decision {decision.value} recorded, row is now {new_state.value}",
            extra={'extra_fields': {'decision': decision.value, 'state': new_state.value}}
        )

        return DecisionOutcome(
            row_id=row_id,
            stage=stage,
            decision=decision,
            approver=approver,
            timestamp=timestamp,
            state=new_state
        )

    def _transition(self, requisition: RequisitionRow, decided_stage: Stage) -> RowState:
        """Run the side effects for the state the row just entered"""
        row_id = requisition.row_id
        self.tokens.invalidate_stage(row_id, decided_stage, self.config.stakeholders)

        new_state = requisition.state
        self.logger.info(f"Row {row_id} is now {new_state.value}")

        if new_state is RowState.AWAITING_STAGE_2:
            self.open_stage(row_id, Stage.SECOND, requisition.fields)
        elif new_state.is_terminal:
            self.notifications.send_requestor_outcome(
                requisition.fields, requisition.final_decision
            )

        return new_state
