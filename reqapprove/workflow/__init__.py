"""
Approval Workflow Module

Exports the workflow components:
- Approval token store
- Document lock
- Approval state machine
- Submission ingest
"""

from reqapprove.workflow.token_store import ApprovalTokenStore, token_key
from reqapprove.workflow.locking import DocumentLock
from reqapprove.workflow.approval_engine import ApprovalStateMachine, DecisionOutcome
from reqapprove.workflow.ingest import SubmissionIngest

__all__ = [
    "ApprovalTokenStore",
    "token_key",
    "DocumentLock",
    "ApprovalStateMachine",
    "DecisionOutcome",
    "SubmissionIngest"
]
