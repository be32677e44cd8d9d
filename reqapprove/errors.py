"""
Approval Workflow Errors

Every failure the workflow can surface carries a ``user_message`` that is
safe to render on the stakeholder-facing result page.
"""

from typing import Optional


class ApprovalError(Exception):
    """Base class for all workflow errors"""

    user_message = "Something went wrong while processing your request."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)


class InvalidRequest(ApprovalError):
    """Missing or malformed action parameters"""

    user_message = "This approval link is incomplete or malformed."


class InvalidToken(ApprovalError):
    """
    Token absent, mismatched, already used, or the row no longer accepts
    a decision for that stage.

    The user-facing message is identical for every cause.
    """

    user_message = "This approval link is invalid or has already been used."


class Unauthorized(ApprovalError):
    """Acting identity does not match the approver the link was issued to"""

    user_message = "You are not authorized to act on this approval link."


class HeaderNotFound(ApprovalError):
    """Configured column header is missing from the sheet's header row"""

    user_message = "The approval sheet is misconfigured. Please contact an administrator."

    def __init__(self, header: str):
        self.header = header
        super().__init__(f"Header not found in sheet: {header!r}")


class RowNotFound(ApprovalError):
    """Row id does not exist in the sheet"""

    def __init__(self, row_id: int):
        self.row_id = row_id
        super().__init__(f"Row {row_id} not found")


class LockTimeout(ApprovalError):
    """Document lock could not be acquired within the configured timeout"""

    user_message = "The system is busy. Your decision was not recorded; please try the link again."


class MailDeliveryFailure(ApprovalError):
    """Mail transport failed to deliver a single message"""

    def __init__(self, recipient: str, reason: str):
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Delivery to {recipient} failed: {reason}")


class MalformedRow(ApprovalError):
    """A decision cell holds a value the workflow cannot interpret"""

    user_message = "This requisition's record has been edited into an unreadable state. Please contact an administrator."

    def __init__(self, row_id: int, detail: str):
        self.row_id = row_id
        super().__init__(f"Row {row_id} is malformed: {detail}")
