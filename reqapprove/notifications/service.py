"""
Notification Service

Renders and sends the two workflow emails:
- stakeholder action request (one per stakeholder, approve/deny links)
- requestor outcome (one per terminal decision)

Delivery is best-effort. A failure for one recipient is logged and never
aborts the rest of the batch or the caller's operation.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from reqapprove.datastore.models import Decision, Stage
from reqapprove.errors import MailDeliveryFailure
from reqapprove.monitoring.metrics import track_email
from reqapprove.notifications.mailer import Mailer
from reqapprove.notifications.templates import render
from reqapprove.utils.config_loader import is_valid_email


STAGE_REQUEST_TEMPLATE = "stage_request.html.j2"
REQUESTOR_OUTCOME_TEMPLATE = "requestor_outcome.html.j2"


def single_line(value: Any) -> str:
    """Collapse whitespace runs, line breaks included, to single spaces"""
    return " ".join(str(value).split())


def build_action_url(
    base_url: str,
    row_id: int,
    stage: Stage,
    decision: Decision,
    approver_email: str,
    token: str
) -> str:
    """{base}?row=..&stage=..&decision=..&approver=<urlencoded>&token=.."""
    query = urlencode([
        ("row", row_id),
        ("stage", stage.value),
        ("decision", decision.value),
        ("approver", approver_email),
        ("token", token),
    ])
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"


def build_action_urls(
    base_url: str,
    row_id: int,
    stage: Stage,
    approver_email: str,
    token: str
) -> Dict[str, str]:
    """Approve/deny URL pair for one stakeholder, sharing one token"""
    return {
        "approve": build_action_url(base_url, row_id, stage, Decision.APPROVED, approver_email, token),
        "deny": build_action_url(base_url, row_id, stage, Decision.DENIED, approver_email, token),
    }


class NotificationService:
    """Render workflow emails and hand them to the mail transport"""

    def __init__(self, mailer: Mailer):
        self.mailer = mailer
        self.logger = logging.getLogger(__name__)

    def send_stage_request(
        self,
        stage: Stage,
        row_id: int,
        row_data: Mapping[str, Any],
        action_urls_by_approver: Mapping[str, Mapping[str, str]]
    ) -> List[str]:
        """
        Send one action-request email per stakeholder.

        Args:
            stage: Stage being requested
            row_id: Requisition row
            row_data: Non-decision fields to show in the email table
            action_urls_by_approver: approver -> {"approve": url, "deny": url}

        Returns:
            Recipients that were handed to the transport successfully
        """
        title = single_line(row_data.get("Requisition Title") or f"Requisition #{row_id}")
        subject = f"[Requisition #{row_id}] {stage.ordinal} approval needed: {title}"
        fields = {name: value for name, value in row_data.items() if value not in (None, "")}

        delivered = []
        for approver, urls in action_urls_by_approver.items():
            html_body = render(
                STAGE_REQUEST_TEMPLATE,
                stage=stage,
                title=title,
                fields=fields,
                approver=approver,
                approve_url=urls["approve"],
                deny_url=urls["deny"],
            )
            text_body = (
                f"{stage.ordinal} approval requested for '{title}'.\n\n"
                f"Approve: {urls['approve']}\n"
                f"Deny: {urls['deny']}\n"
            )

            try:
                self.mailer.send(approver, subject, html_body, text_body)
            except MailDeliveryFailure as exc:
                track_email("stage_request", "failed")
                self.logger.error(
                    f"Stage {stage.value} request for row {row_id} not delivered to {approver}: {exc.reason}"
                )
                continue

            track_email("stage_request", "sent")
            delivered.append(approver)

        self.logger.info(
            f"Stage {stage.value} requests for row {row_id}: "
            f"{len(delivered)}/{len(action_urls_by_approver)} delivered"
        )
        return delivered

    def send_requestor_outcome(self, row_data: Mapping[str, Any], final_decision: Decision) -> bool:
        """
        Tell the requestor the final decision.

        Returns:
            True if the message was handed to the transport
        """
        recipient: Optional[str] = str(row_data.get("Email Address") or "").strip() or None
        title = single_line(row_data.get("Requisition Title") or "your requisition")

        if not recipient:
            self.logger.warning(f"No requestor email on '{title}', outcome not sent")
            track_email("requestor_outcome", "skipped")
            return False

        if not is_valid_email(recipient):
            self.logger.warning(f"Requestor email on '{title}' is malformed ({recipient!r}), outcome not sent")
            track_email("requestor_outcome", "skipped")
            return False

        html_body = render(
            REQUESTOR_OUTCOME_TEMPLATE,
            requestor_name=row_data.get("Requestor Name") or "there",
            title=title,
            decision=final_decision.value,
            fields={
                name: row_data[name]
                for name in ("Department", "Requisition Title")
                if row_data.get(name)
            },
        )
        subject = f"Your requisition \"{title}\" was {final_decision.value}"

        try:
            self.mailer.send(recipient, subject, html_body, f"{subject}.\n")
        except MailDeliveryFailure as exc:
            track_email("requestor_outcome", "failed")
            self.logger.error(f"Outcome for '{title}' not delivered to {recipient}: {exc.reason}")
            return False

        track_email("requestor_outcome", "sent")
        self.logger.info(f"Notified {recipient} that '{title}' was {final_decision.value}")
        return True
