"""
Shared fixtures for reqapprove tests.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from reqapprove.errors import MailDeliveryFailure
from reqapprove.main import build_services
from reqapprove.notifications.mailer import Mailer
from reqapprove.utils.config_loader import WorkflowConfig


STAKEHOLDERS = [
    "sam@claimclimbers.com",
    "matt@claimclimbers.com",
    "dana@claimclimbers.com",
]

REQUESTOR = "jordan@claimclimbers.com"


class RecordingMailer(Mailer):
    """Mailer that keeps every message; recipients in fail_for raise"""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, to, subject, html_body, text_body=None):
        if to in self.fail_for:
            raise MailDeliveryFailure(to, "simulated outage")
        self.sent.append({
            'to': to,
            'subject': subject,
            'html': html_body,
            'text': text_body or ""
        })

    def to(self, recipient):
        return [mail for mail in self.sent if mail['to'] == recipient]

    def clear(self):
        self.sent.clear()


def action_params(mail, kind="Approve"):
    """Query parameters of the Approve/Deny link in a stage request mail"""
    for line in mail['text'].splitlines():
        if line.startswith(f"{kind}: "):
            query = parse_qs(urlparse(line.split(": ", 1)[1]).query)
            return {key: values[0] for key, values in query.items()}
    raise AssertionError(f"No {kind} link in mail to {mail['to']}")


@pytest.fixture
def config(tmp_path):
    return WorkflowConfig.from_dict({
        'stakeholders': STAKEHOLDERS,
        'base_url': "https://approvals.claimclimbers.com/action",
        'db_path': str(tmp_path / "sheet.db"),
        'lock_timeout_seconds': 5,
    })


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def services(config, mailer):
    return build_services(config, mailer=mailer)


@pytest.fixture
def submission():
    return {
        'Timestamp': "2026-10-01T09:15:00",
        'Department': "Ops",
        'Requisition Title': "Ladder replacement",
        'Requestor Name': "Jordan Lee",
        'Email Address': REQUESTOR,
        'Description': "Two 24ft extension ladders",
        'Estimated Cost': "420.00",
    }


@pytest.fixture
def row_12(services, submission):
    """Row 12 created with Department=Ops, stage-1 mail not yet sent"""
    return services.sheet.append_row(submission, row_id=12)
