"""
Tests for the notification service and mail transports.
"""

import smtplib
from urllib.parse import parse_qs, urlparse

import pytest

from reqapprove.datastore import Decision, Stage
from reqapprove.errors import MailDeliveryFailure
from reqapprove.notifications import (
    LogMailer, NotificationService, SMTPMailer, build_action_url, build_action_urls, create_mailer
)
from reqapprove.utils.config_loader import SMTPSettings

from conftest import RecordingMailer, REQUESTOR


ROW_DATA = {
    'Department': "Ops",
    'Requisition Title': "Ladder replacement",
    'Requestor Name': "Jordan Lee",
    'Email Address': REQUESTOR,
    'Description': "<b>24ft</b> ladders",
}


class TestActionUrls:
    """Action link format"""

    def test_url_format(self):
        url = build_action_url(
            "https://approvals.example.com/action", 12, Stage.FIRST,
            Decision.APPROVED, "sam@claimclimbers.com", "tok123"
        )
        assert url == (
            "https://approvals.example.com/action?row=12&stage=1&decision=Approved"
            "&approver=sam%40claimclimbers.com&token=tok123"
        )

    def test_base_url_with_query(self):
        url = build_action_url("https://x.example.com/exec?app=1", 3, Stage.SECOND,
                               Decision.DENIED, "a@x.com", "t")
        assert url.startswith("https://x.example.com/exec?app=1&row=3&stage=2&decision=Denied")

    def test_pair_shares_token(self):
        urls = build_action_urls("https://x.example.com/action", 12, Stage.SECOND, "sam@claimclimbers.com", "tok")

        approve = parse_qs(urlparse(urls['approve']).query)
        deny = parse_qs(urlparse(urls['deny']).query)
        assert approve['decision'] == ["Approved"]
        assert deny['decision'] == ["Denied"]
        assert approve['token'] == deny['token'] == ["tok"]
        assert approve['approver'] == ["sam@claimclimbers.com"]


class TestStageRequest:
    """Stakeholder action-request emails"""

    def _urls(self, approvers):
        return {
            a: build_action_urls("https://x.example.com/action", 12, Stage.FIRST, a, f"tok-{a}")
            for a in approvers
        }

    def test_one_email_per_stakeholder(self):
        mailer = RecordingMailer()
        service = NotificationService(mailer)

        delivered = service.send_stage_request(Stage.FIRST, 12, ROW_DATA, self._urls(["a@x.com", "b@x.com"]))

        assert delivered == ["a@x.com", "b@x.com"]
        assert [m['to'] for m in mailer.sent] == ["a@x.com", "b@x.com"]
        assert "1st approval needed" in mailer.sent[0]['subject']

    def test_email_contents(self):
        """Row fields are shown as a table, escaped, with both links"""
        mailer = RecordingMailer()
        NotificationService(mailer).send_stage_request(Stage.FIRST, 12, ROW_DATA, self._urls(["a@x.com"]))

        html = mailer.sent[0]['html']
        assert "<th" in html and "Department" in html and "Ops" in html
        assert "&lt;b&gt;24ft&lt;/b&gt;" in html
        assert "Approve</a>" in html and "Deny</a>" in html
        assert "token=tok-a%40x.com" in html

    def test_failure_does_not_abort_batch(self):
        """One failed recipient is skipped; the rest still get mail"""
        mailer = RecordingMailer()
        mailer.fail_for.add("b@x.com")
        service = NotificationService(mailer)

        delivered = service.send_stage_request(
            Stage.FIRST, 12, ROW_DATA, self._urls(["a@x.com", "b@x.com", "c@x.com"])
        )

        assert delivered == ["a@x.com", "c@x.com"]
        assert len(mailer.sent) == 2


class TestRequestorOutcome:
    """Requestor outcome email"""

    def test_sends_decision(self):
        mailer = RecordingMailer()
        assert NotificationService(mailer).send_requestor_outcome(ROW_DATA, Decision.DENIED)

        assert len(mailer.sent) == 1
        mail = mailer.sent[0]
        assert mail['to'] == REQUESTOR
        assert "Denied" in mail['subject']
        assert "Jordan Lee" in mail['html']

    def test_missing_address_is_noop(self):
        mailer = RecordingMailer()
        data = dict(ROW_DATA, **{'Email Address': ""})

        assert not NotificationService(mailer).send_requestor_outcome(data, Decision.APPROVED)
        assert mailer.sent == []

    def test_delivery_failure_is_swallowed(self):
        mailer = RecordingMailer()
        mailer.fail_for.add(REQUESTOR)

        assert not NotificationService(mailer).send_requestor_outcome(ROW_DATA, Decision.APPROVED)

    @pytest.mark.parametrize("address", [
        "jordan@claimclimbers.com\r\nBcc: x@y.com",
        "jordan@claimclimbers.com\nCc: x@y.com",
        "jordan",
    ])
    def test_malformed_address_is_skipped(self, address):
        mailer = RecordingMailer()
        data = dict(ROW_DATA, **{'Email Address': address})

        assert not NotificationService(mailer).send_requestor_outcome(data, Decision.DENIED)
        assert mailer.sent == []

    def test_multiline_title_flattened_in_subject(self):
        mailer = RecordingMailer()
        data = dict(ROW_DATA, **{'Requisition Title': "Ladder\r\nreplacement"})

        assert NotificationService(mailer).send_requestor_outcome(data, Decision.APPROVED)
        assert mailer.sent[0]['subject'] == 'Your requisition "Ladder replacement" was Approved'


class TestMailerSelection:
    """Transport choice from SMTP settings"""

    def test_no_host_uses_log_mailer(self):
        assert isinstance(create_mailer(SMTPSettings()), LogMailer)

    def test_host_uses_smtp(self):
        mailer = create_mailer(SMTPSettings(host="smtp.example.com"))
        assert isinstance(mailer, SMTPMailer)

    def test_smtp_requires_host(self):
        with pytest.raises(ValueError):
            SMTPMailer(SMTPSettings())

    def test_smtp_header_error_is_delivery_failure(self, monkeypatch):
        connections = []
        monkeypatch.setattr(smtplib, "SMTP", lambda *args, **kwargs: connections.append(args))
        mailer = SMTPMailer(SMTPSettings(host="smtp.example.com"))

        with pytest.raises(MailDeliveryFailure):
            mailer.send("a@x.com\r\nBcc: b@y.com", "Subject", "<p>body</p>")
        assert connections == []

    def test_smtp_transport_error_is_delivery_failure(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("relay down")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        mailer = SMTPMailer(SMTPSettings(host="smtp.example.com"))

        with pytest.raises(MailDeliveryFailure) as excinfo:
            mailer.send("a@x.com", "Subject", "<p>body</p>")
        assert excinfo.value.recipient == "a@x.com"
