#!/usr/bin/env python3
"""
Two-Stage Approval Workflow Simulation

Runs the whole flow in-process against a throwaway SQLite sheet:
1. A requisition is submitted (stage 1 fan-out)
2. A stakeholder approves stage 1 (stage 2 fan-out)
3. A stale stage-1 link is rejected
4. Another stakeholder denies stage 2 (requestor notified)
"""

import logging
import tempfile
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from reqapprove.datastore.models import Decision, Stage
from reqapprove.errors import InvalidToken
from reqapprove.main import build_services
from reqapprove.notifications.mailer import Mailer
from reqapprove.utils.config_loader import WorkflowConfig


class ConsoleMailer(Mailer):
    """Keeps sent mail so the simulation can 'click' the links"""

    def __init__(self):
        self.outbox = []

    def send(self, to, subject, html_body, text_body=None):
        self.outbox.append({'to': to, 'subject': subject, 'text': text_body or ""})
        logging.getLogger(__name__).info(f"  mail -> {to}: {subject}")


def link_params(mail, kind="Approve"):
    for line in mail['text'].splitlines():
        if line.startswith(f"{kind}: "):
            query = parse_qs(urlparse(line.split(": ", 1)[1]).query)
            return {key: values[0] for key, values in query.items()}
    raise ValueError("No action link in mail")


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger = logging.getLogger(__name__)

    workdir = Path(tempfile.mkdtemp(prefix="reqapprove_sim_"))
    config = WorkflowConfig.from_dict({
        'stakeholders': ["sam@claimclimbers.com", "matt@claimclimbers.com", "dana@claimclimbers.com"],
        'base_url': "http://localhost:8080/action",
        'db_path': str(workdir / "sheet.db"),
    })
    mailer = ConsoleMailer()
    services = build_services(config, mailer=mailer)

    logger.info("[1/4] Submitting requisition...")
    result = services.ingest.submit({
        'Department': "Ops",
        'Requisition Title': "Ladder replacement",
        'Requestor Name': "Jordan Lee",
        'Email Address': "jordan@claimclimbers.com",
        'Estimated Cost': "420.00",
    })
    row_id = result['row']

    stage_1_mail = {mail['to']: mail for mail in mailer.outbox}
    mailer.outbox.clear()

    logger.info("[2/4] sam approves stage 1...")
    params = link_params(stage_1_mail["sam@claimclimbers.com"])
    outcome = services.machine.handle_decision(
        row_id, Stage.FIRST, Decision.APPROVED,
        params['approver'], params['token'], acting_email="sam@claimclimbers.com"
    )
    logger.info(f"  row {row_id} -> {outcome.state.value}")

    stage_2_mail = {mail['to']: mail for mail in mailer.outbox}
    mailer.outbox.clear()

    logger.info("[3/4] matt clicks his old stage-1 link...")
    params = link_params(stage_1_mail["matt@claimclimbers.com"])
    try:
        services.machine.handle_decision(
            row_id, Stage.FIRST, Decision.APPROVED,
            params['approver'], params['token'], acting_email="matt@claimclimbers.com"
        )
    except InvalidToken as exc:
        logger.info(f"  rejected: {exc.user_message}")

    logger.info("[4/4] dana denies stage 2...")
    params = link_params(stage_2_mail["dana@claimclimbers.com"], kind="Deny")
    outcome = services.machine.handle_decision(
        row_id, Stage.SECOND, Decision.DENIED,
        params['approver'], params['token'], acting_email="dana@claimclimbers.com"
    )
    logger.info(f"  row {row_id} -> {outcome.state.value}")
    logger.info(f"  final row: {services.rows.read_row(row_id)}")


if __name__ == "__main__":
    main()
