"""
Submission Ingest

Entry point for new requisition rows: opens stage 1 for every stakeholder.

There is no interactive caller at submission time, so failures are logged
and reported as a False return value rather than raised. Duplicate
invocations for the same row re-issue tokens (overwriting the old ones)
and re-send the batch.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from reqapprove.datastore.models import Stage
from reqapprove.datastore.row_store import RowStoreAdapter
from reqapprove.errors import ApprovalError, InvalidRequest
from reqapprove.workflow.approval_engine import ApprovalStateMachine


class SubmissionIngest:
    """Handles the row-created trigger"""

    def __init__(self, rows: RowStoreAdapter, machine: ApprovalStateMachine):
        self.rows = rows
        self.machine = machine
        self.logger = logging.getLogger(__name__)

    def handle_new_row(self, row_id: int, values: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Send the stage-1 request batch for a newly created row.

        Args:
            row_id: Id of the created row
            values: Submitted field values, if the trigger supplied them;
                otherwise the row is read from the store

        Returns:
            True if the stage was opened, False if ingest failed
        """
        try:
            if values is None:
                row_data = self.rows.load_requisition(row_id).fields
            else:
                decision_headers = self.rows.decision_headers()
                row_data = {k: v for k, v in values.items() if k not in decision_headers}

            delivered = self.machine.open_stage(row_id, Stage.FIRST, row_data)
        except ApprovalError as exc:
            self.logger.error(f"Ingest of row {row_id} failed: {exc}")
            return False
        except Exception as exc:
            self.logger.error(f"Ingest of row {row_id} failed unexpectedly: {exc}", exc_info=True)
            return False

        if not delivered:
            self.logger.warning(f"Row {row_id}: no stage 1 request was delivered")
        return True

    def submit(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Append a submitted form as a new row and run ingest on it.

        Returns:
            {'row': new row id, 'notified': ingest result}; row is None when
            the row could not be stored

        Raises:
            InvalidRequest: The payload tries to set decision fields
        """
        try:
            row_id = self.rows.append_row(values)
        except InvalidRequest:
            raise
        except Exception as exc:
            self.logger.error(f"Storing submission failed: {exc}", exc_info=True)
            return {'row': None, 'notified': False}

        notified = self.handle_new_row(row_id, values)
        return {'row': row_id, 'notified': notified}
