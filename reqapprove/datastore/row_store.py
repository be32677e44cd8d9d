"""
Row Store Adapter

Named-field access to requisition rows on top of a positional SheetBackend.
Column positions are resolved through a HeaderIndex snapshot taken once at
process start.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Set

from reqapprove.datastore.models import (
    Decision, RequisitionRow, Stage, StageDecision
)
from reqapprove.datastore.sqlite_store import SheetBackend
from reqapprove.errors import HeaderNotFound, InvalidRequest, MalformedRow, RowNotFound


# Each stage owns three adjacent columns starting at its status header
DECISION_FIELD_COUNT = 3


def status_header(stage: Stage) -> str:
    return f"{stage.ordinal} Approval Status"


@dataclass(frozen=True)
class HeaderIndex:
    """Immutable header -> 0-based column position map"""
    headers: tuple
    positions: Mapping[str, int]

    @classmethod
    def from_headers(cls, headers: Sequence[str]) -> 'HeaderIndex':
        positions: Dict[str, int] = {}
        for position, name in enumerate(headers):
            # First occurrence wins, as a spreadsheet lookup would
            positions.setdefault(name, position)
        return cls(headers=tuple(headers), positions=positions)

    @classmethod
    def from_backend(cls, backend: SheetBackend) -> 'HeaderIndex':
        return cls.from_headers(backend.get_headers())

    def column_index(self, header: str) -> int:
        try:
            return self.positions[header]
        except KeyError:
            raise HeaderNotFound(header) from None

    def __contains__(self, header: str) -> bool:
        return header in self.positions


class RowStoreAdapter:
    """
    Reads and writes named fields of requisition rows.

    This is the only component that mutates row cells. Decision writes are
    unconditional; callers serialize them with the document lock.
    """

    def __init__(self, backend: SheetBackend, header_index: HeaderIndex):
        self.backend = backend
        self.header_index = header_index
        self.logger = logging.getLogger(__name__)

    def get_column_index(self, header_name: str) -> int:
        return self.header_index.column_index(header_name)

    def validate_schema(self) -> None:
        """
        Fail fast if either stage's decision columns are missing.

        Raises:
            HeaderNotFound: A status header is absent
        """
        for stage in Stage:
            self.get_column_index(status_header(stage))

    def _get_cells(self, row_id: int) -> List[Any]:
        cells = self.backend.get_row(row_id)
        if cells is None:
            raise RowNotFound(row_id)
        return cells

    def read_row(self, row_id: int) -> Dict[str, Any]:
        """
        Read a full row as a header -> value mapping.

        Uses the live header row so fields added after start-up are included.
        """
        cells = self._get_cells(row_id)
        headers = self.backend.get_headers()
        return {
            name: cells[position] if position < len(cells) else ""
            for position, name in enumerate(headers)
        }

    def load_requisition(self, row_id: int) -> RequisitionRow:
        """Read a row and split it into submitted fields and stage decisions"""
        cells = self._get_cells(row_id)
        data = self.read_row(row_id)
        decision_headers = self.decision_headers()

        def stage_decision(stage: Stage) -> StageDecision:
            start = self.get_column_index(status_header(stage))
            values = [
                cells[start + offset] if start + offset < len(cells) else ""
                for offset in range(DECISION_FIELD_COUNT)
            ]
            try:
                decision = Decision.from_cell(values[0])
            except ValueError as exc:
                raise MalformedRow(row_id, f"{status_header(stage)}: {exc}") from None
            return StageDecision(
                decision=decision,
                timestamp=values[1] or None,
                approver=values[2] or None,
            )

        return RequisitionRow(
            row_id=row_id,
            fields={k: v for k, v in data.items() if k not in decision_headers},
            stage_1=stage_decision(Stage.FIRST),
            stage_2=stage_decision(Stage.SECOND),
        )

    def write_decision_fields(
        self,
        row_id: int,
        stage: Stage,
        decision: Decision,
        timestamp: str,
        approver_email: str
    ) -> None:
        """
        Write (decision, timestamp, approver) into the stage's three columns.

        Raises:
            HeaderNotFound: Stage status header missing
            RowNotFound: Row does not exist
        """
        start = self.get_column_index(status_header(stage))
        written = self.backend.write_cells(
            row_id, start, [decision.value, timestamp, approver_email]
        )
        if not written:
            raise RowNotFound(row_id)

        self.logger.info(
            f"Recorded stage {stage.value} decision {decision.value} "
            f"for row {row_id} by {approver_email}"
        )

    def decision_headers(self) -> Set[str]:
        """Header names occupied by either stage's decision columns"""
        names: Set[str] = set()
        headers = self.header_index.headers
        for stage in Stage:
            start = self.get_column_index(status_header(stage))
            names.update(headers[start:start + DECISION_FIELD_COUNT])
        return names

    def append_row(self, values: Dict[str, Any]) -> int:
        """
        Create a new row (the form-submission path).

        Decision columns start empty and are only ever filled by
        write_decision_fields.

        Raises:
            InvalidRequest: values name a decision column
        """
        reserved = sorted(set(values) & self.decision_headers())
        if reserved:
            raise InvalidRequest(f"Submission may not set decision fields: {reserved}")

        row_id = self.backend.append_row(values)
        self.logger.info(f"Created row {row_id}")
        return row_id
