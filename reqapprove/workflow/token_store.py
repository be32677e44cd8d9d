"""
Approval Token Store

Issues and verifies single-use authorization tokens scoped to
(row, stage, approver).

Security properties:
- Tokens are 32 bytes from the OS CSPRNG (url-safe base64)
- At most one live token per key; re-issuing overwrites
- Constant-time comparison on verify
- No TTL: a token lives until used or overwritten
"""

import hmac
import logging
import secrets
from typing import Iterable

from reqapprove.datastore.models import Stage
from reqapprove.datastore.sqlite_store import PropertyStore


TOKEN_BYTES = 32


def token_key(row_id: int, stage: Stage, approver_email: str) -> str:
    """Property-store key for a token: "{row}_{stage}_{approver}" """
    return f"{row_id}_{stage.value}_{approver_email.lower()}"


class ApprovalTokenStore:
    """
    Owns the full token lifecycle. No other component reads or writes
    token keys in the property store.
    """

    def __init__(self, properties: PropertyStore):
        self.properties = properties
        self.logger = logging.getLogger(__name__)

    def issue(self, row_id: int, stage: Stage, approver_email: str) -> str:
        """
        Issue a token, overwriting any previous token for the same key.

        Returns:
            The opaque token string to embed in action links
        """
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self.properties.set_property(token_key(row_id, stage, approver_email), token)

        self.logger.debug(
            f"Issued stage {stage.value} token for row {row_id} to {approver_email}"
        )
        return token

    def verify(self, row_id: int, stage: Stage, approver_email: str, token: str) -> bool:
        """True iff a token is stored for the key and equals ``token``. Does not consume."""
        if not token:
            return False

        stored = self.properties.get_property(token_key(row_id, stage, approver_email))
        if stored is None:
            return False

        return hmac.compare_digest(stored.encode("utf-8"), token.encode("utf-8"))

    def invalidate(self, row_id: int, stage: Stage, approver_email: str) -> None:
        """Remove the token for the key; no-op if absent"""
        self.properties.delete_property(token_key(row_id, stage, approver_email))

    def invalidate_stage(self, row_id: int, stage: Stage, approvers: Iterable[str]) -> None:
        """Remove every approver's token for a (row, stage)"""
        count = 0
        for approver in approvers:
            self.invalidate(row_id, stage, approver)
            count += 1

        self.logger.debug(f"Invalidated {count} stage {stage.value} tokens for row {row_id}")
