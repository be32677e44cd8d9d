"""
Identity Providers

Resolve the email address of the user who clicked an action link.
"""

from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Request


class IdentityProvider(ABC):
    """Contract for resolving the acting user's email"""

    @abstractmethod
    def resolve(self, request: Request) -> Optional[str]:
        """Return the authenticated email, or None if unauthenticated"""


class HeaderIdentityProvider(IdentityProvider):
    """
    Trust an identity header set by an authenticating reverse proxy.

    The service must only be reachable through that proxy; the header is
    otherwise client-controlled.
    """

    def __init__(self, header_name: str = "X-Authenticated-Email"):
        self.header_name = header_name

    def resolve(self, request: Request) -> Optional[str]:
        value = request.headers.get(self.header_name, "").strip()
        return value.lower() or None
