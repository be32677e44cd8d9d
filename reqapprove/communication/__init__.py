"""
Communication Module

HTTP surface of the approval workflow.
"""

from .identity import IdentityProvider, HeaderIdentityProvider
from .rest_server import ActionServer, ActionRequest, parse_action_params

__all__ = [
    'IdentityProvider', 'HeaderIdentityProvider',
    'ActionServer', 'ActionRequest', 'parse_action_params'
]
