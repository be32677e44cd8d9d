"""
reqapprove: Requisition Approval Service

Two-stage, email-driven approval workflow for form-submitted requisitions.
"""

from .__version__ import __version__

__all__ = [
    '__version__',
    'communication',
    'datastore',
    'logging',
    'monitoring',
    'notifications',
    'utils',
    'workflow'
]
