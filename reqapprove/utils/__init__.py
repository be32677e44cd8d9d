"""
Utility helpers: configuration loading.
"""

from .config_loader import ConfigLoader, SMTPSettings, WorkflowConfig, is_valid_email

__all__ = ['ConfigLoader', 'SMTPSettings', 'WorkflowConfig', 'is_valid_email']
