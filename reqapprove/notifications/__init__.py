"""
Notifications Module

Mail transports and the workflow email service.
"""

from .mailer import Mailer, SMTPMailer, LogMailer, create_mailer
from .service import NotificationService, build_action_url, build_action_urls

__all__ = [
    'Mailer', 'SMTPMailer', 'LogMailer', 'create_mailer',
    'NotificationService', 'build_action_url', 'build_action_urls'
]
