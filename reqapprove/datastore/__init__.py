"""
Datastore Module

Provides the requisition sheet, the property store and data models.
"""

from .sqlite_store import SheetBackend, PropertyStore, SQLiteSheet, SQLitePropertyStore
from .row_store import HeaderIndex, RowStoreAdapter, status_header
from .models import Stage, Decision, RowState, StageDecision, RequisitionRow

__all__ = [
    'SheetBackend', 'PropertyStore', 'SQLiteSheet', 'SQLitePropertyStore',
    'HeaderIndex', 'RowStoreAdapter', 'status_header',
    'Stage', 'Decision', 'RowState', 'StageDecision', 'RequisitionRow'
]
