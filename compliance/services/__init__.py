"""
Services package for the HOS Compliance Engine.

Contains the prediction, alerting, override and rule-sync logic, kept
separate from views so the engine can run without an HTTP surface.
"""

from .compliance_engine import ComplianceEngine, LatestDutyStateSource
from .config import ComplianceConfig
from .prediction_service import DutyStateSnapshot, ViolationPredictionService
from .rule_sync_service import HttpRuleContentProvider, RuleSyncService
from .rules import RuleRegistry
from .store import ComplianceStore

__all__ = [
    'ComplianceEngine',
    'LatestDutyStateSource',
    'ComplianceConfig',
    'DutyStateSnapshot',
    'ViolationPredictionService',
    'HttpRuleContentProvider',
    'RuleSyncService',
    'RuleRegistry',
    'ComplianceStore',
]
