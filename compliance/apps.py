"""
Compliance app configuration.
"""

import threading

from django.apps import AppConfig

_engine = None
_engine_lock = threading.Lock()


class ComplianceAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'compliance'
    verbose_name = 'HOS Compliance Engine'


def get_engine():
    """Process-wide engine, created on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            from .services import ComplianceConfig, ComplianceEngine, ComplianceStore

            config = ComplianceConfig.from_settings()
            _engine = ComplianceEngine(
                config=config,
                store=ComplianceStore(max_rule_updates=config.max_rule_updates),
            )
        return _engine


def reset_engine():
    """Stop and drop the process-wide engine (tests, settings changes)."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.stop_monitoring()
        _engine = None
