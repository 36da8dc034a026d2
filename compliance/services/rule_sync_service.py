"""
Rule Sync Service.

Refreshes the rule registry from the regulatory rule-content provider:
- Fetches the authoritative rule list over HTTP (JSON)
- Diffs it against the registry (New / Modified / Deprecated)
- Applies all changes in a single registry swap, or nothing at all

Rules missing upstream are left in place; rules are never deleted.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import requests

from .errors import InvalidRuleError, SyncFailure
from .rules import (
    ChangeType,
    ImpactLevel,
    Rule,
    RuleRegistry,
    RuleSeverity,
    RuleUpdateNotification,
)

logger = logging.getLogger(__name__)

IMPACT_BY_SEVERITY = {
    RuleSeverity.CRITICAL: ImpactLevel.HIGH,
    RuleSeverity.IMPORTANT: ImpactLevel.MEDIUM,
    RuleSeverity.STANDARD: ImpactLevel.LOW,
}


class HttpRuleContentProvider:
    """
    Client for the regulatory rule-content backend.

    Expects ``GET {base_url}/rules`` to return either a JSON list of rule
    objects or ``{"rules": [...]}``.
    """

    def __init__(self, base_url: str, token: str = '', timeout: float = 15.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.headers = {
            'User-Agent': 'HOSComplianceEngine/1.0',
            'Accept': 'application/json',
        }
        if token:
            self.headers['Authorization'] = f"Bearer {token}"

        # Session for connection pooling
        self.session = requests.Session()
        self.session.headers.update(self.headers)

    def fetch_rules(self) -> List[Dict]:
        """
        Fetch the canonical rule list.

        Raises:
            SyncFailure: If the provider is unreachable, times out or returns
                something other than a rule list
        """
        if not self.base_url:
            raise SyncFailure("No rule-content provider configured")

        url = f"{self.base_url}/rules"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Rule provider request failed: {e}")
            raise SyncFailure(f"Rule provider error: {str(e)}") from e
        except ValueError as e:
            raise SyncFailure(f"Rule provider returned invalid JSON: {str(e)}") from e

        if isinstance(data, dict):
            data = data.get('rules')
        if not isinstance(data, list):
            raise SyncFailure("Rule provider response does not contain a rule list")

        logger.info(f"Fetched {len(data)} rule(s) from {url}")
        return data


class RuleSyncService:
    """Diffs provider content against the registry and applies it atomically."""

    def __init__(self, registry: RuleRegistry, provider):
        self.registry = registry
        self.provider = provider

    def sync(self, now: Optional[datetime] = None) -> List[RuleUpdateNotification]:
        """
        Pull rule content and apply whatever changed.

        Returns:
            Notifications for the applied changes; empty when nothing changed

        Raises:
            SyncFailure: If fetching or validating provider content fails.
                The registry is left untouched.
        """
        now = now or datetime.now(timezone.utc)

        try:
            payload = self.provider.fetch_rules()
        except SyncFailure:
            raise
        except requests.RequestException as e:
            raise SyncFailure(f"Rule provider error: {str(e)}") from e

        incoming = self._parse(payload)
        notifications = self.registry.reconcile(
            lambda current: self._diff(current, incoming), synced_at=now
        )

        if notifications:
            logger.info(
                f"Rule sync applied {len(notifications)} update(s): "
                f"{', '.join(n.rule_id for n in notifications)}"
            )
        else:
            logger.debug("Rule sync found no changes")
        return notifications

    def _diff(self, current: Dict[str, Rule], incoming: List[Rule]):
        """Merge incoming rules over the current mapping; rules missing upstream stay."""
        merged = dict(current)
        notifications = []
        for rule in incoming:
            existing = current.get(rule.rule_id)
            if existing is None:
                change_type = ChangeType.NEW
            elif existing.content_key() == rule.content_key():
                continue
            elif rule.deprecated and not existing.deprecated:
                change_type = ChangeType.DEPRECATED
            else:
                change_type = ChangeType.MODIFIED

            merged[rule.rule_id] = rule
            notifications.append(self._notification(existing, rule, change_type))
        return merged.values(), notifications

    def _parse(self, payload: List[Dict]) -> List[Rule]:
        rules = []
        seen = set()
        for entry in payload:
            try:
                rule = Rule.from_dict(entry)
            except InvalidRuleError as e:
                logger.warning(f"Rejecting rule sync payload: {e}")
                raise SyncFailure(f"Provider returned invalid rule: {e}") from e
            if rule.rule_id in seen:
                raise SyncFailure(f"Provider returned duplicate rule id {rule.rule_id}")
            seen.add(rule.rule_id)
            rules.append(rule)
        return rules

    def _notification(
        self,
        existing: Optional[Rule],
        rule: Rule,
        change_type: ChangeType
    ) -> RuleUpdateNotification:
        impact = IMPACT_BY_SEVERITY[rule.severity]
        return RuleUpdateNotification(
            notification_id=f"rule-update-{uuid.uuid4()}",
            rule_id=rule.rule_id,
            change_type=change_type,
            effective_date=rule.effective_date,
            summary=self._summarize(existing, rule, change_type),
            impact_level=impact,
            action_required=impact == ImpactLevel.HIGH,
            parameters=dict(rule.parameters) if change_type != ChangeType.DEPRECATED else None,
        )

    def _summarize(self, existing: Optional[Rule], rule: Rule, change_type: ChangeType) -> str:
        if change_type == ChangeType.NEW:
            return f"New rule: {rule.title}"
        if change_type == ChangeType.DEPRECATED:
            return f"{rule.title} has been deprecated"

        changes = []
        keys = sorted(set(existing.parameters) | set(rule.parameters))
        for key in keys:
            old = existing.parameters.get(key)
            new = rule.parameters.get(key)
            if old != new:
                changes.append(f"{key} {old} -> {new}")
        if existing.can_override != rule.can_override:
            changes.append(f"can_override {existing.can_override} -> {rule.can_override}")
        if not changes:
            return f"{rule.title} content updated"
        return f"{rule.title} updated: {', '.join(changes)}"
