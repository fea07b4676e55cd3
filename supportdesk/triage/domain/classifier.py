"""
Triage Classifier
=================

Keyword signals and the ordered rules turning them into a triage
category and reason.

Rules are evaluated top to bottom; the first matching predicate wins.
All matching is case-insensitive substring matching, so "failed" also
matches inside "upload failed".
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from supportdesk.config import TriageAction, TriageCategory, TriageReason
from supportdesk.config.rules import RulesConfig
from supportdesk.triage.domain.entities import TriageDecision


def _contains_any(text: str, terms: List[str]) -> bool:
    return any(term in text for term in terms)


@dataclass(frozen=True)
class MessageSignals:
    """Keyword signals detected in a support message."""
    hard_system: bool = False
    soft_system: bool = False
    bug: bool = False
    feature: bool = False

    @classmethod
    def detect(cls, message: str, rules: Optional[RulesConfig] = None) -> "MessageSignals":
        rules = rules or RulesConfig()
        text = (message or "").lower()
        return cls(
            hard_system=_contains_any(text, rules.hard_system_terms),
            soft_system=_contains_any(text, rules.soft_system_terms),
            bug=_contains_any(text, rules.bug_terms),
            feature=_contains_any(text, rules.feature_terms),
        )

    @property
    def is_strong(self) -> bool:
        """Hard system, bug or feature signals always produce a ticket."""
        return self.hard_system or self.bug or self.feature

    @property
    def confidence(self) -> float:
        if self.is_strong:
            return 0.7
        if self.soft_system:
            return 0.6
        return 0.5


Rule = Tuple[Callable[[MessageSignals], bool], str, str]

# (predicate, category, reason) in priority order
TICKET_RULES: List[Rule] = [
    (lambda s: s.hard_system, TriageCategory.SYSTEM_FAILURE, TriageReason.SYSTEM_SIGNAL),
    (lambda s: s.feature, TriageCategory.FEATURE_REQUEST, TriageReason.FEATURE_SIGNAL),
    (lambda s: s.bug, TriageCategory.VALID_BUG, TriageReason.BUG_SIGNAL),
    # Only reached after answer-first failed, so no KB gate pass here
    (lambda s: s.soft_system, TriageCategory.SYSTEM_FAILURE, TriageReason.SYSTEM_SIGNAL),
]

# Category selection when the caller forced a ticket
FORCED_RULES: List[Tuple[Callable[[MessageSignals], bool], str]] = [
    (lambda s: s.hard_system, TriageCategory.SYSTEM_FAILURE),
    (lambda s: s.feature, TriageCategory.FEATURE_REQUEST),
    (lambda s: s.bug or s.soft_system, TriageCategory.VALID_BUG),
]


def should_attempt_answer(signals: MessageSignals, forced: bool) -> bool:
    """
    Answer-first runs unless forced or a strong signal is present.

    Soft system signals still attempt an answer.
    """
    return not forced and not signals.is_strong


def classify(
    signals: MessageSignals,
    forced: bool = False,
    route: Optional[str] = None,
    page_url: Optional[str] = None,
    severity: Optional[str] = None
) -> TriageDecision:
    """Ticket-creating decision for a request the KB did not resolve."""
    if forced:
        category = TriageCategory.USER_ERROR
        for predicate, forced_category in FORCED_RULES:
            if predicate(signals):
                category = forced_category
                break
        reason = TriageReason.FORCED
    else:
        category, reason = TriageCategory.USER_ERROR, TriageReason.NO_KB_MATCH
        for predicate, rule_category, rule_reason in TICKET_RULES:
            if predicate(signals):
                category, reason = rule_category, rule_reason
                break

    return TriageDecision(
        category=category,
        action=TriageAction.CREATE_TICKET,
        reason=reason,
        forced=forced,
        confidence=signals.confidence,
        route=route,
        page_url=page_url,
        severity=severity,
    )


def answered_decision(confidence: float, route: Optional[str] = None) -> TriageDecision:
    """Decision reported when the KB answered the request."""
    return TriageDecision(
        category=TriageCategory.USER_ERROR,
        action=TriageAction.ANSWER_NOW,
        reason=TriageReason.KB_HIT,
        confidence=max(0.0, min(1.0, confidence)),
        route=route,
    )
