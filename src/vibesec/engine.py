"""
vibesec - Rule Engine

evaluate(action) -> Decision. Tiers run in fixed order and the first tier
that produces a deny wins:

  1. Irrevocable - first matching rule denies; the allowlist is never read
  2. Heuristic   - a match is suppressed if any allowlist pattern matches
  3. Escalation  - only with an escalation client; borderline signal gates
                   the remote call, and only a high-confidence block denies

The engine performs no I/O of its own besides what the allowlist store and
the escalation client do. Side effects of a deny live in the responder.
"""

from dataclasses import dataclass

from vibesec.actions import Action
from vibesec.allowlist import AllowlistStore, suggest_pattern
from vibesec.catalog import CATALOG, TIER_ORDER, Rule, Tier, rules_for
from vibesec.log import debug


@dataclass(frozen=True)
class Decision:
    allow: bool
    tier: Tier | None = None
    rule_id: str | None = None
    category: str | None = None
    reason: str = ""
    explanation: str = ""
    suggested_allow_pattern: str | None = None

    @property
    def deny(self) -> bool:
        return not self.allow


ALLOW = Decision(allow=True)


def _fill(template: str, spans: tuple) -> str:
    labels = [label for label, _ in spans]
    try:
        return template.format(*labels)
    except (IndexError, KeyError):
        return template


def deny_for(rule: Rule, spans: tuple, action: Action, reason: str | None = None,
             explanation: str | None = None) -> Decision:
    suggested = suggest_pattern(action.text) if rule.tier.bypassable else None
    return Decision(
        allow=False,
        tier=rule.tier,
        rule_id=rule.rule_id,
        category=rule.category,
        reason=reason or _fill(rule.reason, spans),
        explanation=explanation if explanation is not None else _fill(rule.explanation, spans),
        suggested_allow_pattern=suggested,
    )


class RuleEngine:
    def __init__(self, allowlist: AllowlistStore | None = None, escalator=None, catalog=CATALOG):
        self.allowlist = allowlist
        self.escalator = escalator
        self.catalog = catalog
        self._tiers = {
            Tier.IRREVOCABLE: self._irrevocable,
            Tier.HEURISTIC: self._heuristic,
            Tier.ESCALATION: self._escalation,
        }

    def evaluate(self, action: Action) -> Decision:
        for tier in TIER_ORDER:
            decision = self._tiers[tier](action)
            if decision is not None:
                debug(f"{tier.level} deny: {decision.rule_id}")
                return decision
        return ALLOW

    def _first_match(self, tier: Tier, action: Action):
        for rule in rules_for(tier, self.catalog):
            spans = rule.match(action)
            if spans is not None:
                return rule, spans
        return None, None

    def _allowlisted(self, action: Action) -> bool:
        if self.allowlist is None:
            return False
        entry = self.allowlist.match(action.text)
        if entry is not None:
            debug(f"Suppressed by allowlist pattern: {entry.pattern}")
            return True
        return False

    def _irrevocable(self, action: Action) -> Decision | None:
        rule, spans = self._first_match(Tier.IRREVOCABLE, action)
        if rule is None:
            return None
        return deny_for(rule, spans, action)

    def _heuristic(self, action: Action) -> Decision | None:
        rule, spans = self._first_match(Tier.HEURISTIC, action)
        if rule is None or self._allowlisted(action):
            return None
        return deny_for(rule, spans, action)

    def _escalation(self, action: Action) -> Decision | None:
        if self.escalator is None:
            return None
        rule, spans = self._first_match(Tier.ESCALATION, action)
        if rule is None or self._allowlisted(action):
            return None

        verdict = self.escalator.classify(action.text)
        if verdict is None or not verdict.is_confident_block:
            return None
        return deny_for(rule, spans, action, reason=verdict.reason, explanation=verdict.detail)
