"""
Trigger definitions.

Stored trigger JSON is parsed into a closed set of condition and action kinds.
Unknown kinds are rejected with TriggerDefinitionError instead of silently
never matching.

Condition JSON:
    {"match": "all" | "any",
     "rules": [
        {"kind": "intent", "values": ["pricing", "interest"]},
        {"kind": "keyword", "values": ["price", "cost"]},
        {"kind": "min_confidence", "value": 0.6},
        {"kind": "suggested_trigger"},
        {"kind": "field_equals", "field": "contact.company", "value": "Acme"}
     ]}

Action JSON:
    {"kind": "automation_webhook", "path": "lead-followup", "params": {...}}
    {"kind": "add_tags", "tags": ["hot-lead"]}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from services.ai_service import Classification
from services.enums import ConditionKind, ActionKind

# Kinds whose rule carries a set of accepted string values
_VALUE_SET_KINDS = {
    ConditionKind.INTENT,
    ConditionKind.SENTIMENT,
    ConditionKind.URGENCY,
    ConditionKind.KEYWORD,
    ConditionKind.TOPIC,
    ConditionKind.CONTACT_TAG,
    ConditionKind.CONVERSATION_STATUS,
    ConditionKind.SUGGESTED_TRIGGER,
}

_THRESHOLD_KINDS = {ConditionKind.MIN_CONFIDENCE, ConditionKind.MAX_CONFIDENCE}


class TriggerDefinitionError(ValueError):
    """Raised for malformed trigger conditions or actions"""
    pass


@dataclass(frozen=True)
class EvaluationContext:
    """Everything a condition may look at for one inbound event"""
    classification: Classification
    contact: Any
    conversation: Any
    message_text: Optional[str] = None
    trigger_name: Optional[str] = None

    def lookup(self, path: str) -> Any:
        """Resolve a dotted path such as 'classification.intent' or 'contact.metadata.plan'"""
        roots = {
            'classification': self.classification.to_dict(),
            'contact': _payload(self.contact),
            'conversation': _payload(self.conversation),
            'message': {'text': self.message_text},
        }
        head, _, rest = path.partition('.')
        if head not in roots:
            raise TriggerDefinitionError(f"Unknown field root '{head}' in '{path}'")
        value: Any = roots[head]
        for part in rest.split('.') if rest else []:
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value


def _payload(entity: Any) -> Dict[str, Any]:
    if entity is None:
        return {}
    if isinstance(entity, dict):
        return entity
    to_payload = getattr(entity, 'to_payload', None)
    return to_payload() if callable(to_payload) else {}


def _normalize(values) -> Tuple[str, ...]:
    return tuple(str(v).strip().lower() for v in values if v is not None and str(v).strip())


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    values: Tuple[str, ...] = ()
    threshold: Optional[float] = None
    field: Optional[str] = None
    value: Any = None

    @classmethod
    def parse(cls, raw: Dict[str, Any]) -> 'Condition':
        if not isinstance(raw, dict):
            raise TriggerDefinitionError(f"Condition rule must be an object, got {type(raw).__name__}")
        try:
            kind = ConditionKind(raw.get('kind'))
        except ValueError:
            raise TriggerDefinitionError(f"Unknown condition kind: {raw.get('kind')!r}")

        if kind in _VALUE_SET_KINDS:
            values = raw.get('values')
            if values is None and 'value' in raw:
                values = [raw['value']]
            if isinstance(values, str):
                values = [values]
            values = _normalize(values or [])
            if not values and kind != ConditionKind.SUGGESTED_TRIGGER:
                raise TriggerDefinitionError(f"Condition '{kind.value}' requires at least one value")
            return cls(kind=kind, values=values)

        if kind in _THRESHOLD_KINDS:
            try:
                threshold = float(raw.get('value'))
            except (TypeError, ValueError):
                raise TriggerDefinitionError(f"Condition '{kind.value}' requires a numeric value")
            return cls(kind=kind, threshold=threshold)

        # FIELD_EQUALS
        path = raw.get('field')
        if not path or not isinstance(path, str):
            raise TriggerDefinitionError("Condition 'field_equals' requires a 'field' path")
        return cls(kind=kind, field=path, value=raw.get('value'))

    def matches(self, ctx: EvaluationContext) -> bool:
        c = ctx.classification
        kind = self.kind

        if kind == ConditionKind.INTENT:
            return c.intent.lower() in self.values
        if kind == ConditionKind.SENTIMENT:
            return c.sentiment.lower() in self.values
        if kind == ConditionKind.URGENCY:
            return c.urgency.lower() in self.values
        if kind == ConditionKind.KEYWORD:
            text = (ctx.message_text or '').lower()
            return any(keyword in text for keyword in self.values)
        if kind == ConditionKind.TOPIC:
            topics = set(_normalize(c.topics))
            return any(v in topics for v in self.values)
        if kind == ConditionKind.CONTACT_TAG:
            tags = set(_normalize(getattr(ctx.contact, 'tag_names', None) or []))
            return any(v in tags for v in self.values)
        if kind == ConditionKind.CONVERSATION_STATUS:
            status = getattr(ctx.conversation, 'status', None)
            return status is not None and status.lower() in self.values
        if kind == ConditionKind.SUGGESTED_TRIGGER:
            wanted = self.values or _normalize([ctx.trigger_name])
            suggested = set(_normalize(c.triggers))
            return any(v in suggested for v in wanted)
        if kind == ConditionKind.MIN_CONFIDENCE:
            return c.confidence >= self.threshold
        if kind == ConditionKind.MAX_CONFIDENCE:
            return c.confidence <= self.threshold
        return ctx.lookup(self.field) == self.value


@dataclass(frozen=True)
class ConditionSet:
    match: str = 'all'
    rules: Tuple[Condition, ...] = ()

    @classmethod
    def parse(cls, raw: Any) -> 'ConditionSet':
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise TriggerDefinitionError("Trigger conditions must be an object")
        match = raw.get('match', 'all')
        if match not in ('all', 'any'):
            raise TriggerDefinitionError(f"Unknown match mode: {match!r}")
        rules = raw.get('rules') or []
        if not isinstance(rules, list):
            raise TriggerDefinitionError("Trigger condition 'rules' must be a list")
        return cls(match=match, rules=tuple(Condition.parse(r) for r in rules))

    def matches(self, ctx: EvaluationContext) -> bool:
        # A trigger with no rules never fires
        if not self.rules:
            return False
        results = (rule.matches(ctx) for rule in self.rules)
        return all(results) if self.match == 'all' else any(results)


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    path: Optional[str] = None
    url: Optional[str] = None
    tags: Tuple[str, ...] = ()
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any) -> 'Action':
        if not isinstance(raw, dict):
            raise TriggerDefinitionError("Trigger action must be an object")
        try:
            kind = ActionKind(raw.get('kind'))
        except ValueError:
            raise TriggerDefinitionError(f"Unknown action kind: {raw.get('kind')!r}")

        params = raw.get('params') or {}
        if not isinstance(params, dict):
            raise TriggerDefinitionError("Trigger action 'params' must be an object")

        if kind == ActionKind.ADD_TAGS:
            tags = raw.get('tags') or []
            if isinstance(tags, str):
                tags = [tags]
            tags = tuple(str(t).strip() for t in tags if str(t).strip())
            if not tags:
                raise TriggerDefinitionError("Action 'add_tags' requires at least one tag")
            return cls(kind=kind, tags=tags, params=params)

        return cls(kind=kind, path=raw.get('path'), url=raw.get('url'), params=params)


@dataclass(frozen=True)
class TriggerDefinition:
    """Parsed, validated form of a stored Trigger row"""
    trigger_id: Optional[int]
    name: str
    conditions: ConditionSet
    action: Action

    @classmethod
    def from_model(cls, trigger) -> 'TriggerDefinition':
        return cls.parse(trigger.id, trigger.name, trigger.conditions, trigger.action)

    @classmethod
    def parse(cls, trigger_id: Optional[int], name: str, conditions: Any, action: Any) -> 'TriggerDefinition':
        return cls(
            trigger_id=trigger_id,
            name=name,
            conditions=ConditionSet.parse(conditions),
            action=Action.parse(action),
        )

    def matches(self, classification: Classification, contact: Any, conversation: Any,
                message_text: Optional[str] = None) -> bool:
        ctx = EvaluationContext(
            classification=classification,
            contact=contact,
            conversation=conversation,
            message_text=message_text,
            trigger_name=self.name,
        )
        return self.conditions.matches(ctx)
