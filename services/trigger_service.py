"""
Trigger Evaluation Engine and trigger management.

Each active trigger is tested independently against a classified inbound
event. Every match bumps the trigger's execution counter, runs its action and
records the outcome. A failing trigger never stops evaluation of the others.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from logging_config import get_logger
from repositories.contact_repository import ContactRepository
from repositories.trigger_repository import TriggerRepository
from services.ai_service import Classification
from services.automation_client import AutomationClient
from services.common.result import Result, ErrorCode
from services.enums import ActionKind, EventType
from services.trigger_rules import Action, TriggerDefinition, TriggerDefinitionError

logger = get_logger(__name__)


@dataclass
class ActivatedTrigger:
    """A trigger that matched an event, with the typed outcome of its action"""
    trigger_id: int
    name: str
    action_kind: Optional[str]
    result: Result

    @property
    def succeeded(self) -> bool:
        return self.result.is_success


class TriggerEngine:
    """Matches classified events against active triggers and executes their actions"""

    def __init__(self, trigger_repository: TriggerRepository,
                 contact_repository: ContactRepository,
                 automation_client: AutomationClient):
        self.trigger_repository = trigger_repository
        self.contact_repository = contact_repository
        self.automation_client = automation_client

    def evaluate(self, classification: Classification, contact: Any, conversation: Any,
                 message_text: Optional[str] = None,
                 event_type: str = EventType.MESSAGE_RECEIVED.value) -> List[ActivatedTrigger]:
        """
        Evaluate all active triggers for one event.

        Args:
            classification: Analysis of the inbound message
            contact: Sending contact
            conversation: Conversation the message belongs to
            message_text: Raw text, used by keyword conditions
            event_type: Only triggers subscribed to this event are considered

        Returns:
            One ActivatedTrigger per matching trigger, in trigger id order
        """
        activated = []
        triggers = self.trigger_repository.get_active_by_event_type(event_type)

        for trigger in triggers:
            try:
                definition = TriggerDefinition.from_model(trigger)
                if not definition.matches(classification, contact, conversation, message_text):
                    continue
            except TriggerDefinitionError as e:
                logger.error("Invalid trigger definition skipped",
                             trigger_id=trigger.id, trigger_name=trigger.name, error=str(e))
                continue

            logger.info("Trigger matched", trigger_id=trigger.id, trigger_name=trigger.name,
                        contact_id=getattr(contact, 'id', None))
            activated.append(self._activate(trigger, definition, classification, contact, conversation))

        return activated

    def _activate(self, trigger, definition: TriggerDefinition, classification: Classification,
                  contact: Any, conversation: Any) -> ActivatedTrigger:
        try:
            self.trigger_repository.increment_execution_count(trigger.id)
        except SQLAlchemyError as e:
            # The counter is best-effort; the action still runs
            logger.warning("Could not increment trigger execution count",
                           trigger_id=trigger.id, error=str(e))

        try:
            result = self.execute_action(definition.action, trigger, classification, contact, conversation)
        except Exception as e:
            logger.exception("Trigger action raised", trigger_id=trigger.id)
            result = Result.failure(f"Trigger action raised: {e}", code=ErrorCode.TRIGGER_ACTION_FAILURE)

        if result.is_failure:
            logger.warning("Trigger action failed", trigger_id=trigger.id,
                           trigger_name=trigger.name, error=result.error)

        try:
            self.trigger_repository.record_execution(
                trigger_id=trigger.id,
                success=result.is_success,
                contact_id=getattr(contact, 'id', None),
                conversation_id=getattr(conversation, 'id', None),
                error=result.error,
            )
            self.trigger_repository.commit()
        except SQLAlchemyError as e:
            logger.warning("Could not record trigger execution", trigger_id=trigger.id, error=str(e))

        return ActivatedTrigger(
            trigger_id=trigger.id,
            name=trigger.name,
            action_kind=definition.action.kind.value,
            result=result,
        )

    def execute_action(self, action: Action, trigger, classification: Classification,
                       contact: Any, conversation: Any) -> Result:
        """Run one trigger action and return its typed outcome"""
        if action.kind == ActionKind.AUTOMATION_WEBHOOK:
            payload = {
                'contact': contact.to_payload() if contact is not None else None,
                'conversation': conversation.to_payload() if conversation is not None else None,
                'classification': classification.to_dict(),
                'trigger': trigger.to_payload(),
                'params': action.params,
            }
            return self.automation_client.send(payload, path=action.path, url=action.url)

        if action.kind == ActionKind.ADD_TAGS:
            added = self.contact_repository.add_tags(contact, action.tags)
            return Result.success({'added_tags': added})

        return Result.failure(f"Unsupported action kind: {action.kind}", code=ErrorCode.INVALID_DEFINITION)


class TriggerService:
    """Administrative operations on triggers"""

    def __init__(self, trigger_repository: TriggerRepository):
        self.trigger_repository = trigger_repository

    def get_active_triggers(self):
        return self.trigger_repository.get_active_triggers()

    def get_triggers_by_event_type(self, event_type: str):
        return self.trigger_repository.get_active_by_event_type(event_type)

    def create_trigger(self, name: str, conditions: Dict[str, Any], action: Dict[str, Any],
                       event_type: str = EventType.MESSAGE_RECEIVED.value,
                       is_active: bool = True) -> Result:
        """
        Validate and store a trigger.

        Returns:
            Result with the new Trigger, or INVALID_DEFINITION
        """
        if not name:
            return Result.failure("Trigger name is required", code=ErrorCode.VALIDATION_ERROR)
        try:
            EventType(event_type)
            TriggerDefinition.parse(None, name, conditions, action)
        except ValueError as e:
            return Result.failure(str(e), code=ErrorCode.INVALID_DEFINITION)

        trigger = self.trigger_repository.create(
            name=name,
            event_type=event_type,
            conditions=conditions or {'match': 'all', 'rules': []},
            action=action,
            is_active=is_active,
            execution_count=0,
        )
        self.trigger_repository.commit()
        logger.info("Trigger created", trigger_id=trigger.id, trigger_name=name)
        return Result.success(trigger)

    def reset_execution_count(self, trigger_id: int) -> Result:
        if not self.trigger_repository.reset_execution_count(trigger_id):
            return Result.failure(f"Trigger {trigger_id} not found", code=ErrorCode.NOT_FOUND)
        self.trigger_repository.commit()
        logger.info("Trigger execution count reset", trigger_id=trigger_id)
        return Result.success({'trigger_id': trigger_id, 'execution_count': 0})
