import json
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from logging_config import get_logger

logger = get_logger(__name__)

FALLBACK_RESPONSE = 'Thank you for your message. How can I help you?'

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.5
    if confidence != confidence:  # NaN
        return 0.5
    return max(0.0, min(1.0, confidence))


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [str(v) for v in value if v is not None]


@dataclass
class Classification:
    """Structured analysis of one inbound message"""
    intent: str = 'unknown'
    sentiment: str = 'neutral'
    urgency: str = 'low'
    topics: List[str] = field(default_factory=list)
    buying_signals: List[str] = field(default_factory=list)
    confidence: float = 0.5
    suggested_response: str = FALLBACK_RESPONSE
    triggers: List[str] = field(default_factory=list)
    is_fallback: bool = False

    @classmethod
    def neutral(cls) -> 'Classification':
        """Safe default used whenever analysis is unavailable"""
        return cls(is_fallback=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Classification':
        return cls(
            intent=str(data.get('intent') or 'unknown').lower(),
            sentiment=str(data.get('sentiment') or 'neutral').lower(),
            urgency=str(data.get('urgency') or 'low').lower(),
            topics=_as_list(data.get('topics')),
            buying_signals=_as_list(data.get('buying_signals')),
            confidence=_clamp_confidence(data.get('confidence', 0.5)),
            suggested_response=str(data.get('suggested_response') or FALLBACK_RESPONSE),
            triggers=_as_list(data.get('triggers')),
        )

    @property
    def sentiment_score(self) -> float:
        return {'positive': 0.8, 'negative': 0.2}.get(self.sentiment, 0.5)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AIService:
    """
    Gemini-backed message analysis.

    Every public method degrades to a safe default instead of raising, so
    callers can treat analysis as always available.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = 'gemini-1.5-flash',
                 timeout: float = 15.0):
        """
        The model is configured lazily on first use.
        """
        self.api_key = api_key
        self.model_name = model_name
        self.timeout = timeout
        self.model = None

    def _configure_model(self):
        """Configure the Gemini model just-in-time; False marks it unavailable."""
        if self.model is None:
            try:
                if not self.api_key:
                    raise ValueError("GEMINI_API_KEY not found in configuration.")
                genai.configure(api_key=self.api_key)
                self.model = genai.GenerativeModel(self.model_name)
                logger.info("AIService model configured successfully", model=self.model_name)
            except Exception as e:
                logger.error("Error initializing AIService model", error=str(e))
                self.model = False

    def classify(self, text: str, context_messages: Optional[list] = None,
                 contact: Any = None) -> Classification:
        """
        Analyze an inbound message.

        Args:
            text: Message text
            context_messages: Recent messages, newest first
            contact: The sending contact

        Returns:
            A Classification; Classification.neutral() when the call fails or times out
        """
        self._configure_model()
        if not self.model or not text:
            return Classification.neutral()

        history = context_messages or []
        contact_name = getattr(contact, 'name', None) or 'unknown'
        prompt = f"""
        You are an AI agent analyzing customer messages for a WhatsApp CRM.
        Analyze the message and return ONLY valid JSON with:
        - intent: detected intent (greeting, question, complaint, interest, pricing, support, etc.)
        - sentiment: positive, negative, or neutral
        - urgency: low, medium, or high
        - topics: array of topics discussed
        - buying_signals: array of detected buying signals
        - confidence: confidence score 0-1
        - suggested_response: brief suggested response
        - triggers: array of trigger names that should be activated

        Message: "{text}"
        Context: Customer {contact_name} has {len(history)} previous messages.
        Recent conversation:
        {self._format_history(history)}
        """

        try:
            response = self.model.generate_content(
                prompt,
                generation_config={'temperature': 0.3, 'max_output_tokens': 500},
                request_options={'timeout': self.timeout},
            )
            match = _JSON_OBJECT.search(response.text or '')
            if not match:
                logger.warning("Gemini classification returned no JSON object")
                return Classification.neutral()
            return Classification.from_dict(json.loads(match.group(0)))
        except Exception as e:
            logger.error("Error calling Gemini API for message classification", error=str(e))
            return Classification.neutral()

    def generate_reply(self, classification: Classification, contact: Any = None,
                       history: Optional[list] = None) -> str:
        """
        Draft a reply to the customer.

        Falls back to the classification's suggested response on failure.
        """
        fallback = classification.suggested_response or FALLBACK_RESPONSE
        self._configure_model()
        if not self.model:
            return fallback

        tags = ', '.join(getattr(contact, 'tag_names', None) or []) or 'none'
        prompt = f"""
        You are a helpful customer service agent for a WhatsApp CRM system.

        Customer Information:
        - Name: {getattr(contact, 'name', None) or 'unknown'}
        - Tags: {tags}

        Message Analysis:
        - Intent: {classification.intent}
        - Sentiment: {classification.sentiment}
        - Topics: {', '.join(classification.topics) or 'none'}

        Recent Conversation:
        {self._format_history((history or [])[:5])}

        Generate a friendly, helpful, and professional response. Keep it concise (2-3 sentences)
        but engaging. Address the customer by name if appropriate.
        """

        try:
            response = self.model.generate_content(
                prompt,
                generation_config={'temperature': 0.7, 'max_output_tokens': 300},
                request_options={'timeout': self.timeout},
            )
            reply = (response.text or '').strip()
            return reply or fallback
        except Exception as e:
            logger.error("Error calling Gemini API for reply generation", error=str(e))
            return fallback

    @staticmethod
    def _format_history(messages: list) -> str:
        if not messages:
            return 'No previous messages'
        return '\n'.join(
            f"{getattr(m, 'sender_type', 'customer')}: {getattr(m, 'content', '')}"
            for m in messages
        )
