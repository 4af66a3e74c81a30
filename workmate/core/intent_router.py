"""Intent classification and routing.

Classification is a model call that never fails: any error degrades to a
low-confidence "conversation" verdict. Routing is a pure threshold rule on
top of the verdict.
"""

import logging
from typing import Dict, Any, List, Optional

from .prompts import build_classifier_prompt
from .types import (
    Classification,
    RoutingDecision,
    Route,
    IntentType,
    PendingConfirmation,
    CONVERSATION_INTENTS,
    TASK_OPERATION_INTENTS,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.6


def route_classification(classification: Classification, threshold: float = DEFAULT_THRESHOLD) -> RoutingDecision:
    """Map a classification onto a processing path.

    Low confidence always wins and sends the utterance to conversation.
    """
    if classification.confidence < threshold:
        logger.info(f"⚠️ Low confidence ({classification.confidence}), routing to conversation")
        return RoutingDecision(
            route=Route.CONVERSATION,
            intent_type=IntentType.CONVERSATION,
            confidence=classification.confidence,
        )

    if classification.intent_type in CONVERSATION_INTENTS:
        route = Route.CONVERSATION
    elif classification.intent_type in TASK_OPERATION_INTENTS:
        route = Route.TASK_OPERATIONS
    else:
        return RoutingDecision(Route.CONVERSATION, IntentType.CONVERSATION, classification.confidence)

    return RoutingDecision(
        route=route,
        intent_type=classification.intent_type,
        confidence=classification.confidence,
        task_identifier=classification.task_identifier,
    )


class IntentRouter:
    """Classifies utterances with a small model call and routes them."""

    def __init__(self, llm_client, model: str, threshold: float = DEFAULT_THRESHOLD, temperature: float = 0.2):
        self.llm = llm_client
        self.model = model
        self.threshold = threshold
        self.temperature = temperature

    async def classify(
        self,
        utterance: str,
        session_id: str,
        recent_history: Optional[List[Dict[str, Any]]] = None,
        pending: Optional[PendingConfirmation] = None,
    ) -> Classification:
        """Classify one utterance using recent conversation context.

        When a confirmation is pending, its original intent is passed to the
        model as a hint so answers to clarifying questions keep their intent.
        """
        pending_intent = None
        if pending is not None and pending.original_classification is not None:
            pending_intent = pending.original_classification.intent_type.value

        messages = [
            {"role": "system", "content": build_classifier_prompt(utterance, recent_history, pending_intent)},
            {"role": "user", "content": utterance},
        ]

        try:
            completion = await self.llm.complete_json(
                model=self.model,
                messages=messages,
                max_tokens=500,
                temperature=self.temperature,
            )
            classification = Classification.from_model(completion.data)
        except Exception as e:
            logger.warning(f"Intent classification failed for session {session_id}: {e}")
            return Classification.fallback()

        logger.info(
            f"🎯 Intent: {classification.intent_type.value} ({classification.confidence:.2f}) "
            f"action={classification.action} target={classification.task_identifier!r}"
        )
        return classification

    def route(self, classification: Classification) -> RoutingDecision:
        decision = route_classification(classification, self.threshold)
        logger.info(f"📍 Route: {decision.route.value} ({decision.intent_type.value})")
        return decision
