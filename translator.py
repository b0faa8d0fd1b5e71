"""On-demand translation of rendered bot messages."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from errors import ERROR_MESSAGES, TRANSLATION_ERROR, VALIDATION_ERROR
from interfaces import AssistantServices, ConversationSink, Notifier
from models import OutboundMessage, TargetLanguage

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    TargetLanguage.HINDI: "Hindi",
    TargetLanguage.MARATHI: "Marathi",
    TargetLanguage.SANSKRIT: "Sanskrit",
}


def parse_language(code: str) -> Optional[TargetLanguage]:
    try:
        return TargetLanguage(code.strip().lower())
    except ValueError:
        return None


class MessageTranslator:
    def __init__(
        self,
        services: AssistantServices,
        conversation: ConversationSink,
        notifier: Notifier,
    ) -> None:
        self._services = services
        self._conversation = conversation
        self._notifier = notifier
        self._originals: dict[str, str] = {}

    def is_translated(self, message_id: str) -> bool:
        return message_id in self._originals

    async def translate(self, message: OutboundMessage, language: str) -> Optional[OutboundMessage]:
        """Swap the message content for its translation. None on failure."""
        target = parse_language(language)
        if target is None:
            self._notifier.notify(VALIDATION_ERROR, f"Unsupported target language: {language}")
            return None
        if not message.is_from_bot or message.is_processing_placeholder:
            self._notifier.notify(VALIDATION_ERROR, "Only bot replies can be translated.")
            return None

        original = self._originals.get(message.message_id, message.content)
        try:
            translated = await self._services.translate(original, target.value)
        except Exception as exc:
            logger.warning("translation to %s failed: %s", target.value, exc)
            self._notifier.notify(TRANSLATION_ERROR, ERROR_MESSAGES[TRANSLATION_ERROR])
            return None

        updated = replace(message, content=translated)
        try:
            self._conversation.replace_message(message.message_id, updated)
        except KeyError:
            logger.info("message %s left the conversation before translation", message.message_id)
            return None
        self._originals[message.message_id] = original
        logger.info("translated %s to %s", message.message_id, LANGUAGE_NAMES[target])
        return updated

    def revert(self, message: OutboundMessage) -> OutboundMessage:
        original = self._originals.pop(message.message_id, None)
        if original is None:
            return message
        restored = replace(message, content=original)
        try:
            self._conversation.replace_message(message.message_id, restored)
        except KeyError:
            logger.info("message %s left the conversation", message.message_id)
        return restored
