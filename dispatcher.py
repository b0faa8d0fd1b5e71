"""Intent dispatch for chat input.

``MessageDispatcher`` owns the input buffer and the attachment queue of one
conversation view.  ``dispatch()`` classifies the current utterance, runs the
matching branch to completion and writes the resulting messages to the
conversation sink.  Web search and image generation are separate entry points
driven by their own affordances.

Every external call is caught at the branch that issued it and turned into a
single notification.  Processing placeholders are always replaced or removed.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional, Sequence

from errors import (
    ERROR_MESSAGES,
    GENERATION_ERROR,
    INFERENCE_ERROR,
    SEARCH_ERROR,
    UPLOAD_ERROR,
    VALIDATION_ERROR,
    WEATHER_ERROR,
    ValidationError,
)
from intents import classify, directions_url
from interfaces import AssistantServices, ConversationSink, Notifier, ObjectStorage
from models import (
    DispatchIntent,
    DispatchPhase,
    Navigation,
    OutboundMessage,
    PendingAttachment,
    PlainChat,
    SearchResult,
    WeatherQuery,
    WebSearchTrigger,
)

logger = logging.getLogger(__name__)

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024

THINKING_TEXT = "Thinking..."
LOCATION_HINT = (
    "I couldn't determine the location. Please specify a location, "
    "for example: 'What's the weather in London?'"
)
NO_RESULTS_TEXT = "No results found for your search."
NO_IMAGE_TEXT = "No image was generated. Please try again."

PhaseCallback = Callable[[DispatchPhase, DispatchPhase], None]


def bot_message(content: str, **kwargs) -> OutboundMessage:
    return OutboundMessage(content=content, is_from_bot=True, **kwargs)


def placeholder_message(content: str) -> OutboundMessage:
    return OutboundMessage(content=content, is_from_bot=True, is_processing_placeholder=True)


def compose_user_content(text: str, image_urls: Sequence[str]) -> str:
    parts = [text] if text else []
    parts.extend(f"![Image {i}]({url})" for i, url in enumerate(image_urls, start=1))
    return "\n\n".join(parts)


def format_search_results(results: Sequence[SearchResult]) -> str:
    return "\n\n".join(f"{r.title}\n{r.url}\n{r.snippet}" for r in results)


class MessageDispatcher:
    def __init__(
        self,
        services: AssistantServices,
        storage: ObjectStorage,
        conversation: ConversationSink,
        notifier: Notifier,
        max_attachments: int = MAX_ATTACHMENTS,
        max_attachment_bytes: int = MAX_ATTACHMENT_BYTES,
        upload_prefix: str = "chat",
        on_phase_change: Optional[PhaseCallback] = None,
    ) -> None:
        self._services = services
        self._storage = storage
        self._conversation = conversation
        self._notifier = notifier
        self._max_attachments = max_attachments
        self._max_attachment_bytes = max_attachment_bytes
        self._upload_prefix = upload_prefix
        self._on_phase_change = on_phase_change

        self._input = ""
        self._attachments: list[PendingAttachment] = []
        self._busy = False
        self._closed = False
        self._phase = DispatchPhase.IDLE
        self._upload_progress = (0, 0)
        self._handlers = {
            Navigation: self._dispatch_navigation,
            WeatherQuery: self._dispatch_weather,
            PlainChat: self._dispatch_chat,
        }

    # ------------------------------------------------------------------
    # Observable surface
    # ------------------------------------------------------------------

    @property
    def input_text(self) -> str:
        return self._input

    @property
    def attachments(self) -> tuple[PendingAttachment, ...]:
        return tuple(self._attachments)

    @property
    def has_content(self) -> bool:
        return bool(self._input.strip()) or bool(self._attachments)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def phase(self) -> DispatchPhase:
        return self._phase

    @property
    def upload_progress(self) -> tuple[int, int]:
        return self._upload_progress

    # ------------------------------------------------------------------
    # Input buffer
    # ------------------------------------------------------------------

    def set_input(self, text: str) -> None:
        self._input = text

    def append_transcript(self, text: str) -> None:
        """Append a finalized dictation segment to the input buffer."""
        if self._closed or not text.strip():
            return
        self._input = f"{self._input} {text}" if self._input else text

    def clear_input(self) -> None:
        self._input = ""

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def add_attachments(self, files: Iterable[PendingAttachment]) -> list[PendingAttachment]:
        files = list(files)
        if not files:
            return []
        if len(self._attachments) + len(files) > self._max_attachments:
            self._notify_validation(
                f"You can only upload up to {self._max_attachments} images at once. "
                "Please remove some images."
            )
            return []

        accepted = []
        for attachment in files:
            try:
                self._validate_attachment(attachment)
            except ValidationError as exc:
                self._notify_validation(exc.message)
                continue
            accepted.append(attachment)
        self._attachments.extend(accepted)
        return accepted

    def remove_attachment(self, index: int) -> None:
        if 0 <= index < len(self._attachments):
            del self._attachments[index]

    def clear_attachments(self) -> None:
        self._attachments.clear()

    async def build_previews(self) -> None:
        """Fill in missing previews. Best-effort; dispatch never waits on it."""
        for attachment in list(self._attachments):
            if attachment.preview_data_uri is not None:
                continue
            try:
                attachment.preview_data_uri = attachment.to_data_uri()
            except Exception as exc:
                logger.warning("preview failed for %s: %s", attachment.name, exc)
            await asyncio.sleep(0)
            if self._closed:
                return

    def _validate_attachment(self, attachment: PendingAttachment) -> None:
        if not attachment.media_type.startswith("image/"):
            raise ValidationError(f"{attachment.name} is not an image file.")
        if attachment.size > self._max_attachment_bytes:
            limit_mb = self._max_attachment_bytes // (1024 * 1024)
            raise ValidationError(f"{attachment.name} is larger than {limit_mb}MB.")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def dispatch(self) -> Optional[DispatchIntent]:
        """Send the current input. Returns the intent that was handled."""
        if self._closed or self._busy or not self.has_content:
            return None
        sent_input = self._input
        intent = classify(sent_input, self._attachments)
        logger.info("dispatching %s", type(intent).__name__)
        self._upload_progress = (0, 0)
        self._transition(DispatchPhase.IDLE)
        with self._busy_scope():
            await self._handlers[type(intent)](intent, sent_input)
        return intent

    async def search(self) -> Optional[WebSearchTrigger]:
        query = self._input.strip()
        if self._closed or self._busy or not query:
            return None
        trigger = WebSearchTrigger(query=query)
        with self._busy_scope():
            placeholder = placeholder_message(f"🔍 Searching the web for: {query}")
            self._conversation.append_message(placeholder)
            try:
                results = await self._services.web_search(query)
            except Exception as exc:
                self._fail_branch(SEARCH_ERROR, exc, placeholder)
                return trigger
            if self._closed:
                return trigger
            content = format_search_results(results) if results else NO_RESULTS_TEXT
            self._conversation.replace_message(placeholder.message_id, bot_message(content))
        return trigger

    async def generate_image(self) -> bool:
        sent_input = self._input
        prompt = sent_input.strip()
        if self._closed or self._busy or not prompt:
            return False
        with self._busy_scope():
            try:
                image_url = await self._services.generate_image(prompt)
            except Exception as exc:
                self._fail_branch(GENERATION_ERROR, exc)
                return False
            if self._closed:
                return False
            if not image_url:
                self._notifier.notify(GENERATION_ERROR, NO_IMAGE_TEXT)
                return False
            self._conversation.append_message(
                bot_message(f'🎨 Generated image for "{prompt}": ![Generated Image]({image_url})')
            )
            self._consume_sent(sent_input)
        return True

    def close(self) -> None:
        """Detach from the host. In-flight branches stop mutating state."""
        self._closed = True

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def _dispatch_navigation(self, intent: Navigation, sent_input: str) -> None:
        self._conversation.append_message(OutboundMessage(content=sent_input.strip()))
        url = directions_url(intent.origin, intent.destination)
        self._conversation.append_message(
            bot_message(f"🗺️ Here's your route: [Open in Google Maps]({url})")
        )
        self._consume_sent(sent_input)

    async def _dispatch_weather(self, intent: WeatherQuery, sent_input: str) -> None:
        self._conversation.append_message(OutboundMessage(content=sent_input.strip()))
        if not intent.location:
            self._conversation.append_message(bot_message(LOCATION_HINT))
            return

        placeholder = placeholder_message(f"🔍 Checking weather for {intent.location}...")
        self._conversation.append_message(placeholder)
        try:
            report = await self._services.get_weather(intent.location)
        except Exception as exc:
            self._fail_branch(WEATHER_ERROR, exc, placeholder)
            return
        if self._closed:
            return
        self._conversation.replace_message(
            placeholder.message_id,
            bot_message(report.message, coordinates=report.coordinates),
        )
        self._consume_sent(sent_input)

    async def _dispatch_chat(self, intent: PlainChat, sent_input: str) -> None:
        image_urls = await self._upload_all(intent.attachments)
        if image_urls is None or self._closed:
            return

        user_message = OutboundMessage(content=compose_user_content(intent.text, image_urls))
        self._conversation.append_message(user_message)
        placeholder = placeholder_message(THINKING_TEXT)
        self._conversation.append_message(placeholder)
        self._transition(DispatchPhase.INFERRING)
        try:
            reply = await self._services.chat(intent.text, image_urls)
        except Exception as exc:
            self._fail_branch(INFERENCE_ERROR, exc, placeholder)
            # input and attachments stay queued; a retry re-sends this turn
            if not self._closed:
                self._conversation.remove_message(user_message.message_id)
            return
        if self._closed:
            return
        self._conversation.replace_message(
            placeholder.message_id,
            bot_message(reply.response, sources=reply.sources or None),
        )
        self._transition(DispatchPhase.DONE)
        self._consume_sent(sent_input, intent.attachments)

    async def _upload_all(self, attachments: Sequence[PendingAttachment]) -> Optional[list[str]]:
        """Upload one at a time, in queue order. None when any upload fails."""
        total = len(attachments)
        urls: list[str] = []
        self._upload_progress = (0, total)
        for index, attachment in enumerate(attachments, start=1):
            self._upload_progress = (index, total)
            self._transition(DispatchPhase.UPLOADING)
            try:
                url = await self._storage.upload(
                    attachment.data,
                    attachment.media_type,
                    self._upload_path(attachment),
                )
            except Exception as exc:
                self._fail_branch(UPLOAD_ERROR, exc)
                if not self._closed:
                    self._consume_sent(None, attachments)
                return None
            if self._closed:
                return None
            urls.append(url)
        return urls

    def _upload_path(self, attachment: PendingAttachment) -> str:
        stamp = int(time.time() * 1000)
        return f"{self._upload_prefix}/{stamp}-{uuid.uuid4().hex[:7]}.{attachment.extension}"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _consume_sent(
        self,
        sent_input: Optional[str],
        sent_attachments: Sequence[PendingAttachment] = (),
    ) -> None:
        """Drop what a finished send consumed; edits made while busy survive."""
        if sent_input is not None and self._input == sent_input:
            self._input = ""
        sent = {id(attachment) for attachment in sent_attachments}
        if sent:
            self._attachments = [a for a in self._attachments if id(a) not in sent]

    def _fail_branch(
        self,
        code: str,
        exc: Exception,
        placeholder: Optional[OutboundMessage] = None,
    ) -> None:
        logger.warning("%s: %s", code, exc)
        if self._closed:
            return
        if placeholder is not None:
            self._conversation.remove_message(placeholder.message_id)
        if self._phase in (DispatchPhase.UPLOADING, DispatchPhase.INFERRING):
            self._transition(DispatchPhase.FAILED)
        self._notifier.notify(code, ERROR_MESSAGES[code])

    def _notify_validation(self, message: str) -> None:
        logger.info("attachment rejected: %s", message)
        self._notifier.notify(VALIDATION_ERROR, message)

    @contextmanager
    def _busy_scope(self) -> Iterator[None]:
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def _transition(self, to_phase: DispatchPhase) -> None:
        from_phase = self._phase
        if from_phase == to_phase:
            return
        self._phase = to_phase
        if self._on_phase_change:
            self._on_phase_change(from_phase, to_phase)
