"""Terminal entrypoint for the chat assistant."""

from __future__ import annotations

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

from config import JsonConfigStore
from conversation import ConversationLog
from dictation_session import DictationSession
from dispatcher import MessageDispatcher
from errors import ERROR_TITLES, VALIDATION_ERROR
from hotkey import DictationHotkey
from interfaces import ConfigStore
from models import DictationState, OutboundMessage, PendingAttachment
from recognizer import DashscopeRecognizerAdapter
from recorder import MicrophoneRecorder
from services import FunctionsClient
from speech_engine import MicrophoneSpeechEngine
from storage import StorageBucketClient
from translator import MessageTranslator

logger = logging.getLogger("chat_assistant")

GREETING = "Hi! I'm your AI assistant. I can search the web, check the weather and more. How can I help you today?"
NAVIGATE_TEMPLATE = "From: [location] To: [destination]"
WEATHER_TEMPLATE = "What's the weather in [location]?"

HELP = """commands:
  <text>                 send a message
  <enter>                send the current input buffer
  /mic                   start or stop dictation
  /search [text]         search the web
  /image [text]          generate an image
  /attach <path> ...     queue image attachments
  /remove <n>            drop attachment n
  /translate <n> <code>  translate message n (hi, mr, sa)
  /revert <n>            restore message n
  /navigate, /weather    fill the input with a template
  /buffer                show the input buffer
  /quit"""


class ConsoleNotifier:
    def notify(self, code: str, description: str) -> None:
        title = ERROR_TITLES.get(code, code)
        print(f"! {title}: {description}", file=sys.stderr)


def render(action: str, message: OutboundMessage) -> None:
    if action == "remove":
        return
    who = "bot" if message.is_from_bot else "you"
    marker = " (updated)" if action == "replace" else ""
    print(f"[{who}]{marker} {message.content}")
    for source in message.sources or []:
        print(f"    - {source.title} <{source.url}>")
    if message.coordinates is not None:
        print(f"    @ {message.coordinates.lat:.4f}, {message.coordinates.lon:.4f}")


def load_attachment(path: Path) -> PendingAttachment:
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return PendingAttachment(name=path.name, data=path.read_bytes(), media_type=media_type)


class App:
    def __init__(self, config: ConfigStore) -> None:
        self.loop = asyncio.get_running_loop()
        self.conversation = ConversationLog(on_change=render)
        self.notifier = ConsoleNotifier()
        self.services = FunctionsClient(config.get_backend_url(), config.get_backend_key())
        self.storage = StorageBucketClient(
            config.get_backend_url(),
            bucket=config.get_storage_bucket(),
            api_key=config.get_backend_key(),
        )
        self.dispatcher = MessageDispatcher(
            self.services, self.storage, self.conversation, self.notifier
        )
        self.translator = MessageTranslator(self.services, self.conversation, self.notifier)
        engine = MicrophoneSpeechEngine(
            recorder=MicrophoneRecorder(),
            recognizer=DashscopeRecognizerAdapter(api_key=config.get_speech_api_key()),
        )
        self.dictation = DictationSession(
            engine,
            locale=config.get_locale(),
            on_state_change=self._on_dictation_state,
            on_transcript=self._on_transcript,
            on_error=self._on_dictation_error,
        )
        self.hotkey = DictationHotkey(hotkey_name=config.get_hotkey())
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Dictation callbacks (may arrive on capture threads)
    # ------------------------------------------------------------------

    def _on_dictation_state(self, from_state: DictationState, to_state: DictationState) -> None:
        logger.debug("dictation %s -> %s", from_state.value, to_state.value)
        if to_state == DictationState.LISTENING:
            print("🎙️ Listening...")
        elif to_state == DictationState.IDLE:
            print("🎙️ Stopped.")

    def _on_transcript(self, text: str) -> None:
        self.loop.call_soon_threadsafe(self._append_transcript, text)

    def _append_transcript(self, text: str) -> None:
        self.dispatcher.append_transcript(text)
        print(f"> {self.dispatcher.input_text}")

    def _on_dictation_error(self, code: str, message: str) -> None:
        self.loop.call_soon_threadsafe(self.notifier.notify, code, message)

    def toggle_dictation(self) -> None:
        if self.dictation.is_listening:
            self.dictation.stop()
        else:
            self.dictation.start()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:  # noqa: ANN001
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _message_at(self, raw: str) -> Optional[OutboundMessage]:
        messages = self.conversation.messages
        try:
            return messages[int(raw) - 1]
        except (ValueError, IndexError):
            self.notifier.notify(VALIDATION_ERROR, f"No message {raw}.")
            return None

    async def handle(self, line: str) -> bool:
        if not line.startswith("/"):
            if line:
                self.dispatcher.set_input(line)
            if self.dispatcher.busy:
                print("(busy, wait for the reply)")
            self._spawn(self.dispatcher.dispatch())
            return True

        command, _, rest = line.partition(" ")
        rest = rest.strip()
        if command == "/quit":
            return False
        if command == "/mic":
            await asyncio.to_thread(self.toggle_dictation)
        elif command in ("/search", "/image"):
            if rest:
                self.dispatcher.set_input(rest)
            if command == "/search":
                self._spawn(self.dispatcher.search())
            else:
                self._spawn(self.dispatcher.generate_image())
        elif command == "/attach":
            try:
                files = [load_attachment(Path(p).expanduser()) for p in rest.split()]
            except OSError as exc:
                self.notifier.notify(VALIDATION_ERROR, str(exc))
                return True
            self.dispatcher.add_attachments(files)
            self._spawn(self.dispatcher.build_previews())
            print(f"{len(self.dispatcher.attachments)} attachment(s) queued")
        elif command == "/remove" and rest.isdigit():
            self.dispatcher.remove_attachment(int(rest) - 1)
        elif command == "/translate":
            index, _, code = rest.partition(" ")
            message = self._message_at(index)
            if message is not None:
                self._spawn(self.translator.translate(message, code))
        elif command == "/revert":
            message = self._message_at(rest)
            if message is not None:
                self.translator.revert(message)
        elif command == "/navigate":
            self.dispatcher.set_input(NAVIGATE_TEMPLATE)
            print(f"> {NAVIGATE_TEMPLATE}")
        elif command == "/weather":
            self.dispatcher.set_input(WEATHER_TEMPLATE)
            print(f"> {WEATHER_TEMPLATE}")
        elif command == "/buffer":
            print(f"> {self.dispatcher.input_text}")
        else:
            print(HELP)
        return True

    async def run(self) -> None:
        self.conversation.append_message(OutboundMessage(content=GREETING, is_from_bot=True))
        try:
            self.hotkey.start(
                on_toggle=lambda: self.loop.call_soon_threadsafe(
                    lambda: self._spawn(asyncio.to_thread(self.toggle_dictation))
                )
            )
        except Exception as exc:
            logger.warning("hotkey disabled: %s", exc)
        print(HELP)
        try:
            while True:
                line = await asyncio.to_thread(sys.stdin.readline)
                if not line:
                    break
                if not await self.handle(line.strip()):
                    break
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self.hotkey.stop()
        self.dispatcher.close()
        await asyncio.to_thread(self.dictation.close)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.services.aclose()
        await self.storage.aclose()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Terminal chat assistant")
    parser.add_argument("--config", type=Path, default=None, help="config.json path")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args(argv)


async def _run(config: ConfigStore) -> None:
    app = App(config)
    await app.run()


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_run(JsonConfigStore(path=args.config)))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
