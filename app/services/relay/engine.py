"""Conversation relay session engine.

One ``RelaySession`` drives a single ConversationRelay WebSocket: it turns
caller events into model completions (running tool webhooks in between),
sends the reply text back, and journals every turn in the background.
``RelayEngine`` is the process-wide factory that resolves each session's
configuration and credential.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from app.core.exceptions import MissingCredentialError
from app.services.persistence.store import ConversationStore
from app.services.relay.completion import LanguageModelClient
from app.services.relay.journal import TurnJournal
from app.services.relay.models import Interruption, SessionState, Turn, TurnRole
from app.services.relay.webhooks import ToolWebhookClient
from app.services.session_config.base import SessionConfig, SessionConfigProvider

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "I apologize, I encountered an error processing your request."

Send = Callable[[Dict[str, Any]], Awaitable[None]]
CompletionFactory = Callable[[str], LanguageModelClient]


class RelaySession:
    """State and event handling for one relayed call."""

    def __init__(
        self,
        session_key: Optional[str],
        config: SessionConfig,
        send: Send,
        completion_client: LanguageModelClient,
        webhook_client: ToolWebhookClient,
        journal: TurnJournal,
        credential_source: str = "default",
        persist_apology_turns: bool = False,
        max_tool_rounds: int = 1,
    ):
        self.session_key = session_key
        self.session_id = session_key or "default"
        self.config = config
        self.send = send
        self.completion_client = completion_client
        self.webhook_client = webhook_client
        self.journal = journal
        self.credential_source = credential_source
        self.persist_apology_turns = persist_apology_turns
        self.max_tool_rounds = max_tool_rounds

        self.state = SessionState.INITIALIZING
        self.transcript: List[Turn] = []
        self.turn_count = 0
        self.call_metadata: Dict[str, Any] = {}
        self.interruptions: List[Interruption] = []
        self.dtmf_digits: List[str] = []

        self._tools_by_name = {tool.name: tool for tool in config.tools}
        self._turn_lock = asyncio.Lock()
        self._turn_tasks: Set[asyncio.Task] = set()

    @property
    def conversation_session_id(self) -> Optional[int]:
        """Durable session handle, once the store has created the record."""
        return self.journal.session_handle

    @property
    def turn_pair_count(self) -> int:
        """Number of exchanges, as reported to the store on close."""
        return self.turn_count // 2

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_message(self, raw: str) -> None:
        """Handle one inbound frame, waiting for any reply it produces."""
        event = self._parse(raw)
        if event is not None:
            await self._handle_event(event)

    async def dispatch(self, raw: str) -> None:
        """
        Handle one inbound frame without blocking on prompt processing.

        Prompts run as background tasks, serialized so only one is answered
        at a time; every other event is handled before returning. The
        WebSocket loop uses this so dtmf and interrupt events are still read
        while a completion is in flight.
        """
        event = self._parse(raw)
        if event is None:
            return
        if event.get("type") == "prompt":
            task = asyncio.create_task(self.on_prompt(event))
            self._turn_tasks.add(task)
            task.add_done_callback(self._turn_tasks.discard)
        else:
            await self._handle_event(event)

    async def wait_idle(self) -> None:
        """Wait for prompts started by dispatch() to finish."""
        while self._turn_tasks:
            await asyncio.gather(*list(self._turn_tasks), return_exceptions=True)

    def _parse(self, raw: Any) -> Optional[Dict[str, Any]]:
        try:
            event = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[RELAY] Dropping unparseable message - Session: {self.session_id}, Error: {e}")
            return None
        if not isinstance(event, dict):
            logger.warning(f"[RELAY] Dropping non-object message - Session: {self.session_id}")
            return None
        return event

    async def _handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        logger.debug(f"[RELAY] Received event: {event_type} - Session: {self.session_id}")

        if self.state == SessionState.CLOSED:
            logger.warning(f"[RELAY] Ignoring '{event_type}' after close - Session: {self.session_id}")
            return

        handlers = {
            "setup": self.on_setup,
            "prompt": self.on_prompt,
            "dtmf": self.on_dtmf,
            "interrupt": self.on_interrupt,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info(f"[RELAY] Unknown event type: {event_type} - Session: {self.session_id}")
            return
        await handler(event)

    async def on_setup(self, event: Dict[str, Any]) -> None:
        """Call started: open the durable record and become ready."""
        if self.call_metadata:
            logger.warning(f"[RELAY] Duplicate setup event ignored - Session: {self.session_id}")
            return

        self.call_metadata = {
            "callSid": event.get("callSid"),
            "from": event.get("from"),
            "to": event.get("to"),
            "direction": event.get("direction"),
        }
        logger.info(
            f"[RELAY] Call setup - Session: {self.session_id}, CallSid: {self.call_metadata['callSid']}, "
            f"From: {self.call_metadata['from']}, To: {self.call_metadata['to']}, "
            f"Direction: {self.call_metadata['direction']}"
        )

        # Sessions without a key have no owner to file the record under
        if self.session_key:
            self.journal.start_session(self.call_metadata)
        # A prompt that arrived first may still be in flight
        if self.state == SessionState.INITIALIZING:
            self.state = SessionState.READY

    async def on_prompt(self, event: Dict[str, Any]) -> None:
        """Caller finished speaking: answer and send the reply."""
        voice_prompt = event.get("voicePrompt")
        if not isinstance(voice_prompt, str) or not voice_prompt.strip():
            logger.warning(f"[RELAY] Prompt without voicePrompt text ignored - Session: {self.session_id}")
            return

        async with self._turn_lock:
            if self.state == SessionState.CLOSED:
                return
            if self.state == SessionState.INITIALIZING:
                logger.warning(f"[RELAY] Prompt received before setup - Session: {self.session_id}")

            self.state = SessionState.PROCESSING
            try:
                await self._run_turn(voice_prompt)
            finally:
                if self.state != SessionState.CLOSED:
                    self.state = SessionState.READY

    async def on_dtmf(self, event: Dict[str, Any]) -> None:
        """Keypad press: recorded, the transcript is untouched."""
        digit = str(event.get("digit", ""))
        self.dtmf_digits.append(digit)
        logger.info(f"[RELAY] DTMF digit: {digit} - Session: {self.session_id}")

    async def on_interrupt(self, event: Dict[str, Any]) -> None:
        """
        Caller barge-in: record where it happened.

        An in-flight completion is not cancelled; its reply is still sent
        and recorded.
        """
        utterance = str(event.get("utteranceUntilInterrupt", ""))
        self.interruptions.append(
            Interruption(
                utterance=utterance,
                turn_number=self.turn_count,
                during_processing=self.state == SessionState.PROCESSING,
            )
        )
        logger.info(
            f"[RELAY] Caller interrupted at: '{utterance[:100]}' - Session: {self.session_id}, "
            f"State: {self.state.value}"
        )

    async def close(self) -> None:
        """Transport closed: stop answering and end the durable session."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        for task in list(self._turn_tasks):
            task.cancel()

        turn_pair_count = self.turn_pair_count
        self.journal.end_session(turn_pair_count)

        try:
            await self.completion_client.aclose()
        except Exception as e:
            logger.warning(
                f"[RELAY] Could not close model client - Session: {self.session_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
        logger.info(
            f"[RELAY] Session closed - Session: {self.session_id}, Turns: {turn_pair_count}"
        )

    # ------------------------------------------------------------------
    # Turn processing
    # ------------------------------------------------------------------

    async def _run_turn(self, voice_prompt: str) -> None:
        logger.info(f"[RELAY] Caller said: '{voice_prompt[:200]}' - Session: {self.session_id}")
        self._append(TurnRole.USER, voice_prompt)

        try:
            reply, tools_used = await self._complete_with_tools()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[RELAY] Completion failed - Session: {self.session_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
            if self.persist_apology_turns:
                self._append(TurnRole.ASSISTANT, APOLOGY_TEXT, {"fallback": True})
            await self._send_text(APOLOGY_TEXT)
            return

        logger.info(f"[RELAY] AI response: '{reply[:200]}' - Session: {self.session_id}")
        self._append(TurnRole.ASSISTANT, reply, {"tools": tools_used} if tools_used else None)
        await self._send_text(reply)

    async def _complete_with_tools(self) -> Tuple[str, List[str]]:
        """Complete, resolving requested tool calls until the model answers in text."""
        tools_used: List[str] = []
        rounds = 0
        while True:
            offered = self.config.tools if rounds < self.max_tool_rounds else []
            result = await self.completion_client.complete(
                self.config.system_prompt, list(self.transcript), offered
            )
            if not result.tool_calls or not offered:
                return result.content or "", tools_used

            rounds += 1
            logger.info(
                f"[RELAY] Model requested {len(result.tool_calls)} tool call(s): "
                f"{[call.name for call in result.tool_calls]} - Session: {self.session_id}"
            )
            for call in result.tool_calls:
                output = await self.webhook_client.invoke(
                    self._tools_by_name.get(call.name),
                    call,
                    self.session_id,
                    self.conversation_session_id,
                )
                self._append(
                    TurnRole.TOOL,
                    output,
                    {
                        "tool": call.name,
                        "tool_call_id": call.id,
                        "arguments": call.arguments,
                        "arguments_json": call.raw_arguments,
                    },
                )
                tools_used.append(call.name)

    def _append(
        self,
        role: TurnRole,
        content: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Turn:
        self.turn_count += 1
        turn = Turn(turn_number=self.turn_count, role=role, content=content, metadata=metadata)
        self.transcript.append(turn)
        self.journal.record_turn(turn)
        return turn

    async def _send_text(self, text: str) -> None:
        if self.state == SessionState.CLOSED:
            return
        try:
            await self.send({"type": "text", "token": text, "last": True})
        except Exception as e:
            logger.warning(
                f"[RELAY] Could not send reply - Session: {self.session_id}, "
                f"Error: {type(e).__name__}: {e}"
            )


class RelayEngine:
    """Creates relay sessions. Shared by every connection in the process."""

    def __init__(
        self,
        config_provider: SessionConfigProvider,
        store: ConversationStore,
        completion_factory: CompletionFactory,
        webhook_client: ToolWebhookClient,
        defaults: SessionConfig,
        default_api_key: Optional[str] = None,
        persist_apology_turns: bool = False,
        max_tool_rounds: int = 1,
    ):
        self.config_provider = config_provider
        self.store = store
        self.completion_factory = completion_factory
        self.webhook_client = webhook_client
        self.defaults = defaults
        self.default_api_key = default_api_key
        self.persist_apology_turns = persist_apology_turns
        self.max_tool_rounds = max_tool_rounds

    async def resolve_config(self, session_key: Optional[str]) -> SessionConfig:
        """Look up a session's configuration, falling back to defaults on any miss."""
        session_id = session_key or "default"
        if not session_key:
            return self.defaults.model_copy()

        try:
            config = await self.config_provider.get_config(session_key)
        except Exception as e:
            logger.warning(
                f"[RELAY] Could not load student settings, using defaults - Session: {session_id}, "
                f"Error: {type(e).__name__}: {e}"
            )
            return self.defaults.model_copy()

        if config is None:
            logger.info(f"[RELAY] No stored settings, using defaults - Session: {session_id}")
            return self.defaults.model_copy()

        logger.info(f"[RELAY] Loaded custom settings - Session: {session_id}")
        return config.with_defaults(self.defaults)

    def resolve_credential(self, session_id: str, config: SessionConfig) -> Tuple[str, str]:
        """
        Pick the OpenAI key for a session: the student's, else the default.

        Returns:
            (api_key, source) where source is "student" or "default"

        Raises:
            MissingCredentialError: neither key is configured
        """
        if config.openai_api_key:
            return config.openai_api_key, "student"
        if self.default_api_key:
            logger.info(f"[RELAY] Using default OpenAI API key - Session: {session_id}")
            return self.default_api_key, "default"
        raise MissingCredentialError(session_id)

    async def open_session(self, session_key: Optional[str], send: Send) -> Optional[RelaySession]:
        """
        Prepare a session for a newly accepted connection.

        Returns None after sending an error event when no credential is
        available; the caller should then close the transport.
        """
        session_id = session_key or "default"
        logger.info(f"[RELAY] WebSocket connected - Session: {session_id}")
        config = await self.resolve_config(session_key)

        try:
            api_key, source = self.resolve_credential(session_id, config)
        except MissingCredentialError as e:
            logger.error(f"[RELAY] No OpenAI API key available - Session: {session_id}")
            try:
                await send({"type": "error", "error": str(e)})
            except Exception as send_error:
                logger.warning(
                    f"[RELAY] Could not send error event - Session: {session_id}, "
                    f"Error: {type(send_error).__name__}: {send_error}"
                )
            return None

        return RelaySession(
            session_key=session_key,
            config=config,
            send=send,
            completion_client=self.completion_factory(api_key),
            webhook_client=self.webhook_client,
            journal=TurnJournal(self.store, session_id),
            credential_source=source,
            persist_apology_turns=self.persist_apology_turns,
            max_tool_rounds=self.max_tool_rounds,
        )
