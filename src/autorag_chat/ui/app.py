"""Chainlit app for AutoRAG Chat."""

import chainlit as cl
from chainlit.input_widget import Select, TextInput

from autorag_chat.client.presets import GREETING, SYSTEM_PROMPT_PRESETS, resolve_system_prompt
from autorag_chat.client.session import ChatSession
from autorag_chat.client.stream import ChatResponseMetadata
from autorag_chat.config import get_settings

STATUS_ICONS = {
    "searching": "🧠",
    "found": "✅",
    "not-found": "⚠️",
    "error": "❌",
}


class ChainlitAssistantMessage:
    """Streamed assistant message with a knowledge base indicator."""

    def __init__(self, message: cl.Message):
        self.message = message
        self.text = ""
        self.status = f"{STATUS_ICONS['searching']} Searching knowledge base..."
        self.metadata_lines: list[str] = []

    async def _render(self):
        parts = [self.text, f"*{self.status}*"]
        if self.metadata_lines:
            parts.append(" · ".join(self.metadata_lines))
        self.message.content = "\n\n".join(part for part in parts if part)
        await self.message.update()

    async def update_content(self, text: str) -> None:
        self.text = text
        await self._render()

    async def set_status(self, state: str, text: str) -> None:
        self.status = f"{STATUS_ICONS.get(state, '')} {text}".strip()
        await self._render()

    async def show_metadata(self, metadata: ChatResponseMetadata) -> None:
        lines = []
        if metadata.documents_found > 0:
            plural = "s" if metadata.documents_found != 1 else ""
            lines.append(f"📄 {metadata.documents_found} document{plural}")
        if metadata.processing_time:
            lines.append(f"⚡ {metadata.processing_time}")
        if metadata.fallback_used:
            lines.append("⚠️ Fallback mode used")
        self.metadata_lines = lines


class ChainlitView:
    """Renders a chat session's messages in the Chainlit UI."""

    async def add_message(self, role: str, content: str, message_id: str) -> None:
        # User messages are already shown by Chainlit
        if role == "assistant":
            await cl.Message(content=content, author="Assistant").send()

    async def start_assistant_message(self, message_id: str) -> ChainlitAssistantMessage:
        message = cl.Message(content="", author="Assistant")
        await message.send()
        return ChainlitAssistantMessage(message)


@cl.on_chat_start
async def on_chat_start():
    """Create a chat session and offer system prompt settings."""
    settings = get_settings()

    chat_settings = await cl.ChatSettings(
        [
            Select(
                id="preset",
                label="System prompt preset",
                values=list(SYSTEM_PROMPT_PRESETS),
                initial_value="default",
            ),
            TextInput(
                id="system_prompt",
                label="Custom system prompt (overrides the preset)",
                initial="",
                multiline=True,
            ),
        ]
    ).send()

    session = ChatSession(
        settings=settings,
        view=ChainlitView(),
        system_prompt=resolve_system_prompt(
            chat_settings.get("preset"), chat_settings.get("system_prompt")
        ),
        history=[{"role": "assistant", "content": GREETING}],
    )
    cl.user_session.set("chat_session", session)

    await cl.Message(content=GREETING, author="Assistant").send()


@cl.on_settings_update
async def on_settings_update(chat_settings: dict):
    """Apply a new preset or custom system prompt."""
    session: ChatSession | None = cl.user_session.get("chat_session")
    if session is None:
        return

    system_prompt = chat_settings.get("system_prompt") or ""
    max_length = session.settings.max_system_prompt_length
    if len(system_prompt) > max_length:
        await cl.Message(
            content=f"**Warning:** The system prompt is longer than {max_length:,} characters "
            "and will be rejected by the server."
        ).send()

    session.system_prompt = resolve_system_prompt(chat_settings.get("preset"), system_prompt)


@cl.on_message
async def on_message(message: cl.Message):
    """Handle incoming messages."""
    session: ChatSession | None = cl.user_session.get("chat_session")

    if session is None:
        await cl.Message(
            content="The chat session is not initialized. Please restart the app."
        ).send()
        return

    await session.send(message.content)


@cl.on_chat_end
async def on_chat_end():
    """Cancel pending retries when the chat is closed."""
    session: ChatSession | None = cl.user_session.get("chat_session")
    if session is not None:
        await session.close()
