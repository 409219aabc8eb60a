"""
Text-to-speech for finished assistant replies.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

from finassist.chat.notifications import Notification, NotificationLevel, Notifier
from finassist.exceptions import FinAssistError
from finassist.logging_utils import ErrorClassifier

if TYPE_CHECKING:                                        # pragma: no cover
    from finassist.client import BackendClient


class SpeechResponder:
    """
    Completion callback that speaks the assistant's reply.

    Pass an instance as `on_assistant_response`; the decoded audio of the
    latest reply is kept on `last_audio`.
    """

    def __init__(
        self,
        client: BackendClient,
        notifier: Notifier,
        voice_id: str | None = None,
    ):
        self.client = client
        self.notifier = notifier
        self.voice_id = voice_id
        self.last_audio: bytes | None = None

    async def __call__(self, text: str) -> None:
        try:
            result = await self.client.text_to_speech(text, self.voice_id)
            self.last_audio = base64.b64decode(result.audio_content)
        except (FinAssistError, ValueError) as e:
            category = ErrorClassifier.log_error(e, "text_to_speech")
            self.notifier.notify(
                Notification(
                    title="Audio unavailable",
                    description=str(e),
                    level=NotificationLevel.WARNING,
                    category=category,
                )
            )
