"""Tutor reply generation and parsing.

The completion API is a black box that should answer with a JSON object
``{response, translation, corrections, suggestions}``.  Models do not always
comply, so :func:`parse_tutor_reply` salvages whatever comes back.
"""

from __future__ import annotations

import json
import re
from typing import Dict, List, Optional

import openai
from pydantic import BaseModel, Field

import config
from tutor.utils.openai_client import get_openai_client
from utils.error_handler import ApiError
from utils.logging import get_logger

logger = get_logger(__name__)

_JSON_PREFIX_RE = re.compile(r"^json\s*", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

NOT_CONFIGURED_MESSAGE = (
    "The AI chat feature requires an OpenAI API key. "
    "Please configure OPENAI_API_KEY in your .env file."
)


class TutorReply(BaseModel):
    response: str
    translation: str
    corrections: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def parse_tutor_reply(text: str) -> TutorReply:
    """Turn raw model output into a :class:`TutorReply`, never raising."""
    text = _JSON_PREFIX_RE.sub("", (text or "").strip()).strip()
    match = _JSON_OBJECT_RE.search(text)
    if match:
        text = match.group(0)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return TutorReply(response=text, translation=text)
    if not isinstance(data, dict):
        return TutorReply(response=text, translation=text)

    response = data.get("response") or text
    translation = data.get("translation") or response
    return TutorReply(
        response=str(response),
        translation=str(translation),
        corrections=_string_list(data.get("corrections")),
        suggestions=_string_list(data.get("suggestions")),
    )


class ReplyGenerator:
    """Calls the chat-completion API for one tutor turn."""

    def __init__(
        self,
        client: Optional[openai.OpenAI] = None,
        model: str = config.OPENAI_COMPLETION_MODEL,
        temperature: float = config.LLM_TEMPERATURE,
        max_tokens: int = config.LLM_MAX_TOKENS,
        api_key: Optional[str] = None,
    ) -> None:
        self._client = client
        self._api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def generate(self, messages: List[Dict[str, str]]) -> TutorReply:
        if not self.configured:
            return TutorReply(
                response=NOT_CONFIGURED_MESSAGE,
                translation=NOT_CONFIGURED_MESSAGE,
                suggestions=["Set up your OpenAI API key to enable AI conversations"],
            )

        if self._client is None:
            self._client = get_openai_client(self._api_key)

        logger.info(f"Calling chat completion | model={self.model} | messages={len(messages)}")
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            logger.error(f"Chat completion failed: {e}")
            raise ApiError(str(e)) from e

        return parse_tutor_reply(completion.choices[0].message.content or "")
