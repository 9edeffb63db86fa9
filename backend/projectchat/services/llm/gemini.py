"""Google Gemini LLM provider."""

import logging
from typing import AsyncIterator

import httpx
from google import genai
from google.genai import errors, types

from projectchat.core.config import settings
from projectchat.core.exceptions import UpstreamError
from projectchat.services.llm.base import BaseLLMProvider, ChatTurn

logger = logging.getLogger(__name__)

# Gemini calls the assistant side of the conversation "model"
_ROLE_MAP = {"user": "user", "assistant": "model"}


def build_contents(turns: list[ChatTurn]) -> list[dict]:
    return [{"role": _ROLE_MAP[t.role], "parts": [{"text": t.content}]} for t in turns]


class GeminiProvider(BaseLLMProvider):
    def __init__(self, client: genai.Client | None = None, model: str | None = None):
        self.client = client or genai.Client(api_key=settings.gemini_api_key)
        self.model = model or settings.gemini_model

    async def stream(
        self, turns: list[ChatTurn], system_directive: str | None = None
    ) -> AsyncIterator[str]:
        config = types.GenerateContentConfig(system_instruction=system_directive or None)
        response = None
        try:
            response = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=build_contents(turns),
                config=config,
            )
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except UpstreamError:
            raise
        except errors.APIError as e:
            logger.warning(f"Gemini API error {e.code}: {e.message}")
            raise UpstreamError(f"Gemini API error {e.code}: {e.message}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Gemini transport error: {e}")
            raise UpstreamError(f"Gemini transport error: {e}") from e
        except (ValueError, TypeError, AttributeError) as e:
            # Raised by the SDK when a streamed chunk cannot be parsed
            logger.warning(f"Malformed Gemini stream: {e}")
            raise UpstreamError(f"Malformed response from Gemini: {e}") from e
        finally:
            aclose = getattr(response, "aclose", None)
            if aclose is not None:
                await aclose()
