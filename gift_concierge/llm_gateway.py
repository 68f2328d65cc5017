import logging
from typing import Dict, Iterator, List, Optional

import httpx
from groq import APIError, Groq

from .errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


class LLMGateway:
    """
    Single-attempt access to an OpenAI-compatible chat completions endpoint.
    Retrying or degrading is left to the caller.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60,
        client: Optional[Groq] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> Groq:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("GROQ_API_KEY is not set")
            self._client = Groq(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, messages: Messages, temperature: float = 0.7, max_tokens: int = 1024) -> str:
        try:
            chat_completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APIError as e:
            logger.error(f"❌ LLM request failed: {e}")
            raise ExternalServiceError(f"LLM request failed: {e}") from e

        if not chat_completion.choices:
            return ""
        return chat_completion.choices[0].message.content or ""

    def stream(self, messages: Messages, temperature: float = 0.7, max_tokens: int = 1024) -> Iterator[str]:
        """
        Opens a streaming completion and returns an iterator of text fragments.
        The request is sent before this returns, so status errors raise here.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
        except APIError as e:
            logger.error(f"❌ LLM stream request failed: {e}")
            raise ExternalServiceError(f"LLM stream request failed: {e}") from e
        return TokenStream(response)


class TokenStream:
    """
    Iterator over the text fragments of a streaming completion.
    The connection is released when the stream is exhausted, fails or is closed early.
    """

    def __init__(self, response):
        self._response = response
        self._fragments = self._iter_fragments()

    def __iter__(self) -> "TokenStream":
        return self

    def __next__(self) -> str:
        return next(self._fragments)

    def __enter__(self) -> "TokenStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._fragments.close()
        self._response.close()

    def _iter_fragments(self) -> Iterator[str]:
        try:
            for chunk in self._response:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        # The SDK's Stream surfaces dropped connections as raw httpx errors
        except (APIError, httpx.HTTPError) as e:
            logger.error(f"❌ LLM stream interrupted: {e}")
            raise ExternalServiceError(f"LLM stream interrupted: {e}") from e
        finally:
            self._response.close()
