from types import SimpleNamespace

import httpx
import pytest
from groq import APIConnectionError, APIStatusError

from gift_concierge.errors import ConfigurationError, ExternalServiceError
from gift_concierge.llm_gateway import LLMGateway

MESSAGES = [{"role": "user", "content": "hi"}]
REQUEST = httpx.Request("POST", "https://llm.example/v1/chat/completions")


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStreamResponse:
    def __init__(self, chunks, fail_after=None, error=None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.error = error or APIConnectionError(request=REQUEST)
        self.closed = False

    def __iter__(self):
        for i, item in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise self.error
            yield item

    def close(self):
        self.closed = True


class FakeGroq:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def gateway(outcome):
    fake = FakeGroq(outcome)
    return LLMGateway(api_key="test-key", model="test-model", client=fake), fake


class TestComplete:
    def test_returns_message_content_and_forwards_options(self):
        gw, fake = gateway(completion("Hello there"))
        assert gw.complete(MESSAGES, temperature=0, max_tokens=512) == "Hello there"
        assert fake.requests == [
            {"model": "test-model", "messages": MESSAGES, "temperature": 0, "max_tokens": 512}
        ]

    def test_empty_choices_or_content_yield_empty_string(self):
        assert gateway(SimpleNamespace(choices=[]))[0].complete(MESSAGES) == ""
        assert gateway(completion(None))[0].complete(MESSAGES) == ""

    def test_missing_api_key_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            LLMGateway(api_key="", model="test-model").complete(MESSAGES)

    def test_status_error_becomes_external_service_error(self):
        response = httpx.Response(500, request=REQUEST)
        gw, _ = gateway(APIStatusError("server error", response=response, body=None))
        with pytest.raises(ExternalServiceError):
            gw.complete(MESSAGES)

    def test_transport_error_becomes_external_service_error(self):
        gw, _ = gateway(APIConnectionError(request=REQUEST))
        with pytest.raises(ExternalServiceError):
            gw.complete(MESSAGES)


class TestStream:
    def test_yields_non_empty_fragments_and_releases_connection(self):
        response = FakeStreamResponse([chunk("Hel"), chunk(None), SimpleNamespace(choices=[]), chunk("lo")])
        gw, fake = gateway(response)
        fragments = gw.stream(MESSAGES, temperature=0.7, max_tokens=256)
        assert fake.requests[0]["stream"] is True
        assert list(fragments) == ["Hel", "lo"]
        assert response.closed

    def test_abandoned_stream_is_closed(self):
        response = FakeStreamResponse([chunk("a"), chunk("b"), chunk("c")])
        gw, _ = gateway(response)
        fragments = gw.stream(MESSAGES)
        assert next(fragments) == "a"
        fragments.close()
        assert response.closed

    def test_closing_before_reading_releases_connection(self):
        response = FakeStreamResponse([chunk("a")])
        gw, _ = gateway(response)
        with gw.stream(MESSAGES):
            pass
        assert response.closed

    def test_request_failure_raises_immediately(self):
        gw, _ = gateway(APIConnectionError(request=REQUEST))
        with pytest.raises(ExternalServiceError):
            gw.stream(MESSAGES)

    @pytest.mark.parametrize("error", [
        APIConnectionError(request=REQUEST),
        httpx.RemoteProtocolError("peer closed connection", request=REQUEST),
        httpx.ReadError("connection reset", request=REQUEST),
    ])
    def test_mid_stream_failure_raises_and_closes(self, error):
        response = FakeStreamResponse([chunk("a"), chunk("b")], fail_after=1, error=error)
        gw, _ = gateway(response)
        fragments = gw.stream(MESSAGES)
        assert next(fragments) == "a"
        with pytest.raises(ExternalServiceError):
            next(fragments)
        assert response.closed
