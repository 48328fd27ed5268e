from types import SimpleNamespace

import pytest

from audio_export.jobs.errors import ConfigurationError, RefinementError
from audio_export.providers import refinement
from audio_export.providers.refinement import OpenRouterRefiner, PassthroughRefiner
from fakes import make_account


def chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


class FakeAsyncOpenAI:
    instances = []

    def __init__(self, chunks=(), error=None, **kwargs):
        self.kwargs = kwargs
        self.requests = []
        self.closed = False
        self._chunks = chunks
        self._error = error
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        FakeAsyncOpenAI.instances.append(self)

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self._error is not None:
            raise self._error
        return FakeStream(self._chunks)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_openai(monkeypatch):
    FakeAsyncOpenAI.instances = []

    def install(chunks=(), error=None):
        monkeypatch.setattr(
            refinement,
            "AsyncOpenAI",
            lambda **kwargs: FakeAsyncOpenAI(chunks=chunks, error=error, **kwargs),
        )
        return FakeAsyncOpenAI.instances

    return install


@pytest.mark.anyio
async def test_passthrough_returns_text():
    assert await PassthroughRefiner().refine("unchanged", make_account()) == "unchanged"


@pytest.mark.anyio
async def test_streamed_chunks_are_joined(fake_openai):
    instances = fake_openai([chunk("The night "), chunk(None), SimpleNamespace(choices=[]), chunk("was quiet.")])
    refiner = OpenRouterRefiner(base_url="https://openrouter.test/api/v1", model="default/model")

    result = await refiner.refine("It was a dark and foreboding night.", make_account())

    assert result == "The night was quiet."
    client = instances[0]
    assert client.closed
    assert client.kwargs["api_key"] == "or-test-key"
    request = client.requests[0]
    assert request["model"] == "default/model"
    assert request["stream"] is True
    assert request["messages"][1] == {"role": "user", "content": "It was a dark and foreboding night."}


@pytest.mark.anyio
async def test_configured_model_is_used_by_default(fake_openai):
    instances = fake_openai([chunk("ok")])

    await OpenRouterRefiner().refine("text", make_account())

    assert instances[0].requests[0]["model"] == "anthropic/claude-3.7-sonnet"


@pytest.mark.anyio
async def test_empty_completion_keeps_original(fake_openai):
    fake_openai([chunk("   ")])
    assert await OpenRouterRefiner().refine("original", make_account()) == "original"


@pytest.mark.anyio
async def test_missing_key_is_configuration_error(fake_openai):
    instances = fake_openai([chunk("unused")])

    with pytest.raises(ConfigurationError):
        await OpenRouterRefiner().refine("text", make_account(openrouter_key=None))
    assert instances == []


@pytest.mark.anyio
async def test_provider_failure_is_refinement_error(fake_openai):
    instances = fake_openai(error=RuntimeError("503 from upstream"))

    with pytest.raises(RefinementError, match="503 from upstream"):
        await OpenRouterRefiner().refine("text", make_account())
    assert instances[0].closed
