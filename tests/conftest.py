import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from jack.bot import connector as connector_module
from jack.bot.config import BotConfig
from jack.bot.connector import Connector
from jack.bot.providers import CompletionProvider, CompletionResult


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: list[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise OSError("socket closed")
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)

    def feed(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def events(self) -> list[tuple[str, object]]:
        """Outbound 42-envelopes as (tag, payload) pairs."""
        decoded = []
        for frame in self.sent:
            if frame.startswith("42"):
                tag, payload = json.loads(frame[2:])
                decoded.append((tag, payload))
        return decoded

    def events_tagged(self, tag: str) -> list:
        return [payload for t, payload in self.events() if t == tag]


class FakeConnect:
    """Websocket factory that hands out a fresh FakeWebSocket per attempt."""

    def __init__(self, fail_times: int = 0):
        self.sockets: list[FakeWebSocket] = []
        self.calls: list[tuple[str, dict]] = []
        self.fail_times = fail_times

    async def __call__(self, url: str, **kwargs) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise OSError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def latest(self) -> FakeWebSocket:
        return self.sockets[-1]


class FakeProvider(CompletionProvider):
    """Completion provider returning canned replies, or raising."""

    def __init__(self, replies=None, error: Exception = None):
        self.replies = list(replies or ["Hello there!"])
        self.error = error
        self.calls: list[list[dict]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake/model"

    @property
    def model(self) -> str:
        return "model"

    async def chat(self, messages, max_tokens, temperature=1.0, stop=None):
        self.calls.append(messages)
        if self.error:
            raise self.error
        text = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return CompletionResult(text=text, tokens_used=10, tokens_prompt=5, model="model", latency_ms=1.0)

    async def close(self) -> None:
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate on the running loop until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def write_data(data_dir, **files) -> None:
    """Write data files; keys use underscores for dots (admins_txt -> admins.txt)."""
    data_dir.mkdir(parents=True, exist_ok=True)
    for key, content in files.items():
        name = key.replace("_json", ".json").replace("_txt", ".txt")
        if not isinstance(content, str):
            content = json.dumps(content)
        (data_dir / name).write_text(content, encoding="utf-8")


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def config(data_dir):
    return BotConfig(
        ws_url="wss://rooms.example.test/ws",
        room_id="club-42",
        room_name="Test Club",
        account_id="bot-1",
        endpoint="ep-1",
        key="secret-key",
        reconnect_delay=0.01,
        chunk_delay=0.0,
        data_dir=data_dir,
    )


@pytest.fixture
def fake_connect():
    return FakeConnect()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def connector(config, provider, fake_connect):
    return Connector(config, provider=provider, connect=fake_connect)


@pytest.fixture
def client(connector, monkeypatch):
    """Control API client bound to the test connector."""
    monkeypatch.setattr(connector_module, "_connector", connector)
    monkeypatch.setenv("JACK_AUTOSTART", "false")
    connector.config.autostart = False

    from jack.main import app

    with TestClient(app) as client:
        yield client
