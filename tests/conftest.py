import base64
import io
import json

import pytest
from PIL import Image

from snapsolve.adapters.base import BaseChatAdapter
from snapsolve.types import ChatResponse

def make_png_b64(size=(8, 8), mode="RGB", color=(255, 0, 0)) -> str:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")

PNG_B64 = make_png_b64()

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload

class FakeAdapter(BaseChatAdapter):
    """Scripted adapter: each complete() pops the next reply (text or exception)."""

    def __init__(self, replies=(), name="openai"):
        super().__init__()
        self.name = name
        self.replies = list(replies)
        self.requests = []
        self._ready = True

    def initialize(self, config):
        self._ready = True
        return True

    def complete(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ChatResponse(text=reply, model=request.model)

    def encode_request(self, request):
        return {"model": request.model}

    def decode_request(self, payload):
        raise NotImplementedError

    def parse_response(self, data):
        return ChatResponse(text=str(data.get("text") or ""))

@pytest.fixture(autouse=True)
def _no_provider_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "GEMINI_API_KEY", "OLLAMA_URL", "OPENAI_ENDPOINT", "SNAPSOLVE_CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)

@pytest.fixture
def screenshot(tmp_path):
    def _make(name="shot.png"):
        p = tmp_path / name
        p.write_bytes(base64.b64decode(PNG_B64))
        return str(p)
    return _make
