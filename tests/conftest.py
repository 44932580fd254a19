"""
Shared pytest fixtures: fake Gemini client, image fixtures, response builders
"""
import io
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from google.genai import types
from PIL import Image

import gemini_service
from models import ImageFile


def _encode(fmt, color, size=(8, 8)):
    img = Image.new("RGB", size, color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def fake_client(monkeypatch):
    """Replace the Gemini client so that no test reaches the network"""
    client = Mock()
    client.chats.create.return_value = Mock()
    monkeypatch.setattr(gemini_service, "_client", client)
    monkeypatch.setattr(gemini_service, "_chat", None)
    return client


@pytest.fixture
def png_bytes():
    return _encode("PNG", "red")


@pytest.fixture
def jpeg_bytes():
    return _encode("JPEG", "blue")


@pytest.fixture
def render_shot(png_bytes):
    return ImageFile(data=png_bytes, mime_type="image/png", filename="room.png")


@pytest.fixture
def pattern():
    return ImageFile(data=_encode("PNG", "green"), mime_type="image/png", filename="pattern.png")


@pytest.fixture
def material(jpeg_bytes):
    return ImageFile(data=jpeg_bytes, mime_type="image/jpeg", filename="marble.jpg")


@pytest.fixture
def make_response():
    """Build a GenerateContentResponse from ("image", bytes, mime) / ("text", str) tuples"""

    def build(*parts):
        built = []
        for part in parts:
            if part[0] == "image":
                _, data, mime = part
                built.append(types.Part(inline_data=types.Blob(data=data, mime_type=mime)))
            else:
                built.append(types.Part(text=part[1]))
        return types.GenerateContentResponse(
            candidates=[types.Candidate(content=types.Content(role="model", parts=built))]
        )

    return build


@pytest.fixture
def chat_reply(fake_client):
    """Make the shared chat session answer with the given text"""

    def reply(text):
        fake_client.chats.create.return_value.send_message.return_value = SimpleNamespace(text=text)
        return fake_client.chats.create.return_value

    return reply
