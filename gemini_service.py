import base64
import logging
import os
import re
import threading
import time

from dotenv import load_dotenv
from google import genai
from google.genai import types
from google.genai.types import Modality

from models import ExtractionType, GenerationResult, ImageFile, SurfaceType
from system_prompt import (
    CHAT_SYSTEM_PROMPT,
    EDIT_PROMPT,
    EXTRACT_DIMENSIONS,
    EXTRACT_PROMPT,
    MATERIAL_ONLY_PROMPT,
    PATTERN_AND_MATERIAL_PROMPT,
    PATTERN_ONLY_PROMPT,
    TILE_DIMENSIONS,
)

load_dotenv()

logger = logging.getLogger(__name__)

IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview")
CHAT_MODEL = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.5-flash")
REQUEST_TIMEOUT_MS = int(os.getenv("GEMINI_TIMEOUT_MS", "300000"))

EDIT_NO_IMAGE = "The AI did not return an image for your edit request."
DESIGN_NO_IMAGE = (
    "AI failed to generate a new image. "
    "Please try a different combination of images or prompt."
)

DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)

_client = None
_chat = None
_chat_lock = threading.Lock()


class GenerationError(Exception):
    """The model answered, but without an image part."""


class MissingImageError(ValueError):
    """A required image input was not supplied."""


def get_client():
    global _client
    if _client is None:
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        _client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=REQUEST_TIMEOUT_MS),
        )
    return _client


def to_data_url(data, mime_type):
    b64 = base64.b64encode(data).decode("utf-8")
    return f"data:{mime_type};base64,{b64}"


def parse_data_url(data_url):
    """Split a ``data:<mime>;base64,<payload>`` locator back into an ImageFile."""
    match = DATA_URL_RE.match(data_url or "")
    if not match:
        raise ValueError("Invalid data URL format")
    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except ValueError:
        raise ValueError("Invalid data URL format")
    return ImageFile(data=raw, mime_type=match.group("mime"))


def image_part(image):
    return types.Part.from_bytes(data=image.data, mime_type=image.mime_type)


def first_image_and_text(response):
    """Return ``(image_url, text)`` from the first candidate of a response.

    Only the first part carrying inline data counts as the image; later image
    parts are ignored. The first non-empty text part is kept alongside.
    """
    image_url = None
    text = None
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return None, None
    for part in candidates[0].content.parts or []:
        inline = getattr(part, "inline_data", None)
        if inline is not None and inline.data:
            if image_url is None:
                mime = inline.mime_type or "image/png"
                image_url = to_data_url(inline.data, mime)
        elif getattr(part, "text", None) and text is None:
            text = part.text.strip() or None
    return image_url, text


def _require(**images):
    missing = [name for name, image in images.items() if image is None]
    if missing:
        raise MissingImageError(
            "Missing required image(s): " + ", ".join(missing)
        )


def _generate(operation, prompt, images, modalities, no_image_message):
    contents = [image_part(image) for image in images]
    contents.append(prompt)
    config = types.GenerateContentConfig(response_modalities=modalities)

    start = time.time()
    try:
        response = get_client().models.generate_content(
            model=IMAGE_MODEL,
            contents=contents,
            config=config,
        )
    except Exception:
        logger.exception("%s: request to %s failed", operation, IMAGE_MODEL)
        raise
    elapsed = round(time.time() - start, 1)

    image_url, text = first_image_and_text(response)
    if not image_url:
        logger.warning("%s: no image in response after %ss", operation, elapsed)
        if text:
            raise GenerationError(
                f'The AI responded but did not return an image: "{text}"'
            )
        raise GenerationError(no_image_message)

    logger.info("%s: image received from %s in %ss", operation, IMAGE_MODEL, elapsed)
    return GenerationResult(image_url=image_url, text=text)


def edit_image_with_prompt(image, instruction):
    _require(image=image)
    prompt = EDIT_PROMPT.format(instruction=instruction)
    return _generate(
        "edit",
        prompt,
        [image],
        [Modality.IMAGE, Modality.TEXT],
        EDIT_NO_IMAGE,
    )


def _tile_instruction(tile_dimensions):
    if not tile_dimensions:
        return ""
    return TILE_DIMENSIONS.format(dimensions=tile_dimensions)


def extract_and_process_image(source, extraction_type, dimensions=None):
    _require(source=source)
    extraction_type = ExtractionType(extraction_type)
    dimension_instruction = (
        EXTRACT_DIMENSIONS.format(dimensions=dimensions) if dimensions else ""
    )
    prompt = EXTRACT_PROMPT.format(
        extraction_type=extraction_type.value,
        dimension_instruction=dimension_instruction,
    )
    return _generate(
        "extract", prompt, [source], [Modality.IMAGE], DESIGN_NO_IMAGE
    )


def apply_pattern_and_material(render_shot, pattern, material, surface_type,
                               tile_dimensions=None):
    _require(render_shot=render_shot, pattern=pattern, material=material)
    prompt = PATTERN_AND_MATERIAL_PROMPT.format(
        surface=SurfaceType(surface_type).value.lower(),
        dimension_instruction=_tile_instruction(tile_dimensions),
    )
    return _generate(
        "pattern_and_material",
        prompt,
        [render_shot, pattern, material],
        [Modality.IMAGE],
        DESIGN_NO_IMAGE,
    )


def apply_pattern_only(render_shot, pattern, surface_type, tile_dimensions=None):
    _require(render_shot=render_shot, pattern=pattern)
    prompt = PATTERN_ONLY_PROMPT.format(
        surface=SurfaceType(surface_type).value.lower(),
        dimension_instruction=_tile_instruction(tile_dimensions),
    )
    return _generate(
        "pattern_only",
        prompt,
        [render_shot, pattern],
        [Modality.IMAGE],
        DESIGN_NO_IMAGE,
    )


def apply_material_only(render_shot, material, surface_type):
    _require(render_shot=render_shot, material=material)
    prompt = MATERIAL_ONLY_PROMPT.format(
        surface=SurfaceType(surface_type).value.lower(),
    )
    return _generate(
        "material_only",
        prompt,
        [render_shot, material],
        [Modality.IMAGE],
        DESIGN_NO_IMAGE,
    )


def create_chat():
    return get_client().chats.create(
        model=CHAT_MODEL,
        config=types.GenerateContentConfig(system_instruction=CHAT_SYSTEM_PROMPT),
    )


def get_chat_session():
    """The process-wide chat, created on first use."""
    global _chat
    with _chat_lock:
        if _chat is None:
            _chat = create_chat()
            logger.info("Chat session created with %s", CHAT_MODEL)
        return _chat


def reset_chat_session():
    global _chat
    with _chat_lock:
        _chat = None


def send_chat_message(message):
    start = time.time()
    try:
        response = get_chat_session().send_message(message)
    except Exception:
        logger.exception("chat: request to %s failed", CHAT_MODEL)
        raise
    logger.info("chat: reply from %s in %ss", CHAT_MODEL, round(time.time() - start, 1))
    return response.text or ""
