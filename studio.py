import itertools
import logging
import threading

import gemini_service
from gemini_service import MissingImageError
from models import (
    SLOT_TITLES,
    ActiveTab,
    ExtractionType,
    GenerationMode,
    ImageSlot,
    ImageState,
    Message,
    PanelState,
    Sender,
    SurfaceType,
    TileUnit,
)
from uploader import PreviewStore, as_png

logger = logging.getLogger(__name__)

GREETING = "Hello! How can I assist you with your Bovali design today?"
EDIT_CONFIRMATION = "Of course. Here is the updated design."
EDIT_FAILED = "Sorry, I couldn't edit the image. Please try a different instruction."
CHAT_FAILED = "I'm sorry, I encountered an error. Please try again."
GENERATE_FAILED = "An unknown error occurred."
PROCESS_FAILED = "An unknown error occurred during processing."

MODE_SLOTS = {
    GenerationMode.PATTERN_AND_MATERIAL: (
        ImageSlot.RENDER_SHOT, ImageSlot.PATTERN, ImageSlot.MATERIAL,
    ),
    GenerationMode.PATTERN_ONLY: (ImageSlot.RENDER_SHOT, ImageSlot.PATTERN),
    GenerationMode.MATERIAL_ONLY: (ImageSlot.RENDER_SHOT, ImageSlot.MATERIAL),
}

MISSING_IMAGES = {
    GenerationMode.PATTERN_AND_MATERIAL: "Please upload all three images for this mode.",
    GenerationMode.PATTERN_ONLY: "Please upload a Render Shot and a Pattern Image for this mode.",
    GenerationMode.MATERIAL_ONLY: "Please upload a Render Shot and a Material Image for this mode.",
}
MISSING_SOURCE = "Please upload an image to process."

GENERATOR_SLOTS = (ImageSlot.RENDER_SHOT, ImageSlot.PATTERN, ImageSlot.MATERIAL)


class StudioError(Exception):
    pass


class InvalidSelectionError(StudioError, ValueError):
    pass


class StudioBusyError(StudioError):
    pass


def parse_choice(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        options = ", ".join(member.value for member in enum_cls)
        raise InvalidSelectionError(f"Unknown value {value!r}; expected one of: {options}")


def describe_error(exc, fallback):
    message = str(exc).strip() if exc is not None else ""
    return message or fallback


def _text(value):
    return "" if value is None else str(value).strip()


def format_dimensions(width, height, unit):
    """``"60 x 120 cm"`` when both sides are given, else None. Free text."""
    width = _text(width)
    height = _text(height)
    if not (width and height):
        return None
    return f"{width} x {height} {TileUnit(unit).value}"


class Studio:
    """Server-side state of the Generator and Extractor studios plus the chat."""

    def __init__(self, previews=None):
        self.previews = previews if previews is not None else PreviewStore()
        self._lock = threading.RLock()
        self._ids = itertools.count(1)

        self.active_tab = ActiveTab.GENERATOR

        self.surface_type = SurfaceType.FLOORING
        self.generation_mode = GenerationMode.PATTERN_AND_MATERIAL
        self.tile_width = ""
        self.tile_height = ""
        self.tile_unit = TileUnit.CM
        self.generator = PanelState()

        self.extraction_type = ExtractionType.PATTERN
        self.source_width = ""
        self.source_height = ""
        self.source_unit = TileUnit.CM
        self.extractor = PanelState()

        self.slots = {slot: ImageState() for slot in ImageSlot}

        self.messages = [Message(next(self._ids), GREETING, Sender.BOT)]
        self.bot_typing = False

    # -- slots ---------------------------------------------------------------

    def _release(self, slot):
        state = self.slots[slot]
        self.previews.revoke(state.preview_url)
        self.slots[slot] = ImageState()

    def _clear_outputs(self):
        self.generator.clear()
        self.extractor.clear()

    def _check_slot_visible(self, slot):
        if slot is ImageSlot.SOURCE:
            if self.active_tab is not ActiveTab.EXTRACTOR:
                raise InvalidSelectionError("The Source Photo belongs to the Extractor Studio.")
            return
        if self.active_tab is not ActiveTab.GENERATOR:
            raise InvalidSelectionError(f"The {SLOT_TITLES[slot]} belongs to the Generator Studio.")
        if slot not in MODE_SLOTS[self.generation_mode]:
            raise InvalidSelectionError(
                f"The {SLOT_TITLES[slot]} is not used in {self.generation_mode.value} mode."
            )

    def select_image(self, slot, image):
        slot = parse_choice(ImageSlot, slot)
        with self._lock:
            self._check_slot_visible(slot)
            previous = self.slots[slot]
            self.previews.revoke(previous.preview_url)
            self.slots[slot] = ImageState(file=image, preview_url=self.previews.create(image))
            self._clear_outputs()
            return self.slots[slot]

    def remove_image(self, slot):
        slot = parse_choice(ImageSlot, slot)
        with self._lock:
            self._release(slot)
            self._clear_outputs()

    # -- view switches -------------------------------------------------------

    def _reset_generator_inputs(self):
        for slot in GENERATOR_SLOTS:
            self._release(slot)
        self.tile_width = ""
        self.tile_height = ""
        self.generator.clear()

    def _reset_extractor_inputs(self):
        self._release(ImageSlot.SOURCE)
        self.source_width = ""
        self.source_height = ""
        self.extractor.clear()

    def set_tab(self, tab):
        tab = parse_choice(ActiveTab, tab)
        with self._lock:
            if tab is self.active_tab:
                return
            self.active_tab = tab
            if tab is ActiveTab.GENERATOR:
                self._reset_extractor_inputs()
            else:
                self._reset_generator_inputs()

    def set_generation_mode(self, mode):
        mode = parse_choice(GenerationMode, mode)
        with self._lock:
            if mode is self.generation_mode:
                return
            self.generation_mode = mode
            self._reset_generator_inputs()

    def set_surface_type(self, surface):
        with self._lock:
            self.surface_type = parse_choice(SurfaceType, surface)

    def set_extraction_type(self, extraction_type):
        with self._lock:
            self.extraction_type = parse_choice(ExtractionType, extraction_type)

    # -- generator -----------------------------------------------------------

    @property
    def can_generate(self):
        if self.generator.loading:
            return False
        return all(self.slots[s].file is not None for s in MODE_SLOTS[self.generation_mode])

    def _generator_call(self):
        files = {slot: self.slots[slot].file for slot in GENERATOR_SLOTS}
        if any(files[slot] is None for slot in MODE_SLOTS[self.generation_mode]):
            raise MissingImageError(MISSING_IMAGES[self.generation_mode])

        dimensions = format_dimensions(self.tile_width, self.tile_height, self.tile_unit)
        surface = self.surface_type
        render_shot = files[ImageSlot.RENDER_SHOT]

        if self.generation_mode is GenerationMode.PATTERN_AND_MATERIAL:
            return lambda: gemini_service.apply_pattern_and_material(
                render_shot, files[ImageSlot.PATTERN], files[ImageSlot.MATERIAL],
                surface, dimensions,
            )
        if self.generation_mode is GenerationMode.PATTERN_ONLY:
            return lambda: gemini_service.apply_pattern_only(
                render_shot, files[ImageSlot.PATTERN], surface, dimensions,
            )
        return lambda: gemini_service.apply_material_only(
            render_shot, files[ImageSlot.MATERIAL], surface,
        )

    def generate(self, tile_width="", tile_height="", tile_unit=TileUnit.CM):
        """Run the active generation mode and store its output or error.

        Raises MissingImageError (after recording it on the panel) when the
        mode's slots are not all filled; nothing is sent in that case.
        """
        unit = parse_choice(TileUnit, tile_unit)
        with self._lock:
            if self.generator.loading:
                raise StudioBusyError("A design is already being generated.")
            self.tile_width = _text(tile_width)
            self.tile_height = _text(tile_height)
            self.tile_unit = unit
            self.generator.clear()
            try:
                call = self._generator_call()
            except MissingImageError as exc:
                self.generator.error = str(exc)
                raise
            self.generator.loading = True

        try:
            result = call()
        except Exception as exc:
            logger.exception("Design generation failed")
            with self._lock:
                self.generator.error = describe_error(exc, GENERATE_FAILED)
        else:
            with self._lock:
                self.generator.output_image = result.image_url
        finally:
            with self._lock:
                self.generator.loading = False
        return self.generator

    # -- extractor -----------------------------------------------------------

    @property
    def can_process(self):
        return not self.extractor.loading and self.slots[ImageSlot.SOURCE].file is not None

    def process(self, width="", height="", unit=TileUnit.CM):
        unit = parse_choice(TileUnit, unit)
        with self._lock:
            if self.extractor.loading:
                raise StudioBusyError("An image is already being processed.")
            self.source_width = _text(width)
            self.source_height = _text(height)
            self.source_unit = unit
            source = self.slots[ImageSlot.SOURCE].file
            if source is None:
                self.extractor.error = MISSING_SOURCE
                raise MissingImageError(MISSING_SOURCE)
            self.extractor.clear()
            self.extractor.loading = True
            dimensions = format_dimensions(width, height, unit)
            extraction_type = self.extraction_type

        try:
            result = gemini_service.extract_and_process_image(source, extraction_type, dimensions)
        except Exception as exc:
            logger.exception("Image extraction failed")
            with self._lock:
                self.extractor.error = describe_error(exc, PROCESS_FAILED)
        else:
            with self._lock:
                self.extractor.output_image = result.image_url
        finally:
            with self._lock:
                self.extractor.loading = False
        return self.extractor

    def download_processed(self):
        with self._lock:
            processed = self.extractor.output_image
            filename = f"bovali_processed_{self.extraction_type.value.lower()}.png"
        if not processed:
            return None
        return as_png(gemini_service.parse_data_url(processed)), filename

    # -- chat ----------------------------------------------------------------

    def _append(self, text, sender):
        message = Message(next(self._ids), text, sender)
        self.messages.append(message)
        return message

    def send_message(self, text):
        """Answer a chat turn, editing the generated design when there is one.

        A turn becomes an image edit only while the Generator Studio is active
        and holds an output image; otherwise it goes to the shared chat session.
        """
        text = (text or "").strip()
        if not text:
            raise InvalidSelectionError("Message cannot be empty")

        with self._lock:
            self._append(text, Sender.USER)
            self.bot_typing = True
            self.generator.error = None
            edit_source = None
            if self.generator.output_image and self.active_tab is ActiveTab.GENERATOR:
                edit_source = self.generator.output_image

        try:
            if edit_source:
                reply = self._edit_turn(edit_source, text)
            else:
                reply = self._chat_turn(text)
            with self._lock:
                return self._append(reply, Sender.BOT)
        finally:
            with self._lock:
                self.bot_typing = False

    def _edit_turn(self, output_image, instruction):
        try:
            image = gemini_service.parse_data_url(output_image)
            result = gemini_service.edit_image_with_prompt(image, instruction)
        except Exception as exc:
            logger.exception("Chat edit failed")
            return describe_error(exc, EDIT_FAILED)
        with self._lock:
            self.generator.output_image = result.image_url
        return result.text or EDIT_CONFIRMATION

    def _chat_turn(self, text):
        try:
            return gemini_service.send_chat_message(text)
        except Exception:
            logger.exception("Chat request failed")
            return CHAT_FAILED

    def reset_chat(self):
        """Start a new conversation: fresh session, transcript back to the greeting."""
        with self._lock:
            if self.bot_typing:
                raise StudioBusyError("The assistant is still answering.")
            gemini_service.reset_chat_session()
            self._ids = itertools.count(1)
            self.messages = [Message(next(self._ids), GREETING, Sender.BOT)]

    # -- view ----------------------------------------------------------------

    def _slot_view(self, slot):
        state = self.slots[slot]
        return {
            "title": SLOT_TITLES[slot],
            "preview_url": state.preview_url,
            "filename": state.file.filename if state.file else None,
        }

    @staticmethod
    def _panel_view(panel):
        return {
            "status": panel.status.value,
            "output_image": panel.output_image,
            "loading": panel.loading,
            "error": panel.error,
        }

    def snapshot(self):
        with self._lock:
            return {
                "active_tab": self.active_tab.value,
                "generator": {
                    "surface_type": self.surface_type.value,
                    "generation_mode": self.generation_mode.value,
                    "slots": {
                        slot.value: self._slot_view(slot)
                        for slot in MODE_SLOTS[self.generation_mode]
                    },
                    "tile_width": self.tile_width,
                    "tile_height": self.tile_height,
                    "tile_unit": self.tile_unit.value,
                    "can_generate": self.can_generate,
                    **self._panel_view(self.generator),
                },
                "extractor": {
                    "extraction_type": self.extraction_type.value,
                    "slots": {ImageSlot.SOURCE.value: self._slot_view(ImageSlot.SOURCE)},
                    "width": self.source_width,
                    "height": self.source_height,
                    "unit": self.source_unit.value,
                    "can_process": self.can_process,
                    **self._panel_view(self.extractor),
                },
                "chat": {
                    "messages": [m.to_dict() for m in self.messages],
                    "bot_typing": self.bot_typing,
                },
            }
