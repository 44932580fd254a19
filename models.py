from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActiveTab(str, Enum):
    GENERATOR = "generator"
    EXTRACTOR = "extractor"


class GenerationMode(str, Enum):
    PATTERN_AND_MATERIAL = "PatternAndMaterial"
    PATTERN_ONLY = "PatternOnly"
    MATERIAL_ONLY = "MaterialOnly"


class ExtractionType(str, Enum):
    PATTERN = "Pattern"
    MATERIAL = "Material"


class SurfaceType(str, Enum):
    FLOORING = "Flooring"
    WALLS = "Walls"


class TileUnit(str, Enum):
    CM = "cm"
    INCHES = "inches"


class ImageSlot(str, Enum):
    RENDER_SHOT = "render_shot"
    PATTERN = "pattern"
    MATERIAL = "material"
    SOURCE = "source"


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


class PanelStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


SLOT_TITLES = {
    ImageSlot.RENDER_SHOT: "Render Shot",
    ImageSlot.PATTERN: "Pattern Image",
    ImageSlot.MATERIAL: "Material Image",
    ImageSlot.SOURCE: "Source Photo",
}


@dataclass
class ImageFile:
    data: bytes
    mime_type: str
    filename: str = ""


@dataclass
class ImageState:
    file: Optional[ImageFile] = None
    preview_url: Optional[str] = None


@dataclass
class Message:
    id: int
    text: str
    sender: Sender

    def to_dict(self):
        return {"id": self.id, "text": self.text, "sender": self.sender.value}


@dataclass
class GenerationResult:
    image_url: str
    text: Optional[str] = None


@dataclass
class PanelState:
    """Output side of a studio panel: at most one image, one error."""

    output_image: Optional[str] = None
    loading: bool = False
    error: Optional[str] = None

    @property
    def status(self):
        if self.loading:
            return PanelStatus.SUBMITTING
        if self.error:
            return PanelStatus.FAILED
        if self.output_image:
            return PanelStatus.SUCCEEDED
        return PanelStatus.IDLE

    def clear(self):
        self.output_image = None
        self.error = None
