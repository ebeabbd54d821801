"""
Configuration objects for anchor box generation and detection.

All options are validated when they are constructed; invalid values raise
``ConfigurationError`` instead of being clamped.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

Color = Tuple[int, ...]  # RGB or RGBA, 0-255

BOX_MIN_WIDTH = 30
BOX_MIN_HEIGHT = 30
MAX_LABEL_LENGTH = 100
MIN_FONT_SIZE = 5
MAX_FONT_SIZE = 25
MAX_BOX_ID = 255


class ConfigurationError(ValueError):
    """Raised when an option value is outside its accepted range."""


class MarkerIdError(ConfigurationError):
    """Raised when a marker identifier is not present in the dictionary."""


class BorderStyle(enum.Enum):
    """Line style used for the anchor box border."""
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"


class BorderSides(enum.Flag):
    """Sides of the anchor box that receive a border line."""
    NONE = 0
    TOP = 1
    RIGHT = 2
    BOTTOM = 4
    LEFT = 8
    ALL = 15


class LabelPlacement(enum.Enum):
    """Where the human readable label is drawn relative to the box."""
    TOP_INSIDE = 1
    BOTTOM_INSIDE = 2
    TOP_OUTSIDE = 3
    BOTTOM_OUTSIDE = 4

    @property
    def outside(self) -> bool:
        return self in (LabelPlacement.TOP_OUTSIDE, LabelPlacement.BOTTOM_OUTSIDE)


def _check_color(name: str, color: Color):
    if len(color) not in (3, 4) or any(not 0 <= int(c) <= 255 for c in color):
        raise ConfigurationError(f"{name} must be an RGB or RGBA tuple with values 0-255, got {color!r}")


@dataclass(frozen=True)
class AnchorBorder:
    """Border drawn around the anchor box."""

    color: Color = (0, 0, 0)
    thickness: int = 1
    style: BorderStyle = BorderStyle.SOLID
    sides: BorderSides = BorderSides.ALL

    def __post_init__(self):
        _check_color("Border color", self.color)
        if not 1 <= self.thickness <= 5:
            raise ConfigurationError(
                f"Border thickness has to be between 1 and 5 pixels, got {self.thickness}"
            )


@dataclass(frozen=True)
class AnchorLabel:
    """Human readable label placed next to (or inside) the box."""

    text: str
    placement: LabelPlacement = LabelPlacement.BOTTOM_OUTSIDE
    font_size: int = 14
    color: Color = (0, 0, 0)
    font: str = "Arial"

    def __post_init__(self):
        if len(self.text) > MAX_LABEL_LENGTH:
            raise ConfigurationError(
                f"Label text is {len(self.text)} characters, maximum is {MAX_LABEL_LENGTH}"
            )
        if not MIN_FONT_SIZE <= self.font_size <= MAX_FONT_SIZE:
            raise ConfigurationError(
                f"Font size has to be between {MIN_FONT_SIZE} and {MAX_FONT_SIZE}, got {self.font_size}"
            )
        if not self.font:
            raise ConfigurationError("Font family cannot be empty")
        _check_color("Label color", self.color)


@dataclass(frozen=True)
class GeneratorOptions:
    """Options for rendering one anchor box (two markers plus decorations)."""

    box_id: int
    pixel_width: int
    pixel_height: int
    marker_pixel_size: int = 60  # Rendered side of each marker, not the cell count
    marker_border_bits: int = 1  # Quiet-zone rings; 2+ helps very small prints
    marker_padding: int = 5
    fill_color: Optional[Color] = None  # None = transparent
    border: Optional[AnchorBorder] = None
    label: Optional[AnchorLabel] = None
    outer_markers: bool = False  # Place markers outside the box corners

    def __post_init__(self):
        if not 0 <= self.box_id <= MAX_BOX_ID:
            raise ConfigurationError(f"Box id has to be between 0 and {MAX_BOX_ID}, got {self.box_id}")
        if self.pixel_width < BOX_MIN_WIDTH:
            raise ConfigurationError(
                f"Box width has to be at least {BOX_MIN_WIDTH} pixels, got {self.pixel_width}"
            )
        if self.pixel_height < BOX_MIN_HEIGHT:
            raise ConfigurationError(
                f"Box height has to be at least {BOX_MIN_HEIGHT} pixels, got {self.pixel_height}"
            )
        if self.marker_pixel_size <= 0:
            raise ConfigurationError("Marker pixel size must be positive")
        if self.marker_border_bits < 1:
            raise ConfigurationError("Marker border bits must be at least 1")
        if self.marker_padding < 0:
            raise ConfigurationError("Marker padding cannot be negative")
        if self.fill_color is not None:
            _check_color("Fill color", self.fill_color)

    @classmethod
    def from_config(cls, config: Dict) -> GeneratorOptions:
        """Build options from a config dict; nested border/label dicts are converted."""
        cfg = {k: v for k, v in dict(config).items() if k in cls.__dataclass_fields__}
        if cfg.get("fill_color") is not None:
            cfg["fill_color"] = tuple(cfg["fill_color"])
        border = cfg.get("border")
        if isinstance(border, dict):
            border = dict(border)
            if "color" in border:
                border["color"] = tuple(border["color"])
            if "style" in border:
                border["style"] = BorderStyle(border["style"])
            if "sides" in border:
                border["sides"] = BorderSides(border["sides"])
            cfg["border"] = AnchorBorder(**border)
        label = cfg.get("label")
        if isinstance(label, dict):
            label = dict(label)
            if "color" in label:
                label["color"] = tuple(label["color"])
            if "placement" in label:
                label["placement"] = LabelPlacement(label["placement"])
            cfg["label"] = AnchorLabel(**label)
        return cls(**cfg)

    @property
    def top_left_marker_id(self) -> int:
        return self.box_id * 2

    @property
    def bottom_right_marker_id(self) -> int:
        return self.box_id * 2 + 1


@dataclass(frozen=True)
class DetectionOptions:
    """Options controlling marker scanning and the staged detection pipeline."""

    border_bits: int = 1
    min_cell_px: int = 4
    max_cell_px: int = 14
    rotations: Tuple[float, ...] = ()  # Clockwise degrees, tried in order
    binary_threshold: Optional[float] = None  # 0.0-1.0, None disables binarization

    # Scanner tuning (empirical constants of the detector)
    margin: int = 2  # Pixels trimmed off each side of the content box
    max_hamming_distance: int = 2
    two_means_iterations: int = 3
    scale_tolerance: float = 0.15
    max_workers: Optional[int] = None  # None = one worker per CPU

    def __post_init__(self):
        object.__setattr__(self, "rotations", tuple(float(r) for r in (self.rotations or ())))

        if self.border_bits < 1:
            raise ConfigurationError("Border bits must be at least 1")
        if self.min_cell_px < 1:
            raise ConfigurationError("Minimum cell size must be at least 1 pixel")
        if self.max_cell_px < self.min_cell_px:
            raise ConfigurationError(
                f"Maximum cell size ({self.max_cell_px}) is smaller than minimum ({self.min_cell_px})"
            )
        if self.binary_threshold is not None and not 0.0 <= self.binary_threshold <= 1.0:
            raise ConfigurationError(
                f"Binary threshold has to be between 0.0 and 1.0, got {self.binary_threshold}"
            )
        if self.margin < 0:
            raise ConfigurationError("Margin cannot be negative")
        if self.max_hamming_distance < 0:
            raise ConfigurationError("Hamming tolerance cannot be negative")
        if self.two_means_iterations < 1:
            raise ConfigurationError("Two-means threshold needs at least one iteration")
        if not 0.0 < self.scale_tolerance < 1.0:
            raise ConfigurationError("Scale tolerance has to be between 0 and 1")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> DetectionOptions:
        """Build options from a config dict, ignoring unknown keys."""
        cfg = dict(config or {})
        return cls(**{k: v for k, v in cfg.items() if k in cls.__dataclass_fields__})
