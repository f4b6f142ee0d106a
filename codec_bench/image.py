"""
In-memory images and color encodings.

Color encodings are described with the compact string form used by
JPEG XL tools:

    <ColorSpace>_<WhitePoint>_<Primaries>_<RenderingIntent>_<TransferFunction>

e.g. ``RGB_D65_SRG_Rel_SRG`` (sRGB) or ``Gra_D65_Rel_Lin`` (linear gray; gray
encodings carry no primaries).
"""

import copy
import dataclasses

import numpy as np
from typing_extensions import Optional, Self

from .errors import ColorDescriptionError

COLOR_SPACES = ("RGB", "Gra")
WHITE_POINTS = ("D65", "EER", "DCI")
PRIMARIES = ("SRG", "202", "DCI")
RENDERING_INTENTS = ("Per", "Rel", "Sat", "Abs")
TRANSFER_FUNCTIONS = ("SRG", "Lin", "709", "PeQ", "HLG", "DCI")

ALIASES = {
    "sRGB": "RGB_D65_SRG_Rel_SRG",
    "LinearSRGB": "RGB_D65_SRG_Rel_Lin",
    "Gray": "Gra_D65_Rel_SRG",
    "DisplayP3": "RGB_D65_DCI_Rel_SRG",
    "Rec2100PQ": "RGB_D65_202_Rel_PeQ",
    "Rec2100HLG": "RGB_D65_202_Rel_HLG",
}


@dataclasses.dataclass(frozen=True)
class ColorEncoding:
    color_space: str = "RGB"
    white_point: str = "D65"
    primaries: Optional[str] = "SRG"
    rendering_intent: str = "Rel"
    transfer_function: str = "SRG"

    @classmethod
    def srgb(cls, is_gray: bool = False) -> Self:
        if is_gray:
            return cls(color_space="Gra", primaries=None)
        return cls()

    @property
    def is_gray(self) -> bool:
        return self.color_space == "Gra"

    @property
    def gamma(self) -> Optional[float]:
        """Encoding exponent of a 'g<gamma>' transfer function."""
        if self.transfer_function.startswith("g"):
            return float(self.transfer_function[1:])
        return None

    @property
    def description(self) -> str:
        parts = [self.color_space, self.white_point]
        if not self.is_gray:
            parts.append(self.primaries)
        parts += [self.rendering_intent, self.transfer_function]
        return "_".join(parts)

    def __str__(self) -> str:
        return self.description


def _parse_floats(text: str, count: int, what: str):
    values = text.replace(";", ",").split(",")
    try:
        floats = [float(v) for v in values]
    except ValueError:
        floats = []
    if len(floats) != count:
        raise ColorDescriptionError(f"Invalid {what} '{text}'")
    return floats


def _parse_white_point(token: str) -> str:
    if token in WHITE_POINTS:
        return token
    _parse_floats(token, 2, "white point")
    return token


def _parse_primaries(token: str) -> str:
    if token in PRIMARIES:
        return token
    _parse_floats(token, 6, "primaries")
    return token


def _parse_transfer_function(token: str) -> str:
    if token in TRANSFER_FUNCTIONS:
        return token
    if token.startswith("g"):
        try:
            gamma = float(token[1:])
        except ValueError:
            gamma = 0.0
        if 0.0 < gamma <= 1.0:
            return token
    raise ColorDescriptionError(f"Invalid transfer function '{token}'")


def parse_description(description: str) -> ColorEncoding:
    description = ALIASES.get(description, description)
    tokens = description.split("_")
    if not tokens or tokens[0] not in COLOR_SPACES:
        raise ColorDescriptionError(f"Invalid color space in '{description}'")
    is_gray = tokens[0] == "Gra"
    expected = 4 if is_gray else 5
    if len(tokens) != expected:
        raise ColorDescriptionError(
            f"Expected {expected} fields in '{description}', got {len(tokens)}"
        )
    white_point = _parse_white_point(tokens[1])
    if is_gray:
        primaries = None
        rest = tokens[2:]
    else:
        primaries = _parse_primaries(tokens[2])
        rest = tokens[3:]
    if rest[0] not in RENDERING_INTENTS:
        raise ColorDescriptionError(f"Invalid rendering intent '{rest[0]}'")
    return ColorEncoding(
        color_space=tokens[0],
        white_point=white_point,
        primaries=primaries,
        rendering_intent=rest[0],
        transfer_function=_parse_transfer_function(rest[1]),
    )


@dataclasses.dataclass
class ImageMetadata:
    bits_per_sample: int = 8
    # Nits of the brightest representable value.
    intensity_target: float = 255.0


@dataclasses.dataclass
class ImageBundle:
    """
    Decoded image: float32 samples in [0, 1], shape [H, W, C].
    C is 1 (gray), 2 (gray + alpha), 3 (color) or 4 (color + alpha).
    """

    pixels: np.ndarray
    color_encoding: ColorEncoding = ColorEncoding()
    metadata: ImageMetadata = dataclasses.field(default_factory=ImageMetadata)

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] not in (1, 2, 3, 4):
            raise ValueError(f"Invalid pixel array shape {self.pixels.shape}")
        if self.color_encoding.is_gray != (self.pixels.shape[2] < 3):
            raise ValueError(
                f"{self.pixels.shape[2]} channels do not match color encoding "
                f"{self.color_encoding}"
            )

    @property
    def ysize(self) -> int:
        return self.pixels.shape[0]

    @property
    def xsize(self) -> int:
        return self.pixels.shape[1]

    @property
    def has_alpha(self) -> bool:
        return self.pixels.shape[2] in (2, 4)

    def copy(self) -> "ImageBundle":
        return ImageBundle(
            self.pixels.copy(), self.color_encoding, copy.copy(self.metadata)
        )
