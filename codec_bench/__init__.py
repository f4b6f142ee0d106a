from .codec import ImageCodec
from .config import BenchmarkArgs, CustomCodecArgs
from .errors import (
    CodecConfigError,
    CodecError,
    CodecIOError,
    ColorDescriptionError,
    CommandError,
    UnsupportedConversionError,
)
from .image import ColorEncoding, ImageBundle, ImageMetadata, parse_description
from .speed_stats import ElapsedTime, SpeedStats

# Codecs; importing them fills the registry
from .custom_codec import CustomCodec, create_custom_codec, report_codec_running_time
from .pil_codecs import JPEGCodec, PNGCodec, WebPCodec

from .register import CODECS, create_image_codec, register_codec

__version__ = "0.1.0"
