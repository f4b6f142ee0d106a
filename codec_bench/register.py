from typing_extensions import Callable, Dict, Optional

from .codec import ImageCodec
from .config import BenchmarkArgs
from .errors import CodecConfigError

# A factory may return None when the codec is unavailable on this platform.
CodecFactory = Callable[[BenchmarkArgs], Optional[ImageCodec]]

CODECS: Dict[str, CodecFactory] = {}


def register_codec(name):
    def register(factory):
        CODECS[name] = factory
        return factory

    return register


def create_image_codec(
    description: str, args: Optional[BenchmarkArgs] = None
) -> Optional[ImageCodec]:
    """
    Create the codec named by the part of `description` before the first ':'
    and configure it with the rest.
    """
    name, _, parameters = description.partition(":")
    if name not in CODECS:
        raise CodecConfigError(
            f"Unknown codec '{name}', choose from {sorted(CODECS.keys())}"
        )
    codec = CODECS[name](args if args is not None else BenchmarkArgs())
    if codec is None:
        return None
    codec.parse_parameters(parameters)
    return codec
