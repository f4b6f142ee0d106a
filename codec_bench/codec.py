import abc
from concurrent.futures import Executor

from typing_extensions import Optional

from .config import BenchmarkArgs
from .errors import CodecConfigError
from .image import ImageBundle
from .speed_stats import SpeedStats


class ImageCodec(abc.ABC):
    """
    Base class of every codec the benchmark can run.

    A codec is configured by a ':'-separated parameter string, e.g.
    ``custom:png:/usr/bin/cjxl:/usr/bin/djxl:-d1``. The part before the first
    ':' selects the codec (see ``register.create_image_codec``), the rest is
    fed token by token to ``parse_param``.
    """

    def __init__(self, args: Optional[BenchmarkArgs] = None) -> None:
        self.args = args if args is not None else BenchmarkArgs()
        self.params = ""
        self._description = ""
        self.q_target = 100.0
        self.butteraugli_target = 1.0
        self.bitrate_target = 0.0

    @property
    def description(self) -> str:
        return self._description

    def parse_parameters(self, parameters: str) -> None:
        self.params = parameters
        self._description = parameters
        if not parameters:
            return
        for param in parameters.split(":"):
            self.parse_param(param)

    def parse_param(self, param: str) -> None:
        """
        Shared quality parameters understood by every codec:
        - q<float>: quality target
        - d<float>: butteraugli distance target
        - r<float>: bitrate target in bits per pixel
        """
        targets = {
            "q": "q_target",
            "d": "butteraugli_target",
            "r": "bitrate_target",
        }
        if len(param) < 2 or param[0] not in targets:
            raise CodecConfigError(f"Unrecognized param '{param}'")
        try:
            value = float(param[1:])
        except ValueError as err:
            raise CodecConfigError(f"Invalid value in param '{param}'") from err
        setattr(self, targets[param[0]], value)

    @abc.abstractmethod
    def compress(
        self,
        filename: str,
        io: ImageBundle,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> bytes:
        """
        Encode `io`. `filename` is the logical name of the source image and
        is only used for naming. Exactly one elapsed time is reported to
        `speed_stats` on success.
        """

    @abc.abstractmethod
    def decompress(
        self,
        filename: str,
        compressed: bytes,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> ImageBundle:
        """
        Decode `compressed` (the output of self.compress) into a new image.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.description}>"
