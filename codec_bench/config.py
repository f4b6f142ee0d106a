import argparse
import dataclasses

from typing_extensions import Optional, Tuple


@dataclasses.dataclass(frozen=True)
class CustomCodecArgs:
    """
    Options shared by every custom codec instance of a benchmark run.
    Built once from the command line and passed to each codec.
    """

    # File type used to exchange pixels with the external codec.
    extension: str = "png"
    # If set, pixels are converted to this color encoding before they are
    # handed to the codec and the codec output is read back as this encoding.
    colorspace: str = ""
    # Hide the stdout/stderr of the external codec.
    quiet: bool = False
    # Seconds to wait for the external codec; None waits forever.
    timeout: Optional[float] = None
    # Where temporary files go; None uses the system default.
    temp_dir: Optional[str] = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "CustomCodecArgs":
        return cls(
            extension=getattr(args, "custom_codec_extension", cls.extension),
            colorspace=getattr(args, "custom_codec_colorspace", cls.colorspace),
            quiet=getattr(args, "custom_codec_quiet", cls.quiet),
            timeout=getattr(args, "custom_codec_timeout", cls.timeout),
            temp_dir=getattr(args, "custom_codec_temp_dir", cls.temp_dir),
        )


@dataclasses.dataclass(frozen=True)
class BenchmarkArgs:
    input: str = ""
    codecs: Tuple[str, ...] = ()
    num_threads: int = 1
    inner_threads: int = 0
    save_decompressed: Optional[str] = None
    output: Optional[str] = None
    custom_codec: CustomCodecArgs = CustomCodecArgs()

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "BenchmarkArgs":
        return cls(
            input=args.input,
            codecs=tuple(args.codecs),
            num_threads=args.num_threads,
            inner_threads=args.inner_threads,
            save_decompressed=args.save_decompressed,
            output=args.output,
            custom_codec=CustomCodecArgs.from_args(args),
        )
