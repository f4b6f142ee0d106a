class CodecError(RuntimeError):
    """Any failure of a compress or decompress operation."""


class CodecConfigError(CodecError, ValueError):
    pass


class CodecIOError(CodecError):
    pass


class CommandError(CodecError):
    def __init__(self, message, returncode=None) -> None:
        super().__init__(message)
        self.returncode = returncode


class ColorDescriptionError(CodecError, ValueError):
    pass


class UnsupportedConversionError(CodecError):
    pass
