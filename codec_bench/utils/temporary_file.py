import os
import tempfile

from typing_extensions import Optional

from ..errors import CodecIOError


class TemporaryFile:
    """
    A uniquely named file `<basename>_XXXXXXXX.<extension>` that exists for
    the duration of a `with` block and is removed afterwards, also when the
    block raises.
    """

    def __init__(self, basename: str, extension: str, dir: Optional[str] = None):
        self.basename = basename
        self.extension = extension
        self.dir = dir
        self.name = None

    def __enter__(self) -> "TemporaryFile":
        try:
            fd, self.name = tempfile.mkstemp(
                prefix=self.basename + "_", suffix="." + self.extension, dir=self.dir
            )
        except OSError as err:
            raise CodecIOError(
                f"Failed to create temporary file for {self.basename}: {err}"
            ) from err
        os.close(fd)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.name is not None and os.path.exists(self.name):
            os.unlink(self.name)
