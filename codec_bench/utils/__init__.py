from .command import run_command
from .temporary_file import TemporaryFile

__all__ = ["run_command", "TemporaryFile"]
