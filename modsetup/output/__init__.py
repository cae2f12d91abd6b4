"""Output - decompiler adapters, build descriptors and atomic file writes."""

from modsetup.output.decompiler import Decompiler, FormattingOptions, IlspyCmdDecompiler
from modsetup.output.descriptor import (
    CLIENT_GUID,
    SERVER_GUID,
    ProjectFileWriter,
    ProjectUserFileWriter,
)
from modsetup.output.files import write_bytes_atomic, write_text_atomic

__all__ = [
    "CLIENT_GUID",
    "SERVER_GUID",
    "Decompiler",
    "FormattingOptions",
    "IlspyCmdDecompiler",
    "ProjectFileWriter",
    "ProjectUserFileWriter",
    "write_bytes_atomic",
    "write_text_atomic",
]
