"""Reading small text files written by arbitrary editors.

Password and repository files are frequently saved with a byte order mark
by Windows editors. restic itself ignores the BOM, so we do too.
"""

import codecs
from pathlib import Path

_UTF16_BOMS = (codecs.BOM_UTF16_BE, codecs.BOM_UTF16_LE)


def decode_text(data: bytes) -> str:
    """Decode text bytes, honouring and dropping a UTF-8 or UTF-16 BOM.

    Args:
        data: Raw file content.

    Returns:
        Decoded text without BOM. Bytes without a BOM are read as UTF-8
        with replacement of invalid sequences.

    """
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8) :].decode("utf-8", errors="replace")
    if data.startswith(_UTF16_BOMS):
        # the "utf-16" codec picks endianness from the BOM and strips it
        return data.decode("utf-16", errors="replace")
    return data.decode("utf-8", errors="replace")


def read_text_file(path: str | Path) -> str:
    """Read a text file, skipping BOM headers if present.

    Args:
        path: File to read.

    Returns:
        File content as text.

    Raises:
        OSError: If the file cannot be read.

    """
    return decode_text(Path(path).read_bytes())


def read_secret_file(path: str | Path) -> str:
    """Read a single-line secret (password, repository) from a file.

    Newlines are removed and surrounding whitespace stripped.

    Args:
        path: File to read.

    Returns:
        The secret as a single line.

    Raises:
        OSError: If the file cannot be read.

    """
    return read_text_file(path).replace("\r", "").replace("\n", "").strip()
