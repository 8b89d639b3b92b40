"""
PNG Metadata Handler
===================

Reads and writes tEXt chunks in PNG images for uma card metadata.

Works directly on the chunk stream rather than re-encoding the image, so the
bytes of every existing chunk come out exactly as they went in.
"""

import logging
import struct
import zlib
from dataclasses import dataclass
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
TEXT_CHUNK_TYPE = b"tEXt"
END_CHUNK_TYPE = b"IEND"

# length (4) + type (4) + crc (4)
CHUNK_OVERHEAD = 12


class PNGFormatError(Exception):
    """Base exception for PNG structure errors."""
    pass


class NotAPngError(PNGFormatError):
    """Buffer does not start with the PNG signature."""
    pass


class TruncatedPngError(PNGFormatError):
    """Chunk scan ran off the end of the buffer before reaching IEND."""
    pass


@dataclass
class PNGChunk:
    """Location of one chunk inside a PNG buffer."""
    offset: int
    chunk_type: bytes
    length: int

    @property
    def data_start(self) -> int:
        return self.offset + 8

    @property
    def end(self) -> int:
        return self.offset + CHUNK_OVERHEAD + self.length


def crc32(data: bytes) -> int:
    """CRC-32 (reflected, poly 0xEDB88320) as used by PNG chunks."""
    return zlib.crc32(data) & 0xFFFFFFFF


class PNGMetadataHandler:
    """Handle PNG tEXt chunk operations for uma card metadata."""

    @staticmethod
    def check_signature(png_data: bytes) -> None:
        if png_data[:len(PNG_SIGNATURE)] != PNG_SIGNATURE:
            raise NotAPngError("Invalid PNG file")

    @staticmethod
    def iter_chunks(png_data: bytes) -> Iterator[PNGChunk]:
        """
        Walk chunks in file order, stopping after IEND.

        Raises:
            NotAPngError: If the signature is wrong
            TruncatedPngError: If a chunk extends past the end of the buffer
                or the buffer ends before IEND
        """
        PNGMetadataHandler.check_signature(png_data)

        pos = len(PNG_SIGNATURE)
        total = len(png_data)
        while True:
            if pos + 8 > total:
                raise TruncatedPngError("IEND chunk not found in PNG")

            length, chunk_type = struct.unpack(">I4s", png_data[pos:pos + 8])
            chunk = PNGChunk(offset=pos, chunk_type=chunk_type, length=length)
            if chunk.end > total:
                raise TruncatedPngError(
                    f"Chunk {chunk_type!r} at offset {pos} runs past end of file"
                )

            yield chunk

            if chunk_type == END_CHUNK_TYPE:
                return
            pos = chunk.end

    @staticmethod
    def build_text_chunk(keyword: str, text: str) -> bytes:
        """Encode a tEXt chunk: Latin-1 keyword, NUL, UTF-8 text, with its CRC."""
        data = keyword.encode('latin-1') + b"\x00" + text.encode('utf-8')
        body = TEXT_CHUNK_TYPE + data
        return struct.pack(">I", len(data)) + body + struct.pack(">I", crc32(body))

    @staticmethod
    def read_text_chunk(png_data: bytes, keyword: str) -> Optional[str]:
        """
        Extract the first tEXt chunk with a specific keyword from PNG data.

        Args:
            png_data: PNG file data as bytes
            keyword: tEXt chunk keyword to search for (e.g., 'UmaCard')

        Returns:
            Raw chunk text if found, None when no chunk carries the keyword

        Raises:
            NotAPngError, TruncatedPngError: If the PNG structure is invalid.
                A chunk text that is not valid UTF-8 raises UnicodeDecodeError.
        """
        wanted = keyword.encode('latin-1')

        for chunk in PNGMetadataHandler.iter_chunks(png_data):
            if chunk.chunk_type != TEXT_CHUNK_TYPE:
                continue

            data = png_data[chunk.data_start:chunk.data_start + chunk.length]
            chunk_keyword, _sep, text = data.partition(b"\x00")
            if chunk_keyword == wanted:
                logger.debug(f"Found tEXt chunk with keyword '{keyword}' at offset {chunk.offset}")
                return text.decode('utf-8')

        logger.debug(f"tEXt chunk with keyword '{keyword}' not found")
        return None

    @staticmethod
    def write_text_chunk(png_data: bytes, keyword: str, text: str) -> bytes:
        """
        Embed a tEXt chunk into PNG data, immediately before IEND.

        Args:
            png_data: Original PNG file data as bytes
            keyword: tEXt chunk keyword (e.g., 'UmaCard')
            text: Text to embed, stored as UTF-8

        Returns:
            New PNG data; all original bytes are preserved around the insert

        Raises:
            NotAPngError, TruncatedPngError: If the PNG structure is invalid
        """
        end_offset = None
        for chunk in PNGMetadataHandler.iter_chunks(png_data):
            if chunk.chunk_type == END_CHUNK_TYPE:
                end_offset = chunk.offset

        text_chunk = PNGMetadataHandler.build_text_chunk(keyword, text)
        logger.debug(f"Inserting {len(text_chunk)}-byte tEXt chunk at offset {end_offset}")
        return png_data[:end_offset] + text_chunk + png_data[end_offset:]
