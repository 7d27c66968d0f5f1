from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import TYPE_CHECKING, BinaryIO

from dissect.lvm.c_lvm2 import (
    FMTT_MAGIC,
    INITIAL_CRC,
    LABEL_CRC_OFFSET,
    LABEL_ID,
    LABEL_SCAN_SECTORS,
    MDA_HEADER_SIZE,
    SECTOR_SIZE,
    c_lvm,
)
from dissect.lvm.exceptions import (
    BadLabelError,
    LVM2Error,
    MetadataAreaCorruptError,
    TruncatedReadError,
)
from dissect.lvm.metadata import Metadata
from dissect.lvm.parser import parse_metadata

if TYPE_CHECKING:
    from collections.abc import Iterator

    from dissect.cstruct.types import Instance, Structure

    from dissect.lvm.parser import Section

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_LVM", "CRITICAL"))

CRC_TABLE = [
    0x00000000, 0x1DB71064, 0x3B6E20C8, 0x26D930AC,
    0x76DC4190, 0x6B6B51F4, 0x4DB26158, 0x5005713C,
    0xEDB88320, 0xF00F9344, 0xD6D6A3E8, 0xCB61B38C,
    0x9B64C2B0, 0x86D3D2D4, 0xA00AE278, 0xBDBDF21C,
]  # fmt: skip


def probe(fh: BinaryIO) -> bool:
    """Return whether the label sector of ``fh`` starts with the LVM2 label signature.

    The cursor of ``fh`` is moved back to the start of the device afterwards, also when reading fails.
    """
    with restore_offset(fh, 0):
        fh.seek(SECTOR_SIZE)
        buf = fh.read(SECTOR_SIZE)
        return len(buf) == SECTOR_SIZE and buf[: len(LABEL_ID)] == LABEL_ID


class LVM2Device:
    """A single LVM2 physical volume as it is found on disk.

    Decodes the label, the physical volume header with its data and metadata area descriptors,
    and the metadata text of every metadata area.

    Args:
        fh: The file-like object of the physical volume.
        strict: Raise on the first metadata area that fails to decode. If ``False``, the error is
                stored on the :class:`MetadataArea` and the remaining areas are still decoded.
    """

    def __init__(self, fh: BinaryIO, strict: bool = True):
        self.fh = fh

        with restore_offset(fh):
            self.label, self.label_offset = find_label(fh)

            fh.seek(self.label_offset + self.label.offset)
            self.header = read_struct(fh, c_lvm.pv_header)
            # The identifier is opaque, keep undecodable bytes instead of failing
            self.id = self.header.pv_uuid.decode(errors="surrogateescape")
            self.size = self.header.device_size

            # Order is significant, the data area table precedes the metadata area table
            self.data_areas = read_descriptors(fh, c_lvm.disk_locn)
            self.metadata_area_descriptors = read_descriptors(fh, c_lvm.disk_locn)

            self.metadata_areas: list[MetadataArea] = []
            for desc in self.metadata_area_descriptors:
                try:
                    area = MetadataArea(fh, desc.offset)
                except LVM2Error as e:
                    if strict:
                        raise
                    log.debug("Failed to decode metadata area at %#x", desc.offset, exc_info=e)
                    area = MetadataArea.failed(desc.offset, e)
                self.metadata_areas.append(area)

    def __repr__(self) -> str:
        return f"<LVM2Device id={self.id} size={self.size:#x}>"

    @property
    def metadata(self) -> Metadata | None:
        """The metadata of the first metadata area that decoded successfully."""
        for area in self.metadata_areas:
            if area.metadata is not None:
                return area.metadata
        return None

    def verify(self) -> dict[str, bool]:
        """Verify the checksums of the label and of every metadata area.

        Returns a mapping of a description of the checked region to whether its checksum matches.
        """
        result = {}
        with restore_offset(self.fh):
            self.fh.seek(self.label_offset + LABEL_CRC_OFFSET)
            result["label"] = calc_crc(self.fh.read(SECTOR_SIZE - LABEL_CRC_OFFSET)) == self.label.crc

            for area in self.metadata_areas:
                if area.header is None:
                    continue
                result.update(area.verify(self.fh))

        return result


class MetadataArea:
    """One on-disk copy of the volume group metadata.

    Args:
        fh: The file-like object of the physical volume.
        offset: The absolute offset of the metadata area header.
    """

    def __init__(self, fh: BinaryIO, offset: int):
        self.offset = offset
        self.error: LVM2Error | None = None
        self.raw: str | None = None
        self.document: Section | None = None
        self.metadata: Metadata | None = None

        fh.seek(offset)
        try:
            self.header = read_struct(fh, c_lvm.mda_header)
            self.raw_locations = read_descriptors(fh, c_lvm.raw_locn)
        except TruncatedReadError as e:
            raise MetadataAreaCorruptError(f"Unreadable metadata area header: {e}", offset) from e

        if self.header.magic != FMTT_MAGIC:
            raise MetadataAreaCorruptError(
                f"Invalid metadata area header magic: {self.header.magic!r}, expected {FMTT_MAGIC!r}", offset
            )

        for locn in self.raw_locations:
            if locn.size == 0:
                continue

            if locn.flags & c_lvm.RAW_LOCN_IGNORED:
                log.debug("Skipping ignored raw location at %#x in metadata area %#x", locn.offset, offset)
                continue

            # The stored text is followed by a delimiter byte which is not part of the metadata
            fh.seek(self.header.start + locn.offset)
            buf = fh.read(locn.size - 1)
            if len(buf) != locn.size - 1:
                raise TruncatedReadError("metadata text", self.header.start + locn.offset, locn.size - 1, len(buf))

            # Later raw locations are newer, only the last one is kept
            self.raw = buf.decode(errors="surrogateescape")
            self.document = parse_metadata(self.raw)
            self.metadata = Metadata.from_document(self.document, raw=self.raw)

    def __repr__(self) -> str:
        return f"<MetadataArea offset={self.offset:#x} locations={len(self.raw_locations)} error={self.error}>"

    @classmethod
    def failed(cls, offset: int, error: LVM2Error) -> MetadataArea:
        inst = cls.__new__(cls)
        inst.offset = offset
        inst.error = error
        inst.header = None
        inst.raw_locations = []
        inst.raw = None
        inst.document = None
        inst.metadata = None
        return inst

    def verify(self, fh: BinaryIO) -> dict[str, bool]:
        result = {}

        fh.seek(self.offset + 4)
        key = f"mda_header@{self.offset:#x}"
        result[key] = calc_crc(fh.read(MDA_HEADER_SIZE - 4)) == self.header.checksum

        for locn in self.raw_locations:
            if locn.size == 0:
                continue
            fh.seek(self.header.start + locn.offset)
            key = f"raw_locn@{self.header.start + locn.offset:#x}"
            result[key] = calc_crc(fh.read(locn.size)) == locn.checksum

        return result


@contextmanager
def restore_offset(fh: BinaryIO, offset: int | None = None) -> Iterator[BinaryIO]:
    """Restore the position of ``fh`` when leaving the context.

    Args:
        fh: The file-like object.
        offset: The absolute offset to restore to. Defaults to the current position.
    """
    offset = fh.tell() if offset is None else offset
    try:
        yield fh
    finally:
        fh.seek(offset)


def read_struct(fh: BinaryIO, structure: Structure) -> Instance:
    """Read exactly one ``structure`` from the current position of ``fh``.

    Raises:
        TruncatedReadError: If less than ``len(structure)`` bytes are available.
    """
    offset = fh.tell()
    size = len(structure)
    buf = fh.read(size)
    if len(buf) != size:
        raise TruncatedReadError(structure.name, offset, size, len(buf))
    return structure(buf)


def read_descriptors(fh: BinaryIO, structure: Structure) -> list[Instance]:
    """Read a table of descriptors up to the terminating entry with a zero offset and size.

    The terminating entry is not part of the result.
    """
    descriptors = []
    while True:
        desc = read_struct(fh, structure)
        if desc.offset == 0 and desc.size == 0:
            break
        descriptors.append(desc)

    return descriptors


def read_label(fh: BinaryIO, offset: int = SECTOR_SIZE) -> Instance:
    """Read the label header at ``offset``.

    Raises:
        BadLabelError: If the label can't be read or has an invalid signature.
    """
    fh.seek(offset)
    try:
        label = read_struct(fh, c_lvm.label_header)
    except TruncatedReadError as e:
        raise BadLabelError(f"Can't read physical volume label header at {offset:#x}") from e

    if label.id != LABEL_ID:
        raise BadLabelError(f"Invalid physical volume label at {offset:#x}: {label.id!r}, expected {LABEL_ID!r}")

    return label


def find_label(fh: BinaryIO) -> tuple[Instance, int]:
    """Find the label header in the first sectors of ``fh``, starting with the second sector.

    Returns the label header and its absolute offset.
    """
    for sector in sorted(range(LABEL_SCAN_SECTORS), key=lambda i: i != 1):
        offset = sector * SECTOR_SIZE
        try:
            return read_label(fh, offset), offset
        except BadLabelError:  # noqa: PERF203
            continue

    raise BadLabelError("Can't find physical volume label header")


def calc_crc(buf: bytes, crc: int = INITIAL_CRC) -> int:
    """Calculate the CRC-32 variant LVM2 uses for its on-disk checksums."""
    for b in buf:
        crc ^= b
        crc = (crc >> 4) ^ CRC_TABLE[crc & 0xF]
        crc = (crc >> 4) ^ CRC_TABLE[crc & 0xF]
    return crc
