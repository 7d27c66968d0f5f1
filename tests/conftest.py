from __future__ import annotations

import io
import struct
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, Callable

import pytest

from dissect.lvm.c_lvm2 import FMTT_MAGIC, LABEL_CRC_OFFSET, MDA_HEADER_SIZE, SECTOR_SIZE
from dissect.lvm.physical import calc_crc

if TYPE_CHECKING:
    from collections.abc import Iterator

PV_ID = "oT1Vnu-0YXa-8iGq-Fjnk-bSkj-Ye5m-hVFwCx"
DEVICE_SIZE = 0x800000

MDA_OFFSET = 0x1000
MDA_SIZE = 0xFF000
DATA_OFFSET = 0x100000

METADATA = """\
vg_test {
id = "8HfEjs-9DNH-0dy1-U5u8-EYBF-Vce4-8BcSWU"
seqno = 2
format = "lvm2"
status = ["RESIZEABLE", "READ", "WRITE"]
flags = []
extent_size = 8192
max_lv = 0
max_pv = 0
metadata_copies = 0

physical_volumes {

pv0 {
id = "oT1Vnu-0YXa-8iGq-Fjnk-bSkj-Ye5m-hVFwCx"
device = "/dev/loop0"

device_id_type = "devname"
device_id = "/dev/loop0"
status = ["ALLOCATABLE"]
flags = []
dev_size = 16384
pe_start = 2048
pe_count = 1
}
}

logical_volumes {

lv_test {
id = "TnYdWo-zRE9-wf2T-5nt0-M1aD-vtoP-fASCxK"
status = ["READ", "WRITE", "VISIBLE"]
flags = []
creation_time = 1669120211\t# 2022-11-22 12:30:11 +0000
creation_host = "localhost"
segment_count = 1

segment1 {
start_extent = 0
extent_count = 1

type = "striped"
stripe_count = 1\t# linear

stripes = [
"pv0", 0
]
}
}
}

}
# Generated by LVM2 version 2.03.16(2) (2022-05-18): Tue Nov 22 12:30:11 2022

contents = "Text Format Volume Group"
version = 1

description = "Write from lvcreate -n lv_test -L 4M vg_test."

creation_host = "localhost"\t# Linux localhost 6.0.7 #1 SMP PREEMPT_DYNAMIC
creation_time = 1669120211\t# Tue Nov 22 12:30:11 2022
"""


@dataclass
class Location:
    """A raw location descriptor in a synthetic metadata area.

    If ``text`` is given it is written at ``offset`` followed by a NUL byte, and ``size``
    defaults to the length of the text including that byte.
    """

    text: str | None = None
    offset: int = MDA_HEADER_SIZE
    size: int | None = None
    flags: int = 0
    checksum: int | None = None


@dataclass
class Area:
    locations: list[Location] = field(default_factory=list)
    magic: bytes = FMTT_MAGIC


def build_pv(
    areas: list[Area] | None = None,
    pv_id: str = PV_ID,
    device_size: int = DEVICE_SIZE,
    data_areas: list[tuple[int, int]] | None = None,
    label_sector: int = 1,
) -> bytes:
    """Build a physical volume image with a label, a PV header and metadata areas."""
    areas = [Area([Location(METADATA)])] if areas is None else areas
    data_areas = [(DATA_OFFSET, 0)] if data_areas is None else data_areas

    buf = bytearray(DATA_OFFSET + len(areas) * MDA_SIZE)

    mda_descriptors = []
    for i, area in enumerate(areas):
        start = MDA_OFFSET + i * MDA_SIZE
        mda_descriptors.append((start, MDA_SIZE))

        raw_locns = b""
        for location in area.locations:
            size = location.size
            if location.text is not None:
                text = location.text.encode() + b"\x00"
                buf[start + location.offset : start + location.offset + len(text)] = text
                size = len(text) if size is None else size
            size = size or 0
            checksum = location.checksum
            if checksum is None:
                checksum = calc_crc(buf[start + location.offset : start + location.offset + size])
            raw_locns += struct.pack("<QQII", location.offset, size, checksum, location.flags)
        raw_locns += b"\x00" * 24

        header = area.magic + struct.pack("<IQQ", 1, start, MDA_SIZE) + raw_locns
        header = header.ljust(MDA_HEADER_SIZE - 4, b"\x00")
        buf[start : start + MDA_HEADER_SIZE] = struct.pack("<I", calc_crc(header)) + header

    pv_header = pv_id.replace("-", "").encode() + struct.pack("<Q", device_size)
    for offset, size in data_areas:
        pv_header += struct.pack("<QQ", offset, size)
    pv_header += b"\x00" * 16
    for offset, size in mda_descriptors:
        pv_header += struct.pack("<QQ", offset, size)
    pv_header += b"\x00" * 16

    sector = (struct.pack("<I", 32) + b"LVM2 001" + pv_header).ljust(SECTOR_SIZE - LABEL_CRC_OFFSET, b"\x00")
    label = b"LABELONE" + struct.pack("<QI", label_sector, calc_crc(sector)) + sector

    label_offset = label_sector * SECTOR_SIZE
    buf[label_offset : label_offset + SECTOR_SIZE] = label
    return bytes(buf)


@pytest.fixture
def make_pv() -> Callable[..., bytes]:
    return build_pv


@pytest.fixture
def lvm() -> Iterator[BinaryIO]:
    yield io.BytesIO(build_pv())


@pytest.fixture
def lvm_two_copies() -> Iterator[BinaryIO]:
    yield io.BytesIO(build_pv([Area([Location(METADATA)]), Area([Location(METADATA)])]))
