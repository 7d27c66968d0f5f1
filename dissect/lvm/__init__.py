from dissect.lvm.exceptions import (
    BadLabelError,
    Error,
    LexError,
    LVM2Error,
    MetadataAreaCorruptError,
    MetadataParseError,
    ParseError,
    TruncatedReadError,
    UnexpectedShapeError,
)
from dissect.lvm.lvm2 import LVM2
from dissect.lvm.metadata import (
    LogicalVolume,
    Metadata,
    PhysicalVolume,
    Segment,
    VolumeGroup,
)
from dissect.lvm.parser import Array, Scalar, Section, parse_metadata
from dissect.lvm.physical import LVM2Device, MetadataArea, probe

__all__ = [
    "LVM2",
    "Array",
    "BadLabelError",
    "Error",
    "LVM2Device",
    "LVM2Error",
    "LexError",
    "LogicalVolume",
    "Metadata",
    "MetadataArea",
    "MetadataAreaCorruptError",
    "MetadataParseError",
    "ParseError",
    "PhysicalVolume",
    "Scalar",
    "Section",
    "Segment",
    "TruncatedReadError",
    "UnexpectedShapeError",
    "VolumeGroup",
    "parse_metadata",
    "probe",
]
