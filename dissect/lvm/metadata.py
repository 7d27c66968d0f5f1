from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003
from types import UnionType  # novermin
from typing import TYPE_CHECKING, Any, get_args, get_origin, get_type_hints

from dissect.util import ts

from dissect.lvm.c_lvm2 import SECTOR_SIZE, STATUS_FLAG_VISIBLE
from dissect.lvm.exceptions import UnexpectedShapeError
from dissect.lvm.parser import Section  # noqa: TC001

if TYPE_CHECKING:
    from dissect.lvm.physical import LVM2Device


@dataclass(init=False)
class MetaBase:
    """Base class for the typed projection of a metadata section.

    Every annotated public field is looked up by name in the section. Fields annotated
    with ``| None`` are optional, all others are required. Keys without a matching field
    are kept in :attr:`properties`.
    """

    # Internal fields
    _path: str
    _properties: dict[str, Any]

    @classmethod
    def from_dict(cls, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> MetaBase:
        inst = cls()
        inst._from_dict(obj, name=name, parent=parent)
        return inst

    @property
    def properties(self) -> dict[str, Any]:
        """Keys of this section that have no typed field."""
        return self._properties

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        self._path = ".".join(p for p in (parent._path if parent else None, name) if p)

        if not isinstance(obj, dict):
            raise UnexpectedShapeError(f"Expected a section, found {type(obj).__name__}", self._path)

        hints = get_type_hints(self.__class__)
        for field_name, field_type in hints.items():
            if field_name.startswith("_"):
                continue

            type_ = get_origin(field_type)

            if type_ is UnionType and field_type == field_type | None:
                value = obj.get(field_name)
                field_type = get_args(field_type)[0]
                type_ = get_origin(field_type)
            elif field_name in obj:
                value = obj[field_name]
            else:
                raise UnexpectedShapeError(f"Missing required key {field_name!r}", self._path)

            if type_ is dict and issubclass((value_type := get_args(field_type)[1]), MetaBase):
                if value is not None and not isinstance(value, dict):
                    raise UnexpectedShapeError(f"Expected {field_name!r} to be a section", self._path)
                value = {k: value_type.from_dict(v, name=k, parent=self) for k, v in (value or {}).items()}

            setattr(self, field_name, value)

        self._properties = {k: v for k, v in obj.items() if k not in hints}


@dataclass(init=False)
class Metadata(MetaBase):
    """The decoded metadata text of one metadata area.

    Holds the top-level descriptive keys and every volume group section.
    """

    contents: str | None
    version: int | None
    description: str | None
    creation_host: str | None
    creation_time: datetime | None

    # Internal fields
    _volume_groups: dict[str, VolumeGroup]
    _raw: str | None
    _document: Section | None

    def __repr__(self) -> str:
        return f"<Metadata volume_groups={list(self.volume_groups)} creation_time={self.creation_time}>"

    @classmethod
    def from_document(cls, document: Section, raw: str | None = None) -> Metadata:
        inst = cls.from_dict(document.to_dict())
        inst._raw = raw
        inst._document = document
        return inst

    @property
    def volume_groups(self) -> dict[str, VolumeGroup]:
        return self._volume_groups

    @property
    def vg(self) -> VolumeGroup:
        """The volume group of this metadata, if there is exactly one."""
        if len(self._volume_groups) != 1:
            raise UnexpectedShapeError(
                f"Expected exactly one volume group, found {list(self._volume_groups)}", self._path
            )
        return next(iter(self._volume_groups.values()))

    @property
    def raw(self) -> str | None:
        return self._raw

    @property
    def document(self) -> Section | None:
        return self._document

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self._raw = None
        self._document = None

        if self.creation_time is not None:
            self.creation_time = ts.from_unix(self.creation_time)

        self._volume_groups = {
            key: VolumeGroup.from_dict(value, name=key, parent=self)
            for key, value in obj.items()
            if isinstance(value, dict)
        }
        if not self._volume_groups:
            raise UnexpectedShapeError("No volume group section found", self._path)

        self._properties = {k: v for k, v in self._properties.items() if k not in self._volume_groups}


@dataclass(init=False)
class VolumeGroup(MetaBase):
    id: str
    seqno: int
    status: list[str]
    flags: list[str]
    extent_size: int
    max_lv: int
    max_pv: int
    physical_volumes: dict[str, PhysicalVolume]

    logical_volumes: dict[str, LogicalVolume] | None
    system_id: str | None
    allocation_policy: str | None
    profile: str | None
    metadata_copies: int | None
    tags: list[str] | None
    historical_logical_volumes: dict[str, HistoricalLogicalVolume] | None
    format: str | None
    lock_type: str | None
    lock_args: str | None

    # Internal fields
    _name: str

    def __repr__(self) -> str:
        return f"<VolumeGroup name={self.name} id={self.id}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def pv(self) -> list[PhysicalVolume]:
        return list(self.physical_volumes.values())

    @property
    def lv(self) -> list[LogicalVolume]:
        return list(self.logical_volumes.values())

    def attach(self, devices: dict[str, LVM2Device]) -> None:
        for pv in self.physical_volumes.values():
            pv._dev = devices.get(pv.id.replace("-", ""))

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self._name = name


@dataclass(init=False)
class PhysicalVolume(MetaBase):
    id: str
    status: list[str]
    pe_start: int
    pe_count: int

    dev_size: int | None
    device: str | None
    device_id: str | None
    device_id_type: str | None
    ba_start: int | None
    ba_size: int | None
    tags: list[str] | None

    # Internal fields
    _name: str
    _volume_group: VolumeGroup

    def __repr__(self) -> str:
        return f"<PhysicalVolume name={self.name} id={self.id}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def vg(self) -> VolumeGroup:
        return self._volume_group

    @property
    def volume_group(self) -> VolumeGroup:
        return self._volume_group

    @property
    def dev(self) -> LVM2Device | None:
        return self._dev

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self._name = name
        self._volume_group = parent
        self._dev = None


@dataclass(init=False)
class LogicalVolume(MetaBase):
    id: str
    status: list[str]
    flags: list[str]
    segment_count: int

    creation_time: datetime | None
    creation_host: str | None
    lock_args: str | None
    allocation_policy: str | None
    profile: str | None
    read_ahead: int | None
    tags: list[str] | None

    # Internal fields
    _name: str
    _volume_group: VolumeGroup
    _segments: list[Segment]

    def __repr__(self) -> str:
        return f"<LogicalVolume name={self.name} id={self.id} segments={len(self.segments)}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def vg(self) -> VolumeGroup:
        return self._volume_group

    @property
    def volume_group(self) -> VolumeGroup:
        return self._volume_group

    @property
    def segments(self) -> list[Segment]:
        return self._segments

    @property
    def is_visible(self) -> bool:
        return STATUS_FLAG_VISIBLE in self.status

    @property
    def type(self) -> str | None:
        return self.segments[0].type if len(self.segments) else None

    @property
    def size(self) -> int:
        """Size in bytes, the sum of all segment extents."""
        extent_size = self._volume_group.extent_size * SECTOR_SIZE
        return sum(segment.extent_count for segment in self.segments) * extent_size

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self._name = name
        self._volume_group = parent
        self._segments = [Segment.from_dict(v, name=k, parent=self) for k, v in obj.items() if isinstance(v, dict)]
        self._properties = {k: v for k, v in self._properties.items() if not isinstance(v, dict)}

        if self.segment_count != len(self._segments):
            raise UnexpectedShapeError(
                f"Expected {self.segment_count} segments, found {len(self._segments)}", self._path
            )

        if self.creation_time is not None:
            self.creation_time = ts.from_unix(self.creation_time)


@dataclass(init=False)
class HistoricalLogicalVolume(MetaBase):
    id: str
    name: str | None
    creation_time: datetime | None
    removal_time: datetime | None
    origin: str | None
    descendants: list[str] | None

    # Internal fields
    _volume_group: VolumeGroup

    def __repr__(self) -> str:
        return f"<HistoricalLogicalVolume name={self.name} id={self.id} removal_time={self.removal_time}>"

    @property
    def vg(self) -> VolumeGroup:
        return self._volume_group

    @property
    def volume_group(self) -> VolumeGroup:
        return self._volume_group

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self.name = self.name or name
        self._volume_group = parent

        if self.creation_time:
            self.creation_time = ts.from_unix(self.creation_time)

        if self.removal_time:
            self.removal_time = ts.from_unix(self.removal_time)


@dataclass(init=False)
class Segment(MetaBase):
    start_extent: int
    extent_count: int
    type: str

    reshape_count: int | None
    data_copies: int | None
    tags: list[str] | None

    # Internal fields
    _name: str
    _logical_volume: LogicalVolume
    _flags: list[str]

    def __repr__(self) -> str:
        fields = (
            f"start_extent={self.start_extent} extent_count={self.extent_count} type={self.type} flags={self.flags}"
        )
        return f"<{self.__class__.__name__} {fields}>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def lv(self) -> LogicalVolume:
        return self._logical_volume

    @property
    def logical_volume(self) -> LogicalVolume:
        return self._logical_volume

    @property
    def flags(self) -> list[str]:
        return self._flags

    @classmethod
    def from_dict(cls, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> Segment:
        if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
            path = ".".join(p for p in (parent._path if parent else None, name) if p)
            raise UnexpectedShapeError("Missing required key 'type'", path)

        type = obj["type"].split("+", 1)[0]
        return super(Segment, SEGMENT_TYPES.get(type, Segment)).from_dict(obj, name=name, parent=parent)

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self.type, *self._flags = self.type.split("+")
        self._name = name
        self._logical_volume = parent


def _pairs(values: list) -> list[tuple]:
    return [tuple(values[i : i + 2]) for i in range(0, len(values), 2)]


@dataclass(init=False)
class StripedSegment(Segment):
    stripe_count: int
    stripe_size: int | None
    stripes: list[tuple[str, int]]

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self.stripes = _pairs(self.stripes)


@dataclass(init=False)
class MirrorSegment(Segment):
    mirror_count: int
    mirrors: list[tuple[str, int]]

    # Only written while a pvmove is in progress
    extents_moved: int | None
    region_size: int | None
    mirror_log: str | None

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)
        self.mirrors = _pairs(self.mirrors)


@dataclass(init=False)
class SnapshotSegment(Segment):
    chunk_size: int
    cow_store: str

    # Exactly one of these is written, depending on whether a merge is pending
    origin: str | None
    merging_store: str | None


@dataclass(init=False)
class ThinSegment(Segment):
    thin_pool: str
    transaction_id: int
    device_id: int

    origin: str | None
    merge: str | None
    external_origin: str | None


@dataclass(init=False)
class ThinPoolSegment(Segment):
    metadata: str
    pool: str
    transaction_id: int
    chunk_size: int

    discards: str | None
    zero_new_blocks: int | None
    crop_metadata: int | None


@dataclass(init=False)
class CacheSegment(Segment):
    cache_pool: str
    origin: str

    cleaner: int | None
    chunk_size: int | None
    cache_mode: str | None
    policy: str | None
    policy_settings: dict[str, int] | None
    metadata_format: int | None
    metadata_start: int | None
    metadata_len: int | None
    data_start: int | None
    data_len: int | None
    metadata_id: str | None
    data_id: str | None


@dataclass(init=False)
class CachePoolSegment(Segment):
    data: str
    metadata: str

    metadata_format: int | None
    chunk_size: int | None
    cache_mode: str | None
    policy: str | None
    policy_settings: dict[str, int] | None


@dataclass(init=False)
class WriteCacheSegment(Segment):
    origin: str
    writecache: str
    writecache_block_size: int

    high_watermark: int | None
    low_watermark: int | None
    writeback_jobs: int | None
    autocommit_blocks: int | None
    autocommit_time: int | None
    fua: int | None
    nofua: int | None
    cleaner: int | None
    max_age: int | None
    metadata_only: int | None
    pause_writeback: int | None
    writecache_setting_key: str | None
    writecache_setting_val: str | None


@dataclass(init=False)
class IntegritySegment(Segment):
    origin: str
    data_sectors: int
    mode: str
    tag_size: int

    # Settings are only written when they differ from the kernel defaults
    block_size: int | None
    internal_hash: str | None
    meta_dev: str | None
    recalculate: int | None
    journal_sectors: int | None
    interleave_sectors: int | None
    buffer_sectors: int | None
    journal_watermark: int | None
    commit_time: int | None
    bitmap_flush_interval: int | None
    sectors_per_bit: int | None


@dataclass(init=False)
class ErrorSegment(Segment):
    pass


@dataclass(init=False)
class FreeSegment(Segment):
    pass


@dataclass(init=False)
class ZeroSegment(Segment):
    pass


@dataclass(init=False)
class VdoSegment(Segment):
    vdo_pool: str
    vdo_offset: int


@dataclass(init=False)
class VdoPoolSegment(Segment):
    data: str
    header_size: int
    virtual_extents: int

    use_compression: int | None
    use_deduplication: int | None
    use_metadata_hints: int | None
    minimum_io_size: int | None
    block_map_cache_size_mb: int | None
    block_map_era_length: int | None
    use_sparse_index: int | None
    index_memory_size_mb: int | None
    max_discard: int | None
    slab_size_mb: int | None
    ack_threads: int | None
    bio_threads: int | None
    bio_rotation: int | None
    cpu_threads: int | None
    hash_zone_threads: int | None
    logical_threads: int | None
    physical_threads: int | None
    write_policy: str | None


@dataclass(init=False)
class RAIDSegment(Segment):
    """A RAID segment.

    ``raid0`` and ``raid0_meta`` write ``stripe_count`` and ``raid0_lvs``, every other level
    writes ``device_count`` and ``raids``. All remaining settings are only written when set.
    """

    device_count: int | None
    stripe_count: int | None
    region_size: int | None
    stripe_size: int | None
    writebehind: int | None
    min_recovery_rate: int | None
    max_recovery_rate: int | None
    data_offset: int | None
    raids: list[tuple[str, str]] | None
    raid0_lvs: list[str] | None

    def __repr__(self) -> str:
        return f"<RAIDSegment type={self.type} devices={self.devices}>"

    @property
    def devices(self) -> int:
        return self.device_count if self.device_count is not None else self.stripe_count

    def _from_dict(self, obj: dict, name: str | None = None, parent: MetaBase | None = None) -> None:
        super()._from_dict(obj, name=name, parent=parent)

        # Pairs of metadata and data sub-LVs
        if self.raids:
            self.raids = _pairs(self.raids)


RAID_TYPES = (
    "raid0",
    "raid0_meta",
    "raid1",
    "raid10",
    "raid10_near",
    "raid4",
    "raid5",
    "raid5_n",
    "raid5_la",
    "raid5_ls",
    "raid5_ra",
    "raid5_rs",
    "raid6",
    "raid6_nc",
    "raid6_nr",
    "raid6_zr",
    "raid6_la_6",
    "raid6_ls_6",
    "raid6_ra_6",
    "raid6_rs_6",
    "raid6_n_6",
)

SEGMENT_TYPES: dict[str, type[Segment]] = {
    "linear": StripedSegment,
    "striped": StripedSegment,
    "mirror": MirrorSegment,
    "snapshot": SnapshotSegment,
    "thin": ThinSegment,
    "thin-pool": ThinPoolSegment,
    "cache": CacheSegment,
    "cache-pool": CachePoolSegment,
    "writecache": WriteCacheSegment,
    "integrity": IntegritySegment,
    "error": ErrorSegment,
    "free": FreeSegment,
    "zero": ZeroSegment,
    "vdo": VdoSegment,
    "vdo-pool": VdoPoolSegment,
    "raid": RAIDSegment,
    **dict.fromkeys(RAID_TYPES, RAIDSegment),
}
