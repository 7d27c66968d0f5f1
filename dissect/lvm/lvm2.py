from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, BinaryIO

from dissect.lvm.exceptions import LVM2Error
from dissect.lvm.physical import LVM2Device

if TYPE_CHECKING:
    from datetime import datetime

    from dissect.lvm.metadata import Metadata, VolumeGroup

log = logging.getLogger(__name__)
log.setLevel(os.getenv("DISSECT_LOG_LVM", "CRITICAL"))


class LVM2:
    """Logical Volume Manager

    Exposes the volume group described by the metadata of the first device and links its
    physical volumes to the given devices.
    """

    def __init__(self, fh: list[BinaryIO | LVM2Device] | BinaryIO | LVM2Device):
        self.fh = [fh] if not isinstance(fh, list) else fh
        if not self.fh:
            raise ValueError("At least one file-like object is required")

        devices = [LVM2Device(fh) if not isinstance(fh, LVM2Device) else fh for fh in self.fh]
        self.devices = {device.id: device for device in devices}

        self.metadata: Metadata | None = devices[0].metadata
        if self.metadata is None:
            raise LVM2Error(f"No usable metadata area found on {devices[0]}")

        self.contents: str | None = self.metadata.contents
        self.version: int | None = self.metadata.version
        self.description: str | None = self.metadata.description
        self.creation_host: str | None = self.metadata.creation_host
        self.creation_time: datetime | None = self.metadata.creation_time

        vg = list(self.metadata.volume_groups.values())
        if len(vg) != 1:
            raise LVM2Error(f"Found multiple volume groups, expected only one: {vg}")
        self.volume_group = vg[0]
        self.volume_group.attach(self.devices)

        for pv in self.volume_group.pv:
            if pv.dev is None:
                log.debug("Physical volume %s (id=%s) has no matching device", pv.name, pv.id)

    def __repr__(self) -> str:
        return f"<LVM2 vg={self.vg}>"

    @property
    def vg(self) -> VolumeGroup:
        return self.volume_group
