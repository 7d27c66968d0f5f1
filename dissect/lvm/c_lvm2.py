from dissect.cstruct import cstruct

lvm_def = """
struct label_header {
    char    id[8];          /* LABELONE */
    uint64  sector;         /* Sector number of this label */
    uint32  crc;            /* From next field to end of sector */
    uint32  offset;         /* Offset from start of struct to contents */
    char    type[8];        /* LVM2 001 */
};

struct pv_header {
    char    pv_uuid[32];
    uint64  device_size;    /* Bytes */
};

struct disk_locn {
    uint64  offset;         /* Offset in bytes to start sector */
    uint64  size;           /* Bytes */
};

// Metadata area header
struct mda_header {
    uint32  checksum;       /* Checksum of rest of mda_header */
    char    magic[16];      /* To aid scans for metadata */
    uint32  version;
    uint64  start;          /* Absolute start byte of mda_header */
    uint64  size;           /* Size of metadata area */
};

struct raw_locn {
    uint64  offset;         /* Offset in bytes to start sector */
    uint64  size;           /* Bytes */
    uint32  checksum;
    uint32  flags;
};

#define RAW_LOCN_IGNORED    0x00000001
"""

c_lvm = cstruct().load(lvm_def)

SECTOR_SIZE = 512

LABEL_ID = b"LABELONE"
LABEL_SCAN_SECTORS = 4

# The label checksum covers everything after the crc field up to the end of the sector
LABEL_CRC_OFFSET = 20

MDA_HEADER_SIZE = 512
FMTT_MAGIC = b" LVM2 x[5A%r0N*>"

INITIAL_CRC = 0xF597A6CF

STATUS_FLAG_VISIBLE = "VISIBLE"  # lv only
