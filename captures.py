import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional


CAPTURE_PREFIX = "cap_"
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"

# 8 date digits, literal T, 6 time digits; a trailing suffix is allowed
# as long as it does not continue the digit run.
TIMESTAMP_RE = re.compile(r"^([0-9]{4})([0-9]{2})([0-9]{2})T([0-9]{2})([0-9]{2})([0-9]{2})(?![0-9])")
DATE_SELECTOR_RE = re.compile(r"([0-9]{4})([0-9]{2})([0-9]{2})")


# ==========================================================
#  Errors
# ==========================================================

class MalformedName(ValueError):
    pass


class InvalidDateSelector(ValueError):
    pass


@dataclass(frozen=True)
class DirectoryUnavailable:
    directory: str
    reason: str

    @property
    def message(self) -> str:
        return f"Capture directory does not exist or is not readable: {self.directory}"


# ==========================================================
#  Data model
# ==========================================================

class DateKey(NamedTuple):
    year: int
    month: int
    day: int

    @property
    def compact(self) -> str:
        return f"{self.year:04d}{self.month:02d}{self.day:02d}"

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


class CaptureTime(NamedTuple):
    """
    Wall-clock timestamp exactly as encoded in a capture name.

    Not a datetime: day-of-month is only checked against 1-31, so values
    like Feb 31 are kept as written instead of being rejected or rolled over.
    """
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int

    @property
    def date(self) -> DateKey:
        return DateKey(self.year, self.month, self.day)

    @property
    def label(self) -> str:
        return f"{self.date.label} {self.hour:02d}:{self.minute:02d}:{self.second:02d}"


@dataclass(frozen=True)
class CaptureRecord:
    path: Path
    captured_at: CaptureTime

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def date(self) -> DateKey:
        return self.captured_at.date

    @property
    def media_kind(self) -> str:
        return media_kind(self.path)

    def url(self, base_url: str) -> str:
        return base_url + "/" + self.name


@dataclass
class ScanResult:
    records: List[CaptureRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[DirectoryUnavailable] = None


@dataclass
class GalleryState:
    records: List[CaptureRecord]
    dates: List[DateKey]
    active_date: Optional[DateKey]
    error: Optional[DirectoryUnavailable] = None

    @property
    def active_records(self) -> List[CaptureRecord]:
        if self.active_date is None:
            return []
        return records_for_date(self.records, self.active_date)


# ==========================================================
#  Parsing
# ==========================================================

def _check_date_ranges(month: int, day: int) -> bool:
    return 1 <= month <= 12 and 1 <= day <= 31


def parse_capture_name(name: str) -> CaptureTime:
    """
    Parse "cap_YYYYMMDDTHHMMSS[...]" into a CaptureTime.

    The second "_"-separated field holds the timestamp. Anything after the
    six time digits (nanosecond suffix, extension) is ignored.
    Raises MalformedName when the prefix or field is missing or out of range.
    """
    if not name.startswith(CAPTURE_PREFIX):
        raise MalformedName(f"missing {CAPTURE_PREFIX!r} prefix in {name!r}")

    parts = name.split("_")
    if len(parts) < 2:
        raise MalformedName(f"no timestamp field in {name!r}")

    m = TIMESTAMP_RE.match(parts[1])
    if not m:
        raise MalformedName(f"timestamp field {parts[1]!r} does not match YYYYMMDDTHHMMSS")

    year, month, day, hour, minute, second = (int(g) for g in m.groups())
    if not _check_date_ranges(month, day):
        raise MalformedName(f"date out of range in {name!r}")
    if hour > 23 or minute > 59 or second > 59:
        raise MalformedName(f"time out of range in {name!r}")

    return CaptureTime(year, month, day, hour, minute, second)


def parse_date_selector(value: str) -> DateKey:
    m = DATE_SELECTOR_RE.fullmatch(value)
    if not m:
        raise InvalidDateSelector(f"expected YYYYMMDD, got {value!r}")
    year, month, day = (int(g) for g in m.groups())
    if not _check_date_ranges(month, day):
        raise InvalidDateSelector(f"date out of range: {value!r}")
    return DateKey(year, month, day)


def media_kind(path) -> str:
    if Path(path).suffix.lower() in IMAGE_EXTENSIONS:
        return MEDIA_IMAGE
    return MEDIA_VIDEO


# ==========================================================
#  Directory scan
# ==========================================================

def scan_capture_dir(directory) -> ScanResult:
    """
    Build a point-in-time index of the capture files in `directory`.

    Entries without the "cap_" prefix and non-files are ignored. Names that
    fail to parse are logged and listed in `skipped`. A missing or unlistable
    directory is reported through `error` with an empty record list.
    """
    folder = Path(directory)
    result = ScanResult()

    try:
        entries = [p for p in folder.iterdir() if p.name.startswith(CAPTURE_PREFIX)]
    except OSError as e:
        logging.error("Cannot list capture directory %s: %s", folder, e)
        result.error = DirectoryUnavailable(str(directory), str(e))
        return result

    for path in entries:
        if not path.is_file():
            continue
        try:
            captured_at = parse_capture_name(path.name)
        except MalformedName as e:
            logging.warning("Skipping capture file with malformed name: %s (%s)", path.name, e)
            result.skipped.append(path.name)
            continue
        result.records.append(CaptureRecord(path=path, captured_at=captured_at))

    logging.info(
        "Indexed %d capture file(s) in %s, skipped %d",
        len(result.records), folder, len(result.skipped)
    )
    return result


# ==========================================================
#  Grouping and selection
# ==========================================================

def sort_records(records: Iterable[CaptureRecord]) -> List[CaptureRecord]:
    # Most recent first; equal timestamps fall back to path order.
    by_path = sorted(records, key=lambda r: str(r.path))
    return sorted(by_path, key=lambda r: r.captured_at, reverse=True)


def distinct_dates(records: Iterable[CaptureRecord]) -> List[DateKey]:
    return list(dict.fromkeys(r.date for r in records))


def records_for_date(records: Iterable[CaptureRecord], date: DateKey) -> List[CaptureRecord]:
    return [r for r in records if r.date == date]


def select_active_date(records: List[CaptureRecord], selector: Optional[str]) -> Optional[DateKey]:
    """
    Resolve the date to display.

    A valid YYYYMMDD selector wins even if nothing was captured that day.
    Otherwise the date of the first (most recent) record is used, or None
    for an empty index. `records` must already be sorted.
    """
    if selector:
        try:
            return parse_date_selector(selector)
        except InvalidDateSelector as e:
            logging.debug("Ignoring date selector: %s", e)

    if records:
        return records[0].date
    return None


def build_gallery_state(capture_dir, selector: Optional[str] = None) -> GalleryState:
    scan = scan_capture_dir(capture_dir)
    records = sort_records(scan.records)
    return GalleryState(
        records=records,
        dates=distinct_dates(records),
        active_date=select_active_date(records, selector),
        error=scan.error,
    )
