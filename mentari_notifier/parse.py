"""
Parse module for the Mentari Notifier pipeline.

This module handles extracting incomplete coursework from the cached
Mentari course snapshot. The snapshot comes from several portal API
versions, so every logical field is looked up through an ordered list of
aliases and falls back to a default when none is present.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from mentari_notifier.utils import get_logger, is_present, to_text


logger = get_logger("parse")

DEFAULT_BASE_URL = "https://mentari.unpam.ac.id"

# Field aliases, most specific first
COURSE_CODE_FIELDS = ("kode_course", "kodeCourse", "kode_course_section")
COURSE_NAME_FIELDS = ("coursename", "course_name")
COURSE_SECTIONS_FIELDS = ("section", "sections", "data")
SECTION_NAME_FIELDS = ("nama_section", "name", "title")
SECTION_CODE_FIELDS = ("kode_section",)
SECTION_ITEMS_FIELDS = ("sub_section", "items")
ITEM_KIND_FIELDS = ("kode_template", "type")
ITEM_TITLE_FIELDS = ("judul", "title", "name")
ITEM_LINK_FIELDS = ("link",)
ITEM_ID_FIELDS = ("id",)
ITEM_COMPLETION_FIELD = "completion"

DEFAULT_COURSE_NAME = "Mata Kuliah"
DEFAULT_SECTION_NAME = "Pertemuan"
DEFAULT_ITEM_KIND = "ITEM"

# Item kinds with a known deep link
KIND_PRE_TEST = "PRE_TEST"
KIND_POST_TEST = "POST_TEST"
KIND_FORUM = "FORUM_DISKUSI"
KIND_QUESTIONNAIRE = "KUESIONER"


@dataclass
class PendingItem:
    """
    An incomplete coursework item ready for rendering.

    Attributes:
        course_name: Display name of the course.
        course_code: Course code used in portal URLs ("" if unknown).
        section_name: Display name of the section (meeting).
        kind: Item template tag, e.g. PRE_TEST or FORUM_DISKUSI.
        title: Item title.
        url: Deep link into the portal, "" if none could be built.
    """
    course_name: str
    course_code: str
    section_name: str
    kind: str
    title: str
    url: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Convert to the webhook wire representation."""
        return {
            "courseName": self.course_name,
            "kodeCourse": self.course_code,
            "sectionName": self.section_name,
            "type": self.kind,
            "title": self.title,
            "url": self.url,
        }


def _as_record(value: Any) -> Dict[str, Any]:
    """Return value if it is a mapping, otherwise an empty record."""
    return value if isinstance(value, dict) else {}


def first_present(record: Dict[str, Any], fields: Sequence[str], default: Any = None) -> Any:
    """
    Resolve a logical field through its aliases.

    Args:
        record: Source record.
        fields: Candidate field names in priority order.
        default: Value returned when no candidate is present.

    Returns:
        The first value that is not None, "", False or zero.
    """
    for name in fields:
        value = record.get(name)
        if is_present(value):
            return value
    return default


def _text_field(record: Dict[str, Any], fields: Sequence[str], default: str = "") -> str:
    return to_text(first_present(record, fields, default))


def _list_field(record: Dict[str, Any], fields: Sequence[str]) -> List[Any]:
    value = first_present(record, fields)
    return value if isinstance(value, list) else []


def build_item_url(
    kind: str,
    course_code: str,
    item_id: str,
    section_code: str,
    base_url: str = DEFAULT_BASE_URL
) -> str:
    """
    Synthesize a portal deep link for known item kinds.

    Args:
        kind: Item template tag.
        course_code: Course code ("" if unknown).
        item_id: Item identifier ("" if unknown).
        section_code: Section code ("" if unknown).
        base_url: Portal base URL.

    Returns:
        The synthesized URL, or "" when the kind is unknown or an
        identifier is missing.
    """
    if not course_code:
        return ""

    base = base_url.rstrip("/")

    if kind in (KIND_PRE_TEST, KIND_POST_TEST) and item_id:
        return f"{base}/u-courses/{course_code}/exam/{item_id}"
    if kind == KIND_FORUM and item_id:
        return f"{base}/u-courses/{course_code}/forum/{item_id}"
    if kind == KIND_QUESTIONNAIRE and section_code:
        return f"{base}/u-courses/{course_code}/kuesioner/{section_code}"

    return ""


def parse_item(
    item: Any,
    course_name: str,
    course_code: str,
    section_name: str,
    section_code: str,
    base_url: str = DEFAULT_BASE_URL
) -> Optional[PendingItem]:
    """
    Convert one work item into a PendingItem.

    Returns:
        None for completed items, otherwise the PendingItem.
    """
    record = _as_record(item)

    if record.get(ITEM_COMPLETION_FIELD):
        return None

    kind = _text_field(record, ITEM_KIND_FIELDS, DEFAULT_ITEM_KIND)
    title = _text_field(record, ITEM_TITLE_FIELDS, kind)

    url = _text_field(record, ITEM_LINK_FIELDS)
    if not url:
        url = build_item_url(
            kind,
            course_code,
            _text_field(record, ITEM_ID_FIELDS),
            section_code,
            base_url
        )

    return PendingItem(
        course_name=course_name,
        course_code=course_code,
        section_name=section_name,
        kind=kind,
        title=title,
        url=url,
    )


def parse_course(course: Any, base_url: str = DEFAULT_BASE_URL) -> List[PendingItem]:
    """
    Extract pending items from a single course record.

    Args:
        course: Course record from the snapshot.
        base_url: Portal base URL for synthesized links.

    Returns:
        Pending items in section/item order.
    """
    record = _as_record(course)
    course_code = _text_field(record, COURSE_CODE_FIELDS)
    course_name = _text_field(record, COURSE_NAME_FIELDS, DEFAULT_COURSE_NAME)

    items: List[PendingItem] = []

    for section in _list_field(record, COURSE_SECTIONS_FIELDS):
        section_record = _as_record(section)
        section_name = _text_field(section_record, SECTION_NAME_FIELDS, DEFAULT_SECTION_NAME)
        section_code = _text_field(section_record, SECTION_CODE_FIELDS)

        for item in _list_field(section_record, SECTION_ITEMS_FIELDS):
            pending = parse_item(
                item,
                course_name=course_name,
                course_code=course_code,
                section_name=section_name,
                section_code=section_code,
                base_url=base_url
            )
            if pending is not None:
                items.append(pending)

    return items


def extract_pending_items(snapshot: Any, base_url: str = DEFAULT_BASE_URL) -> List[PendingItem]:
    """
    Extract all incomplete items from a course snapshot.

    Never raises: anything other than a list yields an empty result, and
    malformed records fall back to defaults.

    Args:
        snapshot: Decoded course snapshot (expected: list of course records).
        base_url: Portal base URL for synthesized links.

    Returns:
        Pending items in course, section, item order.
    """
    if not isinstance(snapshot, list):
        logger.debug(f"Snapshot is {type(snapshot).__name__}, not a list; nothing to extract")
        return []

    items: List[PendingItem] = []
    for course in snapshot:
        items.extend(parse_course(course, base_url))

    logger.info(f"Extracted {len(items)} pending item(s) from {len(snapshot)} course(s)")

    return items
