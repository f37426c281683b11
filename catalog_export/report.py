"""
Report rows and CSV rendering.

Documents are raw API records, and many of the fields the report wants are
optional or nested several levels deep (the like/favorite counters live on
the side-loaded target record). lookup() walks those paths and returns ABSENT
instead of raising, so a sparse record produces empty cells rather than a
failed export.
"""

import csv
import io
import logging
import time
from datetime import datetime, timedelta, timezone

from slugify import slugify

from .api import elapsed_ms

log = logging.getLogger("catalog-export")

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

COLUMNS = [
    "CREATE_DATE", "DOC_ID", "DOC_FOLDER_ROUTE", "DOC_NAME",
    "CREATE_TIME", "UPDATED_TIME", "START", "READ_COUNT", "COMMENT_COUNT",
    "LIKE_COUNT", "FAVORITE_COUNT", "RECOMMENDED_AT",
]
CREATOR_COLUMNS = ["CREATOR_ID", "CREATOR_NAME", "CREATOR_ORGANIZATION"]


class _Absent:
    """Marker for a field that is not in the record at all (as opposed to null)."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "ABSENT"


ABSENT = _Absent()


def lookup(record, path):
    """
    lookup(doc, "relationships.target.data.attributes.like_count")

    Returns ABSENT as soon as a step is missing or is not a mapping.
    """
    current = record
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return ABSENT
        current = current[key]
    return current


def cell(value):
    return "" if value is ABSENT or value is None else value


def now_with_offset(hours, now=None):
    """UTC now shifted by a fixed number of hours, returned naive for formatting."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(tzinfo=None) + timedelta(hours=hours)


def parse_timestamp(value):
    """Accept epoch seconds or ISO-ish strings; anything else is returned as None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc).replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_timestamp(value, offset_hours):
    """
    Source timestamp + offset_hours, formatted. Naive values are taken as UTC.
    Unparseable strings are passed through unchanged so nothing is lost.
    """
    if value is ABSENT or value is None or value == "":
        return ""
    parsed = parse_timestamp(value)
    if parsed is None:
        return value
    return (parsed + timedelta(hours=offset_hours)).strftime(TIME_FORMAT)


def star_flag(value):
    if value is ABSENT or value is None:
        return ""
    return "No" if value == 0 else "Yes"


class ReportAssembler:
    def __init__(self, path_table, report_offset_hours=8, source_offset_hours=8,
                 include_creator=False):
        self.path_table = path_table
        self.report_offset_hours = report_offset_hours
        self.source_offset_hours = source_offset_hours
        self.include_creator = include_creator

    @property
    def header(self):
        if not self.include_creator:
            return list(COLUMNS)
        return COLUMNS[:4] + CREATOR_COLUMNS + COLUMNS[4:]

    def row(self, document, generated_at):
        directory_id = lookup(document, "relationships.directory.data.id")
        row = [
            generated_at,
            cell(lookup(document, "id")),
            self.path_table.get(None if directory_id is ABSENT else directory_id),
            cell(lookup(document, "attributes.name")),
        ]
        if self.include_creator:
            row += [
                cell(lookup(document, "relationships.owner.data.id")),
                cell(lookup(document, "relationships.owner.data.attributes.name")),
                cell(lookup(document, "relationships.owner.data.attributes.organization")),
            ]
        row += [
            format_timestamp(lookup(document, "attributes.created_at"), self.source_offset_hours),
            format_timestamp(lookup(document, "attributes.updated_at"), self.source_offset_hours),
            star_flag(lookup(document, "attributes.is_star")),
            cell(lookup(document, "attributes.read_count")),
            cell(lookup(document, "attributes.comment_count")),
            cell(lookup(document, "relationships.target.data.attributes.like_count")),
            cell(lookup(document, "relationships.target.data.attributes.favorite_count")),
            cell(lookup(document, "attributes.recommended_at")),
        ]
        return row

    def rows(self, documents, now=None):
        generated_at = now_with_offset(self.report_offset_hours, now).strftime(TIME_FORMAT)
        return [self.header] + [self.row(d, generated_at) for d in documents]

    def render(self, documents, now=None):
        """CSV bytes (UTF-8) for the whole report, header row first."""
        begin = time.monotonic()
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="\n").writerows(self.rows(documents, now))
        data = buffer.getvalue().encode("utf-8")
        log.info("Generated report with %d rows in %d ms", len(documents), elapsed_ms(begin))
        return data


def report_file_name(prefix, offset_hours=8, now=None):
    """<prefix>_<YYYYMMDD>.csv, dated in the report's timezone."""
    safe = slugify(str(prefix), max_length=80, separator="_", lowercase=False) or "document"
    return f"{safe}_{now_with_offset(offset_hours, now).strftime('%Y%m%d')}.csv"
