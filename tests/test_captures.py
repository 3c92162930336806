import logging
from pathlib import Path

import pytest

from captures import (
    MEDIA_IMAGE, MEDIA_VIDEO, CaptureRecord, CaptureTime, DateKey,
    MalformedName, build_gallery_state, distinct_dates, media_kind,
    parse_capture_name, parse_date_selector, InvalidDateSelector,
    records_for_date, scan_capture_dir, select_active_date, sort_records,
)


def record(name):
    return CaptureRecord(path=Path("/captures") / name, captured_at=parse_capture_name(name))


# ----------------------------------------------------------
#  Filename parsing
# ----------------------------------------------------------

@pytest.mark.parametrize("name, expected", [
    ("cap_20230101T120000.jpg", (2023, 1, 1, 12, 0, 0)),
    ("cap_19991231T235959.png", (1999, 12, 31, 23, 59, 59)),
    ("cap_20240709T010203_000123456.jpg", (2024, 7, 9, 1, 2, 3)),
    ("cap_20230101T120000", (2023, 1, 1, 12, 0, 0)),
])
def test_parse_capture_name_recovers_fields(name, expected):
    assert tuple(parse_capture_name(name)) == expected


@pytest.mark.parametrize("name", [
    "cap",
    "capture.jpg",
    "cap_.jpg",
    "cap_badname.jpg",
    "cap_2023010T120000.jpg",
    "cap_20230101T12000.jpg",
    "cap_20230101T1200000.jpg",
    "cap_20230101-120000.jpg",
    "cap_20231301T120000.jpg",
    "cap_20230100T120000.jpg",
    "cap_20230132T120000.jpg",
    "cap_20230101T240000.jpg",
    "cap_20230101T126000.jpg",
    "cap_20230101T120060.jpg",
    "foo_20230101T120000.jpg",
    "20230101T120000.jpg",
    "cap_\u0662\u0660\u0662\u0663\u0660\u0661\u0660\u0661T\u0661\u0662\u0660\u0660\u0660\u0660.jpg",
    "cap_20230101T12000\u0660.jpg",
])
def test_parse_capture_name_rejects_malformed(name):
    with pytest.raises(MalformedName):
        parse_capture_name(name)


def test_parse_capture_name_keeps_impossible_day_of_month():
    captured = parse_capture_name("cap_20230231T080000.jpg")
    assert captured.date == DateKey(2023, 2, 31)
    assert captured.label == "2023-02-31 08:00:00"


def test_malformed_name_is_a_value_error():
    with pytest.raises(ValueError):
        parse_capture_name("cap_nope")


# ----------------------------------------------------------
#  Media classification
# ----------------------------------------------------------

@pytest.mark.parametrize("path, kind", [
    ("a.JPG", MEDIA_IMAGE),
    ("a.jpeg", MEDIA_IMAGE),
    ("a.png", MEDIA_IMAGE),
    ("a.ogv", MEDIA_VIDEO),
    ("a.mp4", MEDIA_VIDEO),
    ("a", MEDIA_VIDEO),
])
def test_media_kind(path, kind):
    assert media_kind(path) == kind


def test_record_url_concatenates_base_and_name():
    r = record("cap_20230101T120000.jpg")
    assert r.url("https://example.com/cam") == "https://example.com/cam/cap_20230101T120000.jpg"


# ----------------------------------------------------------
#  Directory scan
# ----------------------------------------------------------

def test_scan_ignores_non_capture_entries(capture_dir):
    (capture_dir / "cap_20230103T000000").mkdir()
    result = scan_capture_dir(capture_dir)

    assert result.error is None
    assert sorted(r.name for r in result.records) == [
        "cap_20230101T120000.jpg",
        "cap_20230101T130000.mp4",
        "cap_20230102T090000.png",
    ]
    assert result.skipped == []


def test_scan_skips_malformed_names_and_keeps_the_rest(capture_dir, caplog):
    (capture_dir / "cap_badname.jpg").write_bytes(b"x")
    (capture_dir / "cap_2023010T120000.jpg").write_bytes(b"x")

    with caplog.at_level(logging.WARNING):
        result = scan_capture_dir(capture_dir)

    assert len(result.records) == 3
    assert sorted(result.skipped) == ["cap_2023010T120000.jpg", "cap_badname.jpg"]
    assert "cap_badname.jpg" in caplog.text


def test_scan_missing_directory_reports_error(tmp_path):
    missing = tmp_path / "nope"
    result = scan_capture_dir(missing)

    assert result.records == []
    assert result.error is not None
    assert result.error.directory == str(missing)
    assert str(missing) in result.error.message


def test_scan_file_instead_of_directory_reports_error(tmp_path):
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x")
    result = scan_capture_dir(not_a_dir)

    assert result.records == []
    assert result.error is not None


# ----------------------------------------------------------
#  Sorting, grouping and selection
# ----------------------------------------------------------

def test_sort_most_recent_first_with_path_tiebreak():
    records = [
        record("cap_20230101T120000.jpg"),
        record("cap_20230102T090000_b.png"),
        record("cap_20230101T130000.mp4"),
        record("cap_20230102T090000_a.png"),
    ]
    names = [r.name for r in sort_records(records)]
    assert names == [
        "cap_20230102T090000_a.png",
        "cap_20230102T090000_b.png",
        "cap_20230101T130000.mp4",
        "cap_20230101T120000.jpg",
    ]


def test_sort_is_idempotent():
    records = [
        record("cap_20230101T120000.jpg"),
        record("cap_20221231T235959.jpg"),
        record("cap_20230102T090000.png"),
    ]
    once = sort_records(records)
    assert sort_records(once) == once


def test_distinct_dates_descending_without_duplicates():
    records = sort_records([
        record("cap_20230101T120000.jpg"),
        record("cap_20230102T090000.png"),
        record("cap_20230101T130000.mp4"),
        record("cap_20221231T080000.jpg"),
    ])
    assert distinct_dates(records) == [
        DateKey(2023, 1, 2),
        DateKey(2023, 1, 1),
        DateKey(2022, 12, 31),
    ]


def test_parse_date_selector():
    assert parse_date_selector("20230101") == DateKey(2023, 1, 1)
    for bad in ("2023011", "2023-01-01", "20231301", "abcdefgh", "",
                "20230101\n", "\u0662\u0660\u0662\u0663\u0660\u0661\u0660\u0661"):
        with pytest.raises(InvalidDateSelector):
            parse_date_selector(bad)


def test_select_active_date_uses_valid_selector_even_without_records():
    records = sort_records([record("cap_20230101T120000.jpg")])
    active = select_active_date(records, "20240505")

    assert active == DateKey(2024, 5, 5)
    assert records_for_date(records, active) == []


@pytest.mark.parametrize("selector", [None, "", "garbage", "20231399"])
def test_select_active_date_falls_back_to_most_recent(selector):
    records = sort_records([
        record("cap_20230101T120000.jpg"),
        record("cap_20230102T090000.png"),
    ])
    assert select_active_date(records, selector) == DateKey(2023, 1, 2)


def test_select_active_date_on_empty_index():
    assert select_active_date([], None) is None
    assert select_active_date([], "garbage") is None


# ----------------------------------------------------------
#  End-to-end gallery state
# ----------------------------------------------------------

def test_gallery_state_default_date(capture_dir):
    state = build_gallery_state(capture_dir)

    assert len(state.records) == 3
    assert [d.label for d in state.dates] == ["2023-01-02", "2023-01-01"]
    assert state.active_date == DateKey(2023, 1, 2)
    assert [r.name for r in state.active_records] == ["cap_20230102T090000.png"]


def test_gallery_state_selected_date(capture_dir):
    state = build_gallery_state(capture_dir, "20230101")

    assert [(r.captured_at.hour, r.media_kind) for r in state.active_records] == [
        (13, MEDIA_VIDEO),
        (12, MEDIA_IMAGE),
    ]


def test_gallery_state_only_malformed_names(tmp_path):
    (tmp_path / "cap_badname.jpg").write_bytes(b"x")
    state = build_gallery_state(tmp_path)

    assert state.error is None
    assert state.records == []
    assert state.dates == []
    assert state.active_date is None
    assert state.active_records == []


def test_gallery_state_missing_directory(tmp_path):
    state = build_gallery_state(tmp_path / "missing", "20230101")

    assert state.error is not None
    assert state.records == []
    assert state.dates == []
    assert state.active_date == DateKey(2023, 1, 1)
    assert state.active_records == []


def test_capture_time_orders_like_wall_clock():
    assert CaptureTime(2023, 1, 1, 23, 0, 0) < CaptureTime(2023, 1, 2, 0, 0, 0)
