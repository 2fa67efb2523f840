from datetime import datetime

import pytest

from course_helpers import (
    normalize_grade, build_access_entries, clean_school_ids, ChapterIdMap, build_schedule_rows,
    normalize_question_type, derive_contents, parse_datetime
)
from joining_code_helpers import school_initials, grade_abbreviation
from validators import ValidationError

SCHOOL_A = '0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10'
SCHOOL_B = '6a1d2c4b-8e9f-4a3b-b2c1-d0e9f8a7b6c5'


@pytest.mark.parametrize('raw, expected', [
    ('Grade 5', 'Grade 5'),
    ('grade 5', 'Grade 5'),
    ('5', 'Grade 5'),
    ('05', 'Grade 5'),
    ('pre-k', 'Pre-K'),
    ('KG', 'Kindergarten'),
    ('nursery', 'Nursery'),
    ('', ''),
    (None, ''),
])
def test_normalize_grade(raw, expected):
    assert normalize_grade(raw) == expected


def test_access_entries_dedupe_normalized_grades():
    entries = build_access_entries([SCHOOL_A, SCHOOL_B], ['5', 'Grade 5', 'grade 6'])
    assert entries == [
        (SCHOOL_A, 'Grade 5'), (SCHOOL_A, 'Grade 6'),
        (SCHOOL_B, 'Grade 5'), (SCHOOL_B, 'Grade 6'),
    ]


def test_clean_school_ids():
    assert clean_school_ids([SCHOOL_A, 'bogus', SCHOOL_A, None]) == [SCHOOL_A]


def test_chapter_id_map_resolution():
    id_map = ChapterIdMap()
    id_map.register('db-1', 'temp-1', 1, 0)
    id_map.register('db-2', 'TEMP-2', 2, 1)

    assert id_map.resolve('temp-1') == 'db-1'
    assert id_map.resolve('TEMP-2') == 'db-2'
    assert id_map.resolve('temp-2') == 'db-2'
    assert id_map.resolve('db-2') == 'db-2'
    assert id_map.resolve('2') == 'db-2'
    assert id_map.resolve(None, order_index=2) == 'db-2'
    assert id_map.resolve('missing') == 'db-1'
    assert id_map.as_dict() == {'temp-1': 'db-1', 'TEMP-2': 'db-2'}


def test_chapter_id_map_falls_back_to_array_position():
    id_map = ChapterIdMap()
    id_map.register('db-1', 'temp-1', 10, 0)
    id_map.register('db-2', 'temp-2', 20, 1)

    assert id_map.resolve('1') == 'db-2'
    assert id_map.resolve('20') == 'db-2'
    assert id_map.resolve(None, order_index=10) == 'db-1'
    assert id_map.resolve(None, order_index='x', position=1) == 'db-2'
    assert id_map.resolve(None, position='1') == 'db-2'
    assert id_map.resolve(None, position=7) == 'db-1'


def test_empty_chapter_map_resolves_nothing():
    assert ChapterIdMap().resolve('temp-1') is None


def test_weekly_schedule():
    rows = build_schedule_rows('course', ['c1', 'c2', 'c3'], {
        'release_type': 'Weekly', 'start_date': '2026-01-05T00:00:00Z',
    })
    assert [r.release_date for r in rows] == [
        datetime(2026, 1, 5), datetime(2026, 1, 12), datetime(2026, 1, 19)
    ]
    assert [r.next_release for r in rows] == [datetime(2026, 1, 12), datetime(2026, 1, 19), None]
    assert [r.chapter_id for r in rows] == ['c1', 'c2', 'c3']


def test_daily_and_biweekly_intervals():
    daily = build_schedule_rows('course', ['c1', 'c2'], {'release_type': 'Daily', 'start_date': '2026-01-05'})
    assert daily[1].release_date == datetime(2026, 1, 6)

    biweekly = build_schedule_rows('course', ['c1', 'c2'], {'release_type': 'Bi-weekly', 'start_date': '2026-01-05'})
    assert biweekly[1].release_date == datetime(2026, 1, 19)


def test_unknown_release_type_is_rejected():
    with pytest.raises(ValidationError) as exc:
        build_schedule_rows('course', ['c1'], {'release_type': 'Monthly'})
    assert exc.value.field == 'scheduling.release_type'


def test_parse_datetime_converts_to_utc():
    assert parse_datetime('2026-01-05T05:30:00+05:30') == datetime(2026, 1, 5, 0, 0)
    with pytest.raises(ValidationError):
        parse_datetime('next tuesday')


def test_question_type_aliases():
    assert normalize_question_type('Multiple Choice') == 'mcq'
    assert normalize_question_type('fill-in-the-blank') == 'fill_blank'
    assert normalize_question_type('TrueFalse') == 'true_false'
    assert normalize_question_type('riddle') == 'mcq'
    assert normalize_question_type(None) == 'mcq'


def test_legacy_videos_and_materials_become_contents():
    contents = derive_contents({
        'videos': [{'chapter_id': 'temp-1', 'title': 'Intro', 'video_url': 'https://v.example.com/1'}],
        'materials': [{'chapter_id': 'temp-1', 'file_type': 'PDF', 'file_url': 'https://f.example.com/1.pdf'}],
    })
    assert [c['content_type'] for c in contents] == ['video_link', 'pdf']
    assert contents[1]['title'] == 'Material 1'

    assert derive_contents({}) is None
    assert derive_contents({'chapter_contents': []}) == []


def test_joining_code_parts():
    assert school_initials('Green Valley Public School') == 'GVPS'
    assert school_initials('') == 'SCH'
    assert grade_abbreviation('5') == 'G5'
    assert grade_abbreviation('pre-k') == 'PK'
    assert grade_abbreviation('kg') == 'K'
