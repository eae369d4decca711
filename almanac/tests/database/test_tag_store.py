"""Tests for tag aggregation."""

from sqlalchemy import text


def _counts(db) -> dict[str, int]:
    return {t.tag: t.count for t in db.tags.list_tags()}


def _set_raw_tags(db, event_id: int, raw: str | None) -> None:
    with db.engine.begin() as conn:
        conn.execute(
            text("UPDATE events SET tags = :raw WHERE id = :id"), {"raw": raw, "id": event_id}
        )


def test_counts_lowercased_tags(db, make_event):
    make_event(tags=["Lightning", "bitcoin"])
    make_event(tags=["lightning"])
    assert _counts(db) == {"bitcoin": 1, "lightning": 2}


def test_sorted_alphabetically(db, make_event):
    make_event(tags=["zebra", "apple", "mango"])
    assert [t.tag for t in db.tags.list_tags()] == ["apple", "mango", "zebra"]


def test_duplicate_on_one_event_counts_twice(db, make_event):
    make_event(tags=["Lightning", "lightning"])
    assert _counts(db) == {"lightning": 2}


def test_non_ascii_tags_fold_case(db, make_event):
    make_event(tags=["Биткоин"])
    make_event(tags=["биткоин"])
    assert _counts(db) == {"биткоин": 2}


def test_empty_database(db):
    assert db.tags.list_tags() == []


def test_skips_null_empty_and_blank(db, make_event):
    make_event(tags=None)
    make_event(tags="")
    make_event(tags=[])
    make_event(tags=["", "   ", "\t", "real"])
    assert _counts(db) == {"real": 1}


def test_malformed_rows_do_not_break_aggregation(db, make_event):
    broken = make_event(tags=["placeholder"])
    _set_raw_tags(db, broken.id, "not-json")
    make_event(tags=["ok"])
    assert _counts(db) == {"ok": 1}


def test_non_array_json_is_skipped(db, make_event):
    make_event(tags='{"tag": "object"}')
    make_event(tags='"just a string"')
    make_event(tags="42")
    assert _counts(db) == {}


def test_only_malformed_rows(db, make_event):
    make_event(tags="not-json")
    assert db.tags.list_tags() == []
