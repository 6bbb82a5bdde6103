# test_page_cursor.py
import pytest

from postfeed.Sync.Page_Cursor import CursorState, PageCursor, max_pages_for


def test_starts_at_page_one():
    cursor = PageCursor()
    assert cursor.state() == CursorState(next_page=1, has_more=True, page_size=20, max_pages=None)


def test_full_page_advances_and_keeps_going():
    cursor = PageCursor(page_size=20)
    cursor.record_page(accepted=20, received=20)
    assert (cursor.next_page, cursor.has_more) == (2, True)


def test_undersized_page_ends_pagination():
    cursor = PageCursor(page_size=20)
    cursor.record_page(accepted=5, received=5)
    assert (cursor.next_page, cursor.has_more) == (2, False)


def test_rejections_count_towards_page_size():
    # 18 accepted + 2 rejected is still a full page
    cursor = PageCursor(page_size=20)
    cursor.record_page(accepted=18, received=20)
    assert (cursor.next_page, cursor.has_more) == (2, True)


def test_fully_rejected_full_page_does_not_advance():
    cursor = PageCursor(page_size=20)
    cursor.record_page(accepted=0, received=20)
    assert (cursor.next_page, cursor.has_more) == (1, True)


def test_empty_page_ends_pagination_without_advancing():
    cursor = PageCursor(page_size=20)
    cursor.record_page(accepted=0, received=0)
    assert (cursor.next_page, cursor.has_more) == (1, False)


def test_ceiling_stops_after_last_allowed_page():
    cursor = PageCursor(page_size=20, max_pages=2)
    cursor.record_page(accepted=20, received=20)
    assert cursor.has_more
    cursor.record_page(accepted=20, received=20)
    assert (cursor.next_page, cursor.has_more) == (3, False)


def test_reset():
    cursor = PageCursor(page_size=10, max_pages=3)
    cursor.record_page(accepted=3, received=3)
    cursor.reset()
    assert cursor.state() == CursorState(next_page=1, has_more=True, page_size=10, max_pages=3)


def test_state_is_a_frozen_copy():
    cursor = PageCursor()
    state = cursor.state()
    cursor.record_page(accepted=20, received=20)
    assert state.next_page == 1
    with pytest.raises(Exception):
        state.next_page = 5


@pytest.mark.parametrize("page_size, max_pages", [(0, None), (-3, None), (20, 0)])
def test_invalid_configuration(page_size, max_pages):
    with pytest.raises(ValueError):
        PageCursor(page_size=page_size, max_pages=max_pages)


@pytest.mark.parametrize("max_items, page_size, expected", [
    (100, 20, 5),
    (101, 20, 6),
    (19, 20, 1),
    (0, 20, None),
    (-1, 20, None),
])
def test_max_pages_for(max_items, page_size, expected):
    assert max_pages_for(max_items, page_size) == expected
