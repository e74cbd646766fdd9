from __future__ import annotations

import pytest

from web_exec.dynamic import DynamicContentHandler, DynamicPlan, LoadMoreResult, PaginationResult


class ScrollPage:
    """После каждого scrollTo добавляет следующую порцию элементов из plan."""

    def __init__(self, plan):
        self.plan = list(plan)
        self.count = self.plan.pop(0)
        self.scrolls = 0

    def query_selector_all(self, sel):
        return [object()] * self.count

    def evaluate(self, script):
        self.scrolls += 1
        if self.plan:
            self.count += self.plan.pop(0)


class Button:
    def __init__(self, page, disabled=False, visible=True, css=""):
        self.page = page
        self.disabled = disabled
        self.visible = visible
        self.css = css

    def is_disabled(self):
        return self.disabled

    def is_visible(self):
        return self.visible

    def get_attribute(self, name):
        return self.css if name == "class" else None

    def click(self):
        self.page.clicked()


class PagedPage:
    def __init__(self, per_page, last_button=None):
        self.per_page = list(per_page)
        self.page_no = 0
        self.last_button = last_button
        self.clicks = 0
        self.waited = []

    def wait_for_selector(self, sel, timeout=None):
        self.waited.append(timeout)

    def query_selector_all(self, sel):
        return [object()] * self.per_page[self.page_no]

    def query_selector(self, sel):
        if self.page_no + 1 < len(self.per_page):
            return Button(self)
        return self.last_button

    def clicked(self):
        self.clicks += 1
        self.page_no += 1


class LoadMorePage:
    def __init__(self, start, batches):
        self.count = start
        self.batches = list(batches)
        self.clicks = 0

    def query_selector_all(self, sel):
        return [object()] * self.count

    def query_selector(self, sel):
        if not self.batches:
            return Button(self, visible=False)
        return Button(self)

    def clicked(self):
        self.clicks += 1
        self.count += self.batches.pop(0)


def _handler():
    sleeps = []
    return DynamicContentHandler(sleep=sleeps.append), sleeps


def test_infinite_scroll_stops_at_max_items():
    h, sleeps = _handler()
    res = h.handle_infinite_scroll(ScrollPage([10, 10, 10, 10]), ".item", max_items=30)
    assert res.total_items == 30
    assert res.scrolls_performed == 2
    assert res.reached_end is False
    assert res.items_per_scroll == [10, 10, 10]
    assert sleeps == [1.0, 1.0]


def test_infinite_scroll_detects_end_after_three_idle_scrolls():
    h, _ = _handler()
    res = h.handle_infinite_scroll(ScrollPage([5, 5]), ".item", max_items=100)
    assert res.reached_end is True
    assert res.total_items == 10
    assert res.items_per_scroll == [5, 5, 0, 0, 0]


def test_infinite_scroll_respects_max_scrolls():
    h, _ = _handler()
    page = ScrollPage([1] * 50)
    res = h.handle_infinite_scroll(page, ".item", max_items=1000, max_scrolls=4, scroll_delay_ms=10)
    assert res.scrolls_performed == 4
    assert page.scrolls == 4
    assert res.total_items == 5


def test_pagination_until_next_disappears():
    h, sleeps = _handler()
    page = PagedPage([20, 20, 7])
    res = h.handle_pagination(page, ".item", "a.next")
    assert res.pages_visited == 3
    assert res.items_per_page == [20, 20, 7]
    assert res.total_items == 47
    assert sleeps == [2.0, 2.0]
    assert page.waited == [5000, 5000, 5000]


def test_pagination_stops_on_disabled_button():
    h, _ = _handler()
    page = PagedPage([3, 3])
    page.last_button = Button(page, css="btn disabled")
    res = h.handle_pagination(page, ".item", "a.next")
    assert res.pages_visited == 2
    assert page.clicks == 1


def test_pagination_max_pages():
    h, _ = _handler()
    res = h.handle_pagination(PagedPage([1] * 10), ".item", "a.next", max_pages=3)
    assert res.pages_visited == 3
    assert res.total_items == 3


def test_load_more_until_button_hidden():
    h, sleeps = _handler()
    page = LoadMorePage(12, [12, 12, 4])
    res = h.handle_load_more(page, ".item", "button.load-more")
    assert res.clicks_performed == 3
    assert res.items_per_click == [12, 12, 4]
    assert res.total_items == 40
    assert sleeps == [2.0, 2.0, 2.0]


def test_load_more_max_clicks_and_progress_callbacks():
    h, _ = _handler()
    seen = []
    h.on_progress.append(lambda kind, info: seen.append((kind, info["clicks"])))
    res = h.handle_load_more(LoadMorePage(0, [1] * 10), ".item", "button.more", max_clicks=2)
    assert res.clicks_performed == 2
    assert seen == [("load-more", 1), ("load-more", 2)]


def test_plan_dispatches_by_mode():
    h, _ = _handler()
    res = h.run(PagedPage([4, 4]), DynamicPlan("pagination", ".item", "a.next", limit=5))
    assert isinstance(res, PaginationResult)
    assert res.total_items == 8

    res = h.run(LoadMorePage(2, [2]), DynamicPlan("load-more", ".item", "button.more"))
    assert isinstance(res, LoadMoreResult)
    assert res.total_items == 4

    res = h.run(ScrollPage([10, 10, 10]), DynamicPlan("scroll", ".item", limit=15))
    assert res.total_items == 20
    assert res.scrolls_performed == 1


@pytest.mark.parametrize(
    "kw",
    [
        {"mode": "teleport", "item_selector": ".item"},
        {"mode": "scroll", "item_selector": ""},
        {"mode": "load-more", "item_selector": ".item"},
    ],
)
def test_plan_rejects_bad_shapes(kw):
    with pytest.raises(ValueError):
        DynamicPlan(**kw)
