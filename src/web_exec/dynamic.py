from __future__ import annotations

"""dynamic.py — догрузка контента на уже открытой странице (Playwright sync Page).

Три паттерна: infinite scroll, пагинация кнопкой "next", кнопка "load more".
Страница уже открыта BrowserEngine'ом; здесь только "крутим" её и считаем элементы.
BrowserEngine.execute(dynamic=DynamicPlan(...)) вызывает run() до снятия page.content().
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

NO_NEW_ITEMS_LIMIT = 3
DYNAMIC_MODES = ("scroll", "pagination", "load-more")


@dataclass
class ScrollResult:
    total_items: int
    scrolls_performed: int
    items_per_scroll: list[int] = field(default_factory=list)
    reached_end: bool = False
    success: bool = True


@dataclass
class PaginationResult:
    total_items: int
    pages_visited: int
    items_per_page: list[int] = field(default_factory=list)
    success: bool = True


@dataclass
class LoadMoreResult:
    total_items: int
    clicks_performed: int
    items_per_click: list[int] = field(default_factory=list)
    success: bool = True


DynamicResult = Union[ScrollResult, PaginationResult, LoadMoreResult]


@dataclass(frozen=True)
class DynamicPlan:
    """Что догружать: mode + селектор элементов (+ кнопка next/load-more) + лимит."""

    mode: str
    item_selector: str
    control_selector: Optional[str] = None
    limit: Optional[int] = None  # max_items / max_pages / max_clicks

    def __post_init__(self) -> None:
        if self.mode not in DYNAMIC_MODES:
            raise ValueError(f"unknown dynamic mode {self.mode!r}, expected one of {DYNAMIC_MODES}")
        if not self.item_selector:
            raise ValueError("dynamic plan requires item_selector")
        if self.mode != "scroll" and not self.control_selector:
            raise ValueError(f"dynamic mode {self.mode!r} requires control_selector")


def _count(page: Any, selector: str) -> int:
    return len(page.query_selector_all(selector) or [])


def _is_disabled(el: Any) -> bool:
    if el.is_disabled():
        return True
    classes = (el.get_attribute("class") or "").split()
    return "disabled" in classes


class DynamicContentHandler:
    def __init__(
        self,
        *,
        scroll_delay_ms: int = 1000,
        max_scrolls: int = 20,
        item_timeout_ms: int = 5000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.scroll_delay_ms = int(scroll_delay_ms)
        self.max_scrolls = int(max_scrolls)
        self.item_timeout_ms = int(item_timeout_ms)
        self._sleep = sleep
        self.on_progress: list[Callable[[str, dict[str, int]], None]] = []

    def _progress(self, kind: str, **info: int) -> None:
        for cb in self.on_progress:
            cb(kind, info)

    def handle_infinite_scroll(
        self,
        page: Any,
        item_selector: str,
        *,
        max_items: int = 100,
        max_scrolls: Optional[int] = None,
        scroll_delay_ms: Optional[int] = None,
    ) -> ScrollResult:
        limit = self.max_scrolls if max_scrolls is None else int(max_scrolls)
        delay = self.scroll_delay_ms if scroll_delay_ms is None else int(scroll_delay_ms)

        previous = 0
        scrolls = 0
        idle = 0
        per_scroll: list[int] = []

        while scrolls < limit:
            current = _count(page, item_selector)
            new = current - previous
            per_scroll.append(new)
            self._progress("scroll", scroll=scrolls, items=current, new=new)

            if current >= max_items:
                return ScrollResult(current, scrolls, per_scroll, reached_end=False)

            if new == 0:
                idle += 1
                if idle >= NO_NEW_ITEMS_LIMIT:
                    return ScrollResult(current, scrolls, per_scroll, reached_end=True)
            else:
                idle = 0

            previous = current
            page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            scrolls += 1
            self._sleep(delay / 1000.0)

        return ScrollResult(_count(page, item_selector), scrolls, per_scroll, reached_end=False)

    def handle_pagination(
        self,
        page: Any,
        item_selector: str,
        next_selector: str,
        *,
        max_pages: int = 10,
        page_delay_ms: int = 2000,
    ) -> PaginationResult:
        per_page: list[int] = []
        current_page = 1
        while current_page <= max_pages:
            page.wait_for_selector(item_selector, timeout=self.item_timeout_ms)
            n = _count(page, item_selector)
            per_page.append(n)
            self._progress("page", page=current_page, items=n)

            btn = page.query_selector(next_selector)
            if btn is None or _is_disabled(btn):
                return PaginationResult(sum(per_page), current_page, per_page)

            btn.click()
            current_page += 1
            self._sleep(page_delay_ms / 1000.0)

        return PaginationResult(sum(per_page), current_page - 1, per_page)

    def handle_load_more(
        self,
        page: Any,
        item_selector: str,
        button_selector: str,
        *,
        max_clicks: int = 10,
        click_delay_ms: int = 2000,
    ) -> LoadMoreResult:
        clicks = 0
        per_click: list[int] = []
        previous = _count(page, item_selector)

        while clicks < max_clicks:
            btn = page.query_selector(button_selector)
            if btn is None or not btn.is_visible():
                break
            btn.click()
            clicks += 1
            self._sleep(click_delay_ms / 1000.0)

            current = _count(page, item_selector)
            per_click.append(current - previous)
            self._progress("load-more", clicks=clicks, items=current, new=current - previous)
            previous = current

        return LoadMoreResult(_count(page, item_selector), clicks, per_click)

    def run(self, page: Any, plan: DynamicPlan) -> DynamicResult:
        if plan.mode == "scroll":
            if plan.limit is None:
                return self.handle_infinite_scroll(page, plan.item_selector)
            return self.handle_infinite_scroll(page, plan.item_selector, max_items=plan.limit)
        if plan.mode == "pagination":
            return self.handle_pagination(page, plan.item_selector, str(plan.control_selector), max_pages=plan.limit or 10)
        return self.handle_load_more(page, plan.item_selector, str(plan.control_selector), max_clicks=plan.limit or 10)
