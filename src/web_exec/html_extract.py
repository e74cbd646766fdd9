from __future__ import annotations

"""html_extract.py — мини CSS-селекторы поверх html.parser (без lxml/bs4).

Поддержка: tag, #id, .class, [attr], [attr=value], потомок через пробел.
Этого хватает для мониторинга "селектор ещё на месте?" и для вытаскивания текстов
после HTTP-уровня. Невалидный селектор = 0 совпадений, не исключение.
"""

from dataclasses import dataclass, field
from html.parser import HTMLParser
import re
from typing import Iterable, Optional, Sequence

_WS_RE = re.compile(r"\s+")

# void-элементы никогда не получают закрывающий тег
_VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})


@dataclass
class _Node:
    tag: str
    attrs: dict[str, str]
    parent: Optional[int]
    children: list[int] = field(default_factory=list)
    text: list[str] = field(default_factory=list)


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.nodes: list[_Node] = [_Node(tag="#root", attrs={}, parent=None)]
        self.open: list[int] = [0]

    def _add(self, tag: str, attrs: Sequence[tuple[str, Optional[str]]], closed: bool) -> None:
        parent = self.open[-1]
        idx = len(self.nodes)
        self.nodes.append(_Node(
            tag=(tag or "").lower(),
            attrs={str(k).lower(): ("" if v is None else str(v)) for k, v in attrs if k},
            parent=parent,
        ))
        self.nodes[parent].children.append(idx)
        if not closed and self.nodes[idx].tag not in _VOID_TAGS:
            self.open.append(idx)

    def handle_starttag(self, tag, attrs):
        self._add(tag, attrs, closed=False)

    def handle_startendtag(self, tag, attrs):
        self._add(tag, attrs, closed=True)

    def handle_endtag(self, tag):
        t = (tag or "").lower()
        # закрываем до ближайшего открытого такого же тега; битый HTML не роняет дерево
        for pos in range(len(self.open) - 1, 0, -1):
            if self.nodes[self.open[pos]].tag == t:
                del self.open[pos:]
                return

    def handle_data(self, data):
        if data:
            self.nodes[self.open[-1]].text.append(data)


@dataclass(frozen=True)
class _Compound:
    tag: Optional[str] = None
    id_value: Optional[str] = None
    classes: tuple[str, ...] = ()
    attrs: tuple[tuple[str, Optional[str]], ...] = ()

    def matches(self, node: _Node) -> bool:
        if self.tag not in (None, "*") and node.tag != self.tag:
            return False
        if self.id_value is not None and node.attrs.get("id") != self.id_value:
            return False
        if self.classes:
            have = set((node.attrs.get("class") or "").split())
            if not have.issuperset(self.classes):
                return False
        for key, want in self.attrs:
            if key not in node.attrs:
                return False
            if want is not None and node.attrs[key] != want:
                return False
        return True


_COMPOUND_RE = re.compile(
    r"""
    (?P<tag>^[A-Za-z*][\w-]*)
    | \#(?P<id>[\w-]+)
    | \.(?P<cls>[\w-]+)
    | \[\s*(?P<attr>[\w-]+)\s*(?:=\s*(?P<val>"[^"]*"|'[^']*'|[^\]\s]+)\s*)?\]
    """,
    re.VERBOSE,
)


def _parse_compound(token: str) -> Optional[_Compound]:
    pos = 0
    tag = id_value = None
    classes: list[str] = []
    attrs: list[tuple[str, Optional[str]]] = []
    while pos < len(token):
        m = _COMPOUND_RE.match(token, pos)
        if m is None or m.end() == pos:
            return None
        if m.group("tag"):
            if pos != 0:
                return None
            tag = m.group("tag").lower()
        elif m.group("id"):
            id_value = m.group("id")
        elif m.group("cls"):
            classes.append(m.group("cls"))
        else:
            val = m.group("val")
            if val is not None and val[:1] in ("'", '"'):
                val = val[1:-1]
            attrs.append((m.group("attr").lower(), val))
        pos = m.end()
    if tag is None and id_value is None and not classes and not attrs:
        return None
    return _Compound(tag=tag, id_value=id_value, classes=tuple(classes), attrs=tuple(attrs))


def _tokens(selector: str) -> list[str]:
    # пробел внутри [...] не разделяет шаги
    out: list[str] = []
    buf = ""
    depth = 0
    for ch in (selector or "").strip():
        if ch == "[":
            depth += 1
        elif ch == "]" and depth:
            depth -= 1
        if ch.isspace() and depth == 0:
            if buf:
                out.append(buf)
            buf = ""
            continue
        buf += ch
    if buf:
        out.append(buf)
    return out


def _descendants(nodes: list[_Node], start: int) -> Iterable[int]:
    stack = list(reversed(nodes[start].children))
    while stack:
        idx = stack.pop()
        yield idx
        stack.extend(reversed(nodes[idx].children))


class HtmlDocument:
    """Parsed HTML that can be queried several times without reparsing."""

    def __init__(self, html: str) -> None:
        b = _TreeBuilder()
        b.feed(html if isinstance(html, str) else "")
        b.close()
        self._nodes = b.nodes

    def _select(self, selector: str) -> list[int]:
        chain = [_parse_compound(t) for t in _tokens(selector)]
        if not chain or any(c is None for c in chain):
            return []
        current = [0]
        for step in chain:
            found: list[int] = []
            seen: set[int] = set()
            for ctx in current:
                for idx in _descendants(self._nodes, ctx):
                    if idx not in seen and step.matches(self._nodes[idx]):
                        seen.add(idx)
                        found.append(idx)
            current = found
            if not current:
                break
        return current

    def _text(self, idx: int) -> str:
        parts = [p.strip() for p in self._nodes[idx].text if p.strip()]
        for child in _descendants(self._nodes, idx):
            parts.extend(p.strip() for p in self._nodes[child].text if p.strip())
        return _WS_RE.sub(" ", " ".join(parts)).strip()

    def count(self, selector: str) -> int:
        return len(self._select(selector))

    def texts(self, selector: str) -> list[str]:
        return [self._text(i) for i in self._select(selector)]

    def attr(self, selector: str, name: str) -> Optional[str]:
        for idx in self._select(selector):
            v = self._nodes[idx].attrs.get(name.lower())
            if v is not None:
                return v
        return None


def count_matches(html: str, selector: str) -> int:
    return HtmlDocument(html).count(selector)


def count_selectors(html: str, selectors: Sequence[str]) -> dict[str, int]:
    doc = HtmlDocument(html)
    return {s: doc.count(s) for s in selectors}


def extract_selectors(html: str, selectors: Sequence[str]) -> dict[str, list[str]]:
    doc = HtmlDocument(html)
    return {s: doc.texts(s) for s in selectors}


def html_lang(html: str) -> Optional[str]:
    v = HtmlDocument(html).attr("html", "lang")
    return v.strip().lower() if v else None
