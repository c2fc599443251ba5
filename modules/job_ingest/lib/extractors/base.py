"""
Declarative field matchers for HTML extraction.

A source describes its markup as a list of FieldRule(field, locator, fallback);
apply_rules() evaluates each rule against a BeautifulSoup node and returns the
first non-empty value per field. Adapting to markup drift is a data change.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from bs4 import Tag

Mode = Literal["text", "own_text", "attr", "inner_html", "outer_html", "parent_html"]


@dataclass(frozen=True)
class Locator:
    """
    Where a value lives relative to a root node.

    css:     selector for the target element (relative to root, or to the
             icon's adjacent sibling when `icon` is set; None means "the sibling itself").
    attr:    attribute to read when mode == "attr".
    mode:    how to turn the element into a string.
    icon:    selector of an iconographic marker; the value sits in the element
             following the icon's parent.
    sibling: selector the icon parent's next sibling must match.
    """

    css: str | None = None
    attr: str | None = None
    mode: Mode = "text"
    icon: str | None = None
    sibling: str | None = None

    def find(self, root: Tag) -> Tag | None:
        if self.icon:
            anchor = root.select_one(self.icon)
            if anchor is None or anchor.parent is None:
                return None
            target = next_sibling_matching(anchor.parent, self.sibling)
            if target is None:
                return None
            return target.select_one(self.css) if self.css else target
        if self.css is None:
            return root
        return root.select_one(self.css)

    def read(self, root: Tag) -> str | None:
        el = self.find(root)
        if el is None:
            return None
        return read_element(el, self.mode, self.attr)


@dataclass(frozen=True)
class FieldRule:
    field: str
    locator: Locator
    fallback: Locator | None = None


def next_sibling_matching(el: Tag, selector: str | None) -> Tag | None:
    """The element immediately following `el`, if it matches `selector`."""
    sib = el.find_next_sibling()
    if sib is None:
        return None
    if selector and not sib.css.match(selector):
        return None
    return sib


def read_element(el: Tag, mode: Mode, attr: str | None = None) -> str | None:
    if mode == "text":
        return el.get_text(" ", strip=True)
    if mode == "own_text":
        return " ".join(s.strip() for s in el.find_all(string=True, recursive=False) if s.strip())
    if mode == "attr":
        val = el.get(attr or "")
        if isinstance(val, list):
            val = " ".join(val)
        return val.strip() if isinstance(val, str) else None
    if mode == "inner_html":
        return el.decode_contents().strip()
    if mode == "outer_html":
        return str(el)
    if mode == "parent_html":
        parent = el.parent
        return parent.decode_contents().strip() if isinstance(parent, Tag) else None
    raise ValueError(f"unknown locator mode: {mode!r}")


def apply_rules(root: Tag, rules: Sequence[FieldRule]) -> dict[str, str | None]:
    """Evaluate rules in order; primary locator first, then fallback. Empty strings count as missing."""
    out: dict[str, str | None] = {}
    for rule in rules:
        value = rule.locator.read(root) or None
        if value is None and rule.fallback is not None:
            value = rule.fallback.read(root) or None
        out[rule.field] = value
    return out


def first_matching(root: Tag, locators: Sequence[Locator]) -> str | None:
    """First non-empty value across `locators`, in priority order."""
    for loc in locators:
        value = loc.read(root)
        if value:
            return value
    return None


def missing(values: dict[str, str | None], required: Sequence[str]) -> list[str]:
    return [f for f in required if not values.get(f)]
