"""Extract heading outlines and link sets from article HTML."""

from __future__ import annotations

from bs4 import BeautifulSoup


def heading_structure(content: str) -> dict[str, list[str]]:
    """Return the H2/H3 outline of an article."""
    soup = BeautifulSoup(content or "", "html.parser")
    return {
        level: [tag.get_text(" ", strip=True) for tag in soup.find_all(level)]
        for level in ("h2", "h3")
    }


def link_sets(content: str) -> tuple[list[str], list[str]]:
    """Split anchor targets into (internal, external) URL lists.

    Relative targets are internal; scheme-qualified targets are external.
    Order of first appearance is kept and duplicates are dropped.
    """
    soup = BeautifulSoup(content or "", "html.parser")
    internal: list[str] = []
    external: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:")):
            continue
        bucket = external if href.startswith(("http://", "https://")) else internal
        if href not in bucket:
            bucket.append(href)
    return internal, external
