"""
Markdown to Atlassian Document Format (ADF) conversion.

Only top-level paragraphs, headings and pipe tables are converted. Any other block
(lists, code fences, quotes, rules...) is dropped from the document.
"""

from typing import Any

from markdown_it import MarkdownIt
from markdown_it.token import Token

_MARKDOWN = MarkdownIt("commonmark").enable("table")


def _text_node(text: str, *, strong: bool = False) -> dict[str, Any]:
    node: dict[str, Any] = {"type": "text", "text": text}
    if strong:
        node["marks"] = [{"type": "strong"}]
    return node


def _paragraph(text: str, *, strong: bool = False) -> dict[str, Any]:
    return {"type": "paragraph", "content": [_text_node(text, strong=strong)]}


def _table(tokens: list[Token], start: int) -> tuple[dict[str, Any], int]:
    """Build a table node from tokens[start] (table_open); return it and the index after it."""
    header_row: list[str] = []
    body_rows: list[list[str]] = []
    current: list[str] | None = None
    in_head = False

    i = start + 1
    while i < len(tokens) and tokens[i].type != "table_close":
        token = tokens[i]
        if token.type == "thead_open":
            in_head = True
        elif token.type == "thead_close":
            in_head = False
        elif token.type == "tr_open":
            current = []
        elif token.type == "tr_close" and current is not None:
            if in_head:
                header_row = current
            else:
                body_rows.append(current)
            current = None
        elif token.type == "inline" and current is not None:
            current.append(token.content)
        i += 1

    rows: list[dict[str, Any]] = []
    if header_row:
        rows.append({
            "type": "tableRow",
            "content": [
                {"type": "tableHeader", "content": [_paragraph(cell or "", strong=True)]}
                for cell in header_row
            ],
        })
    for row in body_rows:
        rows.append({
            "type": "tableRow",
            "content": [
                {"type": "tableCell", "content": [_paragraph(cell or "")]} for cell in row
            ],
        })

    return {"type": "table", "content": rows}, i + 1


def markdown_to_adf(markdown: str) -> dict[str, Any]:
    """
    Convert a markdown string to an ADF document.

    Args:
        markdown: The markdown source (issue description).

    Returns:
        dict[str, Any]: ``{"type": "doc", "version": 1, "content": [...]}``
    """
    tokens = _MARKDOWN.parse(markdown or "")
    content: list[dict[str, Any]] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.level != 0:
            i += 1
            continue

        if token.type == "paragraph_open":
            content.append(_paragraph(tokens[i + 1].content))
            i += 3
        elif token.type == "heading_open":
            depth = int(token.tag[1:])
            content.append({
                "type": "heading",
                "attrs": {"level": depth},
                "content": [_text_node(tokens[i + 1].content)],
            })
            i += 3
        elif token.type == "table_open":
            table, i = _table(tokens, i)
            content.append(table)
        else:
            i += 1

    return {"type": "doc", "version": 1, "content": content}
