import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union
from bs4 import BeautifulSoup


TEXT_LABEL = "--- Text Content ---"
HTML_LABEL = "--- HTML Content ---"


@dataclass
class Leaf:
    mime_type: str
    data: Optional[bytes] = None


@dataclass
class Branch:
    mime_type: str
    children: list = field(default_factory=list)


Part = Union[Leaf, Branch]


def _decode_body(data: Optional[str]) -> Optional[bytes]:
    if not data:
        return None
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded.encode("ASCII"))
    except (binascii.Error, ValueError):
        return None


def _node_for(raw: dict) -> Part:
    mime_type = (raw.get("mimeType") or "").lower()
    if raw.get("parts"):
        return Branch(mime_type=mime_type)
    return Leaf(mime_type=mime_type, data=_decode_body((raw.get("body") or {}).get("data")))


def part_from_payload(payload: dict) -> Part:
    """
    Build a Part tree from a Gmail `format=full` payload.
    Built with an explicit stack so deeply nested messages cannot hit the recursion limit.
    """
    root = _node_for(payload or {})
    stack = [(payload or {}, root)]
    while stack:
        raw, node = stack.pop()
        if isinstance(node, Branch):
            for child_raw in raw.get("parts") or []:
                child = _node_for(child_raw)
                node.children.append(child)
                stack.append((child_raw, child))
    return root


def iter_leaves(part: Part) -> Iterator[Leaf]:
    """Yield leaves in document order."""
    stack = [part]
    while stack:
        node = stack.pop()
        if isinstance(node, Leaf):
            yield node
        else:
            stack.extend(reversed(node.children))


def clean_email_body(html: str) -> str:
    # Parse HTML
    soup = BeautifulSoup(html, "lxml")

    # Get visible text
    text = soup.get_text(separator="\n")

    # Remove duplicate consecutive lines
    lines = text.splitlines()
    deduped = []
    seen = set()
    for line in lines:
        line_clean = line.strip()
        if line_clean and line_clean not in seen:
            deduped.append(line_clean)
            seen.add(line_clean)

    # Join lines and normalize spaces
    cleaned = "\n".join(deduped)
    cleaned = re.sub(r"\s+\n", "\n", cleaned)
    cleaned = re.sub(r"\n+", "\n", cleaned)

    return cleaned.strip()


def extract_text(part: Part) -> str:
    """
    Concatenate every text/plain and text/html leaf, each under its label.
    Leaves without body data are ignored.
    """
    chunks = []
    for leaf in iter_leaves(part):
        if not leaf.data:
            continue
        if leaf.mime_type == "text/plain":
            chunks.append(f"\n{TEXT_LABEL}\n{leaf.data.decode('utf-8', errors='ignore')}")
        elif leaf.mime_type == "text/html":
            chunks.append(f"\n{HTML_LABEL}\n{clean_email_body(leaf.data.decode('utf-8', errors='ignore'))}")
    return "".join(chunks)
