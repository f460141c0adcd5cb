"""NSML story decoder for the iNews FTP client.

iNews serves stories as NSML, an SGML dialect that is rarely
well-formed: attribute values are unquoted, <ae> and <p> elements are
left open, and attachments arrive split over several CDATA sections.
The decoder therefore builds its element tree with a tolerant parser
and walks it, handling the elements it knows and descending into
everything else.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Callable, Dict, List, Optional, Union

from inews.ftp.exceptions import ProtocolDecodeError
from inews.story.models import VALID_URGENCIES, Field, FieldAttributes, Story

logger = logging.getLogger("inews.story")


# Leading line iNews puts in production cues
CUE_SENTINEL = "]] S3.0 G 0 [["

# Attachments may be split into several CDATA sections; dropping the
# delimiters joins the parts back together
CDATA_DELIMITERS = re.compile(r"<!\[CDATA\[|\]\]>")

# Elements that never have content
VOID_ELEMENTS = frozenset({
    "area", "base", "basefont", "br", "col", "embed", "frame",
    "hr", "img", "input", "isindex", "link", "meta", "param",
})

RAW_TAG_NAME = re.compile(r"<\s*([^\s/>]+)")
CUE_ID = re.compile(r"^\s*(\d+)\s*$")
WORD_SEPARATORS = re.compile(r"[-_.\s]+")


@dataclass
class Element:
    """A node of the parsed NSML tree."""
    name: str
    raw_name: str = ""
    start_text: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    children: List[Union["Element", str]] = field(default_factory=list)
    self_closing: bool = False

    def text(self) -> Optional[str]:
        """Content of the first child if it is text, None otherwise."""
        if not self.children:
            return None
        first = self.children[0]
        if isinstance(first, str):
            return first
        return None


class TolerantTreeBuilder(HTMLParser):
    """
    Builds an Element tree from NSML.

    Recovery rules: an end tag closes the nearest open element with the
    same name and every element opened after it; an end tag with no
    open match is ignored; elements still open at the end are closed.
    Character references are kept as written so they can be unescaped
    together with the serialized markup.
    """

    def __init__(self):
        super().__init__(convert_charrefs=False)
        self.root = Element(name="#document")
        self._stack: List[Element] = [self.root]
        # Index in rawdata the parser has advanced to
        self._cursor = 0

    def handle_starttag(self, tag, attrs):
        element = self._make_element(tag, attrs)
        self._stack[-1].children.append(element)
        if tag not in VOID_ELEMENTS:
            self._stack.append(element)

    def handle_startendtag(self, tag, attrs):
        element = self._make_element(tag, attrs)
        element.self_closing = True
        self._stack[-1].children.append(element)

    def handle_endtag(self, tag):
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].name == tag:
                del self._stack[index:]
                return
        logger.debug(f"Ignoring stray end tag </{tag}>")

    def handle_data(self, data):
        children = self._stack[-1].children
        if children and isinstance(children[-1], str):
            children[-1] += data
        else:
            children.append(data)

    def updatepos(self, i, j):
        self._cursor = j
        return super().updatepos(i, j)

    def handle_entityref(self, name):
        # The cursor sits on the "&"; keep the terminating semicolon if the source had one
        terminated = self.rawdata.startswith(";", self._cursor + len(name) + 1)
        self.handle_data(f"&{name};" if terminated else f"&{name}")

    def handle_charref(self, name):
        self.handle_data(f"&#{name};")

    def _make_element(self, tag, attrs) -> Element:
        start_text = self.get_starttag_text() or f"<{tag}>"
        match = RAW_TAG_NAME.match(start_text)
        attr_map = {}
        for key, value in attrs:
            # Valueless attributes (<meta float>) map to their own name
            attr_map[key] = key if value is None else value
        return Element(
            name=tag,
            raw_name=match.group(1) if match else tag,
            start_text=start_text,
            attrs=attr_map,
        )


def build_tree(nsml: str) -> Element:
    """Parse NSML into an Element tree, CDATA delimiters removed."""
    builder = TolerantTreeBuilder()
    builder.feed(CDATA_DELIMITERS.sub("", nsml))
    builder.close()
    return builder.root


def serialize(nodes: List[Union[Element, str]]) -> str:
    """Serialize nodes back to markup, keeping start tags as written."""
    return "".join(serialize_node(node) for node in nodes)


def serialize_node(node: Union[Element, str]) -> str:
    if isinstance(node, str):
        return node
    if node.self_closing or node.name in VOID_ELEMENTS:
        return node.start_text
    return f"{node.start_text}{serialize(node.children)}</{node.raw_name}>"


def unescape(text: str) -> str:
    return html.unescape(text)


def camel_case(key: str) -> str:
    """Convert a field id such as "modify-date" to "modifyDate"."""
    words = [word for word in WORD_SEPARATORS.split(key.strip()) if word]
    if not words:
        return ""
    if len(words) == 1:
        word = words[0]
        return word.lower() if word.isupper() else word[0].lower() + word[1:]
    return words[0].lower() + "".join(word[0].upper() + word[1:].lower() for word in words[1:])


def collect_lines(nodes: List[Union[Element, str]], tag: str) -> List[str]:
    """Unescaped contents of every descendant <tag> element, in document order."""
    lines: List[str] = []
    for node in nodes:
        if isinstance(node, str):
            continue
        if node.name == tag:
            lines.append(unescape(serialize(node.children)))
        lines.extend(collect_lines(node.children, tag))
    return lines


def sanitize_urgency(value: Optional[str]) -> Optional[int]:
    """Urgency as an int if it is 1, 2 or 3, else None."""
    if value is None:
        return None
    try:
        urgency = int(value.strip())
    except ValueError:
        return None
    return urgency if urgency in VALID_URGENCIES else None


def _parse_cue(element: Element, story: Story) -> None:
    match = CUE_ID.match(element.attrs.get("id", ""))
    if not match:
        logger.debug(f"Skipping <ae> without a numeric id: {element.start_text}")
        return

    cue_id = int(match.group(1))
    lines = collect_lines(element.children, "ap")
    if lines and lines[0] == CUE_SENTINEL:
        lines = lines[1:]

    while len(story.cues) <= cue_id:
        story.cues.append([])
    story.cues[cue_id] = lines


def _parse_body(element: Element, story: Story) -> None:
    story.body = unescape(serialize(element.children))


def _parse_meta(element: Element, story: Story) -> None:
    story.meta = dict(element.attrs)


def _parse_story_id(element: Element, story: Story) -> None:
    story_id = element.text()
    if story_id:
        story.id = story_id


def _parse_field(element: Element, story: Story) -> None:
    try:
        key = camel_case(element.attrs["id"])
        value = element.text()
        if not key or value is None:
            raise ValueError("field has no id or no text content")

        uec_flag = element.attrs.get("uec")
        story.fields[key] = Field(
            value=unescape(value),
            attributes=FieldAttributes(
                uec=bool(uec_flag),
                urgency=sanitize_urgency(element.attrs.get("urgency")),
                aready=element.attrs.get("aready"),
            ),
        )
    except (KeyError, ValueError) as e:
        logger.debug(f"Skipping field {element.start_text}: {e}")


def _parse_attachment(element: Element, story: Story) -> None:
    attachment_id = element.attrs.get("id")
    if attachment_id is None:
        logger.debug("Skipping <attachment> without an id")
        return
    story.attachments[attachment_id] = unescape(serialize(element.children)).strip()


ELEMENT_HANDLERS: Dict[str, Callable[[Element, Story], None]] = {
    "ae": _parse_cue,
    "body": _parse_body,
    "meta": _parse_meta,
    "storyid": _parse_story_id,
    "f": _parse_field,
    "attachment": _parse_attachment,
}


def walk(nodes: List[Union[Element, str]], story: Story) -> None:
    """Apply element handlers; descend into elements without one."""
    for node in nodes:
        if isinstance(node, str):
            continue
        handler = ELEMENT_HANDLERS.get(node.name)
        if handler is not None:
            handler(node, story)
        else:
            walk(node.children, story)


def parse_story(nsml: Union[str, bytes]) -> Story:
    """
    Decode an NSML document.

    Args:
        nsml: Story markup as text (bytes are decoded as UTF-8)

    Returns:
        Story with every well-known field key present

    Raises:
        ProtocolDecodeError: If the document cannot be parsed at all
    """
    if isinstance(nsml, bytes):
        try:
            nsml = nsml.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolDecodeError("story markup", e)

    if not isinstance(nsml, str):
        raise ProtocolDecodeError(f"story markup of type {type(nsml).__name__}")

    story = Story()
    try:
        walk(build_tree(nsml).children, story)
    except (AssertionError, RecursionError, ValueError, TypeError) as e:
        raise ProtocolDecodeError("story markup", e)

    return story
