"""
Markup renderer for post bodies.

Turns raw post text into safe HTML in a fixed order of passes:

    per line: escape -> bold -> italic -> quote span
    then: join with <br> -> find reply ids -> resolve -> link

Each pass is a plain function over strings. Resolution against the database
is supplied by the caller as a ``lookup`` callable, so rendering itself
never touches storage.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from markupsafe import escape


REPLY_RE = re.compile(r"&gt;&gt;(\d+)")
BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
ITALIC_RE = re.compile(r"\*(.+?)\*")

EMPTY_CONTENT = '<div class="post-content"></div>'

# Post ids are stored as 32-bit integers
MAX_POST_ID = 2**31 - 1

# Maps candidate post ids to the thread each existing one belongs to
ReplyLookup = Callable[[List[int]], Dict[int, int]]


@dataclass
class RenderedPost:
    """Rendered HTML plus the ids of the posts it links to."""
    html: str
    reply_ids: List[int] = field(default_factory=list)


def thread_url(board: str, thread_id: int) -> str:
    """Return the URL of a thread page."""
    return f"/{escape(board)}/{thread_id}"


def post_url(board: str, thread_id: int, post_id: int) -> str:
    """Return the URL of a post, anchored inside its thread page."""
    return f"{thread_url(board, thread_id)}#{post_id}"


def split_lines(text: str) -> List[str]:
    """Split on ``\\n`` only, dropping the ``\\r`` of CRLF endings."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def apply_bold(html: str) -> str:
    return BOLD_RE.sub(r"<b>\1</b>", html)


def apply_italic(html: str) -> str:
    return ITALIC_RE.sub(r"<em>\1</em>", html)


def format_line(line: str) -> str:
    """
    Escape one line, apply bold and italic, and mark it if it is a quote.

    A line starting with ``>`` is a quote unless the next character is also
    ``>`` (that is a reply marker).
    """
    html = apply_italic(apply_bold(str(escape(line))))
    if line.startswith(">") and not line.startswith(">>"):
        html = f'<span class="quote">{html}</span>'
    return html


def format_lines(text: str) -> str:
    """
    Format every line on its own and join them with ``<br>``.

    Inline markup never spans a line break, so tags always nest inside
    the quote span of their line.
    """
    return "<br>".join(format_line(line) for line in split_lines(text))


def find_reply_ids(html: str) -> List[int]:
    """
    Return the post ids referenced by ``>>N`` markers in escaped HTML.

    Ids are de-duplicated and kept in order of first appearance. Numbers
    too large to be a post id are ignored.
    """
    seen = []
    for match in REPLY_RE.finditer(html):
        post_id = int(match.group(1))
        if post_id <= MAX_POST_ID and post_id not in seen:
            seen.append(post_id)
    return seen


def link_replies(html: str, board: str, resolved: Dict[int, int]) -> str:
    """
    Replace resolved reply markers with links to the referenced post.

    Args:
        html: Escaped HTML containing ``&gt;&gt;N`` markers
        board: Board the post belongs to
        resolved: Existing post id -> its thread id

    Returns:
        HTML with resolved markers linked; unresolved markers stay as text
    """
    def substitute(match):
        post_id = int(match.group(1))
        thread_id = resolved.get(post_id)
        if thread_id is None:
            return match.group(0)
        return f'<a href="{post_url(board, thread_id, post_id)}">&gt;&gt;{match.group(1)}</a>'

    return REPLY_RE.sub(substitute, html)


class MarkupRenderer:
    """
    Renders post text to HTML and extracts the posts it replies to.

    The renderer holds no state; ``lookup`` decides which referenced ids
    exist on the board at render time.
    """

    def render(self, raw_text: Optional[str], board: str, lookup: ReplyLookup) -> RenderedPost:
        """
        Render a post body.

        Args:
            raw_text: Text as submitted, or None
            board: Board the post is being made on
            lookup: Callable mapping candidate ids to their thread ids,
                    returning only ids that exist on ``board``

        Returns:
            RenderedPost with the HTML and the resolved reply ids
        """
        if not raw_text or not raw_text.strip():
            return RenderedPost(html=EMPTY_CONTENT)

        html = format_lines(raw_text)

        candidates = find_reply_ids(html)
        resolved = lookup(candidates) if candidates else {}

        html = link_replies(html, board, resolved)
        reply_ids = [post_id for post_id in candidates if post_id in resolved]
        return RenderedPost(html=html, reply_ids=reply_ids)
