"""NIP-54 wiki article projection.

Pure, stateless view of a kind-30818 [Event][nostrwiki.models.event.Event].
"""

from __future__ import annotations

from dataclasses import dataclass

from .event import Event


@dataclass(frozen=True, slots=True)
class WikiArticle:
    """A wiki article version projected from its event.

    Attributes:
        id: Id of the event this version was read from.
        title: Normalized article title from the ``d`` tag, falling back to
            ``display_title`` when the event has no ``d`` tag.
        display_title: Human title from the ``title`` tag.
        summary: Short summary from the ``summary`` tag.
        topic_tags: Values of every ``t`` tag, in order.
        pubkey: Author public key (hex).
        timestamp: Event ``created_at``.
        content: Article body (markdown/asciidoc, rendered by the caller).
    """

    id: str
    title: str
    display_title: str
    summary: str
    topic_tags: tuple[str, ...]
    pubkey: str
    timestamp: int
    content: str

    @classmethod
    def from_event(cls, event: Event) -> WikiArticle:
        display_title = event.first_tag("title") or ""
        return cls(
            id=event.id,
            title=event.first_tag("d") or display_title,
            display_title=display_title,
            summary=event.first_tag("summary") or "",
            topic_tags=tuple(event.tag_values("t")),
            pubkey=event.pubkey,
            timestamp=event.created_at,
            content=event.content,
        )
