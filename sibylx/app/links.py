from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from sibylx.app.config import SibylConfig

logger = logging.getLogger(__name__)

URL_PLACEHOLDER = "$1"


@dataclass(frozen=True)
class LinkDefinition:
    pattern: str
    url_template: str

    def url_for(self, matched: str) -> str:
        return self.url_template.replace(URL_PLACEHOLDER, matched)


@dataclass(frozen=True)
class DocumentLink:
    start: int
    end: int
    url: str


def link_definitions(cfg: SibylConfig) -> list[LinkDefinition]:
    """Return the configured link definitions; none unless both pattern and URL are set."""
    if not cfg.ticket_pattern or not cfg.ticket_url:
        return []
    return [LinkDefinition(cfg.ticket_pattern, cfg.ticket_url)]


def extract_links(text: str, definitions: Iterable[LinkDefinition]) -> list[DocumentLink]:
    links: list[DocumentLink] = []
    for definition in definitions:
        try:
            regex = re.compile(definition.pattern)
        except re.error as exc:
            logger.warning("Invalid link pattern %r: %s", definition.pattern, exc)
            continue
        for match in regex.finditer(text):
            if match.end() == match.start():
                continue
            links.append(DocumentLink(match.start(), match.end(), definition.url_for(match.group(0))))
    links.sort(key=lambda link: link.start)
    return links


def link_at(links: Iterable[DocumentLink], offset: int) -> Optional[DocumentLink]:
    for link in links:
        if link.start <= offset < link.end:
            return link
    return None
