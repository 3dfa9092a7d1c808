from sibylx.app.config import SibylConfig
from sibylx.app.links import DocumentLink, LinkDefinition, extract_links, link_at, link_definitions


def test_no_definitions_without_pattern_or_url() -> None:
    assert link_definitions(SibylConfig()) == []
    assert link_definitions(SibylConfig(ticket_pattern="T-\\d+")) == []
    assert link_definitions(SibylConfig(ticket_url="https://x/$1")) == []


def test_extract_links_substitutes_match() -> None:
    defs = link_definitions(SibylConfig(ticket_pattern=r"JIRA-\d+", ticket_url="https://jira.test/browse/$1"))
    text = "[] fix JIRA-12 and JIRA-7"
    links = extract_links(text, defs)
    assert links == [
        DocumentLink(7, 14, "https://jira.test/browse/JIRA-12"),
        DocumentLink(19, 25, "https://jira.test/browse/JIRA-7"),
    ]
    assert link_at(links, 8).url.endswith("JIRA-12")
    assert link_at(links, 14) is None


def test_invalid_pattern_is_skipped() -> None:
    assert extract_links("abc", [LinkDefinition("(", "https://x/$1")]) == []


def test_empty_matches_are_skipped() -> None:
    assert extract_links("abc", [LinkDefinition("x*", "https://x/$1")]) == []
