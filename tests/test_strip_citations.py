from __future__ import annotations

from agentic_search.citation_mode.strip_citations import (
    find_claim_for_citation,
    group_citations_by_claim,
    strip_citations,
    strip_citations_keep_text,
)

ANSWER = "The sky is blue [NASA](https://nasa.gov/sky)."


class TestStripCitations:
    def test_text_without_links_is_returned_unchanged(self):
        for text in ["", "Plain prose.", "Brackets [only] and (parens)", "[Bad](not-a-url) stays"]:
            result = strip_citations(text)
            assert result.stripped_text == text
            assert result.citations == []
            assert result.position_map == {}

    def test_single_citation_removed(self):
        result = strip_citations(ANSWER)

        assert result.stripped_text == "The sky is blue ."
        assert len(result.citations) == 1
        citation = result.citations[0]
        assert (citation.url, citation.title, citation.position) == ("https://nasa.gov/sky", "NASA", 16)
        assert citation.full_match == "[NASA](https://nasa.gov/sky)"

    def test_single_citation_keep_text(self):
        result = strip_citations_keep_text(ANSWER)

        assert result.stripped_text == "The sky is blue NASA."
        assert result.citations[0].position == 16

    def test_position_map_accounts_for_removed_characters(self):
        text = "A [x](https://a.com) b [yy](https://b.com/p) c [z](https://c.org)."
        for strip in (strip_citations, strip_citations_keep_text):
            result = strip(text)
            delta = 0
            for citation in result.citations:
                assert result.position_map[citation.position] == citation.position - delta
                replacement = citation.title if strip is strip_citations_keep_text else ""
                delta += len(citation.full_match) - len(replacement)
            assert len(result.stripped_text) == len(text) - delta

    def test_keep_text_places_title_at_mapped_position(self):
        text = "Cells [LFP](https://a.com) and [NMC](https://b.com) differ."
        result = strip_citations_keep_text(text)

        assert result.stripped_text == "Cells LFP and NMC differ."
        for citation in result.citations:
            start = result.position_map[citation.position]
            assert result.stripped_text[start : start + len(citation.title)] == citation.title

    def test_citation_indices_are_sequential(self):
        text = "[a](https://a.com) [skip](ftp://x) [b](http://b.com)"
        result = strip_citations(text)

        assert [(c.index, c.title) for c in result.citations] == [(0, "a"), (1, "b")]
        assert "[skip](ftp://x)" in result.stripped_text


class TestClaimHelpers:
    def test_find_claim_for_citation_stops_at_sentence_boundary(self):
        text = "First fact. Second fact is here [S](https://s.com)"
        position = text.index("[S]")

        assert find_claim_for_citation(text, position) == "Second fact is here"

    def test_find_claim_for_citation_from_start_of_text(self):
        text = "Only sentence [S](https://s.com)"

        assert find_claim_for_citation(text, text.index("[")) == "Only sentence"

    def test_find_claim_for_citation_respects_max_length(self):
        text = "x" * 300 + "[S](https://s.com)"
        claim = find_claim_for_citation(text, 300, max_length=50)

        assert claim == ""

    def test_group_citations_by_claim(self):
        text = "Batteries degrade [A](https://a.com) [B](https://b.com). Heat matters [C](https://c.com)."
        result = strip_citations(text)

        groups = group_citations_by_claim(text, result.citations)

        assert [c.title for c in groups["Batteries degrade"]] == ["A"]
        assert [c.title for c in groups["Heat matters"]] == ["C"]
        assert sum(len(v) for v in groups.values()) == 3
