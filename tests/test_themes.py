"""Tests for heuristic cluster theming and AI refinement."""
from __future__ import annotations

import logging

import pytest

import cluster_engine.themes as themes
from cluster_engine.models import ClusterFile, FileCluster, FileEmbeddingRecord
from cluster_engine.themes import (
    ThemeAnalyzer,
    extract_common_words,
    limit_file_names,
    parse_refinement,
    pick_category,
    sanitize_folder_name,
    score_categories,
)


class FakeEncoding:
    """One token per character."""

    def encode(self, text):
        return list(text)


class FakeRefiner:
    def __init__(self, response):
        self.response = response
        self.prompts = []

    def generate_text(self, prompt):
        self.prompts.append(prompt)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture(autouse=True)
def fake_encoding(monkeypatch):
    monkeypatch.setattr(themes, "_encoding", lambda name: FakeEncoding())


def _record(name, snippet="", mime=None):
    return FileEmbeddingRecord(
        file_id=name,
        file_name=name,
        embedding=(0.0, 1.0),
        content_snippet=snippet,
        metadata={"mimeType": mime} if mime else {},
    )


def _cluster():
    return FileCluster(
        id="cluster_0",
        name="Budget Collection",
        description="Collection of work files",
        suggested_folder_name="Budget",
        category="work",
        files=[ClusterFile(file_id="a", file_name="a.pdf", confidence=0.8, keywords=["budget"])],
    )


def test_common_words_need_repeated_tokens():
    names = ["budget-report-q1.pdf", "budget-report-q2.pdf", "budget summary.xlsx", "notes.txt"]
    assert extract_common_words(names) == ["budget", "report"]


def test_common_words_ignore_stopwords_and_short_tokens():
    names = ["copy of file.txt", "copy of file.txt", "abc.doc", "abc.doc"]
    assert extract_common_words(names) == []


def test_media_category_from_mime_and_extension():
    files = [_record(f"IMG {i:03d}.jpg", mime="image/jpeg") for i in range(3)]
    scores = score_categories(files)
    assert pick_category(scores) == "media"


def test_pick_category_tie_and_zero_are_mixed():
    assert pick_category({"work": 2, "documents": 2, "media": 0}) == "mixed"
    assert pick_category({"work": 0, "documents": 0}) == "mixed"


def test_analyze_without_keywords_uses_category():
    files = [_record(f"IMG {i:03d}.jpg", mime="image/jpeg") for i in range(3)]
    theme = ThemeAnalyzer().analyze(files)
    assert theme.name == "Media Files"
    assert theme.folder_name == "Media"
    assert theme.category == "media"
    assert theme.keywords == []


def test_analyze_with_keywords_names_collection():
    files = [_record(f"invoice march {i}.txt") for i in range(4)]
    theme = ThemeAnalyzer().analyze(files)
    assert theme.name == "Invoice Collection"
    assert theme.folder_name == "Invoice"
    assert theme.keywords == ["invoice", "march"]


def test_sanitize_folder_name():
    assert sanitize_folder_name("Q3 Budget: Final/Draft!!") == "Q3 Budget FinalDraft"
    assert len(sanitize_folder_name("a" * 40)) == 25
    assert sanitize_folder_name("%%%") == ""


def test_parse_refinement_ignores_unknown_category():
    refinement = parse_refinement(
        "NAME: Tax Returns\n"
        "FOLDER: Taxes/2023\n"
        "CATEGORY: Finance\n"
        "KEYWORDS: tax, IRS, returns\n"
        "DESCRIPTION: Yearly filings\n"
        "NOTE: ignored"
    )
    assert refinement.name == "Tax Returns"
    assert refinement.folder_name == "Taxes2023"
    assert refinement.category is None
    assert refinement.keywords == ["tax", "irs", "returns"]
    assert refinement.description == "Yearly filings"


def test_limit_file_names_respects_token_limit():
    assert limit_file_names(["a", "b", "c"], 6, "cl100k_base") == "a, b (and 1 more)"
    assert limit_file_names(["a", "b"], 100, "cl100k_base") == "a, b"


def test_refine_applies_suggestions():
    refiner = FakeRefiner(
        "NAME: Quarterly Budget Planning Documents\n"
        "FOLDER: Budgets\n"
        "CATEGORY: work\n"
        "KEYWORDS: budget, finance\n"
        "DESCRIPTION: Budget plans"
    )
    refined = ThemeAnalyzer(refiner=refiner).refine(_cluster())
    assert refined.name == "Quarterly Budget Planning Docu"
    assert refined.suggested_folder_name == "Budgets"
    assert refined.description == "Budget plans"
    assert refined.files[0].keywords == ["budget", "finance"]
    assert "Files: a.pdf" in refiner.prompts[0]
    assert "NAME: [improved name]" in refiner.prompts[0]


def test_refine_failure_keeps_heuristic_cluster(caplog):
    cluster = _cluster()
    analyzer = ThemeAnalyzer(refiner=FakeRefiner(RuntimeError("model offline")))
    with caplog.at_level(logging.WARNING):
        refined = analyzer.refine(cluster)
    assert refined == cluster
    assert "model offline" in caplog.text


@pytest.mark.parametrize("response", [None, "nothing useful here", ""])
def test_refine_unusable_response_keeps_cluster(response):
    cluster = _cluster()
    assert ThemeAnalyzer(refiner=FakeRefiner(response)).refine(cluster) == cluster


def test_refine_without_refiner_is_identity():
    cluster = _cluster()
    assert ThemeAnalyzer().refine(cluster) is cluster
