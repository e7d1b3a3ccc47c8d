"""
Tests for the knowledge matcher and the FAQ loader.
"""

import json
from pathlib import Path

from app.ingest.loader import load_knowledge_base, parse_entries
from app.services.knowledge_service import KnowledgeEntry, KnowledgeMatcher

HOURS = KnowledgeEntry("what are your hours", "9am-6pm Mon-Sat")


class TestKnowledgeMatcher:
    def test_hours_scenario(self) -> None:
        matcher = KnowledgeMatcher([HOURS], threshold=0.6)
        assert matcher.match("What are your hours?") == "9am-6pm Mon-Sat"
        assert matcher.match("Tell me a joke") is None

    def test_exact_question_scores_one(self) -> None:
        entries = [HOURS, KnowledgeEntry("Do you deliver", "Yes, within 10 km.")]
        matcher = KnowledgeMatcher(entries, threshold=0.99)
        best = matcher.best_match("DO YOU DELIVER")
        assert best is not None
        assert best.score == 1.0
        assert best.index == 1
        assert matcher.match("DO YOU DELIVER") == "Yes, within 10 km."

    def test_no_shared_tokens_no_match(self) -> None:
        matcher = KnowledgeMatcher([KnowledgeEntry("abc", "x")], threshold=0.1)
        assert matcher.match("xyz") is None

    def test_ties_go_to_first_entry(self) -> None:
        entries = [
            KnowledgeEntry("store hours", "first"),
            KnowledgeEntry("store hours", "second"),
        ]
        matcher = KnowledgeMatcher(entries, threshold=0.5)
        assert matcher.match("store hours") == "first"
        assert matcher.best_match("store hours").index == 0

    def test_deterministic(self) -> None:
        entries = [HOURS, KnowledgeEntry("where are you located", "12 Market Street")]
        matcher = KnowledgeMatcher(entries)
        results = {matcher.match("where r u located") for _ in range(10)}
        assert len(results) == 1

    def test_result_independent_of_other_entries_order(self) -> None:
        a = KnowledgeEntry("what are your hours", "hours")
        b = KnowledgeEntry("where are you located", "location")
        assert KnowledgeMatcher([a, b]).match("What are your hours?") == "hours"
        assert KnowledgeMatcher([b, a]).match("What are your hours?") == "hours"

    def test_threshold_is_inclusive(self) -> None:
        matcher = KnowledgeMatcher([HOURS], threshold=30 / 31)
        assert matcher.match("What are your hours?") == "9am-6pm Mon-Sat"

    def test_empty_knowledge_base_never_matches(self) -> None:
        matcher = KnowledgeMatcher([])
        assert len(matcher) == 0
        assert matcher.best_match("what are your hours") is None
        assert matcher.match("what are your hours") is None


class TestLoader:
    def test_loads_entries_in_order(self, tmp_path) -> None:
        path = tmp_path / "faq.json"
        path.write_text(
            json.dumps([
                {"question": "q1", "answer": "a1"},
                {"question": "q2", "answer": "a2"},
            ]),
            encoding="utf-8",
        )
        entries = load_knowledge_base(path)
        assert entries == [KnowledgeEntry("q1", "a1"), KnowledgeEntry("q2", "a2")]

    def test_missing_file_returns_empty(self, tmp_path) -> None:
        assert load_knowledge_base(tmp_path / "nope.json") == []

    def test_invalid_json_returns_empty(self, tmp_path) -> None:
        path = tmp_path / "faq.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_knowledge_base(path) == []

    def test_non_list_returns_empty(self) -> None:
        assert parse_entries({"question": "q", "answer": "a"}) == []

    def test_malformed_records_skipped(self) -> None:
        records = [
            {"question": "q1", "answer": "a1"},
            {"question": "", "answer": "a2"},
            {"question": "q3"},
            "not a record",
            {"question": "q5", "answer": 5},
        ]
        assert parse_entries(records) == [KnowledgeEntry("q1", "a1")]

    def test_bundled_faq_loads(self) -> None:
        entries = load_knowledge_base(Path(__file__).resolve().parent.parent / "data" / "faq.json")
        assert entries[0] == KnowledgeEntry("what are your hours", "9am-6pm Mon-Sat")
