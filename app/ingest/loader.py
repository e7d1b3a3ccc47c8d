# Knowledge base loader. Reads the FAQ file once at startup.
# A missing or malformed file yields an empty knowledge base, never an exception.

import json
import logging
from pathlib import Path

from app.services.knowledge_service import KnowledgeEntry

logger = logging.getLogger(__name__)


def parse_entries(records) -> list[KnowledgeEntry]:
    """
    Convert raw {question, answer} records to KnowledgeEntry, preserving order.
    Records that are not objects or lack a non-empty question/answer are skipped.
    """
    if not isinstance(records, list):
        logger.warning("[loader] knowledge source is not a list (got %s)", type(records).__name__)
        return []
    entries: list[KnowledgeEntry] = []
    skipped = 0
    for item in records:
        if not isinstance(item, dict):
            skipped += 1
            continue
        question = item.get("question")
        answer = item.get("answer")
        if not isinstance(question, str) or not isinstance(answer, str) or not question.strip() or not answer.strip():
            skipped += 1
            continue
        entries.append(KnowledgeEntry(question=question, answer=answer))
    if skipped:
        logger.warning("[loader] skipped %d malformed knowledge records", skipped)
    return entries


def load_knowledge_base(path: str | Path) -> list[KnowledgeEntry]:
    """Load the FAQ JSON file. Returns [] when the file is missing or unreadable."""
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("[loader] failed to read knowledge file %s: %s", p, e)
        return []
    try:
        records = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("[loader] knowledge file %s is not valid JSON: %s", p, e)
        return []
    entries = parse_entries(records)
    logger.info("[loader] knowledge base loaded: %d entries from %s", len(entries), p)
    return entries
