#!/usr/bin/env python3
"""
Check how a question scores against the FAQ knowledge base.

Prints the best-matching stored question, its similarity score, and whether
the score clears the match threshold (i.e. whether the bot would answer from
the FAQ without calling a model).

Run from project root:

    python scripts/check_faq.py "What are your hours?"
    python scripts/check_faq.py --threshold 0.5 --faq data/faq.json "do u deliver"
"""

import argparse
import sys
from pathlib import Path

# Project root on path so "app" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from app.core.config import FAQ_MATCH_THRESHOLD, FAQ_PATH
from app.ingest.loader import load_knowledge_base
from app.services.knowledge_service import KnowledgeMatcher


def main() -> int:
    parser = argparse.ArgumentParser(description="Score a question against the FAQ.")
    parser.add_argument("question", help="Question as a user would type it.")
    parser.add_argument("--faq", default=FAQ_PATH, help=f"FAQ JSON file (default: {FAQ_PATH}).")
    parser.add_argument(
        "--threshold",
        type=float,
        default=FAQ_MATCH_THRESHOLD,
        help=f"Match threshold (default: {FAQ_MATCH_THRESHOLD}).",
    )
    args = parser.parse_args()

    matcher = KnowledgeMatcher(load_knowledge_base(args.faq), threshold=args.threshold)
    best = matcher.best_match(args.question)
    if best is None:
        print("Knowledge base is empty.")
        return 1

    verdict = "MATCH" if best.score >= matcher.threshold else "no match"
    print(f"  best:      #{best.index} {best.entry.question!r}")
    print(f"  score:     {best.score:.3f} (threshold {matcher.threshold})")
    print(f"  verdict:   {verdict}")
    if verdict == "MATCH":
        print(f"  answer:    {best.entry.answer}")
    return 0 if verdict == "MATCH" else 1


if __name__ == "__main__":
    sys.exit(main())
