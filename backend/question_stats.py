"""Aggregate wrong/total counters per question, for the teacher's error-rate report."""
import re
from typing import List

from question_bank import Question
from realtime_store import RealtimeStore

# Characters the store does not allow in a path segment
_ILLEGAL_KEY_CHARS = re.compile(r'[.#$\[\]/\x00-\x1f\x7f]')


def stats_key(question_text: str) -> str:
    return _ILLEGAL_KEY_CHARS.sub('', question_text).strip()


async def record_answer(store: RealtimeStore, question: Question, correct: bool):
    key = stats_key(question.text)
    if not key:
        return

    def bump(entry):
        entry = entry or {"question": question.text, "category": question.category,
                          "wrongCount": 0, "totalCount": 0}
        entry["totalCount"] = int(entry.get("totalCount", 0)) + 1
        if not correct:
            entry["wrongCount"] = int(entry.get("wrongCount", 0)) + 1
        return entry

    await store.transact(f"questionStats/{key}", bump)


async def error_rate_report(store: RealtimeStore) -> List[dict]:
    data = await store.get("questionStats") or {}
    report = []
    for item in data.values():
        total = int(item.get("totalCount", 0))
        wrong = int(item.get("wrongCount", 0))
        report.append({
            **item,
            "wrongCount": wrong,
            "totalCount": total,
            "errorRate": (wrong / total) * 100 if total > 0 else 0,
        })
    report.sort(key=lambda x: x["errorRate"], reverse=True)
    return report
