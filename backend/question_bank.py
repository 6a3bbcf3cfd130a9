import csv
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "一般"

# Accepted header spellings per field
QUESTION_COLUMNS = ("題目", "Question", "question")
OPTION_COLUMNS = (
    ("選項A", "A", "optionA"),
    ("選項B", "B", "optionB"),
    ("選項C", "C", "optionC"),
    ("選項D", "D", "optionD"),
)
ANSWER_COLUMNS = ("答案", "正確答案", "Answer", "answer")
CATEGORY_COLUMNS = ("分類", "Category", "category")


@dataclass
class Question:
    index: int
    text: str
    options: List[str]
    correct_text: str
    category: str = DEFAULT_CATEGORY

    def is_correct(self, option_text: str) -> bool:
        return option_text == self.correct_text

    def shuffled_options(self, seed: str) -> List[str]:
        """Option order shared by every client that uses the same seed."""
        options = list(self.options)
        random.Random(seed).shuffle(options)
        return options

    def to_public(self, seed: str, reveal: bool = False) -> dict:
        data = {
            "index": self.index,
            "text": self.text,
            "category": self.category,
            "options": self.shuffled_options(seed),
        }
        if reveal:
            data["answer"] = self.correct_text
        return data


@dataclass
class QuestionBank:
    questions: List[Question] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.questions)

    def get(self, index: Optional[int]) -> Optional[Question]:
        if index is None or not (0 <= index < len(self.questions)):
            return None
        return self.questions[index]


def _first(row: Dict[str, str], columns) -> str:
    for col in columns:
        value = row.get(col)
        if value and value.strip():
            return value.strip()
    return ""


def _clean(text: str) -> str:
    return re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text).strip()


def parse_rows(rows) -> QuestionBank:
    questions: List[Question] = []
    for row in rows:
        text = _clean(_first(row, QUESTION_COLUMNS))
        options = [_clean(_first(row, cols)) for cols in OPTION_COLUMNS]
        options = [opt for opt in options if opt]
        answer = _clean(_first(row, ANSWER_COLUMNS))
        if not text or len(options) < 2:
            logger.warning("Skipping incomplete question row: %s", text[:50] or row)
            continue
        if answer not in options:
            logger.warning("Question '%s' has an answer that matches no option", text[:50])
        questions.append(Question(
            index=len(questions),
            text=text,
            options=options,
            correct_text=answer,
            category=_clean(_first(row, CATEGORY_COLUMNS)) or DEFAULT_CATEGORY,
        ))
    return QuestionBank(questions)


def load_question_bank(path: str) -> QuestionBank:
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            bank = parse_rows(csv.DictReader(f))
    except FileNotFoundError:
        logger.error("Question bank not found at %s", path)
        return QuestionBank()
    logger.info("Loaded %d questions from %s", len(bank), path)
    return bank
