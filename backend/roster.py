import hmac
import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    password: str

    @property
    def is_teacher(self) -> bool:
        return self.id == config.TEACHER_ID


class Roster:
    def __init__(self, students: Iterable[Student]):
        self.students: Dict[str, Student] = {s.id: s for s in students}
        if config.TEACHER_ID not in self.students:
            self.students[config.TEACHER_ID] = Student(config.TEACHER_ID, "Teacher", config.TEACHER_PASSWORD)

    def get(self, student_id: str) -> Optional[Student]:
        return self.students.get(student_id)

    def authenticate(self, student_id: str, password: str) -> Optional[Student]:
        student = self.get(student_id)
        if not student or not hmac.compare_digest(password.encode(), student.password.encode()):
            return None
        return student


def load_roster(path: str) -> Roster:
    try:
        with open(path, encoding="utf-8") as f:
            entries = json.load(f)
    except FileNotFoundError:
        logger.error("Roster not found at %s", path)
        entries = []
    students = [
        Student(str(e["id"]), e.get("name") or str(e["id"]), str(e.get("password", "")))
        for e in entries
        if "id" in e
    ]
    logger.info("Loaded %d students from %s", len(students), path)
    return Roster(students)
