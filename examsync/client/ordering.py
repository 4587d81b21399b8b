"""Per-student question and option order.

The shuffle is seeded with the exam code and student id, so a student who
reloads or resumes sees the same order again without it being stored.
"""

import random
from typing import List

from examsync.schemas import Exam, Question, QuestionType

_SHUFFLABLE_OPTIONS = {QuestionType.MULTIPLE_CHOICE, QuestionType.COMPLEX_MULTIPLE_CHOICE}


def _shuffle_options(question: Question, rng: random.Random) -> Question:
    if question.question_type not in _SHUFFLABLE_OPTIONS or not question.options:
        return question
    order = list(range(len(question.options)))
    rng.shuffle(order)
    update = {"options": [question.options[i] for i in order]}
    if question.option_images and len(question.option_images) == len(question.options):
        update["option_images"] = [question.option_images[i] for i in order]
    return question.model_copy(update=update)


def ordered_questions(exam: Exam, student_id: str) -> List[Question]:
    rng = random.Random(f"{exam.code}:{student_id}")
    questions = list(exam.questions)
    if exam.config.shuffle_questions:
        rng.shuffle(questions)
    if exam.config.shuffle_answers:
        questions = [_shuffle_options(q, rng) for q in questions]
    return questions
