# coursehub/grading.py
import json


def from_json(value, default=None):
    """Parse a JSON column. Broken or empty values become `default`."""
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


def quiz_questions(content_json):
    questions = from_json(content_json, [])
    return questions if isinstance(questions, list) else []


def public_questions(questions):
    """Questions as a student sees them, without the answer key."""
    out = []
    for question in questions:
        if isinstance(question, dict):
            question = {k: v for k, v in question.items() if k != "correct_answer"}
        out.append(question)
    return out


def score_answers(questions, answers):
    """Percentage of questions answered with their correct_answer.

    Answers are a list with one entry per question. Anything else, or a quiz
    without an answer key, scores 0.
    """
    if not isinstance(answers, list) or not questions or len(answers) != len(questions):
        return 0
    correct_count = 0
    for i, question in enumerate(questions):
        if isinstance(question, dict) and "correct_answer" in question:
            if answers[i] == question["correct_answer"]:
                correct_count += 1
    return (correct_count / len(questions)) * 100
