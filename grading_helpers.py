"""
Assignment Auto-Grading Helper Functions
Scores MCQ, fill-in-the-blank and true/false questions; anything else is left
for manual grading.
"""

import re
import logging

logger = logging.getLogger(__name__)

AUTO_GRADABLE_TYPES = ('mcq', 'multiple_choice', 'fillblank', 'fill_blank', 'true_false')
PARTIAL_CREDIT_THRESHOLD = 0.8


def normalize_answer(answer):
    """Lowercase, trim and collapse internal whitespace"""
    if answer is None:
        return ''
    return re.sub(r'\s+', ' ', str(answer).strip().lower())


def matches_any_answer(student_answer, correct_answers):
    normalized = normalize_answer(student_answer)
    return any(normalize_answer(c) == normalized for c in correct_answers)


def levenshtein_distance(a, b):
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def similarity(a, b):
    """1.0 for identical strings, 0.0 when either is empty"""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1 - levenshtein_distance(a, b) / max(len(a), len(b))


def calculate_partial_credit(student_answer, correct_answer, threshold=PARTIAL_CREDIT_THRESHOLD):
    """
    Fraction of credit for a near-miss answer

    Returns:
        float in [0, 1]; 0 when similarity is under the threshold
    """
    student = normalize_answer(student_answer)
    correct = normalize_answer(correct_answer)
    if student == correct:
        return 1.0
    score = similarity(student, correct)
    return score if score >= threshold else 0.0


def generate_feedback(is_correct, question_type, correct_answer=None):
    if is_correct:
        return 'Correct! Well done.'
    if question_type in ('mcq', 'fill_blank'):
        return f"Incorrect. The correct answer is: {correct_answer if correct_answer not in (None, '') else 'N/A'}"
    return 'Incorrect answer. Please review the question.'


def round_half_up(value):
    """Round .5 away from zero for non-negative scores"""
    return int(value + 0.5)


def _to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return bool(value)


def _parse_index(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    return None


def _grade_mcq(question, answer):
    correct = question.get('correct_answer')
    options = question.get('options') or []

    correct_index = _parse_index(correct)
    if correct_index is not None and 0 <= correct_index < len(options):
        return _parse_index(answer) == correct_index

    if isinstance(correct, int) and not isinstance(correct, bool):
        return _parse_index(answer) == correct

    answer_index = _parse_index(answer)
    if answer_index is not None and 0 <= answer_index < len(options):
        student_text = options[answer_index]
    else:
        student_text = '' if answer is None else str(answer)
    return normalize_answer(student_text) == normalize_answer(correct)


def _grade_fill_blank(question, answer, marks):
    correct = question.get('correct_answer')
    correct_answers = correct if isinstance(correct, list) else [correct]

    if isinstance(answer, list):
        total_blanks = max(len(answer), len(correct_answers))
        correct_count = 0
        for i in range(total_blanks):
            student_blank = answer[i] if i < len(answer) else ''
            correct_blank = correct_answers[i] if i < len(correct_answers) else ''
            if matches_any_answer(student_blank or '', [correct_blank or '']):
                correct_count += 1
        is_correct = correct_count == total_blanks
        score = marks if is_correct else round_half_up(correct_count / total_blanks * marks) if total_blanks else 0
        feedback = 'All blanks correct!' if is_correct else f"{correct_count} out of {total_blanks} blanks correct."
        return is_correct, score, feedback

    if isinstance(answer, str):
        first = correct_answers[0] if correct_answers else ''
        if matches_any_answer(answer, [str(c) for c in correct_answers]):
            return True, marks, generate_feedback(True, 'fill_blank', first)

        partial = calculate_partial_credit(answer, str(first))
        if partial > 0:
            return False, round_half_up(marks * partial), f"Partially correct. The correct answer is: {first}"
        return False, 0, generate_feedback(False, 'fill_blank', first)

    return False, 0, 'Invalid answer format'


def grade_question(question, answer):
    """
    Grade a single auto-gradable question

    Args:
        question: dict with id, question_type, correct_answer, marks, options
        answer: the student's answer (index, text, bool or list of blanks)

    Returns:
        dict: questionId, isCorrect, score, maxScore, feedback, studentAnswer, correctAnswer
    """
    question_type = (question.get('question_type') or '').lower()
    marks = question.get('marks') or 1
    correct = question.get('correct_answer')
    is_correct = False
    score = 0

    if question_type in ('mcq', 'multiple_choice'):
        is_correct = _grade_mcq(question, answer)
        score = marks if is_correct else 0
        feedback = generate_feedback(is_correct, 'mcq', correct)
    elif question_type in ('fillblank', 'fill_blank'):
        is_correct, score, feedback = _grade_fill_blank(question, answer, marks)
    elif question_type == 'true_false':
        is_correct = _to_bool(answer) == _to_bool(correct)
        score = marks if is_correct else 0
        feedback = generate_feedback(is_correct, 'true_false', correct)
    else:
        feedback = 'This question requires manual grading'

    return {
        'questionId': question.get('id'),
        'isCorrect': is_correct,
        'score': score,
        'maxScore': marks,
        'feedback': feedback,
        'studentAnswer': answer,
        'correctAnswer': correct,
    }


def grade_assignment(questions, student_answers, auto_grading_enabled=True):
    """
    Grade every question of an assignment

    Args:
        questions: list of question dicts (see grade_question)
        student_answers: dict mapping question id -> answer
        auto_grading_enabled: the assignment's auto-grading flag

    Returns:
        dict: totalScore, maxScore, percentage, results, canAutoGrade
    """
    results = []
    total_score = 0
    max_score = 0
    can_auto_grade = True

    for question in questions:
        marks = question.get('marks') or 1
        max_score += marks
        question_id = question.get('id')
        question_type = (question.get('question_type') or '').lower()

        if question_type not in AUTO_GRADABLE_TYPES:
            can_auto_grade = False
            results.append({
                'questionId': question_id,
                'isCorrect': False,
                'score': 0,
                'maxScore': marks,
                'feedback': 'This question requires manual grading',
                'studentAnswer': student_answers.get(question_id, ''),
                'correctAnswer': question.get('correct_answer'),
            })
            continue

        if question_id not in student_answers:
            results.append({
                'questionId': question_id,
                'isCorrect': False,
                'score': 0,
                'maxScore': marks,
                'feedback': 'No answer provided',
                'studentAnswer': '',
                'correctAnswer': question.get('correct_answer'),
            })
            continue

        result = grade_question(question, student_answers[question_id])
        results.append(result)
        total_score += result['score']

    percentage = round_half_up(total_score / max_score * 100) if max_score > 0 else 0
    return {
        'totalScore': total_score,
        'maxScore': max_score,
        'percentage': percentage,
        'results': results,
        'canAutoGrade': can_auto_grade and bool(auto_grading_enabled),
    }
