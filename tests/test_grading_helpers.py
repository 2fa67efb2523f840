from grading_helpers import (
    grade_assignment, grade_question, normalize_answer, calculate_partial_credit, round_half_up
)


def mcq(qid='q1', correct=1, marks=2):
    return {'id': qid, 'question_type': 'mcq', 'options': ['1', '2', '4'], 'correct_answer': correct, 'marks': marks}


def test_normalize_answer():
    assert normalize_answer('  The   Sun ') == 'the sun'
    assert normalize_answer(None) == ''


def test_round_half_up():
    assert round_half_up(66.5) == 67
    assert round_half_up(66.49) == 66
    assert round_half_up(0) == 0


def test_mcq_by_index_and_by_text():
    assert grade_question(mcq(), 1)['isCorrect']
    assert grade_question(mcq(), '1')['isCorrect']
    assert not grade_question(mcq(), 2)['isCorrect']

    by_text = {'id': 'q', 'question_type': 'mcq', 'options': ['Red', 'Blue'], 'correct_answer': 'Blue', 'marks': 1}
    assert grade_question(by_text, 1)['isCorrect']
    assert grade_question(by_text, ' blue ')['isCorrect']


def test_true_false_accepts_strings():
    question = {'id': 'q', 'question_type': 'true_false', 'correct_answer': True, 'marks': 1}
    assert grade_question(question, 'true')['score'] == 1
    assert grade_question(question, False)['score'] == 0


def test_fill_blank_partial_credit():
    question = {'id': 'q', 'question_type': 'fill_blank', 'correct_answer': 'photosynthesis', 'marks': 10}
    exact = grade_question(question, 'Photosynthesis')
    assert exact['isCorrect'] and exact['score'] == 10

    near = grade_question(question, 'photosynthesys')
    assert not near['isCorrect']
    assert near['score'] == 9
    assert near['feedback'].startswith('Partially correct')

    assert grade_question(question, 'respiration')['score'] == 0


def test_fill_blank_multiple_blanks():
    question = {'id': 'q', 'question_type': 'fill_blank', 'correct_answer': ['red', 'green', 'blue'], 'marks': 3}
    result = grade_question(question, ['Red', 'green', 'yellow'])
    assert result['score'] == 2
    assert result['feedback'] == '2 out of 3 blanks correct.'


def test_partial_credit_threshold():
    assert calculate_partial_credit('abc', 'abc') == 1.0
    assert calculate_partial_credit('xyz', 'abc') == 0.0


def test_assignment_totals():
    questions = [mcq('q1', marks=2), {'id': 'q2', 'question_type': 'true_false', 'correct_answer': True, 'marks': 1}]
    result = grade_assignment(questions, {'q1': 1, 'q2': False})
    assert result['totalScore'] == 2
    assert result['maxScore'] == 3
    assert result['percentage'] == 67
    assert result['canAutoGrade'] is True


def test_missing_answer_scores_zero():
    result = grade_assignment([mcq('q1')], {})
    assert result['results'][0]['feedback'] == 'No answer provided'
    assert result['percentage'] == 0


def test_essay_blocks_auto_grading():
    questions = [mcq('q1'), {'id': 'q2', 'question_type': 'essay', 'marks': 5}]
    result = grade_assignment(questions, {'q1': 1, 'q2': 'Long answer'})
    assert result['canAutoGrade'] is False
    assert result['results'][1]['feedback'] == 'This question requires manual grading'

    assert grade_assignment([mcq('q1')], {'q1': 1}, auto_grading_enabled=False)['canAutoGrade'] is False
