import pytest

from conftest import course_payload, client_for, add_account


@pytest.fixture
def course(admin_client, seed):
    response = admin_client.post('/api/admin/courses', json=course_payload(seed['school_id']))
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def student(app, seed):
    return client_for(app, 'student@school.com')


def test_student_sees_courses_for_school_and_grade(app, seed, course, student):
    body = student.get('/api/student/courses').get_json()
    assert [c['id'] for c in body['courses']] == [course['course']['id']]
    assert body['courses'][0]['progress_percentage'] == 0.0
    assert body['courses'][0]['enrolled_at'] is not None

    add_account(role='student', email='grade6@school.com', full_name='Six Grader',
                school_id=seed['school_id'], grade='6')
    other_grade = client_for(app, 'grade6@school.com')
    assert other_grade.get('/api/student/courses').get_json()['courses'] == []

    add_account(role='student', email='elsewhere@school.com', full_name='Else Where',
                school_id=seed['other_school_id'], grade='Grade 5')
    other_school = client_for(app, 'elsewhere@school.com')
    assert other_school.get('/api/student/courses').get_json()['courses'] == []
    assert other_school.get(f"/api/student/courses/{course['course']['id']}/chapters").status_code == 404


def test_unpublished_course_is_hidden(admin_client, seed, course, student):
    course_id = course['course']['id']
    admin_client.patch(f'/api/admin/courses/{course_id}/publish', json={'is_published': False})
    assert student.get('/api/student/courses').get_json()['courses'] == []
    assert student.get(f'/api/student/courses/{course_id}/chapters').status_code == 404


def test_chapters_and_contents(course, student):
    course_id = course['course']['id']
    chapters = student.get(f'/api/student/courses/{course_id}/chapters').get_json()['chapters']
    assert [c['title'] for c in chapters] == ['Halves', 'Quarters']
    assert chapters[0]['is_completed'] is False

    contents = student.get(f"/api/student/courses/{course_id}/chapters/{chapters[0]['id']}/contents").get_json()
    assert [c['content_type'] for c in contents['contents']] == ['video_link']


def test_chapter_progress_rolls_up_to_course(course, student):
    course_id = course['course']['id']
    first, second = course['chapter_id_map']['temp-1'], course['chapter_id_map']['temp-2']

    response = student.post('/api/student/save-chapter-progress', json={
        'course_id': course_id, 'chapter_id': first, 'completed': True, 'time_spent_minutes': 12,
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body['course_progress'] == 50.0
    assert body['course_completed'] is False
    assert body['progress']['time_spent_minutes'] == 12

    body = student.post('/api/student/save-chapter-progress', json={
        'course_id': course_id, 'chapter_id': second, 'completed': True,
    }).get_json()
    assert body['course_progress'] == 100.0
    assert body['course_completed'] is True

    progress = student.get('/api/student/progress').get_json()
    assert progress['overall_progress'] == 100.0
    assert progress['courses'][0]['chapters_completed'] == 2


def test_progress_for_unknown_chapter(course, student):
    response = student.post('/api/student/save-chapter-progress', json={
        'course_id': course['course']['id'], 'chapter_id': 'nope', 'completed': True,
    })
    assert response.status_code == 404


def test_assignment_detail_hides_answers(course, student):
    assignment_id = course['course']['assignments'][0]['id']
    body = student.get(f'/api/student/assignments/{assignment_id}').get_json()
    assert body['submission'] is None
    assert all('correct_answer' not in q for q in body['assignment']['questions'])

    listing = student.get('/api/student/assignments').get_json()['assignments']
    assert listing[0]['submission_status'] == 'not_submitted'


def test_submission_is_auto_graded_and_attempts_are_capped(course, student):
    assignment_id = course['course']['assignments'][0]['id']
    url = f'/api/student/assignments/{assignment_id}/submit'

    first = student.post(url, json={'answers': {'0': 1, '1': False}})
    assert first.status_code == 201
    body = first.get_json()
    assert body['submission']['status'] == 'graded'
    assert body['submission']['grade'] == 67
    assert body['submission']['feedback'] == 'Auto-graded: 2/3 points (67%)'
    assert body['grading']['maxScore'] == 3

    second = student.post(url, json={'answers': [1, True]})
    assert second.status_code == 200
    assert second.get_json()['submission']['attempts'] == 2
    assert second.get_json()['submission']['grade'] == 100

    third = student.post(url, json={'answers': [1, True]})
    assert third.status_code == 400
    assert third.get_json()['error'] == 'Attempt Limit Exceeded'

    listing = student.get('/api/student/assignments').get_json()['assignments']
    assert listing[0]['submission_status'] == 'graded'


def test_single_attempt_assignment(admin_client, seed, student):
    payload = course_payload(seed['school_id'])
    payload['assignments'][0]['max_attempts'] = 1
    assignment_id = admin_client.post('/api/admin/courses', json=payload).get_json()['course']['assignments'][0]['id']

    url = f'/api/student/assignments/{assignment_id}/submit'
    assert student.post(url, json={'answers': [1, True]}).status_code == 201
    again = student.post(url, json={'answers': [1, True]})
    assert again.status_code == 400
    assert again.get_json()['error'] == 'Already Submitted'


def test_essay_submission_waits_for_manual_grading(admin_client, seed, student):
    payload = course_payload(seed['school_id'])
    payload['assignments'][0]['questions'] = [{'question_type': 'essay', 'question_text': 'Explain halves'}]
    assignment_id = admin_client.post('/api/admin/courses', json=payload).get_json()['course']['assignments'][0]['id']

    response = student.post(f'/api/student/assignments/{assignment_id}/submit', json={'textContent': 'Two equal parts'})
    assert response.status_code == 201
    body = response.get_json()
    assert body['submission']['status'] == 'submitted'
    assert body['submission']['grade'] is None
    assert body['submission']['answers_json'] == {'0': 'Two equal parts'}
    assert 'grading' not in body


def test_empty_submission_is_rejected(course, student):
    assignment_id = course['course']['assignments'][0]['id']
    response = student.post(f'/api/student/assignments/{assignment_id}/submit', json={})
    assert response.status_code == 400


def test_submission_to_invisible_assignment(app, seed, course):
    add_account(role='student', email='elsewhere@school.com', full_name='Else Where',
                school_id=seed['other_school_id'], grade='Grade 5')
    outsider = client_for(app, 'elsewhere@school.com')
    assignment_id = course['course']['assignments'][0]['id']
    response = outsider.post(f'/api/student/assignments/{assignment_id}/submit', json={'answers': [1, True]})
    assert response.status_code == 404
    assert response.get_json()['details'] == 'Assignment not found or not published'


def test_dashboard(course, student):
    stats = student.get('/api/student/dashboard').get_json()['stats']
    assert stats['school_name'] == 'Green Valley Public School'
    assert stats['available_courses'] == 1
    assert stats['pending_assignments'] == 1
