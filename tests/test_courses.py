from db_single import get_session
from course_models import Course, Chapter, ChapterContent, Assignment, CourseAccess
from student_models import Submission
from validators import is_valid_uuid
from conftest import course_payload, client_for


def create_course(admin_client, school_id, **overrides):
    response = admin_client.post('/api/admin/courses', json=course_payload(school_id, **overrides))
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_create_course_reconciles_temp_ids(admin_client, seed):
    body = create_course(admin_client, seed['school_id'])
    id_map = body['chapter_id_map']
    assert set(id_map) == {'temp-1', 'temp-2'}
    assert all(is_valid_uuid(v) for v in id_map.values())

    course = body['course']
    assert course['is_published'] is True
    assert course['num_chapters'] == 2
    assert course['total_videos'] == 1
    assert course['total_materials'] == 1
    assert course['total_assignments'] == 1
    assert course['course_access'] == [
        {'school_id': seed['school_id'], 'school_name': 'Green Valley Public School', 'grade': 'Grade 5'}
    ]

    chapters = {c['id']: c for c in course['chapters']}
    assert [c['title'] for c in chapters[id_map['temp-1']]['contents']] == ['Intro video']
    assert [c['title'] for c in chapters[id_map['temp-2']]['contents']] == ['Worksheet']

    assignment = course['assignments'][0]
    assert assignment['chapter_id'] == id_map['temp-2']
    assert [q['question_type'] for q in assignment['questions']] == ['mcq', 'true_false']
    assert assignment['questions'][0]['correct_answer'] == 1


def test_create_course_with_schedule(admin_client, seed):
    body = create_course(admin_client, seed['school_id'], scheduling={
        'release_type': 'Weekly', 'start_date': '2026-01-05T00:00:00Z',
    })
    schedules = body['course']['schedules']
    assert [s['release_date'] for s in schedules] == ['2026-01-05T00:00:00', '2026-01-12T00:00:00']
    assert [s['chapter_id'] for s in schedules] == [
        body['chapter_id_map']['temp-1'], body['chapter_id_map']['temp-2']
    ]


def test_invalid_schedule_writes_nothing(admin_client, seed):
    response = admin_client.post('/api/admin/courses', json=course_payload(
        seed['school_id'], scheduling={'release_type': 'Monthly'}
    ))
    assert response.status_code == 400
    assert response.get_json()['details'].startswith('scheduling.release_type')

    session = get_session()
    try:
        assert session.query(Course).count() == 0
        assert session.query(Chapter).count() == 0
    finally:
        session.close()


def test_create_course_validation(admin_client, seed):
    response = admin_client.post('/api/admin/courses', json=course_payload(seed['school_id'], name=''))
    assert response.status_code == 400

    response = admin_client.post('/api/admin/courses', json=course_payload(seed['school_id'], grades=[]))
    assert response.status_code == 400
    assert response.get_json()['details'] == 'grades: At least one grade is required'

    unknown = '0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10'
    response = admin_client.post('/api/admin/courses', json=course_payload(unknown))
    assert response.status_code == 400
    assert 'Invalid school IDs' in response.get_json()['details']


def test_patch_course_keeps_assignment_and_replaces_chapters(admin_client, seed):
    body = create_course(admin_client, seed['school_id'])
    course_id = body['course']['id']
    first_chapter = body['chapter_id_map']['temp-1']
    assignment_id = body['course']['assignments'][0]['id']

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={
        'name': 'Fractions and Decimals',
        'chapters': [
            {'id': first_chapter, 'name': 'Halves revised', 'order_number': 1},
            {'id': 'temp-3', 'name': 'Tenths', 'order_number': 2},
        ],
        'assignments': [{
            'id': assignment_id,
            'chapter_id': 'temp-3',
            'title': 'Tenths quiz',
            'questions': [{'question_type': 'essay', 'question_text': 'Explain 0.1'}],
        }],
        'changes_summary': 'Swap quarters for tenths',
    })
    assert response.status_code == 200, response.get_json()
    updated = response.get_json()

    assert updated['version_number'] == 1
    assert updated['summary']['chapters_deleted'] == 1
    new_chapter = updated['chapter_id_map']['temp-3']
    assert updated['chapter_id_map'][first_chapter] == first_chapter

    course = updated['course']
    assert course['name'] == 'Fractions and Decimals'
    assert [c['title'] for c in course['chapters']] == ['Halves revised', 'Tenths']
    assert course['assignments'][0]['id'] == assignment_id
    assert course['assignments'][0]['chapter_id'] == new_chapter
    assert [q['question_type'] for q in course['assignments'][0]['questions']] == ['essay']

    session = get_session()
    try:
        # the worksheet belonged to the removed chapter
        assert [c.title for c in session.query(ChapterContent).all()] == ['Intro video']
    finally:
        session.close()


def test_patch_keeps_submissions_of_kept_assignments(admin_client, app, seed):
    body = create_course(admin_client, seed['school_id'])
    course_id = body['course']['id']
    assignment = body['course']['assignments'][0]

    student = client_for(app, 'student@school.com')
    submitted = student.post(f"/api/student/assignments/{assignment['id']}/submit", json={'answers': [1, True]})
    assert submitted.status_code == 201

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={
        'assignments': [{**assignment, 'title': 'Quarter quiz (revised)'}],
    })
    assert response.status_code == 200
    assert response.get_json()['summary']['assignments']['deleted'] == 0

    session = get_session()
    try:
        submissions = session.query(Submission).all()
        assert [s.assignment_id for s in submissions] == [assignment['id']]
        assert submissions[0].grade == 100
        assert session.query(Assignment).filter_by(id=assignment['id']).one().title == 'Quarter quiz (revised)'
    finally:
        session.close()

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={
        'assignments': [{'chapter_id': body['chapter_id_map']['temp-1'], 'title': 'Halves quiz'}],
    })
    assert response.get_json()['summary']['assignments']['deleted'] == 1

    session = get_session()
    try:
        assert session.query(Submission).count() == 0
        assert [a.title for a in session.query(Assignment).all()] == ['Halves quiz']
    finally:
        session.close()


def test_patch_without_release_type_keeps_schedule(admin_client, seed):
    body = create_course(admin_client, seed['school_id'], scheduling={
        'release_type': 'Weekly', 'start_date': '2026-01-05',
    })
    course_id = body['course']['id']
    assert [s['next_release'] for s in body['course']['schedules']] == ['2026-01-12T00:00:00', None]

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={'scheduling': None})
    assert response.status_code == 200
    assert len(response.get_json()['course']['schedules']) == 2

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={'scheduling': {'start_date': '2026-02-01'}})
    assert len(response.get_json()['course']['schedules']) == 2

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={
        'scheduling': {'release_type': 'Daily', 'start_date': '2026-02-01'},
    })
    schedules = response.get_json()['course']['schedules']
    assert [s['release_date'] for s in schedules] == ['2026-02-01T00:00:00', '2026-02-02T00:00:00']


def test_items_can_target_chapters_by_position(admin_client, seed):
    payload = course_payload(seed['school_id'])
    del payload['assignments'][0]['chapter_id']
    payload['assignments'][0]['chapter_index'] = 1

    body = create_course(admin_client, seed['school_id'], assignments=payload['assignments'])
    assert body['course']['assignments'][0]['chapter_id'] == body['chapter_id_map']['temp-2']


def test_non_numeric_chapter_order_is_rejected(admin_client, seed):
    response = admin_client.post('/api/admin/courses', json=course_payload(seed['school_id'], chapters=[
        {'id': 'temp-1', 'name': 'Halves', 'order_number': 'first'},
    ]))
    assert response.status_code == 400
    assert response.get_json()['details'] == 'chapters.0.order_index: must be a whole number'

    session = get_session()
    try:
        assert session.query(Course).count() == 0
    finally:
        session.close()


def test_patch_course_access(admin_client, seed):
    course_id = create_course(admin_client, seed['school_id'])['course']['id']
    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={
        'school_ids': [seed['school_id'], seed['other_school_id']], 'grades': ['5', '6'],
    })
    assert response.status_code == 200
    assert response.get_json()['summary']['course_access'] == 4

    response = admin_client.patch(f'/api/admin/courses/{course_id}', json={'school_ids': []})
    assert response.status_code == 400


def test_patch_unknown_course(admin_client):
    response = admin_client.patch('/api/admin/courses/0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10', json={'name': 'x'})
    assert response.status_code == 404


def test_publish_toggle(admin_client, seed):
    course_id = create_course(admin_client, seed['school_id'], is_published=False)['course']['id']

    assert admin_client.patch(f'/api/admin/courses/{course_id}/publish', json={'is_published': 'yes'}).status_code == 400

    response = admin_client.patch(f'/api/admin/courses/{course_id}/publish', json={'is_published': True})
    assert response.status_code == 200
    assert response.get_json()['course']['status'] == 'Published'


def test_delete_course_cascades(admin_client, app, seed):
    body = create_course(admin_client, seed['school_id'])
    course_id = body['course']['id']
    assignment_id = body['course']['assignments'][0]['id']

    student = client_for(app, 'student@school.com')
    submitted = student.post(f'/api/student/assignments/{assignment_id}/submit', json={'answers': {'0': 1, '1': True}})
    assert submitted.status_code == 201

    response = admin_client.delete(f'/api/admin/courses/{course_id}')
    assert response.status_code == 200
    results = response.get_json()['deletion_results']
    assert results['courses'] == 1
    assert results['chapters'] == 2
    assert results['chapter_contents'] == 2
    assert results['assignments'] == 1
    assert results['assignment_questions'] == 2
    assert results['submissions'] == 1
    assert results['course_access'] == 1
    assert response.get_json()['errors'] == []

    session = get_session()
    try:
        assert session.query(Course).count() == 0
        assert session.query(Assignment).count() == 0
        assert session.query(CourseAccess).count() == 0
        assert session.query(Submission).count() == 0
    finally:
        session.close()

    assert admin_client.get(f'/api/admin/courses/{course_id}').status_code == 404
    assert admin_client.delete(f'/api/admin/courses/{course_id}').status_code == 404


def test_course_versions(admin_client, seed):
    course_id = create_course(admin_client, seed['school_id'])['course']['id']
    response = admin_client.post(f'/api/admin/courses/{course_id}/versions', json={'changes_summary': 'Baseline'})
    assert response.status_code == 201
    assert response.get_json()['version']['version_number'] == 1

    admin_client.patch(f'/api/admin/courses/{course_id}', json={'description': 'Updated'})
    versions = admin_client.get(f'/api/admin/courses/{course_id}/versions').get_json()['versions']
    assert sorted(v['version_number'] for v in versions) == [1, 2]


def test_school_admin_sees_course_for_school(admin_client, app, seed):
    create_course(admin_client, seed['school_id'])

    principal = client_for(app, 'principal@school.com')
    courses = principal.get('/api/school-admin/courses').get_json()['courses']
    assert [c['name'] for c in courses] == ['Fractions']

    other = client_for(app, 'other.principal@school.com')
    assert other.get('/api/school-admin/courses').get_json()['courses'] == []
