from db_single import get_session
from models import User, School, JoinCode
from teacher_models import TeacherSchool
from student_models import Student, StudentSchool
from conftest import add_account, client_for, login


def test_create_school_issues_codes_per_grade(admin_client):
    response = admin_client.post('/api/admin/schools', json={
        'name': 'Green Valley Public School',
        'city': 'Pune',
        'grades_offered': ['5', 'Grade 6', 'kg'],
    })
    assert response.status_code == 201
    body = response.get_json()
    assert body['school']['grades_offered'] == ['Grade 5', 'Grade 6', 'Kindergarten']

    codes = {c['grade']: c['code'] for c in body['joining_codes']}
    assert set(codes) == {'Grade 5', 'Grade 6', 'Kindergarten'}
    assert codes['Grade 5'].startswith('GVPS-G5-')
    assert codes['Kindergarten'].startswith('GVPS-K-')


def test_create_school_requires_name(admin_client):
    response = admin_client.post('/api/admin/schools', json={'city': 'Pune'})
    assert response.status_code == 400
    assert response.get_json()['details'] == 'name: is required'


def test_school_list_is_cacheable(admin_client, seed):
    first = admin_client.get('/api/admin/schools')
    assert first.status_code == 200
    assert 'max-age=60' in first.headers['Cache-Control']
    etag = first.headers['ETag']
    assert len(first.get_json()['schools']) == 2

    again = admin_client.get('/api/admin/schools', headers={'If-None-Match': etag})
    assert again.status_code == 304


def test_school_list_counts_members(admin_client, seed):
    schools = {s['id']: s for s in admin_client.get('/api/admin/schools').get_json()['schools']}
    assert schools[seed['school_id']]['teacher_count'] == 1
    assert schools[seed['school_id']]['student_count'] == 1
    assert schools[seed['other_school_id']]['teacher_count'] == 0


def test_school_list_is_refreshed_after_writes(admin_client, seed):
    assert len(admin_client.get('/api/admin/schools').get_json()['schools']) == 2
    admin_client.post('/api/admin/schools', json={'name': 'Riverside School'})
    assert len(admin_client.get('/api/admin/schools').get_json()['schools']) == 3


def test_update_school(admin_client, seed):
    response = admin_client.patch('/api/admin/schools', json={
        'id': seed['school_id'], 'city': 'Mumbai', 'grades_offered': ['7'],
    })
    assert response.status_code == 200
    school = response.get_json()['school']
    assert school['city'] == 'Mumbai'
    assert school['grades_offered'] == ['Grade 7']

    assert admin_client.patch('/api/admin/schools', json={'id': 'nope'}).status_code == 400


def test_create_accounts_through_api(admin_client, seed):
    response = admin_client.post('/api/admin/create-account', json={
        'role': 'teacher',
        'email': 'New.Teacher@school.com',
        'full_name': 'New Teacher',
        'password': 'Password1',
        'school_assignments': [
            {'school_id': seed['school_id'], 'grades_assigned': ['Grade 5'], 'subjects': ['Science']},
            {'school_id': seed['other_school_id'], 'grades_assigned': ['Grade 6'], 'subjects': ['Science']},
        ],
    })
    assert response.status_code == 201
    body = response.get_json()
    assert body['data']['email'] == 'new.teacher@school.com'
    assert body['data']['teacher_code'].startswith('TCH')
    assert body['data']['school_ids'] == [seed['school_id'], seed['other_school_id']]

    duplicate = admin_client.post('/api/admin/create-account', json={
        'role': 'student', 'email': 'new.teacher@school.com', 'full_name': 'Dup Licate',
        'password': 'Password1', 'school_id': seed['school_id'],
    })
    assert duplicate.status_code == 400
    assert 'already exists' in duplicate.get_json()['error']


def test_joining_code_registration(admin_client, app):
    created = admin_client.post('/api/admin/schools', json={
        'name': 'Sunrise Academy', 'grades_offered': ['Grade 3'],
    }).get_json()
    code = created['joining_codes'][0]['code']

    anon = app.test_client()
    check = anon.post('/api/validate-joining-code', json={'code': code.lower()})
    assert check.status_code == 200
    assert check.get_json()['grade'] == 'Grade 3'

    registered = anon.post('/api/validate-joining-code', json={
        'code': code,
        'studentData': {'full_name': 'New Kid', 'email': 'new.kid@school.com', 'password': 'Password1'},
    })
    assert registered.status_code == 201
    assert registered.get_json()['school_id'] == created['school']['id']

    assert login(anon, 'new.kid@school.com').status_code == 200

    session = get_session()
    try:
        join_code = session.query(JoinCode).filter_by(code=code).first()
        assert join_code.times_used == 1
        student = session.query(Student).filter_by(email='new.kid@school.com').first()
        assert student.grade == 'Grade 3'
        enrolment = session.query(StudentSchool).filter_by(student_id=student.user_id).first()
        assert enrolment.joining_code == code
    finally:
        session.close()


def test_invalid_joining_code(client):
    response = client.post('/api/validate-joining-code', json={'code': 'NOPE-G1-000'})
    assert response.status_code == 400
    assert response.get_json() == {'is_valid': False, 'message': 'Invalid joining code'}


def test_single_use_code_is_exhausted(admin_client, app):
    school_id = admin_client.post('/api/admin/schools', json={'name': 'Lake School'}).get_json()['school']['id']
    response = admin_client.post('/api/admin/joining-codes', json={
        'schoolId': school_id, 'grades': ['4'], 'usageType': 'single',
    })
    assert response.status_code == 201
    code = response.get_json()['codes'][0]['code']

    anon = app.test_client()
    first = anon.post('/api/validate-joining-code', json={
        'code': code, 'studentData': {'full_name': 'One Kid', 'email': 'one@school.com', 'password': 'Password1'},
    })
    assert first.status_code == 201
    second = anon.post('/api/validate-joining-code', json={'code': code})
    assert second.status_code == 400


def test_joining_code_max_uses_must_be_a_number(admin_client):
    school_id = admin_client.post('/api/admin/schools', json={'name': 'Hill School'}).get_json()['school']['id']

    response = admin_client.post('/api/admin/joining-codes', json={
        'schoolId': school_id, 'grades': ['4'], 'maxUses': 'many',
    })
    assert response.status_code == 400
    assert response.get_json()['details'] == 'maxUses: must be a whole number'

    response = admin_client.post('/api/admin/joining-codes', json={
        'schoolId': school_id, 'grades': ['4'], 'maxUses': '30',
    })
    assert response.status_code == 201
    code = response.get_json()['codes'][0]
    assert code['max_uses'] == 30

    response = admin_client.patch('/api/admin/joining-codes', json={'codeId': code['id'], 'maxUses': 'x'})
    assert response.status_code == 400
    assert response.get_json()['details'] == 'maxUses: must be a whole number'

    response = admin_client.patch('/api/admin/joining-codes', json={'codeId': code['id'], 'maxUses': 0})
    assert response.status_code == 400

    session = get_session()
    try:
        assert session.query(JoinCode).filter_by(id=code['id']).one().max_uses == 30
    finally:
        session.close()


def test_school_counts_refresh_after_account_creation(admin_client, seed):
    schools = {s['id']: s for s in admin_client.get('/api/admin/schools').get_json()['schools']}
    assert schools[seed['school_id']]['student_count'] == 1
    assert schools[seed['school_id']]['teacher_count'] == 1

    response = admin_client.post('/api/admin/create-account', json={
        'role': 'student', 'email': 'second.kid@school.com', 'full_name': 'Second Kid',
        'password': 'Password1', 'school_id': seed['school_id'], 'grade': 'Grade 5',
    })
    assert response.status_code == 201
    response = admin_client.post('/api/admin/create-account', json={
        'role': 'teacher', 'email': 'second.teacher@school.com', 'full_name': 'Second Teacher',
        'password': 'Password1',
        'school_assignments': [{'school_id': seed['school_id'], 'grades_assigned': ['Grade 5']}],
    })
    assert response.status_code == 201

    schools = {s['id']: s for s in admin_client.get('/api/admin/schools').get_json()['schools']}
    assert schools[seed['school_id']]['student_count'] == 2
    assert schools[seed['school_id']]['teacher_count'] == 2


def test_delete_school_keeps_shared_teachers(admin_client, seed):
    shared_teacher = add_account(
        role='teacher', email='shared@school.com', full_name='Shared Teacher',
        school_assignments=[
            {'school_id': seed['school_id'], 'grades_assigned': ['Grade 5'], 'subjects': []},
            {'school_id': seed['other_school_id'], 'grades_assigned': ['Grade 5'], 'subjects': []},
        ],
    )

    response = admin_client.delete('/api/admin/schools', json={'schoolId': seed['school_id']})
    assert response.status_code == 200
    body = response.get_json()
    assert body['teachers_deleted'] == 1
    assert body['teachers_kept'] == 1
    assert body['students_deleted'] == 1
    assert body['students_kept'] == 0

    session = get_session()
    try:
        assert session.get(School, seed['school_id']) is None
        assert session.get(School, seed['other_school_id']) is not None
        assert session.get(User, seed['teacher_id']) is None
        assert session.get(User, seed['student_id']) is None
        assert session.get(User, shared_teacher) is not None
        links = session.query(TeacherSchool).filter_by(teacher_id=shared_teacher).all()
        assert [l.school_id for l in links] == [seed['other_school_id']]
        assert session.query(StudentSchool).filter_by(school_id=seed['school_id']).count() == 0
        assert session.get(User, seed['school_admin_id']).school_id is None
    finally:
        session.close()


def test_delete_unknown_school(admin_client):
    response = admin_client.delete('/api/admin/schools', json={'schoolId': '0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10'})
    assert response.status_code == 404
    assert admin_client.delete('/api/admin/schools', json={}).status_code == 400


def test_school_admin_sees_only_own_school(app, seed):
    principal = client_for(app, 'principal@school.com')
    school = principal.get('/api/school-admin/school').get_json()
    assert school['school']['id'] == seed['school_id']

    teachers = principal.get('/api/school-admin/teachers').get_json()
    assert [t['email'] for t in teachers['teachers']] == ['teacher@school.com']

    other = client_for(app, 'other.principal@school.com')
    assert other.get('/api/school-admin/teachers').get_json()['teachers'] == []
