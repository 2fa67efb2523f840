import pytest

from main import create_app
from cache_helpers import clear_cache
from db_single import get_session
from models import School
from account_helpers import create_account
from course_helpers import normalize_grade

ADMIN_EMAIL = 'admin@school.com'
ADMIN_PASSWORD = 'Admin@12345'
USER_PASSWORD = 'Password1'


@pytest.fixture
def app():
    clear_cache()
    app = create_app('testing')
    yield app
    clear_cache()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password=USER_PASSWORD):
    return client.post('/api/auth/login', json={'email': email, 'password': password})


def add_school(name, grades=('Grade 5', 'Grade 6')):
    session = get_session()
    try:
        school = School(name=name, city='Pune', is_active=True)
        school.grades = [normalize_grade(g) for g in grades]
        session.add(school)
        session.commit()
        return school.id
    finally:
        session.close()


def add_account(**fields):
    validated = {'password': USER_PASSWORD, 'phone': None, 'address': None}
    validated.update(fields)
    session = get_session()
    try:
        user, _ = create_account(session, validated)
        session.commit()
        return user.id
    finally:
        session.close()


@pytest.fixture
def seed(app):
    """Two schools plus a teacher, a student and a school admin in the first one"""
    school_id = add_school('Green Valley Public School')
    other_school_id = add_school('Hill Top Academy')

    teacher_id = add_account(
        role='teacher', email='teacher@school.com', full_name='Tara Teacher',
        school_assignments=[{'school_id': school_id, 'grades_assigned': ['Grade 5'], 'subjects': ['Maths']}],
    )
    student_id = add_account(
        role='student', email='student@school.com', full_name='Sam Student',
        school_id=school_id, grade='Grade 5',
    )
    school_admin_id = add_account(
        role='school_admin', email='principal@school.com', full_name='Pat Principal',
        school_id=school_id,
    )
    other_admin_id = add_account(
        role='school_admin', email='other.principal@school.com', full_name='Olly Other',
        school_id=other_school_id,
    )
    return {
        'school_id': school_id,
        'other_school_id': other_school_id,
        'teacher_id': teacher_id,
        'student_id': student_id,
        'school_admin_id': school_admin_id,
        'other_admin_id': other_admin_id,
    }


@pytest.fixture
def admin_client(client):
    assert login(client, ADMIN_EMAIL, ADMIN_PASSWORD).status_code == 200
    return client


def client_for(app, email, password=USER_PASSWORD):
    c = app.test_client()
    response = login(c, email, password)
    assert response.status_code == 200, response.get_json()
    return c


def course_payload(school_id, **overrides):
    payload = {
        'name': 'Fractions',
        'description': 'Working with fractions',
        'school_ids': [school_id],
        'grades': ['5'],
        'chapters': [
            {'id': 'temp-1', 'name': 'Halves', 'order_number': 1},
            {'id': 'temp-2', 'name': 'Quarters', 'order_number': 2},
        ],
        'chapter_contents': [
            {'chapter_id': 'temp-1', 'content_type': 'video_link', 'title': 'Intro video',
             'content_url': 'https://videos.example.com/halves'},
            {'chapter_id': 'TEMP-2', 'content_type': 'pdf', 'title': 'Worksheet',
             'content_url': 'https://files.example.com/quarters.pdf'},
        ],
        'assignments': [
            {
                'chapter_id': 'temp-2',
                'title': 'Quarter quiz',
                'auto_grading_enabled': True,
                'max_attempts': 2,
                'questions': [
                    {'question_type': 'multiple_choice', 'question_text': 'What is 1/4 of 8?',
                     'options': ['1', '2', '4'], 'correct_answer': 1, 'marks': 2},
                    {'question_type': 'true_false', 'question_text': '2/4 equals 1/2',
                     'correct_answer': True, 'marks': 1},
                ],
            },
        ],
        'is_published': True,
    }
    payload.update(overrides)
    return payload
