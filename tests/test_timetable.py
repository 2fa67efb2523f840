import pytest

from db_single import get_session
from models import Class
from teacher_models import TeacherClass
from timetable_models import Period, Room, ClassSchedule
from conftest import client_for


@pytest.fixture
def principal(app, seed):
    return client_for(app, 'principal@school.com')


def add_period(principal, number, start, end):
    response = principal.post('/api/school-admin/periods', json={
        'period_number': number, 'start_time': start, 'end_time': end,
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()['period']


def add_room(principal, number='R-101', **fields):
    response = principal.post('/api/school-admin/rooms', json={'room_number': number, **fields})
    assert response.status_code == 201, response.get_json()
    return response.get_json()['room']


def add_schedule(principal, **fields):
    payload = {'subject': 'Maths', 'grade': '5', 'day_of_week': 'Monday', **fields}
    return principal.post('/api/school-admin/schedules', json=payload)


def test_period_crud(principal):
    second = add_period(principal, 2, '10:00', '11:00')
    first = add_period(principal, 1, '09:00:00', '10:00:00')
    assert first['start_time'] == '09:00'

    periods = principal.get('/api/school-admin/periods').get_json()['periods']
    assert [p['period_number'] for p in periods] == [1, 2]

    duplicate = principal.post('/api/school-admin/periods', json={
        'period_number': 2, 'start_time': '12:00', 'end_time': '13:00',
    })
    assert duplicate.status_code == 400
    assert duplicate.get_json()['error'] == 'Period 2 already exists'

    backwards = principal.post('/api/school-admin/periods', json={
        'period_number': 3, 'start_time': '12:00', 'end_time': '11:00',
    })
    assert backwards.get_json()['details'] == 'end_time: must be after start_time'

    bad_time = principal.post('/api/school-admin/periods', json={
        'period_number': 3, 'start_time': '9am', 'end_time': '10:00',
    })
    assert bad_time.status_code == 400

    updated = principal.put(f"/api/school-admin/periods/{second['id']}", json={
        'period_number': 2, 'start_time': '10:15', 'end_time': '11:15', 'is_active': False,
    })
    assert updated.status_code == 200
    assert updated.get_json()['period']['start_time'] == '10:15'
    assert updated.get_json()['period']['is_active'] is False


def test_room_crud(principal):
    room = add_room(principal, 'Lab 1', room_name='Science Lab', capacity='30', facilities=['Projector', ' '])
    assert room['capacity'] == 30
    assert room['facilities'] == ['Projector']

    assert principal.post('/api/school-admin/rooms', json={'room_number': 'Lab 1'}).status_code == 400
    assert principal.post('/api/school-admin/rooms', json={'room_name': 'No number'}).status_code == 400

    response = principal.put(f"/api/school-admin/rooms/{room['id']}", json={
        'room_number': 'Lab 1', 'capacity': 'lots',
    })
    assert response.get_json()['details'] == 'capacity: must be a whole number'

    response = principal.put(f"/api/school-admin/rooms/{room['id']}", json={'room_number': 'Lab 2', 'capacity': 25})
    assert response.status_code == 200
    assert [r['room_number'] for r in principal.get('/api/school-admin/rooms').get_json()['rooms']] == ['Lab 2']


def test_schedule_takes_period_times(principal, seed):
    period = add_period(principal, 1, '09:00', '09:45')
    room = add_room(principal)

    response = add_schedule(principal, period_id=period['id'], room_id=room['id'], teacher_id=seed['teacher_id'])
    assert response.status_code == 201, response.get_json()
    schedule = response.get_json()['schedule']
    assert schedule['grade'] == 'Grade 5'
    assert (schedule['start_time'], schedule['end_time']) == ('09:00', '09:45')
    assert schedule['period']['period_number'] == 1
    assert schedule['room']['room_number'] == 'R-101'
    assert schedule['teacher']['full_name'] == 'Tara Teacher'


def test_schedule_conflicts(principal, seed):
    first = add_period(principal, 1, '09:00', '10:00')
    second = add_period(principal, 2, '10:00', '11:00')
    room = add_room(principal)

    assert add_schedule(principal, period_id=first['id'], room_id=room['id'],
                        teacher_id=seed['teacher_id']).status_code == 201

    clash = add_schedule(principal, period_id=first['id'], teacher_id=seed['teacher_id'], subject='Science')
    assert clash.status_code == 400
    assert clash.get_json() == {
        'error': 'Schedule conflict', 'details': 'Teacher already has a class scheduled at this time',
    }

    clash = add_schedule(principal, start_time='09:30', end_time='10:30', room_id=room['id'], subject='Art')
    assert clash.get_json()['error'] == 'Room conflict'

    # back-to-back periods only touch
    assert add_schedule(principal, period_id=second['id'], room_id=room['id'],
                        teacher_id=seed['teacher_id']).status_code == 201
    assert add_schedule(principal, period_id=first['id'], room_id=room['id'], teacher_id=seed['teacher_id'],
                        day_of_week='tuesday').status_code == 201


def test_class_conflict(principal, seed):
    session = get_session()
    try:
        class_obj = Class(school_id=seed['school_id'], grade='Grade 5', class_name='5A')
        session.add(class_obj)
        session.commit()
        class_id = class_obj.id
    finally:
        session.close()

    assert add_schedule(principal, class_id=class_id, start_time='11:00', end_time='12:00').status_code == 201
    clash = add_schedule(principal, class_id=class_id, start_time='11:30', end_time='12:30', subject='English')
    assert clash.get_json()['error'] == 'Class conflict'


def test_update_schedule_rechecks_conflicts(principal, seed):
    first = add_period(principal, 1, '09:00', '10:00')
    second = add_period(principal, 2, '10:00', '11:00')
    add_schedule(principal, period_id=first['id'], teacher_id=seed['teacher_id'])
    later = add_schedule(principal, period_id=second['id'], teacher_id=seed['teacher_id']).get_json()['schedule']

    response = principal.put(f"/api/school-admin/schedules/{later['id']}", json={'period_id': first['id']})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Schedule conflict'

    response = principal.put(f"/api/school-admin/schedules/{later['id']}", json={'notes': 'Bring compasses'})
    assert response.status_code == 200
    assert response.get_json()['schedule']['notes'] == 'Bring compasses'
    assert response.get_json()['schedule']['period_id'] == second['id']


def test_schedule_validation(principal, app, seed):
    period = add_period(principal, 1, '09:00', '10:00')

    response = add_schedule(principal, period_id=period['id'], day_of_week='Funday')
    assert response.get_json()['details'] == (
        'day_of_week: must be one of: Monday, Tuesday, Wednesday, Thursday, Friday, Saturday, Sunday'
    )

    response = add_schedule(principal)
    assert response.get_json()['details'] == 'period_id: or start_time and end_time are required'

    response = add_schedule(principal, period_id=period['id'], subject='')
    assert response.get_json()['details'] == 'subject: is required'

    response = add_schedule(principal, period_id=period['id'], teacher_id=seed['school_admin_id'])
    assert response.get_json()['details'] == 'teacher_id: is not a teacher at this school'

    other = client_for(app, 'other.principal@school.com')
    response = add_schedule(other, period_id=period['id'])
    assert response.get_json()['details'] == 'period_id: does not exist or is not associated with this school'


def test_period_and_room_in_use_cannot_be_deleted(principal, seed):
    period = add_period(principal, 1, '09:00', '10:00')
    room = add_room(principal)
    schedule = add_schedule(principal, period_id=period['id'], room_id=room['id']).get_json()['schedule']

    response = principal.delete(f"/api/school-admin/periods/{period['id']}")
    assert response.status_code == 400
    assert response.get_json() == {
        'error': 'Cannot delete period',
        'details': 'Period is assigned to active schedules. Please remove assignments first.',
    }
    response = principal.delete(f"/api/school-admin/rooms/{room['id']}")
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Cannot delete room'

    assert principal.delete(f"/api/school-admin/schedules/{schedule['id']}").status_code == 200
    assert principal.get('/api/school-admin/schedules').get_json()['schedules'] == []

    assert principal.delete(f"/api/school-admin/periods/{period['id']}").status_code == 200
    assert principal.delete(f"/api/school-admin/rooms/{room['id']}").status_code == 200

    session = get_session()
    try:
        assert session.query(Period).count() == 0
        assert session.query(Room).count() == 0
        kept = session.get(ClassSchedule, schedule['id'])
        assert kept.is_active is False
        assert kept.period_id is None
        assert kept.room_id is None
    finally:
        session.close()


def test_other_school_admin_is_refused(principal, app):
    period = add_period(principal, 1, '09:00', '10:00')
    other = client_for(app, 'other.principal@school.com')

    assert other.get('/api/school-admin/periods').get_json()['periods'] == []
    assert other.delete(f"/api/school-admin/periods/{period['id']}").status_code == 403
    response = other.put(f"/api/school-admin/periods/{period['id']}", json={
        'period_number': 1, 'start_time': '08:00', 'end_time': '09:00',
    })
    assert response.status_code == 403
    assert principal.delete('/api/school-admin/periods/0b7f8d3e-4c55-4d7a-9a43-2f1f5c3b9e10').status_code == 404


def test_list_schedules_filters_and_order(principal, seed):
    add_schedule(principal, day_of_week='Wednesday', start_time='09:00', end_time='10:00')
    add_schedule(principal, day_of_week='Monday', start_time='11:00', end_time='12:00', grade='6')
    add_schedule(principal, day_of_week='Monday', start_time='08:00', end_time='09:00')

    schedules = principal.get('/api/school-admin/schedules').get_json()['schedules']
    assert [(s['day_of_week'], s['start_time']) for s in schedules] == [
        ('Monday', '08:00'), ('Monday', '11:00'), ('Wednesday', '09:00'),
    ]

    monday = principal.get('/api/school-admin/schedules?day=monday&grade=5').get_json()['schedules']
    assert [s['start_time'] for s in monday] == ['08:00']
    assert principal.get('/api/school-admin/schedules?day=Funday').status_code == 400


def test_sync_to_teachers(principal, app, seed):
    empty = principal.post('/api/school-admin/schedules/sync-to-teachers')
    assert empty.get_json()['message'] == 'No active schedules found to sync'

    add_schedule(principal, start_time='09:00', end_time='10:00', teacher_id=seed['teacher_id'])
    add_schedule(principal, start_time='10:00', end_time='11:00', teacher_id=seed['teacher_id'], day_of_week='Friday')
    add_schedule(principal, start_time='12:00', end_time='13:00', subject='Art')

    body = principal.post('/api/school-admin/schedules/sync-to-teachers').get_json()
    assert (body['synced'], body['skipped'], body['total']) == (1, 1, 2)

    again = principal.post('/api/school-admin/schedules/sync-to-teachers').get_json()
    assert (again['synced'], again['skipped']) == (0, 2)

    session = get_session()
    try:
        classes = session.query(Class).filter_by(school_id=seed['school_id']).all()
        assert [c.class_name for c in classes] == ['Grade 5 - Maths']
        links = session.query(TeacherClass).filter_by(teacher_id=seed['teacher_id']).all()
        assert [l.class_id for l in links] == [classes[0].id]
        assert {s.class_id for s in session.query(ClassSchedule).filter(ClassSchedule.teacher_id.isnot(None))} == {
            classes[0].id
        }
    finally:
        session.close()

    teacher = client_for(app, 'teacher@school.com')
    assert [c['class_name'] for c in teacher.get('/api/teacher/classes').get_json()['classes']] == ['Grade 5 - Maths']
    schedules = teacher.get('/api/teacher/schedules').get_json()
    assert schedules['count'] == 2
    assert [s['day_of_week'] for s in schedules['schedules']] == ['Monday', 'Friday']


def test_school_delete_removes_timetable(admin_client, app, seed):
    principal = client_for(app, 'principal@school.com')
    period = add_period(principal, 1, '09:00', '10:00')
    add_room(principal)
    add_schedule(principal, period_id=period['id'], teacher_id=seed['teacher_id'])

    response = admin_client.delete('/api/admin/schools', json={'schoolId': seed['school_id']})
    assert response.status_code == 200
    results = response.get_json()['results']
    assert (results['class_schedules'], results['rooms'], results['periods']) == (1, 1, 1)

    session = get_session()
    try:
        assert session.query(ClassSchedule).count() == 0
        assert session.query(Period).count() == 0
    finally:
        session.close()
