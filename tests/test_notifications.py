from conftest import client_for


def test_admin_broadcast_by_role(admin_client, app, seed):
    response = admin_client.post('/api/admin/notifications', json={
        'title': 'Holiday', 'message': 'School closed on Friday', 'roles': ['teacher', 'student'],
    })
    assert response.status_code == 201
    assert response.get_json()['count'] == 2

    student = client_for(app, 'student@school.com')
    body = student.get('/api/notifications/user').get_json()
    assert body['unread_count'] == 1
    assert body['notifications'][0]['title'] == 'Holiday'
    assert body['notifications'][0]['sender_name'] == 'Platform Admin'
    assert body['notifications'][0]['my_reply'] is None


def test_send_requires_recipients_and_text(admin_client, seed):
    assert admin_client.post('/api/admin/notifications', json={
        'title': 'Hi', 'message': 'There',
    }).status_code == 400
    assert admin_client.post('/api/admin/notifications', json={
        'message': 'There', 'roles': ['teacher'],
    }).status_code == 400


def test_mark_read(app, admin_client, seed):
    admin_client.post('/api/admin/notifications', json={
        'title': 'One', 'message': 'First', 'user_ids': [seed['teacher_id']],
    })
    admin_client.post('/api/admin/notifications', json={
        'title': 'Two', 'message': 'Second', 'user_ids': [seed['teacher_id']],
    })

    teacher = client_for(app, 'teacher@school.com')
    notifications = teacher.get('/api/notifications/user').get_json()['notifications']
    response = teacher.patch('/api/notifications/user', json={'notification_id': notifications[0]['id'], 'is_read': True})
    assert response.status_code == 200
    assert teacher.get('/api/notifications/user').get_json()['unread_count'] == 1

    teacher.patch('/api/notifications/user', json={'mark_all_read': True})
    assert teacher.get('/api/notifications/user').get_json()['unread_count'] == 0
    assert len(teacher.get('/api/notifications/user?is_read=true').get_json()['notifications']) == 2


def test_reply_is_created_then_updated(app, admin_client, seed):
    admin_client.post('/api/admin/notifications', json={
        'title': 'Survey', 'message': 'Are you attending?', 'roles': ['teacher', 'student'],
    })

    teacher = client_for(app, 'teacher@school.com')
    notification_id = teacher.get('/api/notifications/user').get_json()['notifications'][0]['id']

    first = teacher.post('/api/notifications/reply', json={'notification_id': notification_id, 'reply_text': 'Yes'})
    assert first.status_code == 200
    assert first.get_json()['message'] == 'Reply sent successfully'

    second = teacher.post('/api/notifications/reply', json={'notification_id': notification_id, 'reply_text': 'Yes, with slides'})
    assert second.get_json()['message'] == 'Reply updated successfully'

    own = teacher.get(f'/api/notifications/reply?notification_id={notification_id}').get_json()['replies']
    assert [r['reply_text'] for r in own] == ['Yes, with slides']

    student = client_for(app, 'student@school.com')
    student_notification = student.get('/api/notifications/user').get_json()['notifications'][0]['id']
    student.post('/api/notifications/reply', json={'notification_id': student_notification, 'reply_text': 'No'})

    # the sender sees the replies of every recipient of the broadcast
    replies = admin_client.get(f'/api/notifications/reply?notification_id={notification_id}').get_json()
    assert sorted(r['reply_text'] for r in replies['replies']) == ['No', 'Yes, with slides']

    # another recipient cannot read someone else's replies
    assert student.get(f'/api/notifications/reply?notification_id={notification_id}').status_code == 403

    assert teacher.delete('/api/notifications/reply', json={'notification_id': notification_id}).status_code == 200
    assert teacher.delete('/api/notifications/reply', json={'notification_id': notification_id}).status_code == 404


def test_reply_to_someone_elses_notification(app, admin_client, seed):
    admin_client.post('/api/admin/notifications', json={
        'title': 'Private', 'message': 'Only for the teacher', 'user_ids': [seed['teacher_id']],
    })
    teacher = client_for(app, 'teacher@school.com')
    notification_id = teacher.get('/api/notifications/user').get_json()['notifications'][0]['id']

    student = client_for(app, 'student@school.com')
    response = student.post('/api/notifications/reply', json={'notification_id': notification_id, 'reply_text': 'Hi'})
    assert response.status_code == 404


def test_teacher_can_only_message_own_students(app, seed):
    teacher = client_for(app, 'teacher@school.com')

    response = teacher.post('/api/teacher/notifications', json={
        'title': 'Homework', 'message': 'Page 12', 'school_id': seed['school_id'], 'roles': ['student'],
    })
    assert response.status_code == 201
    assert response.get_json()['count'] == 1

    # teachers are not addressable by role from the teacher portal
    response = teacher.post('/api/teacher/notifications', json={
        'title': 'Hello', 'message': 'Colleagues', 'school_id': seed['school_id'], 'roles': ['teacher'],
    })
    assert response.status_code == 400

    response = teacher.post('/api/teacher/notifications', json={
        'title': 'Hi', 'message': 'Admin', 'user_ids': [seed['school_admin_id']],
    })
    assert response.status_code == 400
    assert response.get_json()['error'] == 'No recipients found'

    sent = teacher.get('/api/teacher/notifications').get_json()['notifications']
    assert sent[0]['recipient_count'] == 1


def test_school_admin_notifies_own_school(app, seed):
    principal = client_for(app, 'principal@school.com')
    response = principal.post('/api/school-admin/notifications', json={
        'title': 'Staff meeting', 'message': 'Monday 9am', 'roles': ['teacher'],
    })
    assert response.status_code == 201
    assert response.get_json()['count'] == 1

    teacher = client_for(app, 'teacher@school.com')
    assert teacher.get('/api/notifications/user').get_json()['notifications'][0]['title'] == 'Staff meeting'
