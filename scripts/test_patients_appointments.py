from datetime import date, time, timedelta
from app.db import SessionLocal
from app import models

DAY = (date.today() + timedelta(days=3)).isoformat()


def _book(client, headers, start, end, **extra):
	body = {
		'patient_id': 1, 'doctor_id': 1, 'appointment_date': DAY,
		'start_time': start, 'end_time': end, 'appointment_type': 'consultation', **extra,
	}
	return client.post('/appointments', headers=headers, json=body)


def test_patient_crud(client, doctor_headers, admin_headers):
	body = {
		'first_name': 'Dana', 'last_name': 'Scully', 'email': 'Dana.Scully@example.com',
		'phone': '+15550100099', 'date_of_birth': '1964-02-23', 'gender': 'female',
	}
	r = client.post('/patients', headers=doctor_headers, json=body)
	assert r.status_code == 201, r.text
	patient = r.json()['data']
	assert patient['email'] == 'dana.scully@example.com'
	assert patient['date_of_birth'] == '1964-02-23'
	# same email twice
	assert client.post('/patients', headers=doctor_headers, json=body).status_code == 409

	r = client.get('/patients', headers=doctor_headers, params={'search': 'scully'})
	assert r.json()['data']['total'] == 1

	r = client.put(f"/patients/{patient['id']}", headers=doctor_headers, json={'allergies': 'Latex'})
	assert r.json()['data']['allergies'] == 'Latex'
	assert client.put(f"/patients/{patient['id']}", headers=doctor_headers, json={'gender': 'unknown'}).status_code == 422

	# only admins delete
	assert client.delete(f"/patients/{patient['id']}", headers=doctor_headers).status_code == 403
	assert client.delete(f"/patients/{patient['id']}", headers=admin_headers).status_code == 200
	assert client.get(f"/patients/{patient['id']}", headers=doctor_headers).status_code == 404


def test_patient_validation_errors(client, doctor_headers):
	r = client.post('/patients', headers=doctor_headers, json={'first_name': 'A'})
	assert r.status_code == 422
	body = r.json()
	assert body['message'] == 'Validation failed'
	assert {'first_name', 'last_name', 'email', 'phone', 'date_of_birth'} <= set(body['details'])


def test_book_and_conflict(client, doctor_headers):
	r = _book(client, doctor_headers, '10:00', '10:30', notes='Persistent cough and fever')
	assert r.status_code == 201, r.text
	appt = r.json()['data']
	assert appt['status'] == 'scheduled'
	assert appt['priority'] == 'normal'
	assert appt['doctor_name'] == 'Dr. John Smith'
	# overlapping slot for the same doctor
	r = _book(client, doctor_headers, '10:15', '10:45', patient_id=2)
	assert r.status_code == 409
	assert r.json()['message'] == 'Time slot conflicts with existing appointment'
	# back to back is fine
	assert _book(client, doctor_headers, '10:30', '11:00', patient_id=2).status_code == 201


def test_booking_schedules_reminders(client, doctor_headers):
	db = SessionLocal()
	appt = db.query(models.Appointment).filter(models.Appointment.start_time == time(10, 0)).first()
	kinds = sorted((r.reminder_type, r.reminder_template) for r in appt.reminders)
	db.close()
	assert ('email', 'appointment_confirmation') in kinds
	assert ('email', 'appointment_reminder_24h') in kinds
	assert ('sms', 'appointment_reminder_2h') in kinds


def test_end_must_follow_start(client, doctor_headers):
	r = _book(client, doctor_headers, '12:00', '11:30')
	assert r.status_code == 422
	assert 'end_time' in r.json()['details']


def test_unknown_patient(client, doctor_headers):
	r = _book(client, doctor_headers, '13:00', '13:30', patient_id=999)
	assert r.status_code == 422
	assert r.json()['details']['patient_id'] == ['The selected patient_id does not exist.']


def test_available_slots(client, doctor_headers):
	r = client.get('/appointments/available-slots', headers=doctor_headers, params={'doctor_id': 1, 'date': DAY})
	assert r.status_code == 200
	slots = r.json()['data']['available_slots']
	starts = [s['start_time'] for s in slots]
	assert '09:00:00' in starts
	assert '10:00:00' not in starts
	assert '10:30:00' not in starts
	assert '11:00:00' in starts
	assert len(slots) == 16 - 2


def test_list_and_update(client, doctor_headers):
	r = client.get('/appointments', headers=doctor_headers, params={'date': DAY})
	rows = r.json()['data']
	assert [a['start_time'] for a in rows] == ['10:00:00', '10:30:00']
	appt_id = rows[1]['id']
	# moving onto the first appointment conflicts
	assert client.put(f'/appointments/{appt_id}', headers=doctor_headers, json={'start_time': '10:00', 'end_time': '10:30'}).status_code == 409
	r = client.put(f'/appointments/{appt_id}', headers=doctor_headers, json={'status': 'confirmed', 'diagnosis': 'Viral URI'})
	assert r.status_code == 200
	assert r.json()['data']['status'] == 'confirmed'
	assert client.put(f'/appointments/{appt_id}', headers=doctor_headers, json={}).status_code == 400


def test_cancel_frees_slot_and_reminders(client, doctor_headers):
	rows = client.get('/appointments', headers=doctor_headers, params={'date': DAY}).json()['data']
	appt_id = rows[1]['id']
	r = client.delete(f'/appointments/{appt_id}', headers=doctor_headers)
	assert r.status_code == 200
	assert client.get(f'/appointments/{appt_id}', headers=doctor_headers).json()['data']['status'] == 'cancelled'
	db = SessionLocal()
	pending = db.query(models.Reminder).filter(models.Reminder.appointment_id == appt_id, models.Reminder.status == 'pending').count()
	db.close()
	assert pending == 0
	slots = client.get('/appointments/available-slots', headers=doctor_headers, params={'doctor_id': 1, 'date': DAY}).json()['data']['available_slots']
	assert '10:30:00' in [s['start_time'] for s in slots]


def test_patient_appointments_and_delete_guard(client, doctor_headers, admin_headers):
	r = client.get('/patients/1/appointments', headers=doctor_headers)
	assert len(r.json()['data']) >= 1
	r = client.delete('/patients/1', headers=admin_headers)
	assert r.status_code == 409


def test_doctor_endpoints(client, nurse_headers, admin_headers):
	r = client.get('/doctors/1/schedule', headers=nurse_headers, params={'date': DAY})
	assert r.status_code == 200
	assert len(r.json()['data']['appointments']) == 2
	r = client.get('/doctors/1/stats', headers=nurse_headers)
	assert r.json()['data']['upcoming_appointments'] >= 1
	r = client.get('/doctors/specialties', headers=nurse_headers)
	assert r.json()['data'] == [{'specialty': 'Family Medicine', 'doctor_count': 1}]
	assert client.put('/doctors/1', headers=nurse_headers, json={'bio': 'x'}).status_code == 403
	r = client.put('/doctors/1', headers=admin_headers, json={'working_hours': {'start': '17:00', 'end': '09:00'}})
	assert r.status_code == 422


def test_admin_export(client, admin_headers):
	r = client.get('/admin/export/appointments.xlsx', headers=admin_headers, params={'start_date': DAY, 'end_date': DAY})
	assert r.status_code == 200
	assert r.headers['content-type'].startswith('application/vnd.openxmlformats')
	assert r.content[:2] == b'PK'
	assert client.get('/admin/export/appointments.xlsx', headers=admin_headers, params={'start_date': 'soon'}).status_code == 422


def test_reopening_cancelled_appointment_checks_slot(client, doctor_headers):
	day = (date.today() + timedelta(days=4)).isoformat()
	first = _book(client, doctor_headers, '09:00', '09:30', appointment_date=day).json()['data']
	assert client.delete(f"/appointments/{first['id']}", headers=doctor_headers).status_code == 200
	r = _book(client, doctor_headers, '09:10', '09:40', patient_id=2, appointment_date=day)
	assert r.status_code == 201, r.text
	second = r.json()['data']

	r = client.put(f"/appointments/{first['id']}", headers=doctor_headers, json={'status': 'scheduled'})
	assert r.status_code == 409
	assert client.get(f"/appointments/{first['id']}", headers=doctor_headers).json()['data']['status'] == 'cancelled'

	client.delete(f"/appointments/{second['id']}", headers=doctor_headers)
	r = client.put(f"/appointments/{first['id']}", headers=doctor_headers, json={'status': 'scheduled'})
	assert r.status_code == 200
	assert r.json()['data']['status'] == 'scheduled'
	db = SessionLocal()
	pending = db.query(models.Reminder).filter(models.Reminder.appointment_id == first['id'], models.Reminder.status == 'pending').count()
	db.close()
	assert pending >= 2


def test_follow_up_flag_parses_strings(client, doctor_headers):
	day = (date.today() + timedelta(days=5)).isoformat()
	r = _book(client, doctor_headers, '15:00', '15:30', appointment_date=day, follow_up_required='false')
	assert r.status_code == 201, r.text
	appt = r.json()['data']
	assert appt['follow_up_required'] is False
	r = client.put(f"/appointments/{appt['id']}", headers=doctor_headers, json={'follow_up_required': 'true'})
	assert r.json()['data']['follow_up_required'] is True
	r = client.put(f"/appointments/{appt['id']}", headers=doctor_headers, json={'follow_up_required': 'later'})
	assert r.status_code == 422
	assert 'follow_up_required' in r.json()['details']


def test_patient_update_rejects_blank_names(client, doctor_headers):
	r = client.put('/patients/1', headers=doctor_headers, json={'first_name': ''})
	assert r.status_code == 422
	assert r.json()['details']['first_name'] == ['The first_name field must have a value.']
	assert client.put('/patients/1', headers=doctor_headers, json={'last_name': None}).status_code == 422
	assert client.get('/patients/1', headers=doctor_headers).json()['data']['first_name'] == 'Alice'
