from datetime import date, time, timedelta
import pytest
from app.db import SessionLocal
from app import models
from app.services import groq_client, triage, alerts, summaries

TRIAGE_TEXT = """URGENCY_SCORE: 4
SPECIALIST: Pulmonology
DURATION: 45 minutes
RED_FLAGS:
- Shortness of breath at rest
- Fever above 39C
DIAGNOSES:
1. Community acquired pneumonia
2. Acute bronchitis
TESTS: Chest X-ray
NOTES: See today.
CONFIDENCE: 4"""

ALERT_TEXT = """ALERT_TYPE: patient_safety
PRIORITY: 5
TITLE: Allergy conflict
DESCRIPTION: Penicillin allergy recorded for a patient booked for antibiotics.
ACTION_REQUIRED: Review the prescription.
TIMELINE: immediately
PATIENT_ID: 1

ALERT_TYPE: Staffing
PRIORITY: 9
TITLE: Short staffed afternoon
DESCRIPTION: Two nurses off.
ACTION_REQUIRED: Call in cover.
TIMELINE: today
PATIENT_ID: general"""

STANDARD_TEXT = """VISIT_OVERVIEW: Follow-up visit.
CHIEF_COMPLAINT: Cough for two weeks.
CLINICAL_FINDINGS: Mild wheeze.
TREATMENT_PROVIDED: Inhaler prescribed.
FOLLOW_UP_PLAN: Review in 2 weeks.
BILLING_NOTES: CPT 99213, ICD-10 J20.9"""


def _reply(content):
	def fake_generate(prompt, task='dashboard'):
		return {'success': True, 'content': content, 'model_used': 'test-model', 'tokens_used': 42, 'response_time': 5}
	return fake_generate


@pytest.fixture()

def appointment(setup_db):
	db = SessionLocal()
	appt = db.query(models.Appointment).first()
	if not appt:
		appt = models.Appointment(
			patient_id=1, doctor_id=1, appointment_date=date.today() + timedelta(days=1),
			start_time=time(9, 0), end_time=time(9, 30), appointment_type='follow-up',
			priority='high', notes='Cough and fever for a week',
			diagnosis='Bronchitis', follow_up_required=True,
		)
		db.add(appt)
		db.commit()
		db.refresh(appt)
	yield db, appt
	db.close()


def test_parse_triage_response():
	parsed = triage.parse_triage_response(TRIAGE_TEXT)
	assert parsed['urgency_score'] == 4
	assert parsed['urgency_level'] == 'urgent'
	assert parsed['specialist'] == 'Pulmonology'
	assert parsed['duration'] == 45
	assert parsed['red_flags'] == ['Shortness of breath at rest', 'Fever above 39C']
	assert parsed['diagnoses'] == ['Community acquired pneumonia', 'Acute bronchitis']
	assert parsed['tests'] == ['Chest X-ray']
	assert parsed['confidence'] == 4


def test_parse_triage_defaults_and_clamping():
	parsed = triage.parse_triage_response('URGENCY_SCORE: 12\nRED_FLAGS: none')
	assert parsed['urgency_score'] == 5
	assert parsed['red_flags'] == []
	assert parsed['specialist'] == triage.DEFAULT_SPECIALIST
	assert parsed['duration'] == triage.DEFAULT_DURATION


def test_age_and_symptoms():
	assert triage.calculate_age(date(2000, 6, 15), today=date(2025, 6, 14)) == 24
	assert triage.calculate_age(date(2000, 6, 15), today=date(2025, 6, 15)) == 25
	assert triage.calculate_age(None) is None
	assert triage.extract_symptoms('Headache, mild FEVER') == ['fever', 'headache']


def test_triage_fallback_uses_booked_priority(appointment):
	db, appt = appointment
	result = triage.analyze_appointment(db, appt)
	assert result['ai_generated'] is False
	assert result['urgency_score'] == triage.PRIORITY_SCORES[appt.priority]
	assert result['confidence'] == 1


def test_triage_with_model(appointment, monkeypatch):
	db, appt = appointment
	monkeypatch.setattr(groq_client, 'generate', _reply(TRIAGE_TEXT))
	result = triage.analyze_appointment(db, appt)
	assert result['ai_generated'] is True
	assert result['model_used'] == 'test-model'
	assert result['patient_name'] == 'Alice Walker'
	assert 'fever' in result['symptoms']


def test_quick_assessment(monkeypatch):
	monkeypatch.setattr(groq_client, 'generate', _reply('URGENCY_SCORE: 5\nNOTES: Call emergency services.'))
	result = triage.quick_assessment('crushing chest pain')
	assert result['requires_urgent_care'] is True
	assert result['urgency_level'] == 'immediate'
	assert result['notes'] == 'Call emergency services.'


def test_parse_alert_blocks():
	parsed = alerts.parse_alert_blocks(ALERT_TEXT)
	assert len(parsed) == 2
	assert parsed[0]['type'] == 'patient_safety'
	assert parsed[0]['priority'] == 5
	assert parsed[0]['patient_id'] == 1
	assert parsed[1]['type'] == 'operational'
	assert parsed[1]['priority'] == 5
	assert parsed[1]['patient_id'] is None


def test_system_alert_threshold():
	assert alerts.system_alerts({'urgent_count': 5}) == []
	raised = alerts.system_alerts({'urgent_count': 6})
	assert raised[0]['priority'] == 4
	assert raised[0]['source'] == 'system'


def test_alert_lifecycle(client, doctor_headers, monkeypatch):
	monkeypatch.setattr(groq_client, 'generate', _reply(ALERT_TEXT))
	r = client.post('/ai/alerts/generate', headers=doctor_headers)
	assert r.status_code == 200
	generated = r.json()['data']
	assert generated['ai_generated'] is True
	first = generated['alerts'][0]
	assert first['priority'] == 5

	r = client.post('/ai/alerts', headers=doctor_headers, json={'type': 'quality', 'title': 'Chart audit due', 'priority': 2})
	assert r.status_code == 201
	manual = r.json()['data']
	assert manual['source'] == 'manual'
	assert client.post('/ai/alerts', headers=doctor_headers, json={'type': 'weather', 'title': 'x'}).status_code == 422

	r = client.post(f"/ai/alerts/{first['id']}/acknowledge", headers=doctor_headers)
	assert r.json()['data']['status'] == 'acknowledged'
	# acknowledged alerts stay active
	ids = [a['id'] for a in client.get('/ai/alerts', headers=doctor_headers).json()['data']['alerts']]
	assert first['id'] in ids

	r = client.post(f"/ai/alerts/{manual['id']}/resolve", headers=doctor_headers, json={'resolution_notes': 'Audit done'})
	assert r.json()['data']['is_active'] is False
	ids = [a['id'] for a in client.get('/ai/alerts/quality', headers=doctor_headers).json()['data']['alerts']]
	assert manual['id'] not in ids

	dash = client.get('/ai/alerts/dashboard', headers=doctor_headers).json()['data']
	assert dash['total_active'] >= 2
	assert any(a['id'] == first['id'] for a in dash['critical_alerts'])
	assert client.post('/ai/alerts/9999/dismiss', headers=doctor_headers).status_code == 404


def test_parse_sections_and_billing():
	sections = summaries.parse_sections(STANDARD_TEXT)
	assert sections['chief_complaint'] == 'Cough for two weeks.'
	assert sections['follow_up_plan'] == 'Review in 2 weeks.'
	codes = summaries.parse_billing_codes(STANDARD_TEXT)
	assert codes == {'cpt_codes': ['99213'], 'icd10_codes': ['J20.9'], 'service_level': '99213'}
	assert summaries.parse_sections('free text only') == {'visit_overview': 'free text only'}


def test_summary_generation(client, doctor_headers, appointment, monkeypatch):
	_, appt = appointment
	url = f'/ai/summaries/appointment/{appt.id}'
	# without a model only SOAP notes have a fallback
	assert client.post(url, headers=doctor_headers, json={'summary_type': 'standard'}).status_code == 502
	r = client.post(url, headers=doctor_headers, json={'summary_type': 'soap'})
	assert r.status_code == 201
	soap = r.json()['data']
	assert soap['ai_model_used'] == 'fallback'
	assert set(soap['structured_summary']) == {'subjective', 'objective', 'assessment', 'plan'}

	monkeypatch.setattr(groq_client, 'generate', _reply(STANDARD_TEXT))
	r = client.post(url, headers=doctor_headers, json={})
	assert r.status_code == 201
	assert r.json()['data']['structured_summary']['treatment_provided'] == 'Inhaler prescribed.'
	# a second request needs force_regenerate
	assert client.post(url, headers=doctor_headers, json={}).status_code == 409
	r = client.post(url, headers=doctor_headers, json={'force_regenerate': True})
	assert r.status_code == 201

	latest = client.get(url, headers=doctor_headers, params={'summary_type': 'standard'}).json()['data']
	assert latest['id'] == r.json()['data']['id']
	stats = client.get('/ai/summaries/stats', headers=doctor_headers).json()['data']
	assert stats['by_type']['standard']['count'] == 2
	assert stats['active_summaries'] == 2

	r = client.get(f'{url}/export', headers=doctor_headers, params={'format': 'text', 'summary_type': 'standard'})
	assert r.status_code == 200
	assert 'CHIEF COMPLAINT' in r.text
	assert client.get(f'{url}/export', headers=doctor_headers, params={'format': 'pdf'}).status_code == 422


def test_batch_summaries_reject_soap(client, doctor_headers, appointment, monkeypatch):
	_, appt = appointment
	monkeypatch.setattr(groq_client, 'generate', _reply('Billing: CPT 99214'))
	r = client.post('/ai/summaries/batch', headers=doctor_headers, json={'appointment_ids': [appt.id, 9999], 'summary_type': 'billing'})
	data = r.json()['data']
	assert data['successful'] == 1
	assert data['results'][1]['error'] == 'Appointment not found'
	r = client.post('/ai/summaries/batch', headers=doctor_headers, json={'appointment_ids': [appt.id], 'summary_type': 'soap'})
	assert r.json()['data']['failed'] == 1


def test_dashboard_fallbacks(client, doctor_headers):
	r = client.get('/ai/dashboard/briefing', headers=doctor_headers)
	assert r.status_code == 200
	data = r.json()['data']
	assert data['ai_generated'] is False
	assert data['briefing']
	r = client.get('/ai/dashboard/priorities', headers=doctor_headers)
	assert r.json()['data']['task_count'] >= 1
	r = client.post('/ai/dashboard/analyze', headers=doctor_headers, json={'query': 'How busy is today?'})
	assert r.status_code == 503
	info = client.get('/ai/model-info', headers=doctor_headers).json()['data']
	assert info['configured'] is False
	r = client.get('/ai/test', headers=doctor_headers)
	assert r.json()['data']['connected'] is False


def test_generate_without_key():
	result = groq_client.generate('hello', 'triage')
	assert result == {'success': False, 'error': 'Groq API key not configured', 'model_used': groq_client.MODEL_CONFIG['triage']['model']}
	with pytest.raises(ValueError):
		groq_client.generate('hello', 'poetry')


def test_alert_update_rejects_blank_title(client, doctor_headers):
	r = client.post('/ai/alerts', headers=doctor_headers, json={'type': 'operational', 'title': 'Fridge temperature log', 'priority': 3})
	alert_id = r.json()['data']['id']
	r = client.put(f'/ai/alerts/{alert_id}', headers=doctor_headers, json={'title': None})
	assert r.status_code == 422
	assert r.json()['details']['title'] == ['The title field must have a value.']
	assert client.put(f'/ai/alerts/{alert_id}', headers=doctor_headers, json={'title': ''}).status_code == 422
	r = client.put(f'/ai/alerts/{alert_id}', headers=doctor_headers, json={'title': 'Fridge log overdue', 'priority': 4})
	assert r.status_code == 200
	assert r.json()['data']['title'] == 'Fridge log overdue'


def test_batch_triage_sorts_by_urgency(client, doctor_headers):
	day = date.today() + timedelta(days=9)
	db = SessionLocal()
	for start, priority in ((time(9, 0), 'low'), (time(10, 0), 'urgent'), (time(11, 0), 'normal')):
		db.add(models.Appointment(
			patient_id=2, doctor_id=1, appointment_date=day, start_time=start,
			end_time=time(start.hour, 30), appointment_type='consultation', priority=priority,
		))
	db.commit()
	db.close()
	r = client.post('/ai/triage/batch', headers=doctor_headers, json={'date': day.isoformat()})
	assert r.status_code == 200
	data = r.json()['data']
	assert data['total_analyzed'] == 3
	assert [row['urgency_score'] for row in data['results']] == [4, 2, 1]
	assert data['high_priority_count'] == 1
	assert client.post('/ai/triage/batch', headers=doctor_headers, json={}).status_code == 422


def test_priority_update(client, doctor_headers, appointment):
	_, appt = appointment
	url = f'/ai/triage/appointment/{appt.id}/priority'
	r = client.put(url, headers=doctor_headers, json={'priority': 'critical'})
	assert r.status_code == 422
	assert 'priority' in r.json()['details']
	r = client.put(url, headers=doctor_headers, json={'priority': 'urgent'})
	assert r.status_code == 200
	assert r.json()['data']['priority'] == 'urgent'


def test_symptom_triage(client, doctor_headers, monkeypatch):
	body = {'symptoms': 'Shortness of breath climbing stairs', 'age': 70}
	r = client.post('/ai/triage/symptoms', headers=doctor_headers, json=body)
	assert r.status_code == 200
	data = r.json()['data']
	assert data['ai_generated'] is False
	assert data['urgency_score'] == 3
	assert data['symptoms'] == ['shortness of breath']

	monkeypatch.setattr(groq_client, 'generate', _reply(TRIAGE_TEXT))
	data = client.post('/ai/triage/symptoms', headers=doctor_headers, json=body).json()['data']
	assert data['ai_generated'] is True
	assert data['specialist'] == 'Pulmonology'
	assert data['urgency_level'] == 'urgent'
	assert client.post('/ai/triage/symptoms', headers=doctor_headers, json={'symptoms': 'ow'}).status_code == 422


def test_referral_recommendation(client, doctor_headers, appointment, monkeypatch):
	_, appt = appointment
	url = f'/ai/triage/referral/{appt.id}'
	data = client.post(url, headers=doctor_headers).json()['data']
	assert data['ai_generated'] is False
	assert data['appointment_id'] == appt.id
	monkeypatch.setattr(groq_client, 'generate', _reply('Refer to pulmonology within two weeks.'))
	data = client.post(url, headers=doctor_headers).json()['data']
	assert data['recommendation'] == 'Refer to pulmonology within two weeks.'
	assert data['model_used'] == 'test-model'
	assert client.post('/ai/triage/referral/9999', headers=doctor_headers).status_code == 404


def test_html_export_escapes_summary_text():
	summary = models.AppointmentSummary(
		appointment_id=7, summary_type='standard',
		structured_summary={'chief_complaint': '<b>Cough</b> & wheeze\nworse at night', 'billing_codes': ['99213', 'J20.9']},
	)
	body, media_type = summaries.export_summary(summary, 'html')
	assert media_type == 'text/html'
	assert '&lt;b&gt;Cough&lt;/b&gt; &amp; wheeze<br>worse at night' in body
	assert '<b>Cough</b>' not in body
	assert '<h2>Billing Codes</h2><p>99213, J20.9</p>' in body
