def test_imports():
	import app.main  # noqa: F401
	import app.models  # noqa: F401
	import app.routers.doctors  # noqa: F401
	import app.routers.patients  # noqa: F401
	import app.routers.appointments  # noqa: F401
	import app.routers.admin  # noqa: F401
	import app.routers.reminders  # noqa: F401
	import app.routers.alerts  # noqa: F401
	import app.workers.celery_app  # noqa: F401


def test_seed_runs(setup_db):
	from app.db import SessionLocal
	from app import models
	from scripts.seed import seed
	seed()  # second run must not duplicate rows
	db = SessionLocal()
	assert db.query(models.User).filter(models.User.username == 'admin').count() == 1
	assert db.query(models.Doctor).count() == 1
	assert db.query(models.Patient).count() == 3
	db.close()


def test_health(client):
	for path in ('/', '/health', '/health/'):
		r = client.get(path)
		assert r.status_code == 200
		body = r.json()
		assert body['success'] is True
		assert 'API is running' in body['message']
		assert body['version']


def test_unknown_route(client):
	r = client.get('/nope')
	assert r.status_code == 404
	body = r.json()
	assert body['success'] is False
	assert body['message'] == 'Route not found'
	assert body['details'] == {'method': 'GET', 'path': '/nope'}


def test_trailing_slash_is_normalized(client, admin_headers):
	r = client.get('/doctors/', headers=admin_headers)
	assert r.status_code == 200
