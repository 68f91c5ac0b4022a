from datetime import datetime, timedelta
import pytest
from app.db import SessionLocal
from app import models, security


def _login(client, login, password):
	return client.post('/auth/login', json={'email': login, 'password': password})


def test_login_by_username_and_email(client):
	for login in ('admin', 'ADMIN@clinic.local'):
		r = _login(client, login, 'Admin1234')
		assert r.status_code == 200
		data = r.json()['data']
		assert data['token_type'] == 'Bearer'
		assert data['user']['role'] == 'admin'
		assert 'password_hash' not in data['user']


def test_login_rejects_bad_password(client):
	r = _login(client, 'admin', 'wrong-password1')
	assert r.status_code == 401
	assert r.json()['message'] == 'Invalid credentials'


def test_login_requires_fields(client):
	r = client.post('/auth/login', json={'email': 'admin'})
	assert r.status_code == 422
	assert 'password' in r.json()['details']


def test_me_accepts_header_query_and_body_tokens(client):
	token = _login(client, 'nurse', 'Nurse1234').json()['data']['access_token']
	assert client.get('/auth/me', headers={'Authorization': f'Bearer {token}'}).json()['data']['username'] == 'nurse'
	assert client.get('/auth/me', params={'token': token}).status_code == 200
	r = client.request('GET', '/auth/me', json={'token': token})
	assert r.status_code == 200


def test_missing_and_invalid_token(client):
	r = client.get('/auth/me')
	assert r.status_code == 401
	assert r.json()['message'] == 'Authentication token required'
	r = client.get('/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
	assert r.status_code == 401
	assert r.json()['message'] == 'Invalid or expired token'


def test_refresh_token_is_not_an_access_token(client):
	refresh = _login(client, 'nurse', 'Nurse1234').json()['data']['refresh_token']
	r = client.get('/auth/me', headers={'Authorization': f'Bearer {refresh}'})
	assert r.status_code == 401


def test_refresh_rotates_token(client):
	refresh = _login(client, 'drsmith', 'Doctor1234').json()['data']['refresh_token']
	r = client.post('/auth/refresh', json={'refresh_token': refresh})
	assert r.status_code == 200
	new_refresh = r.json()['data']['refresh_token']
	assert new_refresh != refresh
	# the old token was revoked by the rotation
	assert client.post('/auth/refresh', json={'refresh_token': refresh}).status_code == 401
	assert client.post('/auth/refresh', json={'refresh_token': new_refresh}).status_code == 200


def test_logout_revokes_all_sessions(client):
	data = _login(client, 'reception', 'Reception1234').json()['data']
	headers = {'Authorization': f"Bearer {data['access_token']}"}
	sessions = client.get('/auth/sessions', headers=headers).json()['data']
	assert sessions['total'] >= 1
	r = client.post('/auth/logout', headers=headers)
	assert r.status_code == 200
	assert r.json()['data']['revoked_tokens'] >= 1
	assert client.post('/auth/refresh', json={'refresh_token': data['refresh_token']}).status_code == 401


def test_logout_single(client):
	data = _login(client, 'reception', 'Reception1234').json()['data']
	r = client.post('/auth/logout-single', json={'refresh_token': data['refresh_token']})
	assert r.status_code == 200
	assert r.json()['data']['revoked_tokens'] == 1


def test_token_admin_endpoints(client, admin_headers, nurse_headers):
	assert client.get('/auth/token-stats', headers=nurse_headers).status_code == 403
	stats = client.get('/auth/token-stats', headers=admin_headers).json()['data']
	assert stats['total_tokens'] >= stats['active_tokens']
	r = client.post('/auth/cleanup-tokens', headers=admin_headers)
	assert r.status_code == 200


def test_password_hashing():
	hashed = security.hash_password('Secret123')
	assert hashed != 'Secret123'
	assert security.verify_password('Secret123', hashed)
	assert not security.verify_password('Secret124', hashed)
	assert not security.verify_password('Secret123', None)


@pytest.mark.parametrize('token', ['', 'abc.def.ghi'])

def test_verify_access_token_rejects_garbage(token):
	assert security.verify_access_token(token) is None


def test_deactivated_user_cannot_authenticate(client, admin_headers):
	r = client.post('/users', headers=admin_headers, json={
		'username': 'temp', 'email': 'temp@clinic.local', 'password': 'Temp12345', 'password_confirmation': 'Temp12345',
		'first_name': 'Tem', 'last_name': 'Porary', 'role': 'nurse',
	})
	assert r.status_code == 201
	user_id = r.json()['data']['id']
	token = _login(client, 'temp', 'Temp12345').json()['data']['access_token']
	assert client.delete(f'/users/{user_id}', headers=admin_headers).status_code == 200
	r = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
	assert r.status_code == 401
	assert r.json()['message'] == 'User account is inactive'
	assert _login(client, 'temp', 'Temp12345').status_code == 401


def test_revoke_session_only_for_owner(client, admin_headers):
	data = _login(client, 'nurse', 'Nurse1234').json()['data']
	headers = {'Authorization': f"Bearer {data['access_token']}"}
	jti = client.get('/auth/sessions', headers=headers).json()['data']['sessions'][-1]['jti']
	# another user's session looks like a missing one
	r = client.delete(f'/auth/sessions/{jti}', headers=admin_headers)
	assert r.status_code == 404
	assert r.json()['message'] == 'Session not found'
	assert client.delete('/auth/sessions/not-a-session', headers=headers).status_code == 404
	assert client.delete(f'/auth/sessions/{jti}', headers=headers).status_code == 200
	remaining = [s['jti'] for s in client.get('/auth/sessions', headers=headers).json()['data']['sessions']]
	assert jti not in remaining


def test_cleanup_expired_tokens(setup_db):
	now = datetime.now()
	rows = {
		'expired': dict(expires_at=now - timedelta(hours=1)),
		'old-revoked': dict(expires_at=now + timedelta(days=5), revoked_at=now - timedelta(days=31)),
		'recent-revoked': dict(expires_at=now + timedelta(days=5), revoked_at=now - timedelta(days=2)),
		'active': dict(expires_at=now + timedelta(days=5)),
	}
	db = SessionLocal()
	for jti, fields in rows.items():
		db.add(models.RefreshToken(user_id=1, token_hash='0' * 64, jti=f'cleanup-{jti}', **fields))
	db.commit()
	assert security.cleanup_expired_tokens(db) >= 2
	left = {t.jti for t in db.query(models.RefreshToken).filter(models.RefreshToken.jti.like('cleanup-%'))}
	db.close()
	assert left == {'cleanup-recent-revoked', 'cleanup-active'}
