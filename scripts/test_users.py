def _user(**extra):
	body = {
		'username': 'drjones', 'email': 'drjones@clinic.local', 'password': 'Doctor5678', 'password_confirmation': 'Doctor5678',
		'first_name': 'Indiana', 'last_name': 'Jones', 'role': 'doctor', 'specialty': 'Cardiology',
	}
	body.update(extra)
	return body


def test_create_doctor_user_gets_profile(client, admin_headers):
	r = client.post('/users', headers=admin_headers, json=_user())
	assert r.status_code == 201, r.text
	data = r.json()['data']
	assert data['doctor_profile']['specialty'] == 'Cardiology'
	assert data['doctor_profile']['license_number'] == f"LIC{data['id']:06d}"
	# duplicate username and email
	r = client.post('/users', headers=admin_headers, json=_user())
	assert r.status_code == 422
	assert set(r.json()['details']) == {'username', 'email'}


def test_list_users_paginates(client, admin_headers):
	r = client.get('/users', headers=admin_headers, params={'per_page': 2})
	data = r.json()['data']
	assert len(data['items']) == 2
	assert data['pagination']['total'] == 5
	assert data['pagination']['has_next'] is True
	r = client.get('/users', headers=admin_headers, params={'role': 'doctor'})
	assert r.json()['data']['pagination']['total'] == 2


def test_update_role_drops_doctor_profile(client, admin_headers):
	users = client.get('/users', headers=admin_headers, params={'search': 'drjones'}).json()['data']['items']
	user_id = users[0]['id']
	r = client.put(f'/users/{user_id}', headers=admin_headers, json={'role': 'nurse'})
	assert r.status_code == 200
	assert 'doctor_profile' not in r.json()['data']
	assert client.put(f'/users/{user_id}', headers=admin_headers, json={'email': 'admin@clinic.local'}).status_code == 400


def test_cannot_delete_self(client, admin_headers):
	me = client.get('/auth/me', headers=admin_headers).json()['data']
	r = client.delete(f"/users/{me['id']}", headers=admin_headers)
	assert r.status_code == 400


def test_deactivate_and_activate(client, admin_headers):
	user_id = client.get('/users', headers=admin_headers, params={'search': 'drjones'}).json()['data']['items'][0]['id']
	assert client.delete(f'/users/{user_id}', headers=admin_headers).status_code == 200
	assert client.get(f'/users/{user_id}', headers=admin_headers).json()['data']['is_active'] is False
	r = client.post(f'/users/{user_id}/activate', headers=admin_headers)
	assert r.json()['data']['is_active'] is True


def test_profile_update(client, nurse_headers):
	r = client.get('/profile', headers=nurse_headers)
	assert r.json()['data']['username'] == 'nurse'
	r = client.put('/profile', headers=nurse_headers, json={'phone': '+15550109999'})
	assert r.json()['data']['phone'] == '+15550109999'
	r = client.put('/profile', headers=nurse_headers, json={'password': 'Nurse5678', 'password_confirmation': 'Nurse5678', 'current_password': 'wrong'})
	assert r.status_code == 400
	assert r.json()['message'] == 'Current password is incorrect'
	# role changes are not allowed through the profile
	assert client.put('/profile', headers=nurse_headers, json={'role': 'admin'}).status_code == 400


def test_is_active_accepts_boolean_strings(client, admin_headers):
	body = _user(username='nursejoy', email='joy@clinic.local', role='nurse', is_active='false')
	r = client.post('/users', headers=admin_headers, json=body)
	assert r.status_code == 201, r.text
	user_id = r.json()['data']['id']
	assert r.json()['data']['is_active'] is False
	r = client.put(f'/users/{user_id}', headers=admin_headers, json={'is_active': 'true'})
	assert r.status_code == 200
	assert r.json()['data']['is_active'] is True
	r = client.put(f'/users/{user_id}', headers=admin_headers, json={'is_active': 'false'})
	assert r.json()['data']['is_active'] is False
	r = client.put(f'/users/{user_id}', headers=admin_headers, json={'is_active': 'maybe'})
	assert r.status_code == 422
	assert r.json()['details']['is_active'] == ['The is_active field must be true or false.']


def test_update_rejects_blank_required_fields(client, admin_headers):
	user_id = client.get('/users', headers=admin_headers, params={'search': 'drjones'}).json()['data']['items'][0]['id']
	for field in ('first_name', 'email', 'role', 'is_active'):
		r = client.put(f'/users/{user_id}', headers=admin_headers, json={field: ''})
		assert r.status_code == 422, field
		assert field in r.json()['details']
	assert client.put(f'/users/{user_id}', headers=admin_headers, json={'last_name': None}).status_code == 422
