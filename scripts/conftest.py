import os
from pathlib import Path

# Point the app at a throwaway database before anything imports app.config
TEST_DB = Path(__file__).resolve().parent / "test_clinic.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["GROQ_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""

import pytest


@pytest.fixture(scope='module')

def setup_db():
	from app.db import Base, engine
	from scripts.seed import seed
	Base.metadata.drop_all(bind=engine)
	Base.metadata.create_all(bind=engine)
	seed()
	yield


@pytest.fixture(scope='module')

def client(setup_db):
	from fastapi.testclient import TestClient
	from app.main import app
	return TestClient(app)


def login(client, username: str, password: str) -> dict:
	r = client.post('/auth/login', json={'email': username, 'password': password})
	assert r.status_code == 200, r.text
	return r.json()['data']


@pytest.fixture(scope='module')

def admin_headers(client):
	return {'Authorization': f"Bearer {login(client, 'admin', 'Admin1234')['access_token']}"}


@pytest.fixture(scope='module')

def doctor_headers(client):
	return {'Authorization': f"Bearer {login(client, 'drsmith', 'Doctor1234')['access_token']}"}


@pytest.fixture(scope='module')

def nurse_headers(client):
	return {'Authorization': f"Bearer {login(client, 'nurse', 'Nurse1234')['access_token']}"}
