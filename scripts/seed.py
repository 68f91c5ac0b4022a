from app.db import SessionLocal, Base, engine
from app import models
from app.security import hash_password
from datetime import date

Base.metadata.create_all(bind=engine)

STAFF = [
	# username, email, password, role, first, last
	("admin", "admin@clinic.local", "Admin1234", "admin", "System", "Administrator"),
	("drsmith", "drsmith@clinic.local", "Doctor1234", "doctor", "John", "Smith"),
	("nurse", "nurse@clinic.local", "Nurse1234", "nurse", "Mary", "Jones"),
	("reception", "reception@clinic.local", "Reception1234", "receptionist", "Sarah", "Brown"),
]

PATIENTS = [
	("Alice", "Walker", "alice.walker@example.com", "+15550100001", date(1985, 4, 12), "female", "Penicillin"),
	("Bob", "Martinez", "bob.martinez@example.com", "+15550100002", date(1950, 9, 3), "male", None),
	("Chen", "Li", "chen.li@example.com", "+15550100003", date(2012, 1, 28), "other", None),
]

def upsert_user(db, username: str, email: str, password: str, role: str, first: str, last: str):
	u = db.query(models.User).filter(models.User.username == username).first()
	if not u:
		u = models.User(username=username, email=email, password_hash=hash_password(password), role=role, first_name=first, last_name=last)
		db.add(u); db.commit(); db.refresh(u)
	return u

def upsert_doctor(db, user: models.User, specialty: str, license_number: str):
	d = db.query(models.Doctor).filter(models.Doctor.user_id == user.id).first()
	if not d:
		d = models.Doctor(user_id=user.id, specialty=specialty, license_number=license_number, bio="General practice and family medicine.")
		db.add(d); db.commit(); db.refresh(d)
	return d

def upsert_patient(db, first: str, last: str, email: str, phone: str, dob: date, gender: str, allergies: str | None = None):
	p = db.query(models.Patient).filter(models.Patient.email == email).first()
	if not p:
		p = models.Patient(first_name=first, last_name=last, email=email, phone=phone, date_of_birth=dob, gender=gender, allergies=allergies)
		db.add(p); db.commit(); db.refresh(p)
	return p

def seed():
	db = SessionLocal()
	users = {row[0]: upsert_user(db, *row) for row in STAFF}
	upsert_doctor(db, users["drsmith"], "Family Medicine", "MD-100001")
	for row in PATIENTS:
		upsert_patient(db, *row)
	db.close()

if __name__ == "__main__":
	seed()
	print("Seeded sample data.")
