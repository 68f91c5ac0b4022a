from sqlalchemy import Column, Integer, String, Date, Time, Boolean, Text, ForeignKey, DateTime, Float, JSON, UniqueConstraint, func
from sqlalchemy.orm import relationship
from app.db import Base

USER_ROLES = ("admin", "doctor", "nurse", "receptionist", "pharmacist")
APPOINTMENT_STATUSES = ("scheduled", "confirmed", "completed", "cancelled", "no_show")
APPOINTMENT_PRIORITIES = ("low", "normal", "high", "urgent")
REMINDER_TYPES = ("email", "sms", "phone", "push")
REMINDER_STATUSES = ("pending", "sent", "failed", "cancelled")
SUMMARY_TYPES = ("standard", "soap", "billing", "patient")
ALERT_TYPES = ("patient_safety", "operational", "quality", "revenue", "inventory")
ALERT_STATUSES = ("active", "acknowledged", "dismissed", "resolved")

DEFAULT_WORKING_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday"]
DEFAULT_WORKING_HOURS = {"start": "09:00", "end": "17:00"}

class User(Base):
	__tablename__ = "users"
	id = Column(Integer, primary_key=True)
	username = Column(String(50), unique=True, nullable=False)
	email = Column(String(100), unique=True, nullable=False)
	password_hash = Column(String(255), nullable=False)
	role = Column(String(20), nullable=False, default="doctor")
	first_name = Column(String(50), nullable=False)
	last_name = Column(String(50), nullable=False)
	phone = Column(String(20))
	is_active = Column(Boolean, default=True, nullable=False)
	last_login_at = Column(DateTime)
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	doctor = relationship("Doctor", back_populates="user", uselist=False)
	refresh_tokens = relationship("RefreshToken", back_populates="user")

	@property
	def full_name(self) -> str:
		return f"{self.first_name} {self.last_name}"

class Doctor(Base):
	__tablename__ = "doctors"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
	specialty = Column(String(100), nullable=False)
	license_number = Column(String(50), unique=True, nullable=False)
	consultation_duration = Column(Integer, default=30)
	working_days = Column(JSON, default=lambda: list(DEFAULT_WORKING_DAYS))
	working_hours = Column(JSON, default=lambda: dict(DEFAULT_WORKING_HOURS))
	bio = Column(Text)
	qualifications = Column(Text)
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	user = relationship("User", back_populates="doctor")
	appointments = relationship("Appointment", back_populates="doctor")

class Patient(Base):
	__tablename__ = "patients"
	id = Column(Integer, primary_key=True)
	first_name = Column(String(50), nullable=False)
	last_name = Column(String(50), nullable=False)
	email = Column(String(100), unique=True)
	phone = Column(String(20))
	date_of_birth = Column(Date)
	gender = Column(String(10))
	address = Column(Text)
	emergency_contact_name = Column(String(100))
	emergency_contact_phone = Column(String(20))
	medical_notes = Column(Text)
	allergies = Column(Text)
	blood_type = Column(String(5))
	insurance_provider = Column(String(100))
	insurance_policy_number = Column(String(50))
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	appointments = relationship("Appointment", back_populates="patient")

	@property
	def full_name(self) -> str:
		return f"{self.first_name} {self.last_name}"

class Appointment(Base):
	__tablename__ = "appointments"
	__table_args__ = (UniqueConstraint("doctor_id", "appointment_date", "start_time", name="uq_doctor_slot"),)
	id = Column(Integer, primary_key=True)
	patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
	doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
	appointment_date = Column(Date, nullable=False)
	start_time = Column(Time, nullable=False)
	end_time = Column(Time, nullable=False)
	status = Column(String(20), default="scheduled", nullable=False)
	appointment_type = Column(String(100), nullable=False)
	priority = Column(String(10), default="normal", nullable=False)
	notes = Column(Text)
	diagnosis = Column(Text)
	treatment_notes = Column(Text)
	follow_up_required = Column(Boolean, default=False)
	follow_up_date = Column(Date)
	created_by = Column(Integer, ForeignKey("users.id"))
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	patient = relationship("Patient", back_populates="appointments")
	doctor = relationship("Doctor", back_populates="appointments")
	reminders = relationship("Reminder", back_populates="appointment")
	summaries = relationship("AppointmentSummary", back_populates="appointment")

class Reminder(Base):
	__tablename__ = "reminders"
	id = Column(Integer, primary_key=True)
	appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
	reminder_type = Column(String(10), nullable=False)
	reminder_template = Column(String(100))
	scheduled_time = Column(DateTime, nullable=False)
	sent_at = Column(DateTime)
	status = Column(String(20), default="pending", nullable=False)
	attempts = Column(Integer, default=0, nullable=False)
	max_attempts = Column(Integer, default=3, nullable=False)
	message_content = Column(Text)
	recipient_contact = Column(String(255))
	error_message = Column(Text)
	delivery_status = Column(String(50))
	provider_message_id = Column(String(255))
	cost_cents = Column(Integer, default=0)
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	appointment = relationship("Appointment", back_populates="reminders")

class AppointmentSummary(Base):
	__tablename__ = "appointment_summaries"
	id = Column(Integer, primary_key=True)
	appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
	summary_type = Column(String(20), default="standard", nullable=False)
	summary_text = Column(Text)
	structured_summary = Column(JSON)
	ai_model_used = Column(String(100))
	tokens_used = Column(Integer, default=0)
	response_time_ms = Column(Integer, default=0)
	is_active = Column(Boolean, default=True, nullable=False)
	created_by = Column(Integer, ForeignKey("users.id"))
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

	appointment = relationship("Appointment", back_populates="summaries")

class AIAlert(Base):
	__tablename__ = "ai_alerts"
	id = Column(Integer, primary_key=True)
	type = Column(String(30), nullable=False)
	priority = Column(Integer, default=3, nullable=False)
	title = Column(String(255), nullable=False)
	description = Column(Text)
	action_required = Column(Text)
	timeline = Column(String(100))
	patient_id = Column(Integer, ForeignKey("patients.id"))
	source = Column(String(20), default="ai", nullable=False)
	status = Column(String(20), default="active", nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	ai_confidence = Column(Float)
	created_by = Column(Integer, ForeignKey("users.id"))
	acknowledged_by = Column(Integer, ForeignKey("users.id"))
	acknowledged_at = Column(DateTime)
	resolved_by = Column(Integer, ForeignKey("users.id"))
	resolved_at = Column(DateTime)
	resolution_notes = Column(Text)
	created_at = Column(DateTime, server_default=func.now())
	updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

class RefreshToken(Base):
	__tablename__ = "refresh_tokens"
	id = Column(Integer, primary_key=True)
	user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
	token_hash = Column(String(64), nullable=False)
	jti = Column(String(32), unique=True, nullable=False)
	expires_at = Column(DateTime, nullable=False)
	revoked_at = Column(DateTime)
	user_agent = Column(String(255))
	ip_address = Column(String(45))
	created_at = Column(DateTime, server_default=func.now())

	user = relationship("User", back_populates="refresh_tokens")
