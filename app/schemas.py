from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import date, time, datetime

class UserOut(BaseModel):
	id: int
	username: str
	email: str
	role: str
	first_name: str
	last_name: str
	phone: Optional[str] = None
	is_active: bool
	last_login_at: Optional[datetime] = None
	created_at: Optional[datetime] = None

	class Config:
		from_attributes = True

class DoctorOut(BaseModel):
	id: int
	user_id: int
	specialty: str
	license_number: str
	consultation_duration: Optional[int] = None
	working_days: Optional[List[str]] = None
	working_hours: Optional[dict] = None
	bio: Optional[str] = None
	qualifications: Optional[str] = None

	class Config:
		from_attributes = True

class PatientOut(BaseModel):
	id: int
	first_name: str
	last_name: str
	email: Optional[str] = None
	phone: Optional[str] = None
	date_of_birth: Optional[date] = None
	gender: Optional[str] = None
	address: Optional[str] = None
	emergency_contact_name: Optional[str] = None
	emergency_contact_phone: Optional[str] = None
	medical_notes: Optional[str] = None
	allergies: Optional[str] = None
	blood_type: Optional[str] = None
	insurance_provider: Optional[str] = None
	insurance_policy_number: Optional[str] = None
	created_at: Optional[datetime] = None

	class Config:
		from_attributes = True

class AppointmentOut(BaseModel):
	id: int
	patient_id: int
	doctor_id: int
	appointment_date: date
	start_time: time
	end_time: time
	status: str
	appointment_type: str
	priority: str
	notes: Optional[str] = None
	diagnosis: Optional[str] = None
	treatment_notes: Optional[str] = None
	follow_up_required: Optional[bool] = None
	follow_up_date: Optional[date] = None
	created_by: Optional[int] = None
	created_at: Optional[datetime] = None

	class Config:
		from_attributes = True

class ReminderOut(BaseModel):
	id: int
	appointment_id: int
	reminder_type: str
	reminder_template: Optional[str] = None
	scheduled_time: datetime
	sent_at: Optional[datetime] = None
	status: str
	attempts: int
	max_attempts: int
	recipient_contact: Optional[str] = None
	error_message: Optional[str] = None
	provider_message_id: Optional[str] = None
	cost_cents: Optional[int] = None

	class Config:
		from_attributes = True

class SessionOut(BaseModel):
	jti: str
	created_at: Optional[datetime] = None
	expires_at: datetime
	user_agent: Optional[str] = None
	ip_address: Optional[str] = None

	class Config:
		from_attributes = True

class RefreshIn(BaseModel):
	refresh_token: str

class AnalyzeIn(BaseModel):
	query: str = Field(min_length=3)
	context: Optional[str] = None

class BatchTriageIn(BaseModel):
	appointment_ids: Optional[List[int]] = None
	date: Optional[str] = None

class SymptomTriageIn(BaseModel):
	symptoms: str = Field(min_length=3)
	age: Optional[int] = Field(default=None, ge=0, le=130)
	gender: Optional[str] = None
	medical_history: Optional[str] = None

class QuickTriageIn(BaseModel):
	symptoms: str = Field(min_length=3)

class PriorityIn(BaseModel):
	priority: str

class SummaryRequest(BaseModel):
	summary_type: str = "standard"
	force_regenerate: bool = False

class BatchSummaryIn(BaseModel):
	appointment_ids: List[int] = Field(min_length=1, max_length=50)
	summary_type: str = "standard"

class AlertIn(BaseModel):
	type: str
	title: str
	priority: int = Field(default=3, ge=1, le=5)
	description: Optional[str] = None
	action_required: Optional[str] = None
	timeline: Optional[str] = None
	patient_id: Optional[int] = None

class AlertUpdate(BaseModel):
	title: Optional[str] = None
	description: Optional[str] = None
	action_required: Optional[str] = None
	timeline: Optional[str] = None
	priority: Optional[int] = Field(default=None, ge=1, le=5)

class ResolveIn(BaseModel):
	resolution_notes: Optional[str] = None

class BulkAcknowledgeIn(BaseModel):
	alert_ids: List[int] = Field(min_length=1)

class ManualReminderIn(BaseModel):
	reminder_type: str = "email"
	message: Optional[str] = None

class TestEmailIn(BaseModel):
	email: EmailStr

class PhoneIn(BaseModel):
	phone: str
