from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
	app_name: str = Field(default="Medical Clinic Management")
	app_version: str = Field(default="1.0.0")
	app_env: str = Field(default="development")
	database_url: str = Field(default="sqlite:///./clinic.db")
	timezone: str = Field(default="UTC")

	jwt_secret: str = Field(default="change-me-access-secret")
	jwt_refresh_secret: str = Field(default="change-me-refresh-secret")
	jwt_issuer: str = Field(default="medical-clinic")
	jwt_access_ttl: int = Field(default=900)
	jwt_refresh_ttl: int = Field(default=604800)
	bcrypt_rounds: int = Field(default=12)

	groq_api_key: str | None = None
	groq_api_url: str = Field(default="https://api.groq.com")
	groq_timeout: int = Field(default=30)

	smtp_host: str | None = None
	smtp_port: int = Field(default=587)
	smtp_username: str | None = None
	smtp_password: str | None = None
	smtp_use_tls: bool = Field(default=True)
	mail_from_address: str = Field(default="noreply@clinic.local")
	mail_from_name: str = Field(default="Medical Clinic")

	twilio_account_sid: str | None = None
	twilio_auth_token: str | None = None
	twilio_from_number: str | None = None
	sms_cost_cents: int = Field(default=1)

	reminder_lead_time_hours: int = Field(default=24)
	reminder_second_notice_hours: int = Field(default=2)
	reminder_max_attempts: int = Field(default=3)
	reminder_batch_size: int = Field(default=50)
	reminder_poll_seconds: int = Field(default=300)

	celery_broker_url: str = Field(default="redis://localhost:6379/0")
	celery_result_backend: str = Field(default="redis://localhost:6379/1")

	class Config:
		env_file = ".env"
		env_file_encoding = "utf-8"

settings = Settings()
