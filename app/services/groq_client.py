import time
from langchain_groq import ChatGroq
from app.config import settings
from app.logger import get_logger

log = get_logger("ai")

TOP_P = 0.9

MODEL_CONFIG = {
	"dashboard": {"model": "llama3-8b-8192", "temperature": 0.3, "max_tokens": 1000},
	"triage": {"model": "llama3-70b-8192", "temperature": 0.1, "max_tokens": 1500},
	"summary": {"model": "mixtral-8x7b-32768", "temperature": 0.2, "max_tokens": 1200},
	"alerts": {"model": "llama3-8b-8192", "temperature": 0.2, "max_tokens": 800},
}

SYSTEM_PROMPTS = {
	"dashboard": (
		"You are an operations assistant for a medical clinic. Produce short, factual briefings "
		"for clinic staff from the numbers you are given. Do not invent data. Use plain text."
	),
	"triage": (
		"You are a clinical triage assistant supporting licensed staff. Suggest urgency and next steps "
		"using exactly the labelled fields requested. Your output is advisory and will be reviewed by a clinician."
	),
	"summary": (
		"You are a medical documentation assistant. Write accurate, concise visit documentation "
		"using only the facts provided, under the section headers requested."
	),
	"alerts": (
		"You are a clinic monitoring assistant. Identify patient safety, operational and quality issues "
		"from the snapshot provided and report each one in the requested ALERT_TYPE block format."
	),
}

_llms: dict[str, ChatGroq] = {}


def _get_llm(task: str) -> ChatGroq:
	if task not in _llms:
		cfg = MODEL_CONFIG[task]
		_llms[task] = ChatGroq(
			model=cfg["model"],
			temperature=cfg["temperature"],
			max_tokens=cfg["max_tokens"],
			timeout=settings.groq_timeout,
			api_key=settings.groq_api_key,
			base_url=settings.groq_api_url,
			model_kwargs={"top_p": TOP_P},
		)
	return _llms[task]


def generate(prompt: str, task: str = "dashboard") -> dict:
	if task not in MODEL_CONFIG:
		raise ValueError(f"Unknown AI task: {task}")
	model = MODEL_CONFIG[task]["model"]
	if not settings.groq_api_key:
		return {"success": False, "error": "Groq API key not configured", "model_used": model}
	started = time.monotonic()
	try:
		resp = _get_llm(task).invoke([("system", SYSTEM_PROMPTS[task]), ("human", prompt)])
	except Exception as e:
		log.warning("Groq %s request failed: %s", task, e)
		return {"success": False, "error": str(e), "model_used": model}
	usage = getattr(resp, "usage_metadata", None) or {}
	return {
		"success": True,
		"content": (resp.content or "").strip(),
		"model_used": model,
		"tokens_used": int(usage.get("total_tokens", 0)),
		"response_time": int((time.monotonic() - started) * 1000),
	}


def test_connection() -> dict:
	result = generate("Reply with the single word OK.", "dashboard")
	return {
		"connected": result["success"],
		"model_used": result["model_used"],
		"response_time": result.get("response_time"),
		"error": result.get("error"),
	}


def model_info() -> dict:
	return {
		"provider": "groq",
		"configured": bool(settings.groq_api_key),
		"top_p": TOP_P,
		"timeout": settings.groq_timeout,
		"tasks": MODEL_CONFIG,
	}
