"""Elicitation question catalog and tech stack vocabulary.

Answers are stored under the stable ``Question.id`` keys below. Bump
``CATALOG_VERSION`` whenever a question is added, removed or reworded so stored
answers can be traced back to the wording they were collected against.
"""

from dataclasses import dataclass, field
from typing import Literal

CATALOG_VERSION = 1

QuestionType = Literal["text", "textarea", "select"]


@dataclass(frozen=True)
class Question:
    id: str
    type: QuestionType
    text: str
    help_text: str
    placeholder: str = ""
    options: tuple[str, ...] = field(default_factory=tuple)


ELICITATION_QUESTIONS: tuple[Question, ...] = (
    Question(
        id="expected_users",
        type="text",
        text="What is the expected number of concurrent users?",
        placeholder="e.g., 10,000 concurrent users",
        help_text="This helps us determine scalability requirements and infrastructure needs.",
    ),
    Question(
        id="performance_requirements",
        type="textarea",
        text="What are your performance requirements (latency, throughput, response time)?",
        placeholder="e.g., 95th percentile response time < 200ms, 10,000 TPS",
        help_text="Specify any SLAs, RTO/RPO, or performance targets.",
    ),
    Question(
        id="security_compliance",
        type="select",
        text="What security or compliance standards must be met?",
        options=("None", "GDPR", "HIPAA", "PCI-DSS", "SOC 2", "ISO 27001", "Multiple standards"),
        help_text="Select the primary compliance framework your application must adhere to.",
    ),
    Question(
        id="integration_requirements",
        type="textarea",
        text="What external systems or APIs will this integrate with?",
        placeholder="e.g., Payment gateway (Stripe), CRM (Salesforce), Email service (SendGrid)",
        help_text="List all third-party integrations and data sources.",
    ),
    Question(
        id="data_volume",
        type="text",
        text="What is the expected data volume and growth rate?",
        placeholder="e.g., 1TB initial, growing 100GB/month",
        help_text="This helps determine storage and database architecture.",
    ),
    Question(
        id="availability_requirements",
        type="select",
        text="What are your availability requirements?",
        options=(
            "99.9% (43.8 min downtime/month)",
            "99.95% (21.9 min downtime/month)",
            "99.99% (4.4 min downtime/month)",
            "99.999% (26 sec downtime/month)",
        ),
        help_text="Select the minimum uptime percentage required.",
    ),
)

QUESTIONS_BY_ID: dict[str, Question] = {q.id: q for q in ELICITATION_QUESTIONS}

# Values used by the fallback plan when an answer is missing or blank
ANSWER_DEFAULTS: dict[str, str] = {
    "expected_users": "unknown",
    "data_volume": "unknown",
    "security_compliance": "standard",
    "integration_requirements": "none",
}


def answer_or_default(answers: dict[str, str], question_id: str) -> str:
    """Return the stripped answer for ``question_id`` or its documented default."""
    value = (answers.get(question_id) or "").strip()
    if value:
        return value
    return ANSWER_DEFAULTS.get(question_id, "unknown")


# Tech stack vocabulary offered to users; only deployment_env is enforced
PRIMARY_LANGUAGES = ("Python", "Java", "Go", "Elixir", "Node.js", "Ruby", "C#", "PHP")
DATABASE_SYSTEMS = ("PostgreSQL", "MySQL", "MongoDB", "Cassandra", "Redis", "DynamoDB", "SQLite")
DEPLOYMENT_ENVS = (
    "AWS",
    "Azure",
    "Google Cloud Platform",
    "On-Premise",
    "Kubernetes",
    "Docker",
    "Fly.io",
    "Heroku",
)
