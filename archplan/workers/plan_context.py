"""Prompt context and the fallback plan for plan generation."""

from datetime import UTC, datetime

from archplan.catalog import ELICITATION_QUESTIONS, QUESTIONS_BY_ID, answer_or_default
from archplan.models import Project

NOT_SPECIFIED = "Not specified"
NO_ELICITATION = "*No elicitation data available*"
BRD_EXCERPT_CHARS = 500

TECH_STACK_LABELS = (
    ("primary_language", "Primary Language"),
    ("web_framework", "Web Framework"),
    ("database_system", "Database System"),
    ("deployment_env", "Deployment Environment"),
)


def render_elicitation(answers: dict[str, str] | None) -> str:
    """Answers in catalog order as ``- **<question>**: <answer>``."""
    answers = answers or {}
    lines = [
        f"- **{q.text}**: {answers[q.id]}"
        for q in ELICITATION_QUESTIONS
        if (answers.get(q.id) or "").strip()
    ]
    # Ids from an older catalog version keep their raw key
    lines.extend(
        f"- **{key}**: {value}"
        for key, value in answers.items()
        if key not in QUESTIONS_BY_ID and (value or "").strip()
    )
    return "\n".join(lines) if lines else NO_ELICITATION


def render_tech_stack(config: dict[str, str] | None) -> str:
    config = config or {}
    return "\n".join(
        f"- **{label}**: {config.get(key) or NOT_SPECIFIED}" for key, label in TECH_STACK_LABELS
    )


def build_generation_context(project: Project) -> str:
    """BRD, then elicitation answers, then tech stack."""
    return "\n\n".join(
        [
            "# Business Requirements Document",
            (project.brd_content or "").strip() or "*No BRD content provided*",
            "# Requirements Elicitation",
            render_elicitation(project.elicitation_data),
            "# Selected Technology Stack",
            render_tech_stack(project.tech_stack_config),
        ]
    )


def brd_excerpt(brd_content: str | None) -> str:
    if not brd_content:
        return "*No BRD content provided*"
    excerpt = brd_content[:BRD_EXCERPT_CHARS]
    if len(brd_content) > BRD_EXCERPT_CHARS:
        excerpt += "...\n\n*[Full BRD content available in project details]*"
    return excerpt


def build_fallback_plan(project: Project, now: datetime | None = None) -> str:
    """Deterministic templated plan used when generation fails or returns too little."""
    now = now or datetime.now(UTC)
    answers = project.elicitation_data or {}
    stack = project.tech_stack_config or {}

    def tech(key: str) -> str:
        return stack.get(key) or NOT_SPECIFIED

    return f"""# Architectural Plan for {project.name}

## Project Overview
**Generated on:** {now.strftime("%Y-%m-%d %H:%M:%S UTC")}
**Status:** Complete

## Business Requirements Summary
{brd_excerpt(project.brd_content)}

## Elicitation Analysis
{render_elicitation(answers)}

## Technology Stack
{render_tech_stack(stack)}

## Recommended Architecture

### High-Level Architecture
Based on the requirements and technology choices, we recommend a modular service architecture with the following components:

1. **API Layer**
   - Language: {tech("primary_language")}
   - Framework: {tech("web_framework")}
   - Authentication: token-based auth

2. **Application Services**
   - Primary Language: {tech("primary_language")}
   - Communication: REST APIs + background job queue

3. **Data Layer**
   - Primary Database: {tech("database_system")}
   - Caching: Redis

4. **Infrastructure**
   - Platform: {tech("deployment_env")}
   - CI/CD: automated build, test and deploy pipeline

### Scalability Considerations
- **Expected Load**: {answer_or_default(answers, "expected_users")} concurrent users
- **Data Volume**: {answer_or_default(answers, "data_volume")}
- **Scaling Strategy**: Horizontal scaling of stateless services
- **Database Scaling**: Read replicas + connection pooling

### Security Recommendations
- **Security Requirements**: {answer_or_default(answers, "security_compliance")}
- **Authorization**: Role-based access control (RBAC)
- **Data Encryption**: TLS in transit, encryption at rest

### Integration Points
- **Required Integrations**: {answer_or_default(answers, "integration_requirements")}
- **Error Handling**: Circuit breakers with fallbacks
- **Monitoring**: Centralized logging and distributed tracing

## Next Steps
1. Review and validate this architectural plan
2. Create detailed component specifications
3. Set up the development environment
4. Implement MVP features
5. Establish monitoring and observability

---
*This plan was generated from a template because automated generation was unavailable. Please review and adjust it to your needs.*
"""
