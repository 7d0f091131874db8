"""
MCQ Generator.

Generates multiple choice questions for a topic across Bloom's taxonomy
levels. Questions are requested in JSON mode in batches of five, merged,
deduplicated and topped up until the requested count is reached. Tool input
is screened first unless it refers to moderator-approved content.
"""

from __future__ import annotations

import json
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edify_ai.core.database.base import utc_now
from edify_ai.core.database.entities import MCQGeneratorResult, User
from edify_ai.core.database.repositories import (
    AIToolsMetricRepository,
    MCQResultRepository,
    OrgMemberRepository,
    UserRepository,
)
from edify_ai.core.logging_config import get_logger
from edify_ai.core.models.content_flags import ContentFlags
from edify_ai.server.core.config import settings
from edify_ai.server.services.auth import AuthContext
from edify_ai.server.services.content_safety import perform_content_checks
from edify_ai.server.services.exchange import ExchangeRateService
from edify_ai.server.services.metrics import AIToolsMetricsParams, record_ai_tools_metrics

logger = get_logger(__name__)

PROMPT_TYPE = "mcq_generator"
BATCH_SIZE = 5
TOP_UP_ATTEMPTS = 3
SIMILARITY_THRESHOLD = 0.8

_PUNCTUATION = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")

QUESTION_FORMAT = """{
  "data": {
    "questions": [
      {
        "text": "string",
        "taxonomyLevel": "string",
        "answers": [
          {
            "text": "string",
            "isCorrect": boolean,
            "explanation": "string (detailed explanation for why this answer is correct/incorrect)"
          }
        ],
        "explanation": "string (comprehensive explanation of the correct answer)"
      }
    ],
    "metadata": {
      "topic": "string",
      "difficulty": "string",
      "totalQuestions": number,
      "taxonomyLevels": ["string"],
      "timestamp": "string"
    }
  }
}"""


class MCQContentViolation(Exception):
    """The topic failed content screening."""

    def __init__(self, flags: Dict[str, bool]) -> None:
        self.flags = flags
        names = [key.replace("_", " ") for key, value in flags.items() if value is True]
        super().__init__(f"This request violates {', '.join(names)}. Please review your input")


class MCQNotFound(LookupError):
    pass


class MCQNotApproved(PermissionError):
    def __init__(self, status: Optional[str], content_flags: Optional[Dict[str, Any]]) -> None:
        super().__init__("Content not approved")
        self.status = status
        self.content_flags = content_flags


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: Any) -> None:
        if usage is None:
            return
        self.prompt_tokens += usage.prompt_tokens or 0
        self.completion_tokens += usage.completion_tokens or 0
        self.total_tokens += usage.total_tokens or 0


def empty_batch() -> Dict[str, Any]:
    return {
        "questions": [],
        "metadata": {
            "topic": "Failed to generate",
            "difficulty": "medium",
            "totalQuestions": 0,
            "taxonomyLevels": [],
            "timestamp": utc_now().isoformat(),
        },
    }


def batch_messages(
    batch_size: int, topic: str, taxonomy_levels: Sequence[str], difficulty: str, answers_per_question: int
) -> List[Dict[str, str]]:
    """Chat messages asking for one batch of questions."""
    levels = ", ".join(taxonomy_levels)
    per_level = math.ceil(batch_size / len(taxonomy_levels))
    system = (
        "You are an educational assessment expert who creates high-quality multiple choice questions.\n"
        "Use UK English only and avoid convoluted language.\n"
        f"Generate exactly {batch_size} questions, evenly distributed across all specified taxonomy levels ({levels}).\n"
        "Each question should:\n"
        f"- Strictly match the specified difficulty level ({difficulty})\n"
        "- Include a detailed explanation for why the correct answer is correct\n"
        "- Have explanations that are pedagogically sound and help learners understand the concept\n"
        "You must respond with a valid JSON object that exactly matches the specified schema structure."
    )
    user = (
        f"Create {batch_size} multiple choice questions for:\n"
        f"Topic: {topic}\n"
        f"Number of Options per Question: {answers_per_question}\n"
        f"Difficulty Level: {difficulty}\n"
        f"Questions per Taxonomy Level: {per_level}\n"
        f"Bloom's Taxonomy Levels: {levels}\n\n"
        "Requirements:\n"
        "- Generate equal number of questions for EACH taxonomy level\n"
        "- Include detailed explanations for correct answers\n"
        "- Ensure questions are appropriate for the taxonomy level\n"
        "- Make sure each question tests the specific cognitive skill of its taxonomy level\n\n"
        f"Return ONLY a JSON object with this exact structure:\n{QUESTION_FORMAT}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


async def generate_question_batch(
    client: AsyncOpenAI,
    usage: TokenUsage,
    batch_size: int,
    topic: str,
    taxonomy_levels: Sequence[str],
    difficulty: str,
    answers_per_question: int,
) -> Dict[str, Any]:
    """
    Request one batch of questions.

    Failures and malformed answers yield an empty batch so that the
    remaining batches can still fill the question set.
    """
    try:
        completion = await client.chat.completions.create(
            model=settings.openai.tool_model,
            response_format={"type": "json_object"},
            messages=batch_messages(batch_size, topic, taxonomy_levels, difficulty, answers_per_question),
        )
    except Exception as e:
        logger.error(f"Error generating question batch: {e}", exc_info=True)
        return empty_batch()

    usage.add(completion.usage)
    content = completion.choices[0].message.content if completion.choices else None
    if not content:
        logger.error("Empty response from OpenAI")
        return empty_batch()

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse OpenAI response: {e}")
        return empty_batch()

    data = parsed.get("data") if isinstance(parsed, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        logger.error(f"Invalid response structure from OpenAI: {parsed}")
        return empty_batch()
    return data


def _normalize(text: str) -> str:
    return _PUNCTUATION.sub("", text.lower())


def question_similarity(a: str, b: str) -> float:
    """Length ratio when the shorter normalized text is contained in the longer, else 0."""
    a, b = _normalize(a), _normalize(b)
    if len(a) > len(b):
        a, b = b, a
    if not a or a not in b:
        return 0.0
    return len(a) / len(b)


def are_questions_similar(q1: Dict[str, Any], q2: Dict[str, Any]) -> bool:
    return question_similarity(q1["text"], q2["text"]) > SIMILARITY_THRESHOLD


def add_unique_questions(unique: List[Dict[str, Any]], candidates: Sequence[Any]) -> int:
    """Append candidates not similar to any kept question; returns how many were added."""
    added = 0
    for question in candidates:
        if not isinstance(question, dict) or not question.get("text"):
            continue
        if any(are_questions_similar(kept, question) for kept in unique):
            continue
        unique.append(question)
        added += 1
    return added


def merge_and_deduplicate(batches: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    unique: List[Dict[str, Any]] = []
    for batch in batches:
        if batch and isinstance(batch.get("questions"), list):
            add_unique_questions(unique, batch["questions"])
    return unique


async def summarize_topic(client: AsyncOpenAI, usage: TokenUsage, topic: str) -> tuple[str, str]:
    """
    Extract a short topic from the input text.

    Returns:
        The topic (the input itself when none was extracted) and the raw model answer
    """
    completion = await client.chat.completions.create(
        model=settings.openai.tool_model,
        response_format={"type": "json_object"},
        temperature=0.7,
        messages=[
            {"role": "system", "content": "You are a text summarizer. use UK english"},
            {
                "role": "user",
                "content": (
                    f"Summarize this piece of text and extract topic from the context: {topic} "
                    'and output in this json format {topic: "string"}'
                ),
            },
        ],
    )
    usage.add(completion.usage)
    content = (completion.choices[0].message.content if completion.choices else None) or "{}"
    try:
        summary = json.loads(content).get("topic")
    except (json.JSONDecodeError, AttributeError):
        logger.warning(f"Topic summary was not valid JSON: {content}")
        summary = None
    return summary or topic, content


async def is_approved_content(session: AsyncSession, metrics_id: Optional[str]) -> bool:
    if not metrics_id:
        return False
    metric = await AIToolsMetricRepository(session).get_by_id(metrics_id)
    return metric is not None and metric.moderator_approval == "approved"


async def generate_mcqs(
    session: AsyncSession,
    client: AsyncOpenAI,
    exchange: ExchangeRateService,
    *,
    user_id: str,
    topic: str,
    taxonomy_levels: List[str],
    difficulty: str = "medium",
    question_count: int = 5,
    answers_per_question: int = 4,
    approved_id: Optional[str] = None,
) -> MCQGeneratorResult:
    """
    Screen the topic, generate the question set and store it.

    Args:
        session: Database session
        client: OpenAI client
        exchange: Pricing service
        user_id: Owner of the result
        topic: Topic or source text
        taxonomy_levels: Bloom's taxonomy levels to cover
        difficulty: Difficulty level
        question_count: Number of questions wanted
        answers_per_question: Options per question
        approved_id: Metrics id of moderator-approved content; skips screening when approved

    Returns:
        The stored result

    Raises:
        MCQContentViolation: If screening flagged the topic. A flagged metric
            and an empty result are stored first.
    """
    start_time = time.time()
    model = settings.openai.tool_model
    violations: Dict[str, bool] = {}

    if not await is_approved_content(session, approved_id):
        check = await perform_content_checks(client, topic)
        violations = check.violations
        if not check.should_proceed:
            result = await MCQResultRepository(session).create(
                MCQGeneratorResult(
                    user_id=user_id,
                    topic=topic,
                    difficulty=difficulty,
                    total_questions=question_count,
                    taxonomy_levels=taxonomy_levels,
                    questions_data=[],
                )
            )
            await record_ai_tools_metrics(
                session,
                AIToolsMetricsParams(
                    user_id=user_id,
                    model=model,
                    input_length=len(topic),
                    start_time=start_time,
                    content_flags=check.flags,
                    error_type="content_violation",
                    status_code=400,
                    prompt_id=result.id,
                    prompt_type=PROMPT_TYPE,
                ),
            )
            logger.warning(f"MCQ request from {user_id} blocked: {ContentFlags.from_stored(violations).active()}")
            raise MCQContentViolation(violations)

    usage = TokenUsage()
    batches = []
    for index in range(math.ceil(question_count / BATCH_SIZE)):
        size = min(BATCH_SIZE, question_count - index * BATCH_SIZE)
        batches.append(
            await generate_question_batch(
                client, usage, size, topic, taxonomy_levels, difficulty, answers_per_question
            )
        )
    questions = merge_and_deduplicate(batches)

    attempts = 0
    while len(questions) < question_count and attempts < TOP_UP_ATTEMPTS:
        attempts += 1
        batch = await generate_question_batch(
            client, usage, question_count - len(questions), topic, taxonomy_levels, difficulty, answers_per_question
        )
        if not batch.get("questions"):
            logger.error("Failed to generate additional questions")
            break
        add_unique_questions(questions, batch["questions"])

    summary_topic, summary_text = await summarize_topic(client, usage, topic)

    result = await MCQResultRepository(session).create(
        MCQGeneratorResult(
            user_id=user_id,
            topic=summary_topic,
            difficulty=difficulty,
            total_questions=question_count,
            taxonomy_levels=taxonomy_levels,
            questions_data=questions[:question_count],
        )
    )

    price = await exchange.calculate_gbp_price(usage.prompt_tokens, usage.completion_tokens, model)
    await record_ai_tools_metrics(
        session,
        AIToolsMetricsParams(
            user_id=user_id,
            model=model,
            input_length=len(topic),
            response_length=len(summary_text),
            start_time=start_time,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            price_gbp=price,
            content_flags=ContentFlags.from_stored(violations),
            status_code=200,
            prompt_id=result.id,
            prompt_type=PROMPT_TYPE,
        ),
    )
    logger.info(f"Generated {len(result.questions_data)} MCQs for {user_id} ({usage.total_tokens} tokens)")
    return result


async def get_approved_result(session: AsyncSession, approved_id: str) -> Dict[str, Any]:
    """
    The stored question set behind moderator-approved metrics.

    Raises:
        MCQNotFound: If the metrics row or its result is missing.
        MCQNotApproved: If the content has not been approved.
    """
    metric = await AIToolsMetricRepository(session).get_by_id(approved_id)
    if metric is None:
        raise MCQNotFound("Metrics not found")
    if metric.moderator_approval != "approved":
        raise MCQNotApproved(metric.moderator_approval, metric.content_flags)

    result = await MCQResultRepository(session).get_by_id(metric.prompt_id)
    if result is None:
        raise MCQNotFound("MCQ data not found")

    return {
        "questions_data": result.questions_data,
        "input_data": {
            "topic": result.topic,
            "taxonomyLevels": result.taxonomy_levels,
            "questionCount": result.total_questions,
            "difficulty": result.difficulty,
            "inputMethod": result.input_method or "text",
            "fileUrl": result.file_url or "",
        },
        "metadata": {
            "id": result.id,
            "created_at": result.created_at,
            "last_edited": result.updated_at,
            "moderator_approval": metric.moderator_approval,
        },
    }


async def list_history(
    session: AsyncSession, auth: AuthContext, limit: int = 10, offset: int = 0, search: str = ""
) -> Dict[str, Any]:
    """
    Page through stored question sets.

    Org admins see their organization's results, everyone else their own.
    ``search`` keeps only owners whose username contains it.
    """
    user_ids: List[str] = [auth.user_id]
    if auth.org_id and auth.is_org_admin:
        user_ids = await OrgMemberRepository(session).member_ids(auth.org_id)

    if search:
        matches = await session.execute(select(User.id).where(User.username.ilike(f"%{search}%")))
        matching = set(matches.scalars().all())
        user_ids = [user_id for user_id in user_ids if user_id in matching]

    rows, total = await MCQResultRepository(session).list_for_users(user_ids, limit=limit, offset=offset)
    users = await UserRepository(session).get_many(row.user_id for row in rows)

    data = [
        {
            "username": (users[row.user_id].username if row.user_id in users else None) or "Unknown",
            "topic": row.topic,
            "difficulty": row.difficulty,
            "total_questions": row.total_questions,
            "taxonomy_levels": row.taxonomy_levels,
            "questions_data": row.questions_data,
            "created_at": row.created_at,
        }
        for row in rows
    ]
    return {
        "data": data,
        "limit": limit,
        "offset": offset,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalRecords": total,
    }
