from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from core.config import settings
from core.exceptions import AttemptNotFound, QuizApiError, QuizApiUnavailable
from core.logger import logger
from models.attempt import (
    AttemptDetail,
    AttemptHistory,
    AttemptRecord,
    SaveAnswerRequest,
    StartAttemptResponse,
)
from models.quiz import QuestionDetail, QuizDefinition

ModelT = TypeVar("ModelT", bound=BaseModel)


class QuizApiClient:
    """Async client for the quiz/attempt REST API."""

    def __init__(self, base_url: str = None, timeout: float = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.QUIZ_API_BASE_URL).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.QUIZ_API_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def _request(self, method: str, path: str, model: Type[ModelT], json: Any = None) -> ModelT:
        try:
            response = await self.client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning("Quiz API unreachable", method=method, path=path, error=str(e))
            raise QuizApiUnavailable(f"Quiz API unreachable: {e}") from e

        if response.status_code == 404:
            logger.info("Quiz API resource not found", method=method, path=path)
            raise AttemptNotFound(f"Not found: {path}", status_code=404)

        if response.status_code >= 400:
            logger.error("Quiz API error", method=method, path=path,
                         status=response.status_code, error=response.text[:500])
            raise QuizApiError(f"API error: {response.status_code}", status_code=response.status_code)

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error("Quiz API returned an unreadable body", method=method, path=path, error=str(e))
            raise QuizApiError(f"Unreadable response from {path}", status_code=response.status_code) from e

    async def get_quiz_detail(self, content_id: str) -> QuizDefinition:
        return await self._request("GET", f"/quizzes/{content_id}", QuizDefinition)

    async def get_attempt_history(self, user_id: str, content_id: str) -> AttemptHistory:
        return await self._request("GET", f"/quizzes/user/{user_id}/content/{content_id}", AttemptHistory)

    async def start_attempt(self, user_id: str, content_id: str) -> StartAttemptResponse:
        result = await self._request(
            "POST", "/quiz-attempts/start", StartAttemptResponse,
            json={"idUser": user_id, "idContent": content_id},
        )
        logger.info("Quiz attempt started", content_id=content_id, attempt_id=result.attempt_id,
                    questions=len(result.questions))
        return result

    async def get_question(self, question_id: str) -> QuestionDetail:
        return await self._request("GET", f"/questions/{question_id}/with-answer", QuestionDetail)

    async def save_answer(self, payload: SaveAnswerRequest, is_update: bool = False) -> AttemptDetail:
        # The API has no upsert: first answer is POST, later ones PATCH
        method = "PATCH" if is_update else "POST"
        return await self._request(
            method, "/quiz-attempts/save-answer", AttemptDetail,
            json=payload.model_dump(by_alias=True),
        )

    async def submit_attempt(self, attempt_id: str) -> AttemptDetail:
        result = await self._request(
            "POST", "/quiz-attempts/submit", AttemptDetail,
            json={"idAttempt": attempt_id},
        )
        logger.info("Quiz attempt submitted", attempt_id=attempt_id,
                    total_score=result.total_score, is_passed=result.is_passed)
        return result

    async def get_attempt(self, attempt_id: str) -> AttemptDetail:
        return await self._request("GET", f"/quiz-attempts/{attempt_id}", AttemptDetail)

    async def get_attempt_review(self, user_id: str, content_id: str, attempt_id: str) -> AttemptRecord:
        return await self._request("GET", f"/quiz-attempts/{user_id}/{content_id}/{attempt_id}", AttemptRecord)
