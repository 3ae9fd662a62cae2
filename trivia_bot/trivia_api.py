"""
Client for the Open Trivia Database (https://opentdb.com).

Returns raw question records; decoding into Question objects is the entity
decoder's job.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from .exceptions import (
    FetchFailure,
    FetchTimeoutError,
    HTTPStatusError,
    InvalidParameterError,
    MalformedPayloadError,
    NetworkError,
    NoResultsError,
    RateLimitedError,
)
from .models import Category, Difficulty, QuestionType

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://opentdb.com"
DEFAULT_REQUEST_TIMEOUT = 15.0

# Offered when the category list cannot be fetched
DEFAULT_CATEGORIES = [
    Category(id=21, name="Sports"),
    Category(id=9, name="General Knowledge"),
    Category(id=22, name="Geography"),
    Category(id=23, name="History"),
]

# OpenTDB response_code values
RESPONSE_SUCCESS = 0
RESPONSE_NO_RESULTS = 1
RESPONSE_INVALID_PARAMETER = 2
RESPONSE_TOKEN_NOT_FOUND = 3
RESPONSE_TOKEN_EMPTY = 4
RESPONSE_RATE_LIMIT = 5


class TriviaAPI:
    """Async HTTP client for fetching trivia questions and categories."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Root URL of the trivia service
            request_timeout: Total deadline for one request, in seconds
            session: Shared aiohttp session; one is created lazily if omitted
        """
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def build_question_params(
        amount: int,
        category_id: Optional[int] = None,
        difficulty: Optional[Difficulty] = None,
        question_type: Optional[QuestionType] = None
    ) -> Dict[str, str]:
        """Build the query string for a question request."""
        params = {"amount": str(amount)}
        if category_id is not None:
            params["category"] = str(category_id)
        if difficulty:
            params["difficulty"] = Difficulty(difficulty).value
        if question_type:
            params["type"] = QuestionType(question_type).value
        return params

    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = f"{self.base_url}/{path}"
        request_start = time.time()
        logger.info(
            f"Fetching {url} with params {params or {}}",
            extra={
                'event_type': 'trivia_request_start',
                'url': url,
                'params': params,
                'timestamp': request_start
            }
        )

        session = await self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            ) as response:
                status = response.status
                if status == 429:
                    raise RateLimitedError(status)
                if not 200 <= status < 300:
                    raise HTTPStatusError(status)
                try:
                    payload = await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedPayloadError(f"Response from {url} is not valid JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(
                f"No response from {url} within {self.request_timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        logger.info(
            f"Got HTTP {status} from {url} in {time.time() - request_start:.3f}s",
            extra={
                'event_type': 'trivia_request_complete',
                'url': url,
                'status': status,
                'duration': time.time() - request_start,
                'timestamp': time.time()
            }
        )
        return payload

    @staticmethod
    def check_response_code(payload: Any) -> None:
        """
        Raise the matching FetchFailure for a non-zero OpenTDB response code.

        Raises:
            MalformedPayloadError: If the payload is not an object with a code
            NoResultsError, InvalidParameterError, RateLimitedError, FetchFailure
        """
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"Expected a JSON object, got {type(payload).__name__}")

        code = payload.get("response_code", RESPONSE_SUCCESS)
        if code == RESPONSE_SUCCESS:
            return
        if code == RESPONSE_NO_RESULTS:
            raise NoResultsError("Not enough questions for the requested options")
        if code == RESPONSE_INVALID_PARAMETER:
            raise InvalidParameterError("Trivia service rejected the request parameters")
        if code in (RESPONSE_TOKEN_NOT_FOUND, RESPONSE_TOKEN_EMPTY):
            raise FetchFailure(f"Trivia session token error (response_code {code})")
        if code == RESPONSE_RATE_LIMIT:
            raise RateLimitedError(message="Trivia service rate limit reached (response_code 5)")
        raise FetchFailure(f"Unknown trivia response_code {code!r}")

    async def fetch_questions(
        self,
        amount: int,
        category_id: Optional[int] = None,
        difficulty: Optional[Difficulty] = None,
        question_type: Optional[QuestionType] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch raw question records.

        The service may return fewer records than requested.

        Returns:
            Non-empty list of raw record dicts

        Raises:
            FetchFailure: On any network, HTTP, payload or service error
        """
        params = self.build_question_params(amount, category_id, difficulty, question_type)
        payload = await self._get_json("api.php", params)
        self.check_response_code(payload)

        results = payload.get("results")
        if not isinstance(results, list):
            raise MalformedPayloadError("Response is missing the 'results' list")
        if not results:
            raise NoResultsError("Trivia service returned no questions")

        if len(results) < amount:
            logger.warning(f"Requested {amount} questions but received {len(results)}")
        logger.info(f"Fetched {len(results)} trivia records")
        return results

    async def fetch_categories(self) -> List[Category]:
        """
        Fetch the list of trivia categories.

        Raises:
            FetchFailure: On any network, HTTP or payload error
        """
        payload = await self._get_json("api_category.php")
        if not isinstance(payload, dict) or not isinstance(payload.get("trivia_categories"), list):
            raise MalformedPayloadError("Response is missing the 'trivia_categories' list")

        categories = []
        for entry in payload["trivia_categories"]:
            if not isinstance(entry, dict):
                continue
            category_id = entry.get("id")
            name = entry.get("name")
            if isinstance(category_id, int) and isinstance(name, str):
                categories.append(Category(id=category_id, name=name))
        return categories
