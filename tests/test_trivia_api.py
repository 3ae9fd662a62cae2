"""
Unit tests for the Open Trivia Database client.
"""
import asyncio
import json
import unittest
from unittest.mock import MagicMock, patch

import aiohttp

from trivia_bot.exceptions import (
    FetchFailure,
    FetchTimeoutError,
    HTTPStatusError,
    InvalidParameterError,
    MalformedPayloadError,
    NetworkError,
    NoResultsError,
    RateLimitedError,
)
from trivia_bot.models import Difficulty, QuestionType
from trivia_bot.trivia_api import DEFAULT_BASE_URL, TriviaAPI
from tests.test_fixtures import AsyncTestHelpers, TestFixtures


class TestBuildQuestionParams(unittest.TestCase):
    """Test cases for query string construction."""

    def test_amount_only(self):
        self.assertEqual(TriviaAPI.build_question_params(5), {"amount": "5"})

    def test_all_options(self):
        params = TriviaAPI.build_question_params(10, 21, Difficulty.HARD, QuestionType.BOOLEAN)
        self.assertEqual(params, {"amount": "10", "category": "21", "difficulty": "hard", "type": "boolean"})

    def test_plain_strings_accepted(self):
        params = TriviaAPI.build_question_params(3, None, "medium", "multiple")
        self.assertEqual(params, {"amount": "3", "difficulty": "medium", "type": "multiple"})


class TestCheckResponseCode(unittest.TestCase):
    """Test cases for mapping OpenTDB response codes to errors."""

    def test_success(self):
        TriviaAPI.check_response_code({"response_code": 0, "results": []})

    def test_code_mapping(self):
        cases = {
            1: NoResultsError,
            2: InvalidParameterError,
            3: FetchFailure,
            4: FetchFailure,
            5: RateLimitedError,
            99: FetchFailure,
        }
        for code, error_class in cases.items():
            with self.subTest(code=code):
                with self.assertRaises(error_class):
                    TriviaAPI.check_response_code({"response_code": code})

    def test_non_object_payload(self):
        with self.assertRaises(MalformedPayloadError):
            TriviaAPI.check_response_code(["results"])


class TestTriviaAPI(unittest.IsolatedAsyncioTestCase):
    """Test cases for TriviaAPI requests against a mocked aiohttp session."""

    def make_api(self, session: MagicMock) -> TriviaAPI:
        return TriviaAPI(base_url="https://trivia.example/", request_timeout=2.5, session=session)

    async def test_fetch_questions_success(self):
        """Test records are returned and the request is built correctly."""
        session = AsyncTestHelpers.create_mock_http_session(TestFixtures.create_api_payload())
        api = self.make_api(session)

        records = await api.fetch_questions(3, 9, Difficulty.EASY, QuestionType.MULTIPLE)

        self.assertEqual(len(records), 3)
        self.assertEqual(records[0]["correct_answer"], "Paris")
        args, kwargs = session.get.call_args
        self.assertEqual(args[0], "https://trivia.example/api.php")
        self.assertEqual(kwargs["params"], {"amount": "3", "category": "9", "difficulty": "easy", "type": "multiple"})
        self.assertIsInstance(kwargs["timeout"], aiohttp.ClientTimeout)
        self.assertEqual(kwargs["timeout"].total, 2.5)

    async def test_fewer_results_than_requested_accepted(self):
        """Test a short batch is returned with a warning."""
        payload = TestFixtures.create_api_payload(TestFixtures.create_raw_records()[:2])
        api = self.make_api(AsyncTestHelpers.create_mock_http_session(payload))

        with self.assertLogs('trivia_bot.trivia_api', level='WARNING'):
            records = await api.fetch_questions(5)
        self.assertEqual(len(records), 2)

    async def test_empty_results_raise(self):
        payload = TestFixtures.create_api_payload([])
        api = self.make_api(AsyncTestHelpers.create_mock_http_session(payload))
        with self.assertRaises(NoResultsError):
            await api.fetch_questions(5)

    async def test_missing_results_raise(self):
        api = self.make_api(AsyncTestHelpers.create_mock_http_session({"response_code": 0}))
        with self.assertRaises(MalformedPayloadError):
            await api.fetch_questions(5)

    async def test_response_code_error(self):
        payload = TestFixtures.create_api_payload([], response_code=1)
        api = self.make_api(AsyncTestHelpers.create_mock_http_session(payload))
        with self.assertRaises(NoResultsError):
            await api.fetch_questions(50)

    async def test_http_error_status(self):
        """Test non-2xx statuses raise HTTPStatusError with the status."""
        api = self.make_api(AsyncTestHelpers.create_mock_http_session({}, status=503))
        with self.assertRaises(HTTPStatusError) as context:
            await api.fetch_questions(5)
        self.assertEqual(context.exception.status, 503)

    async def test_http_429_is_rate_limited(self):
        api = self.make_api(AsyncTestHelpers.create_mock_http_session({}, status=429))
        with self.assertRaises(RateLimitedError):
            await api.fetch_questions(5)

    async def test_invalid_json(self):
        session = AsyncTestHelpers.create_mock_http_session(
            json_error=json.JSONDecodeError("Expecting value", "<html>", 0)
        )
        api = self.make_api(session)
        with self.assertRaises(MalformedPayloadError):
            await api.fetch_questions(5)

    async def test_timeout(self):
        """Test a request deadline surfaces as FetchTimeoutError."""
        session = AsyncTestHelpers.create_mock_http_session()
        session.get.side_effect = asyncio.TimeoutError()
        api = self.make_api(session)

        with self.assertRaises(FetchTimeoutError):
            await api.fetch_questions(5)

    async def test_network_error(self):
        session = AsyncTestHelpers.create_mock_http_session()
        session.get.side_effect = aiohttp.ClientConnectionError("connection refused")
        api = self.make_api(session)

        with self.assertRaises(NetworkError) as context:
            await api.fetch_questions(5)
        self.assertIsInstance(context.exception.__cause__, aiohttp.ClientConnectionError)

    async def test_fetch_categories(self):
        payload = {"trivia_categories": [
            {"id": 9, "name": "General Knowledge"},
            {"id": 21, "name": "Sports"},
            {"id": "bad", "name": "Ignored"},
        ]}
        session = AsyncTestHelpers.create_mock_http_session(payload)
        api = self.make_api(session)

        categories = await api.fetch_categories()

        self.assertEqual([(c.id, c.name) for c in categories], [(9, "General Knowledge"), (21, "Sports")])
        self.assertEqual(session.get.call_args[0][0], "https://trivia.example/api_category.php")

    async def test_fetch_categories_malformed(self):
        api = self.make_api(AsyncTestHelpers.create_mock_http_session({"oops": []}))
        with self.assertRaises(MalformedPayloadError):
            await api.fetch_categories()

    async def test_close_leaves_shared_session_open(self):
        """Test a session passed in is not closed by the client."""
        session = AsyncTestHelpers.create_mock_http_session({})
        api = self.make_api(session)
        await api.close()
        session.close.assert_not_awaited()

    async def test_owned_session_is_created_and_closed(self):
        """Test the client creates its own session lazily and closes it."""
        session = AsyncTestHelpers.create_mock_http_session(TestFixtures.create_api_payload())
        with patch('trivia_bot.trivia_api.aiohttp.ClientSession', return_value=session) as factory:
            api = TriviaAPI()
            self.assertEqual(api.base_url, DEFAULT_BASE_URL)
            await api.fetch_questions(3)
            await api.close()

        factory.assert_called_once()
        session.close.assert_awaited_once()


if __name__ == '__main__':
    unittest.main()
