"""
Configuration manager for Trivia Quiz Bot settings and round options.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import (
    MAX_QUESTION_COUNT,
    MIN_QUESTION_COUNT,
    Difficulty,
    QuestionType,
    QuizConfig,
)
from .trivia_api import DEFAULT_BASE_URL, DEFAULT_CATEGORIES, DEFAULT_REQUEST_TIMEOUT


@dataclass
class QuizSettings:
    """Default options used when a round is started without overrides."""
    question_count: int = 5
    category_id: Optional[int] = 21
    difficulty: Optional[str] = "easy"
    question_type: Optional[str] = "multiple"
    timer_duration: int = 60


class ConfigManager:
    """Manages bot configuration settings and produces QuizConfig values."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 5
    DEFAULT_CATEGORY_ID = 21
    DEFAULT_DIFFICULTY = "easy"
    DEFAULT_QUESTION_TYPE = "multiple"
    DEFAULT_TIMER_DURATION = 60
    DEFAULT_TICK_PERIOD = 1.0

    # Validation limits
    MIN_TIMER_DURATION = 10
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_COUNT = MIN_QUESTION_COUNT
    MAX_QUESTION_COUNT = MAX_QUESTION_COUNT
    MIN_REQUEST_TIMEOUT = 1.0
    MAX_REQUEST_TIMEOUT = 120.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self.api_base_url = DEFAULT_BASE_URL
        self.request_timeout = DEFAULT_REQUEST_TIMEOUT
        self.tick_period = self.DEFAULT_TICK_PERIOD

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current default settings.

        Returns:
            Copy of the QuizSettings in effect
        """
        return QuizSettings(
            question_count=self._global_settings.question_count,
            category_id=self._global_settings.category_id,
            difficulty=self._global_settings.difficulty,
            question_type=self._global_settings.question_type,
            timer_duration=self._global_settings.timer_duration
        )

    def _check_question_count(self, count: Any) -> Optional[Dict[str, Any]]:
        if isinstance(count, bool) or not isinstance(count, int):
            error_msg = f"Question count must be an integer, got {type(count).__name__}"
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }
        if count < self.MIN_QUESTION_COUNT:
            return {
                'success': False,
                'error': f"Question count must be at least {self.MIN_QUESTION_COUNT}",
                'user_message': f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            }
        if count > self.MAX_QUESTION_COUNT:
            return {
                'success': False,
                'error': f"Question count cannot exceed {self.MAX_QUESTION_COUNT}",
                'user_message': f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            }
        return None

    def _check_timer_duration(self, duration: Any) -> Optional[Dict[str, Any]]:
        if isinstance(duration, bool) or not isinstance(duration, int):
            return {
                'success': False,
                'error': f"Timer duration must be an integer, got {type(duration).__name__}",
                'user_message': f"❌ Invalid input: Expected a number of seconds, got {type(duration).__name__}"
            }
        if not self.MIN_TIMER_DURATION <= duration <= self.MAX_TIMER_DURATION:
            return {
                'success': False,
                'error': (
                    f"Timer duration must be between {self.MIN_TIMER_DURATION} "
                    f"and {self.MAX_TIMER_DURATION} seconds"
                ),
                'user_message': (
                    f"❌ Invalid timer: Choose between {self.MIN_TIMER_DURATION} "
                    f"and {self.MAX_TIMER_DURATION} seconds"
                )
            }
        return None

    def _check_category(self, category_id: Any) -> Optional[Dict[str, Any]]:
        if category_id is None:
            return None
        if isinstance(category_id, bool) or not isinstance(category_id, int) or category_id < 1:
            return {
                'success': False,
                'error': f"Invalid category id: {category_id!r}",
                'user_message': "❌ Invalid category: Use /categories to list the available ids"
            }
        return None

    @staticmethod
    def _check_enum(value: Any, enum_cls, label: str) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        try:
            enum_cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            return {
                'success': False,
                'error': f"Invalid {label}: {value!r}",
                'user_message': f"❌ Invalid {label}: Choose one of {allowed}"
            }
        return None

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the default number of questions per round.

        Args:
            count: Number of questions (1-20)

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_question_count(count)
        if failure:
            self.logger.error(failure['error'])
            return failure

        self._global_settings.question_count = count
        self.logger.info(f"Question count set to {count}")
        return {
            'success': True,
            'message': f"Question count set to {count}",
            'user_message': f"✅ Question count set to {count}"
        }

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the default round time limit.

        Args:
            duration: Time limit in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_timer_duration(duration)
        if failure:
            self.logger.error(failure['error'])
            return failure

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds per round"
        }

    def set_category(self, category_id: Optional[int]) -> Dict[str, Any]:
        """Set the default category id, or None for any category."""
        failure = self._check_category(category_id)
        if failure:
            self.logger.error(failure['error'])
            return failure

        self._global_settings.category_id = category_id
        label = self.get_category_name(category_id)
        self.logger.info(f"Category set to {label}")
        return {
            'success': True,
            'message': f"Category set to {label}",
            'user_message': f"✅ Category set to {label}"
        }

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """Set the default difficulty, or None for mixed difficulty."""
        failure = self._check_enum(difficulty, Difficulty, "difficulty")
        if failure:
            self.logger.error(failure['error'])
            return failure

        self._global_settings.difficulty = Difficulty(difficulty).value if difficulty else None
        label = self._global_settings.difficulty or "any"
        self.logger.info(f"Difficulty set to {label}")
        return {
            'success': True,
            'message': f"Difficulty set to {label}",
            'user_message': f"✅ Difficulty set to {label}"
        }

    def set_question_type(self, question_type: Optional[str]) -> Dict[str, Any]:
        """Set the default question type, or None for mixed types."""
        failure = self._check_enum(question_type, QuestionType, "question type")
        if failure:
            self.logger.error(failure['error'])
            return failure

        self._global_settings.question_type = QuestionType(question_type).value if question_type else None
        label = self._global_settings.question_type or "any"
        self.logger.info(f"Question type set to {label}")
        return {
            'success': True,
            'message': f"Question type set to {label}",
            'user_message': f"✅ Question type set to {label}"
        }

    def set_request_timeout(self, timeout: float) -> Dict[str, Any]:
        """Set the trivia service request deadline in seconds."""
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or not (
            self.MIN_REQUEST_TIMEOUT <= timeout <= self.MAX_REQUEST_TIMEOUT
        ):
            error_msg = (
                f"Request timeout must be between {self.MIN_REQUEST_TIMEOUT} "
                f"and {self.MAX_REQUEST_TIMEOUT} seconds"
            )
            self.logger.error(error_msg)
            return {'success': False, 'error': error_msg, 'user_message': f"❌ {error_msg}"}

        self.request_timeout = float(timeout)
        self.logger.info(f"Request timeout set to {self.request_timeout}s")
        return {
            'success': True,
            'message': f"Request timeout set to {self.request_timeout}s",
            'user_message': f"✅ Request timeout set to {self.request_timeout}s"
        }

    def apply_config_dict(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply settings loaded from config.json.

        Invalid entries are logged and skipped; defaults stay in effect.

        Returns:
            List of error messages for entries that were rejected
        """
        errors = []
        quiz_config = config.get('quiz', {}) or {}
        api_config = config.get('trivia_api', {}) or {}
        timer_config = config.get('timer', {}) or {}

        setters = [
            ('default_question_count', self.set_question_count),
            ('default_category_id', self.set_category),
            ('default_difficulty', self.set_difficulty),
            ('default_question_type', self.set_question_type),
            ('default_timer_duration', self.set_timer_duration),
        ]
        for key, setter in setters:
            if key in quiz_config:
                result = setter(quiz_config[key])
                if not result['success']:
                    errors.append(f"quiz.{key}: {result['error']}")

        if 'base_url' in api_config:
            base_url = api_config['base_url']
            if isinstance(base_url, str) and base_url.strip():
                self.api_base_url = base_url.strip()
            else:
                errors.append(f"trivia_api.base_url: invalid value {base_url!r}")

        if 'request_timeout' in api_config:
            result = self.set_request_timeout(api_config['request_timeout'])
            if not result['success']:
                errors.append(f"trivia_api.request_timeout: {result['error']}")

        if 'tick_period' in timer_config:
            period = timer_config['tick_period']
            if isinstance(period, (int, float)) and not isinstance(period, bool) and period > 0:
                self.tick_period = float(period)
            else:
                errors.append(f"timer.tick_period: invalid value {period!r}")

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} rejected entries")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def build_quiz_config(
        self,
        question_count: Optional[int] = None,
        category_id: Optional[int] = None,
        difficulty: Optional[str] = None,
        question_type: Optional[str] = None,
        timer_duration: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Produce the QuizConfig for a new round from defaults plus overrides.

        Arguments left as None fall back to the current defaults.

        Returns:
            Dictionary with success status and either 'config' or error details
        """
        settings = self.get_quiz_settings()
        count = question_count if question_count is not None else settings.question_count
        category = category_id if category_id is not None else settings.category_id
        level = difficulty if difficulty is not None else settings.difficulty
        kind = question_type if question_type is not None else settings.question_type
        duration = timer_duration if timer_duration is not None else settings.timer_duration

        checks = [
            self._check_question_count(count),
            self._check_category(category),
            self._check_enum(level, Difficulty, "difficulty"),
            self._check_enum(kind, QuestionType, "question type"),
            self._check_timer_duration(duration),
        ]
        for failure in checks:
            if failure:
                self.logger.warning(f"Rejected round options: {failure['error']}")
                return failure

        config = QuizConfig(
            question_count=count,
            category_id=category,
            difficulty=Difficulty(level) if level else None,
            question_type=QuestionType(kind) if kind else None,
            time_limit_seconds=duration
        )
        return {
            'success': True,
            'config': config,
            'message': "Round options ready",
            'user_message': "✅ Round options ready"
        }

    @staticmethod
    def get_category_name(category_id: Optional[int]) -> str:
        """Readable label for a category id."""
        if category_id is None:
            return "Any category"
        for category in DEFAULT_CATEGORIES:
            if category.id == category_id:
                return category.name
        return f"Category #{category_id}"

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            question_count=self.DEFAULT_QUESTION_COUNT,
            category_id=self.DEFAULT_CATEGORY_ID,
            difficulty=self.DEFAULT_DIFFICULTY,
            question_type=self.DEFAULT_QUESTION_TYPE,
            timer_duration=self.DEFAULT_TIMER_DURATION
        )
        self.api_base_url = DEFAULT_BASE_URL
        self.request_timeout = DEFAULT_REQUEST_TIMEOUT
        self.tick_period = self.DEFAULT_TICK_PERIOD
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        checks = [
            self._check_question_count(self._global_settings.question_count),
            self._check_category(self._global_settings.category_id),
            self._check_enum(self._global_settings.difficulty, Difficulty, "difficulty"),
            self._check_enum(self._global_settings.question_type, QuestionType, "question type"),
            self._check_timer_duration(self._global_settings.timer_duration),
        ]
        for failure in checks:
            if failure:
                validation_result["valid"] = False
                validation_result["issues"].append(failure['error'])

        if not isinstance(self.api_base_url, str) or not self.api_base_url.startswith(("http://", "https://")):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid trivia API base URL: {self.api_base_url}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Trivia Settings:\n"
            f"• Questions: {settings.question_count}\n"
            f"• Category: {self.get_category_name(settings.category_id)}\n"
            f"• Difficulty: {settings.difficulty or 'any'}\n"
            f"• Type: {settings.question_type or 'any'}\n"
            f"• Timer: {settings.timer_duration} seconds"
        )
