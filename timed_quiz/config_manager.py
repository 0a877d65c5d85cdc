"""
Configuration manager for quiz settings and storage locations.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import DEFAULT_TIMER_DURATION, QuizSettings


class ConfigManager:
    """Manages quiz settings, the quiz directory and the history file."""

    # Default configuration values
    DEFAULT_TIMER_DURATION = DEFAULT_TIMER_DURATION
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_HISTORY_FILE = "./data/history.json"

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._history_file = self.DEFAULT_HISTORY_FILE

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            Copy of the current QuizSettings
        """
        return QuizSettings(
            timer_duration=self._global_settings.timer_duration,
            quiz_name=self._global_settings.quiz_name
        )

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown duration for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            error_msg = f"Timer duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_TIMER_DURATION:
            error_msg = f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            }

        if duration > self.MAX_TIMER_DURATION:
            error_msg = f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds"
            }

        self._global_settings.timer_duration = duration
        self.logger.info(f"Timer duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Timer duration set to {duration} seconds",
            'user_message': f"✅ Timer set to {duration} seconds"
        }

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_quiz_name(self, quiz_name: Optional[str]) -> Dict[str, Any]:
        """
        Choose which loaded quiz a session uses.

        Args:
            quiz_name: Quiz file name without extension, or None for the first available quiz
        """
        if quiz_name is not None and (not isinstance(quiz_name, str) or not quiz_name.strip()):
            error_msg = f"Quiz name must be a non-empty string, got {quiz_name!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Quiz name cannot be empty"
            }

        self._global_settings.quiz_name = quiz_name.strip() if quiz_name else None
        self.logger.info(f"Quiz set to {self._global_settings.quiz_name or 'first available'}")
        return {
            'success': True,
            'message': f"Quiz set to {self._global_settings.quiz_name or 'first available'}",
            'user_message': f"✅ Quiz set to {self._global_settings.quiz_name or 'first available'}"
        }

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for quiz files.

        Args:
            directory: Path to quiz files directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_path('_quiz_directory', directory, "Quiz directory")

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def set_history_file(self, history_file: str) -> Dict[str, Any]:
        """
        Set the JSON file holding past attempts.

        Args:
            history_file: Path to the history file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_path('_history_file', history_file, "History file")

    def get_history_file(self) -> str:
        return self._history_file

    def _set_path(self, attribute: str, value: str, label: str) -> Dict[str, Any]:
        if not isinstance(value, str):
            error_msg = f"{label} must be a string, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(value).__name__}"
            }

        if not value.strip():
            error_msg = f"{label} cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} path cannot be empty"
            }

        try:
            normalized_path = str(Path(value).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid {label.lower()} path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {value}"
            }

        setattr(self, attribute, normalized_path)
        self.logger.info(f"{label} set to {normalized_path}")
        return {
            'success': True,
            'message': f"{label} set to {normalized_path}",
            'user_message': f"✅ {label} set to {normalized_path}"
        }

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid entries are skipped and the defaults kept.

        Args:
            config: Parsed configuration dictionary

        Returns:
            List of error messages for entries that were rejected
        """
        quiz_config = config.get('quiz', {}) if isinstance(config, dict) else {}
        results = []

        if 'quiz_directory' in quiz_config:
            results.append(self.set_quiz_directory(quiz_config['quiz_directory']))
        if 'history_file' in quiz_config:
            results.append(self.set_history_file(quiz_config['history_file']))
        if 'timer_duration' in quiz_config:
            results.append(self.set_timer_duration(quiz_config['timer_duration']))
        if 'quiz_name' in quiz_config:
            results.append(self.set_quiz_name(quiz_config['quiz_name']))

        errors = [result['error'] for result in results if not result['success']]
        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} rejected entries")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(timer_duration=self.DEFAULT_TIMER_DURATION)
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._history_file = self.DEFAULT_HISTORY_FILE
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

        duration = self._global_settings.timer_duration
        if (not isinstance(duration, int) or
            duration < self.MIN_TIMER_DURATION or
            duration > self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {duration}")

        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid quiz directory: {self._quiz_directory}")

        if not isinstance(self._history_file, str) or not self._history_file.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid history file: {self._history_file}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Quiz: {self._global_settings.quiz_name or 'first available'}\n"
            f"• Timer: {self._global_settings.timer_duration} seconds\n"
            f"• Quiz Directory: {self._quiz_directory}\n"
            f"• History File: {self._history_file}"
        )
