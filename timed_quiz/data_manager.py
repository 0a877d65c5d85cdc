"""
Data manager for JSON quiz files and question bank validation.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import Question, QuestionKind


class DataManager:
    """Manages loading and validation of JSON quiz files."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB limit

    def __init__(self, quiz_directory: str = "./quizzes/"):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
        """
        self.quiz_directory = Path(quiz_directory)
        self.loaded_quizzes: Dict[str, List[Question]] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_quiz_created = False

    def load_quiz_files(self) -> Dict[str, List[Question]]:
        """
        Load all JSON files from the quiz directory.

        Returns:
            Dictionary mapping quiz names to lists of Question objects
        """
        self.loaded_quizzes.clear()
        self.load_errors.clear()
        self.fallback_quiz_created = False

        directory_error = self._ensure_quiz_directory()
        if directory_error:
            self.load_errors.append(directory_error)
            return self._create_fallback_quiz()

        try:
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.quiz_directory}: {e}")
            return self._create_fallback_quiz()

        # If no files found, create sample quiz
        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        successful_loads = 0
        for json_file in json_files:
            error = self._load_quiz_file_safely(json_file)
            if error is None:
                successful_loads += 1
            else:
                self.load_errors.append(f"{json_file.name}: {error}")

        if successful_loads == 0:
            self.logger.error("No quiz files could be loaded successfully")
            self.load_errors.append("All quiz files failed to load")
            return self._create_fallback_quiz()

        self.logger.info(f"Successfully loaded {successful_loads} quiz files")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_quizzes

    def validate_quiz_structure(self, data: Any) -> bool:
        """
        Validate that JSON data has the correct quiz structure.

        Expected structure:
        {
            "quiz": [
                {
                    "question": str,
                    "type": "mcq" | "integer",  # Optional
                    "options": [str, ...],      # Required for mcq
                    "answer": int               # Option index or integer value
                }
            ]
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Quiz data must be a JSON object")
            return False

        if "quiz" not in data:
            self.logger.error("Quiz data must contain a 'quiz' key")
            return False

        quiz_array = data["quiz"]
        if not isinstance(quiz_array, list):
            self.logger.error("'quiz' value must be an array")
            return False

        if not quiz_array:
            self.logger.error("Quiz array cannot be empty")
            return False

        for i, question_data in enumerate(quiz_array):
            if not isinstance(question_data, dict):
                self.logger.error(f"Question {i} must be an object")
                return False

            if "question" not in question_data:
                self.logger.error(f"Question {i} missing 'question' field")
                return False

            if "answer" not in question_data:
                self.logger.error(f"Question {i} missing 'answer' field")
                return False

            if not isinstance(question_data["question"], str) or not question_data["question"].strip():
                self.logger.error(f"Question {i} 'question' field must be a non-empty string")
                return False

            answer = question_data["answer"]
            if isinstance(answer, bool) or not isinstance(answer, int):
                self.logger.error(f"Question {i} 'answer' field must be an integer")
                return False

            kind = self._question_kind(question_data)
            if kind is None:
                self.logger.error(f"Question {i} has unknown type {question_data.get('type')!r}")
                return False

            if kind is QuestionKind.MULTIPLE_CHOICE:
                options = question_data.get("options")
                if not isinstance(options, list) or not options:
                    self.logger.error(f"Question {i} 'options' field must be a non-empty array")
                    return False
                if not all(isinstance(option, str) for option in options):
                    self.logger.error(f"Question {i} options must be strings")
                    return False
                if not 0 <= answer < len(options):
                    self.logger.error(f"Question {i} answer index {answer} is out of range")
                    return False

        return True

    def _question_kind(self, question_data: dict) -> Optional[QuestionKind]:
        declared = question_data.get("type")
        if declared is None:
            return QuestionKind.MULTIPLE_CHOICE if "options" in question_data else QuestionKind.INTEGER
        try:
            return QuestionKind(declared)
        except ValueError:
            return None

    def _parse_questions(self, quiz_data: dict) -> List[Question]:
        """
        Parse validated quiz data into Question objects.

        Args:
            quiz_data: Validated quiz data dictionary

        Returns:
            List of Question objects
        """
        questions = []

        for question_data in quiz_data["quiz"]:
            kind = self._question_kind(question_data)
            options = tuple(question_data.get("options", ())) if kind is QuestionKind.MULTIPLE_CHOICE else ()
            questions.append(Question(
                kind=kind,
                prompt=question_data["question"],
                correct_answer=question_data["answer"],
                options=options
            ))

        return questions

    def get_available_quizzes(self) -> List[str]:
        """
        Get list of available quiz names.

        Returns:
            List of quiz names (without file extensions)
        """
        return list(self.loaded_quizzes.keys())

    def get_quiz_questions(self, quiz_name: str) -> Optional[List[Question]]:
        """
        Retrieve questions for a specific quiz.

        Args:
            quiz_name: Name of the quiz (without file extension)

        Returns:
            List of Question objects for the quiz, or None if quiz not found
        """
        return self.loaded_quizzes.get(quiz_name)

    def quiz_exists(self, quiz_name: str) -> bool:
        return quiz_name in self.loaded_quizzes

    def _ensure_quiz_directory(self) -> Optional[str]:
        """
        Ensure quiz directory exists and is readable.

        Returns:
            Error message, or None if the directory is usable
        """
        try:
            if not self.quiz_directory.exists():
                self.quiz_directory.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created quiz directory: {self.quiz_directory}")

            if not os.access(self.quiz_directory, os.R_OK):
                return f"Permission denied: Cannot read from {self.quiz_directory}"

            return None

        except PermissionError:
            return f"Permission denied: Cannot access {self.quiz_directory}"
        except OSError as e:
            return f"System error accessing {self.quiz_directory}: {e}"

    def _load_quiz_file_safely(self, json_file: Path) -> Optional[str]:
        """
        Load a single quiz file.

        Args:
            json_file: Path to the JSON file to load

        Returns:
            Error message, or None if the quiz was loaded
        """
        try:
            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return (f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                        f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB")

            with open(json_file, 'r', encoding='utf-8') as f:
                quiz_data = json.load(f)

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {json_file}: {e}")
            return "Invalid JSON"
        except PermissionError:
            return "Permission denied"
        except OSError as e:
            return f"System error: {e}"

        if not self.validate_quiz_structure(quiz_data):
            self.logger.error(f"Invalid quiz structure in {json_file}")
            return "Invalid quiz structure"

        questions = self._parse_questions(quiz_data)
        quiz_name = json_file.stem
        self.loaded_quizzes[quiz_name] = questions
        self.logger.info(f"Loaded quiz '{quiz_name}' with {len(questions)} questions")
        return None

    def _create_sample_quiz(self) -> Dict[str, List[Question]]:
        """
        Create a sample quiz file when no quiz files are found.

        Returns:
            Dictionary with the sample quiz loaded
        """
        sample_quiz_data = {
            "quiz": [
                {
                    "question": "Which keyword is used to inherit a class in Java?",
                    "type": "mcq",
                    "options": ["implements", "inherits", "extends", "super"],
                    "answer": 2
                },
                {
                    "question": "How many bits are in a Java int?",
                    "type": "integer",
                    "answer": 32
                },
                {
                    "question": "Which method is the entry point of a Java program?",
                    "type": "mcq",
                    "options": ["main", "start", "run", "init"],
                    "answer": 0
                }
            ]
        }

        sample_file_path = self.quiz_directory / "sample_quiz.json"
        try:
            if not sample_file_path.exists():
                with open(sample_file_path, 'w', encoding='utf-8') as f:
                    json.dump(sample_quiz_data, f, indent=2, ensure_ascii=False)
                self.logger.info(f"Created sample quiz file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to write sample quiz: {e}")
            self.load_errors.append(f"Failed to write sample quiz: {e}")

        self.loaded_quizzes["sample_quiz"] = self._parse_questions(sample_quiz_data)
        self.logger.info("Loaded sample quiz with 3 questions")
        return self.loaded_quizzes

    def _create_fallback_quiz(self) -> Dict[str, List[Question]]:
        """
        Create a minimal fallback quiz in memory when all file operations fail.

        Returns:
            Dictionary with the fallback quiz loaded
        """
        self.loaded_quizzes["fallback_quiz"] = [
            Question(
                kind=QuestionKind.MULTIPLE_CHOICE,
                prompt="Quiz files could not be loaded. What should you check first?",
                correct_answer=0,
                options=("The quiz directory and file permissions", "The network connection")
            )
        ]
        self.fallback_quiz_created = True
        self.logger.warning("Created fallback quiz due to file loading failures")
        return self.loaded_quizzes

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_quiz_active(self) -> bool:
        return self.fallback_quiz_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_quiz_active(),
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': list(self.loaded_quizzes.keys())
        }
