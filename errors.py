"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

CAPABILITY_UNAVAILABLE = "CAPABILITY_UNAVAILABLE"
RECOGNITION_ERROR = "RECOGNITION_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
UPLOAD_ERROR = "UPLOAD_ERROR"
INFERENCE_ERROR = "INFERENCE_ERROR"
SEARCH_ERROR = "SEARCH_ERROR"
WEATHER_ERROR = "WEATHER_ERROR"
TRANSLATION_ERROR = "TRANSLATION_ERROR"
GENERATION_ERROR = "GENERATION_ERROR"

NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"

ERROR_TITLES = {
    CAPABILITY_UNAVAILABLE: "Speech Recognition Unavailable",
    RECOGNITION_ERROR: "Speech Recognition Error",
    VALIDATION_ERROR: "Invalid Input",
    UPLOAD_ERROR: "Upload Error",
    INFERENCE_ERROR: "Error",
    SEARCH_ERROR: "Search Error",
    WEATHER_ERROR: "Weather Error",
    TRANSLATION_ERROR: "Translation Error",
    GENERATION_ERROR: "Generation Error",
}

ERROR_MESSAGES = {
    CAPABILITY_UNAVAILABLE: "Speech recognition is not supported on this platform.",
    RECOGNITION_ERROR: "An error occurred with speech recognition.",
    VALIDATION_ERROR: "The request was rejected.",
    UPLOAD_ERROR: "Failed to upload one or more images. Please try again.",
    INFERENCE_ERROR: "Failed to get response from AI. Please try again.",
    SEARCH_ERROR: "Failed to perform web search. Please try again.",
    WEATHER_ERROR: "Failed to fetch weather information. Please try again.",
    TRANSLATION_ERROR: "Failed to translate the message. Please try again.",
    GENERATION_ERROR: "Failed to generate image. Please try again.",
}


class ServiceError(Exception):
    """Failure of an external call, tagged with the branch error code."""

    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable


class ValidationError(Exception):
    """Input rejected before any network call."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.code = VALIDATION_ERROR
        self.message = message
