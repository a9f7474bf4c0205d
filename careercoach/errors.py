"""Domain errors raised by the service layer.

The HTTP layer maps each class to a status code and a generic message. No
error carries a structured code to the client.
"""

from __future__ import annotations


class CareerCoachError(Exception):
    status_code = 500
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class AuthorizationError(CareerCoachError):
    status_code = 401
    public_message = "Login required. Please sign in to continue."


class NotFoundError(CareerCoachError):
    status_code = 404
    public_message = "Not found."


class ValidationError(CareerCoachError):
    status_code = 400
    public_message = "Invalid request."


class GenerationError(CareerCoachError):
    status_code = 502
    public_message = "AI generation failed. Please try again."


class PersistenceError(CareerCoachError):
    status_code = 500
    public_message = "Unable to save right now. Please try again."


class SessionStateError(CareerCoachError):
    status_code = 409
    public_message = "This quiz session cannot do that right now."


class QuestionLockedError(SessionStateError):
    public_message = "Time expired for this question. It can no longer be answered."
