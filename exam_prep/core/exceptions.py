# exam_prep/core/exceptions.py
"""
Error taxonomy shared by the session engine, the result compiler and the
generation pipeline. Each error carries the HTTP status it is rendered with.
"""


class ExamPrepError(Exception):
    """Base class for all application errors"""

    status_code = 500
    error_type = "server_error"
    title = "Internal Server Error"

    def __init__(self, message: str = None):
        self.message = message or self.title
        super().__init__(self.message)


class ConfigError(ExamPrepError):
    """A provider key or setting is missing; fatal and admin-actionable"""

    status_code = 500
    error_type = "config_error"
    title = "Configuration Error"


class NotFound(ExamPrepError):
    status_code = 404
    error_type = "not_found_error"
    title = "Resource Not Found"


class Forbidden(ExamPrepError):
    status_code = 403
    error_type = "forbidden_error"
    title = "Forbidden"


class EmptyQuestionSet(ExamPrepError):
    """The paper or test has no linked questions (content defect)"""

    status_code = 422
    error_type = "empty_question_set"
    title = "No questions available for this test"


class GenerationFailed(ExamPrepError):
    status_code = 502
    error_type = "generation_failed"
    title = "Failed to generate content"


class UpstreamRateLimited(ExamPrepError):
    status_code = 429
    error_type = "rate_limited"
    title = "Rate limit exceeded. Please try again later."


class UpstreamPaymentRequired(ExamPrepError):
    status_code = 402
    error_type = "payment_required"
    title = "Payment required. Please add credits to continue."


class StorageError(ExamPrepError):
    status_code = 503
    error_type = "storage_error"
    title = "Storage operation failed"


class SubmitFailed(ExamPrepError):
    """Submission failed; the local session state is kept for a retry"""

    status_code = 503
    error_type = "submit_failed"
    title = "Failed to submit test. Your answers are saved, please retry."
    retryable = True


class InvalidSessionState(ExamPrepError):
    status_code = 409
    error_type = "invalid_session_state"
    title = "Operation not allowed in the current session state"


class AttemptAlreadyFinalized(ExamPrepError):
    """The conditional finalize found completed_at already set"""

    status_code = 409
    error_type = "attempt_already_finalized"
    title = "This attempt has already been submitted"


class NewsUnavailable(ExamPrepError):
    """The news provider could not deliver headlines; triggers the fallback path"""

    status_code = 502
    error_type = "news_unavailable"
    title = "News provider unavailable"
