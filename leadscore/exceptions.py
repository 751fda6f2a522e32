from typing import List, Optional


class LeadScoreError(Exception):
    """Base class for scoring domain errors.

    ``code`` and ``status_code`` feed the API error envelope.
    """

    code = "error"
    status_code = 500

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


class ConfigValidationError(LeadScoreError):
    """Raised when a config or rule fails validation; nothing was written."""

    code = "invalid_config"
    status_code = 400

    def __init__(self, errors: List[str], detail: str = "Invalid scoring configuration", code: Optional[str] = None):
        self.errors = list(errors)
        if code:
            self.code = code
        super().__init__(detail)


class VersionNotFoundError(LeadScoreError):
    code = "not_found"
    status_code = 404

    def __init__(self, detail: str = "Config version not found"):
        super().__init__(detail)


class RuleNotFoundError(LeadScoreError):
    code = "not_found"
    status_code = 404

    def __init__(self, detail: str = "Scoring rule not found"):
        super().__init__(detail)


class InvalidTenantError(LeadScoreError):
    code = "invalid_tenant"
    status_code = 400

    def __init__(self, detail: str = "Invalid tenant id"):
        super().__init__(detail)
