"""
Exceptions raised by the rule engine and optimizer.
"""


class RuleConfigurationError(Exception):
    """Raised when a rule configuration names an unknown rule or carries malformed parameters."""

    pass


class ScriptCompilationError(RuleConfigurationError):
    """Raised when a scripted rule body is empty, does not parse, or uses a forbidden construct."""

    pass


class ScriptedRuleError(Exception):
    """Raised when a scripted rule fails while evaluating a schedule."""

    def __init__(self, rule_name: str, message: str):
        super().__init__(f"Scripted rule '{rule_name}' failed: {message}")
        self.rule_name = rule_name
        self.message = message


class ScheduleIntegrityError(Exception):
    """Raised when a schedule contains a match with missing or inconsistent team references."""

    pass


class InvalidSearchParameterError(Exception):
    """Raised when the optimizer is started with a bad iteration budget or strategy id."""

    pass


class ScheduleImportError(Exception):
    """Raised when schedule rows reference teams that do not exist."""

    pass


# Mapping of custom exceptions to HTTP status codes
CUSTOM_ERRORS = {
    RuleConfigurationError: 400,
    ScriptCompilationError: 400,
    ScriptedRuleError: 422,
    ScheduleIntegrityError: 422,
    InvalidSearchParameterError: 400,
    ScheduleImportError: 400,
}
