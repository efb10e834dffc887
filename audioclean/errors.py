"""
Pipeline error kinds.

Every failure that aborts an invocation is one of these; the orchestrator
stores the instance on the result so callers can branch on the type.
"""


class PipelineError(Exception):
    """Base class for pipeline failures"""
    kind = "PipelineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"kind": self.kind, "message": self.message}


class DecodeError(PipelineError):
    """Input bytes are not a decodable audio container"""
    kind = "DecodeError"


class EmptyInputError(PipelineError):
    """No input was supplied"""
    kind = "EmptyInputError"


class EncodeError(PipelineError):
    """The buffer cannot be serialized (internal invariant violation)"""
    kind = "EncodeError"


class ConfigError(PipelineError):
    """Invalid configuration values"""
    kind = "ConfigError"
