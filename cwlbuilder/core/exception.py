from __future__ import annotations


class CWLBuilderException(Exception):
    pass


class ValidationError(CWLBuilderException):
    pass


class NotFound(ValidationError):
    pass


class DanglingReference(ValidationError):
    pass


class TypeMismatch(ValidationError):
    pass


class UnsupportedCapture(CWLBuilderException):
    pass


class EmissionError(CWLBuilderException):
    pass


class RunnerFailure(CWLBuilderException):
    def __init__(
        self,
        message: str,
        command: str | None = None,
        returncode: int | None = None,
        logs: str = "",
    ):
        super().__init__(message)
        self.command: str | None = command
        self.returncode: int | None = returncode
        self.logs: str = logs


class JobCancelled(CWLBuilderException):
    pass
