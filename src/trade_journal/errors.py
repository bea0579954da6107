"""Error taxonomy shared by ingestion, ledger and verification."""

from __future__ import annotations


class JournalError(Exception):
    status = "server_error"

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"success": False, "status": self.status, "reason": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequest(JournalError, ValueError):
    status = "invalid_request"


class NoOpenPosition(JournalError):
    status = "no_open_position"


class DuplicateFill(JournalError):
    status = "duplicate"


class UnsupportedSymbol(JournalError):
    status = "unsupported_symbol"


class ProviderError(JournalError):
    status = "provider_error"


class ProviderEmpty(JournalError):
    status = "provider_empty"


class ServerError(JournalError):
    status = "server_error"
