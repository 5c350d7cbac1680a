from __future__ import annotations


class VrfOracleError(Exception):
    pass


class ConfigurationError(VrfOracleError):
    pass


class LogParseFailure(VrfOracleError):
    def __init__(self, errors: list):
        self.errors = list(errors)
        super().__init__("".join(f"{e}\n" for e in self.errors))


class DataIntegrityError(VrfOracleError):
    pass


class DiscriminatorMismatch(DataIntegrityError):
    pass


class ProgramMismatch(DataIntegrityError):
    pass


class AccountNotFound(DataIntegrityError):
    pass


class PlaceholderNotFound(DataIntegrityError):
    pass


class NotFulfilledError(VrfOracleError):
    pass


class RpcTransportError(VrfOracleError):
    """Connectivity or RPC-layer failure; safe to retry."""


class ConfirmationTimeout(VrfOracleError):
    """The transaction was broadcast but its confirmation is unknown."""

    def __init__(self, signature: str, message: str | None = None):
        self.signature = signature
        super().__init__(message or f"Transaction {signature} not confirmed")


class TransactionRejected(VrfOracleError):
    def __init__(self, kind: str, message: str | None = None):
        self.kind = kind
        super().__init__(message or f"Transaction rejected: {kind}")


class PreflightFailure(VrfOracleError):
    def __init__(self, logs: list[str], message: str = "Transaction simulation failed"):
        self.logs = list(logs)
        details = "Simulation error logs:" + "".join(f"\t{line}\n" for line in self.logs)
        super().__init__(f"{message}\n{details}")


class SubmissionFailed(VrfOracleError):
    pass


class SubscriptionSetupError(VrfOracleError):
    pass
