from __future__ import annotations


class SupplyDeskError(Exception):
    pass


class ProviderUnavailable(SupplyDeskError):
    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class AllSourcesUnavailable(SupplyDeskError):
    def __init__(self, message: str = "Both supply providers are unavailable.") -> None:
        super().__init__(message)


class LedgerSubmissionFailure(SupplyDeskError):
    pass


class ConfirmationTimeout(LedgerSubmissionFailure):
    def __init__(self, tx_hash: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Transaction {tx_hash} was not confirmed within {timeout_seconds:g}s."
        )
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds
