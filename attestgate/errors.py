"""
Attestation Gateway - Error Taxonomy

Every failure is a hard rejection of the whole call. The unit of work
that raised rolls back before the exception reaches the caller.

SPDX-License-Identifier: AGPL-3.0-or-later
"""


class GatewayError(Exception):
    """Base exception for gateway operations."""
    pass


class NotOwner(GatewayError):
    """Raised when an administrative operation is attempted by a non-owner."""

    def __init__(self, caller: str):
        super().__init__(f"Caller is not the owner: {caller}")
        self.caller = caller


class InvalidOwner(GatewayError):
    """Raised when ownership would pass to the zero address."""
    pass


class AlreadyAuthorized(GatewayError):
    """Raised when adding an identity that is already on the allow-list."""

    def __init__(self, identity: str):
        super().__init__(f"Identity already authorized: {identity}")
        self.identity = identity


class NotAuthorized(GatewayError):
    """Raised when removing an identity that is not on the allow-list."""

    def __init__(self, identity: str):
        super().__init__(f"Identity not authorized: {identity}")
        self.identity = identity


class Unauthorized(GatewayError):
    """Raised when a caller lacks submission or revocation capability."""

    def __init__(self, caller: str, action: str):
        super().__init__(f"{caller} is not allowed to {action}")
        self.caller = caller
        self.action = action


class InvalidSignature(GatewayError):
    """Raised when the recovered signer is not the trusted issuer."""

    def __init__(self, recovered=None):
        super().__init__("Invalid signature")
        self.recovered = recovered


class InvalidNonce(GatewayError):
    """Raised when a presented nonce differs from the recipient's counter."""

    def __init__(self, recipient: str, expected: int, presented: int):
        super().__init__(
            f"Invalid nonce for {recipient}: expected {expected}, got {presented}"
        )
        self.recipient = recipient
        self.expected = expected
        self.presented = presented


class InsufficientFee(GatewayError):
    """Raised when the attached value is below the required fee."""

    def __init__(self, required: int, attached: int):
        super().__init__(f"Insufficient fee: required {required}, attached {attached}")
        self.required = required
        self.attached = attached


class IncompleteWrite(GatewayError):
    """
    Raised when the store returns fewer record ids than entries submitted.

    This is an integrity violation; it is never retried.
    """

    def __init__(self, expected: int, returned: int):
        super().__init__(
            f"Incomplete write: submitted {expected} records, store returned {returned}"
        )
        self.expected = expected
        self.returned = returned


class InvalidRequest(GatewayError):
    """Raised when an envelope cannot name a recipient."""
    pass


class TransferFailed(GatewayError):
    """Raised when the external value transfer during withdrawal fails."""

    def __init__(self, recipient: str, amount: int, reason: str = ""):
        message = f"Transfer of {amount} to {recipient} failed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.recipient = recipient
        self.amount = amount
