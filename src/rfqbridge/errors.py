"""Settlement error taxonomy.

Every failure raised by the program model is a ``SettlementError`` subclass.
The subclass is the category callers branch on (retry, surface, escalate);
``code`` is the precise reason. When a derived address is involved the error
carries it together with the seed inputs, so an operator can audit which
nonce-keyed record blocked the instruction.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Program error messages."""

    UNSUPPORTED_TRANSACTION = "RF-PTNS-01: Unsupported transaction"
    ZERO_XFER_AMOUNT = "RF-ZETD-01: Zero xfer amount"
    ORDER_ALREADY_COMPLETED = "RF-IN-02: Order already completed"
    NOT_ENOUGH_NATIVE_BALANCE = "RF-IMV-01: Insufficient balance"
    INVALID_SIGNER = "RF-IS-01: Invalid signer"
    ORDER_EXPIRED = "RF-QE-02: Order expired"
    INVALID_AGGREGATOR_FLOW = "RF-IMS-01: Invalid aggregator flow"
    UNAUTHORIZED_SIGNER = "Signer not authorized."
    PROGRAM_PAUSED = "Portofolio is paused."
    ZERO_TOKEN_QUANTITY = "P-ZETD-01: Zero token qunatity"
    INVALID_TRADER = "Invalid trader"
    MAP_ENTRY_ALREADY_CREATED = "Map entry already is already created"
    MAP_ENTRY_NON_EXISTENT = "Map entry doesn't exist"
    ACCOUNTS_NOT_PROVIDED = "Accounts not provided."
    PROGRAM_NOT_PAUSED = "Portfolio must be paused."
    ACCOUNT_BANNED = "P-BANA-01: Banned account."
    DEPOSITS_PAUSED = "P-NTDP-01"
    TOKEN_NOT_SUPPORTED = "P-ETNS-02: Token not supported."
    NOT_ENOUGH_SPL_TOKEN_BALANCE = "P-NETD-01: Not enough spl balance"
    LZ_QUOTE_ERROR = "LZ quote error"
    POSITIVE_LZ_TOKEN_FEE = "Paying with Lz token is not permitted."
    INVALID_MINT = "Invalid mint."
    INVALID_DESTINATION_OWNER = "Invalid destination owner."
    INVALID_TAKER = "Invalid taker"
    ZERO_ACCOUNT = "RF-SAZ-01: Zero account provided"
    NATIVE_DEPOSIT_NOT_ALLOWED = "P-NDNS-01: Native deposits not allowed"
    XFER_ERROR = "XFER error occurred"
    DESTINATION_NOT_ALLOWED = "Destination not allowed"
    INVALID_LZ_PROGRAM = "Invalid LZ endpoint program"
    SEND_LIBRARY_NOT_INITIALIZED = "Send library not initialized or blocked message library"
    UNSUPPORTED_MESSAGE_LIBRARY = "Unsupported message library version"
    ROLE_CONFLICT = "Banned accounts cannot hold roles"
    SWAP_STILL_PENDING = "Swap is still pending"
    NOT_INITIALIZED = "Portfolio not initialized"
    PAYLOAD_NOT_VERIFIED = "Payload hash not found"
    LZ_SEND_ERROR = "LZ send error"
    ENDPOINT_STATE_UNAVAILABLE = "Endpoint state unavailable"
    INVALID_PARAMETER = "Invalid parameter value"


class SettlementError(Exception):
    """Base class for settlement failures."""

    category = "settlement"

    def __init__(
        self,
        code: ErrorCode,
        detail: Optional[str] = None,
        *,
        address: Optional[str] = None,
        seeds: Optional[str] = None,
    ):
        self.code = code
        self.detail = detail
        self.address = address
        self.seeds = seeds
        super().__init__(str(self))

    def __str__(self) -> str:
        message = self.code.value
        if self.detail:
            message = f"{message} ({self.detail})"
        if self.address:
            message = f"{message} [address={self.address} seeds={self.seeds}]"
        return message


class AuthenticationFailure(SettlementError):
    """Signature does not recover to the configured signer. Never retried."""

    category = "authentication"


class ReplayRejected(SettlementError):
    """A derived address already exists.

    The expected outcome of retrying a create that in fact succeeded.
    """

    category = "replay"


class AccessDenied(SettlementError):
    """Missing role, banned account, or a destination not bound to the record."""

    category = "access"


class StateGate(SettlementError):
    """Program paused, deposits disabled, native deposits restricted."""

    category = "state"


class ConfigurationUnresolved(SettlementError):
    """Messaging configuration cannot be resolved. Needs an operator."""

    category = "configuration"


class InsufficientFunds(SettlementError):
    """Balance below the requested amount."""

    category = "funds"


class NotFound(SettlementError):
    """No record at the derived address."""

    category = "not_found"


class InvalidInput(SettlementError, ValueError):
    """Malformed instruction arguments or message payload.

    Also a ``ValueError``, so codecs can be used where plain value errors are
    expected.
    """

    category = "input"
