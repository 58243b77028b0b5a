"""Cross-ledger messaging: endpoint calls, library resolution, account lists."""

from rfqbridge.messaging.adapter import CrossLedgerMessenger
from rfqbridge.messaging.endpoint import InMemoryEndpoint, MessagingEndpoint, SentPacket
from rfqbridge.messaging.library import (
    MessageLib,
    SimpleMessageLib,
    UlnMessageLib,
    WorkerPrograms,
    get_quote_accounts,
    get_send_accounts,
    resolve_send_library,
)
from rfqbridge.messaging.params import LzReceiveParams, MessagingFee, MessagingReceipt
from rfqbridge.messaging.path import PacketPath
from rfqbridge.messaging.reader import EndpointStateReader, RpcEndpointReader

__all__ = [
    "CrossLedgerMessenger",
    "MessagingEndpoint",
    "InMemoryEndpoint",
    "SentPacket",
    "EndpointStateReader",
    "RpcEndpointReader",
    "MessageLib",
    "SimpleMessageLib",
    "UlnMessageLib",
    "WorkerPrograms",
    "PacketPath",
    "LzReceiveParams",
    "MessagingFee",
    "MessagingReceipt",
    "get_quote_accounts",
    "get_send_accounts",
    "resolve_send_library",
]
