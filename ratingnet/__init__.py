"""
RatingNet Confidential Rating Aggregation

Version: 1.0.0

Users submit 1-5 scores about a subject as ciphertexts. The aggregation engine
clamps, widens and accumulates them without ever seeing a cleartext, and
exposes the average only as a ciphertext that a caller may decrypt through a
signed, contract-scoped, time-bounded grant.

    RatingEngine          encrypted sum and plain count per subject
    ACLManager            who may use or decrypt which handle
    DecryptionAuthorizer  NO_GRANT -> SIGNING -> GRANTED -> EXPIRED
    SignatureCache        grants reused across sessions
    DecryptionClient      decrypt (handle, contract) batches with a grant
    DecryptionOracle      checks grants and ACL, seals cleartexts to the grant key

Usage:
    from ratingnet import LocalNetwork, Wallet

    network = LocalNetwork()
    rater = network.client_for(Wallet.generate())
    rater.submit_rating(subject, 4)

    viewer = network.client_for(Wallet.generate())
    result = viewer.average(subject)      # signs a grant on first use
    print(result.display)                 # "4.00"

The HTTP relayer (`ratingnet.relayer.create_app`) fronts a DecryptionOracle;
`HttpRelayerTransport` is its client.
"""

__version__ = "1.0.0"

# Ciphertext layer
from .fhe import (
    CiphertextBackend,
    CiphertextHandle,
    EncryptedInput,
    EncryptedInputBatch,
    FheType,
    MockCoprocessor,
)

# Access control
from .acl import ACLManager, ContractACL, Permission

# Aggregation
from .engine import RatingEngine, Stats

# Grants and signing
from .typed_data import TypedMessage, build_user_decrypt_message
from .signer import (
    InteractiveSigner,
    SigningOutcome,
    SigningResult,
    StructuredSigner,
    Wallet,
    recover_signer,
)
from .grants import CacheKey, Grant
from .signature_cache import InMemorySignatureCache, SignatureCache, SqliteSignatureCache
from .authorization import DecryptionAuthorizer, GrantState

# Decryption
from .transport import DecryptTransport, HttpRelayerTransport
from .oracle import DecryptionOracle
from .decryption import DecryptionClient

# End-user flow
from .client import AverageResult, LocalNetwork, RatingClient, format_average

# Errors
from .errors import (
    ErrorKind,
    RatingNetError,
    InvalidInputProof,
    TypeMismatch,
    UnknownHandle,
    Unauthorized,
    GrantExpired,
    InvalidGrant,
    SignatureDeclined,
    OracleUnavailable,
    MalformedOracleResponse,
    MalformedRequest,
)


__all__ = [
    # Version
    "__version__",

    # Ciphertext layer
    "CiphertextBackend",
    "CiphertextHandle",
    "EncryptedInput",
    "EncryptedInputBatch",
    "FheType",
    "MockCoprocessor",

    # Access control
    "ACLManager",
    "ContractACL",
    "Permission",

    # Aggregation
    "RatingEngine",
    "Stats",

    # Grants and signing
    "TypedMessage",
    "build_user_decrypt_message",
    "InteractiveSigner",
    "SigningOutcome",
    "SigningResult",
    "StructuredSigner",
    "Wallet",
    "recover_signer",
    "CacheKey",
    "Grant",
    "InMemorySignatureCache",
    "SignatureCache",
    "SqliteSignatureCache",
    "DecryptionAuthorizer",
    "GrantState",

    # Decryption
    "DecryptTransport",
    "HttpRelayerTransport",
    "DecryptionOracle",
    "DecryptionClient",

    # End-user flow
    "AverageResult",
    "LocalNetwork",
    "RatingClient",
    "format_average",

    # Errors
    "ErrorKind",
    "RatingNetError",
    "InvalidInputProof",
    "TypeMismatch",
    "UnknownHandle",
    "Unauthorized",
    "GrantExpired",
    "InvalidGrant",
    "SignatureDeclined",
    "OracleUnavailable",
    "MalformedOracleResponse",
    "MalformedRequest",
]
