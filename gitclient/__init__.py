"""gitclient: one git client API over the git executable and dulwich"""

__version__ = "0.1.0"

from gitclient.client import GitClient, create_client  # noqa: E402
from gitclient.config import ClientSettings, Identity, load_settings  # noqa: E402
from gitclient.exceptions import (  # noqa: E402
    AmbiguousReferenceError,
    GitClientError,
    GitTimeoutError,
    InvalidArgumentError,
    OperationFailedError,
    ReferenceIntegrityError,
    ReferenceNotFoundError,
    UnsupportedOperationError,
)
from gitclient.mirror import MirrorCache  # noqa: E402
from gitclient.model import Capability, ObjectId, TimeoutCategory  # noqa: E402

__all__ = [
    "__version__",
    "AmbiguousReferenceError",
    "Capability",
    "ClientSettings",
    "GitClient",
    "GitClientError",
    "GitTimeoutError",
    "Identity",
    "InvalidArgumentError",
    "MirrorCache",
    "ObjectId",
    "OperationFailedError",
    "ReferenceIntegrityError",
    "ReferenceNotFoundError",
    "TimeoutCategory",
    "UnsupportedOperationError",
    "create_client",
    "load_settings",
]
