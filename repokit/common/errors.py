"""Error taxonomy for repository operations.

Every failure raised by repokit derives from RepoKitError. Callers wrap a
lower-level failure by raising one of these ``from`` the original
exception, with a message naming what was being downloaded, archived or
verified at the time.
"""


class RepoKitError(Exception):
    """Base class for all repokit errors."""

    code: str = "UNKNOWN"


class ConfigurationError(RepoKitError):
    """Unknown repository type or otherwise unusable configuration."""

    code = "CONFIGURATION_ERROR"


class MalformedDescriptorError(RepoKitError):
    """Spec document is missing a mandatory repository file entry."""

    code = "MALFORMED_DESCRIPTOR"


class IntegrityError(RepoKitError):
    """A downloaded bundle does not match its declared checksums."""

    code = "INTEGRITY_ERROR"


class TransportError(RepoKitError):
    """A client or registry operation failed."""

    code = "TRANSPORT_ERROR"


class PublishError(RepoKitError):
    """A step of a publish cycle (archive, hash, build, push) failed."""

    code = "PUBLISH_ERROR"


class PackageNotFoundError(RepoKitError):
    """Package or artifact lookup miss."""

    code = "PACKAGE_NOT_FOUND"
