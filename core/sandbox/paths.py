"""Working-directory path confinement."""

import logging
import os

from ..exceptions import SandboxDenied

logger = logging.getLogger(__name__)


def normalize_path(path: str, cwd: str | None = None) -> str:
    """Absolute, ``..``-collapsed form of ``path`` without a trailing separator."""
    base = cwd if cwd is not None else os.getcwd()
    return os.path.normpath(os.path.join(base, os.path.expanduser(path)))


def is_path_within(path: str, base: str) -> bool:
    """True if normalized ``path`` equals ``base`` or lies below it."""
    path = os.path.normpath(path)
    base = os.path.normpath(base)
    try:
        return os.path.commonpath([path, base]) == base
    except ValueError:
        return False


def resolve_secure_path(resource_path: str, base_directory: str, cwd: str | None = None) -> str:
    """
    Resolve ``resource_path`` to an absolute path confined to ``base_directory``.

    The candidate is first resolved against the process working directory. If
    that lands outside the base, inputs containing ``..`` and absolute inputs
    are rejected; any other relative input is retried against the base.

    Args:
        resource_path: Path as supplied by the model
        base_directory: Working-directory root
        cwd: Directory used for the first resolution, defaults to the process cwd

    Returns:
        Normalized absolute path inside ``base_directory``

    Raises:
        SandboxDenied: If the path cannot be confined to the base
    """
    if not base_directory:
        raise SandboxDenied(resource_path, "<no working directory>")
    base = normalize_path(base_directory, cwd)
    candidate = normalize_path(resource_path, cwd)

    if is_path_within(candidate, base):
        return candidate

    if ".." in resource_path:
        logger.warning("Access denied: path traversal detected in %r", resource_path)
        raise SandboxDenied(resource_path, base)

    if os.path.isabs(os.path.expanduser(resource_path)):
        logger.warning("Access denied: absolute path %r is outside %s", resource_path, base)
        raise SandboxDenied(resource_path, base)

    logger.debug("Relative path %r resolved outside, retrying against %s", resource_path, base)
    retried = os.path.normpath(os.path.join(base, resource_path))
    if is_path_within(retried, base):
        return retried

    logger.warning("Access denied: %r still outside %s after retry", resource_path, base)
    raise SandboxDenied(resource_path, base)
