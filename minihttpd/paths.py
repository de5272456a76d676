"""
Request-target safety checks and mapping to filesystem paths.
"""

import os

from minihttpd import config


def is_safe(target: str) -> bool:
    """
    Check whether a request-target may be resolved against the document root.

    Rejects any ".." and any "/" beyond the single leading one, so only
    files directly inside the root are reachable.
    """
    if ".." in target:
        return False
    return target.count("/") <= 1


def resolve(target: str, root: str = config.DOCUMENT_ROOT) -> str:
    # Callers validate first: target starts with "/" and is_safe(target)
    name = target[1:] or config.DEFAULT_DOCUMENT
    return os.path.join(root, name)
