"""Mapping between logical file names and folder-prefixed object keys."""

from typing import Optional


class PathNamer:
    """
    Emulates a sub-folder inside a bucket by prefixing object keys.

    ``namespaced_key`` and ``strip_prefix`` share one prefix so that a name
    put through one comes back unchanged through the other.
    """

    def __init__(self, folder: Optional[str] = None):
        self.prefix = f"{folder}/" if folder else ""

    def namespaced_key(self, name: str) -> str:
        return self.prefix + name

    def strip_prefix(self, remote_name: str) -> str:
        if self.prefix and remote_name.startswith(self.prefix):
            return remote_name[len(self.prefix):]
        return remote_name
