from __future__ import annotations


class NodeRadarError(Exception):
    """Base class for errors raised inside the node directory."""


class FetchError(NodeRadarError):
    """An outbound request failed, timed out or returned unusable JSON."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class ProbeError(NodeRadarError):
    """A node answered, but the payload did not have the expected shape."""


class NodeSourceError(NodeRadarError):
    """The remote node directory could not be read."""
