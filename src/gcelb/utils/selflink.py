"""Resource self-link handling.

Compute Engine resources reference each other by fully-qualified URLs such as
``https://www.googleapis.com/compute/v1/projects/p/regions/us-central1/targetPools/web``.
gcelb identifies resources by short name, so every cross-reference goes
through :func:`short_name`.
"""

from dataclasses import dataclass


def short_name(link: str) -> str:
    """Return the substring after the last path separator.

    Args:
        link: Self-link, partial resource path, or bare name

    Returns:
        Short resource name (the input itself when it has no separator)
    """
    return link[link.rfind("/") + 1 :]


@dataclass(frozen=True)
class SelfLink:
    """A fully-qualified Compute Engine resource locator."""

    url: str

    @property
    def short_name(self) -> str:
        """Short resource name."""
        return short_name(self.url)

    @property
    def collection(self) -> str | None:
        """Collection segment preceding the name (e.g., "targetPools")."""
        parts = self.url.rstrip("/").split("/")
        if len(parts) < 2:
            return None
        return parts[-2] or None

    @property
    def project(self) -> str | None:
        """Project ID embedded in the link, if any."""
        parts = self.url.split("/")
        try:
            return parts[parts.index("projects") + 1] or None
        except (ValueError, IndexError):
            return None

    def refers_to(self, name: str) -> bool:
        """Check whether this link points at a resource with the given short name."""
        return self.short_name == name

    def __str__(self) -> str:
        return self.url
