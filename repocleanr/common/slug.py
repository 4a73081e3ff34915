"""Repository slug utilities.

Repository slugs are GitHub identifiers in ``owner/name`` format. They are not
filesystem paths, even though they use ``/`` as a separator, so merge plans
and CLI arguments are parsed with these helpers rather than ``pathlib``.
"""

from __future__ import annotations

import re

_SLUG_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


def repo_slug(owner: str, name: str) -> str:
    """Build a repository slug from owner and name.

    Examples
    --------
    >>> repo_slug("octo", "reef")
    'octo/reef'

    """
    return f"{owner}/{name}"


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Parse a repository slug into owner and name.

    Parameters
    ----------
    slug:
        Repository slug in ``owner/name`` format. Surrounding whitespace is
        ignored.

    Returns
    -------
    tuple[str, str]
        ``(owner, name)``.

    Raises
    ------
    ValueError
        If the slug is not in ``owner/name`` format or either part contains
        characters GitHub does not allow.

    Examples
    --------
    >>> parse_repo_slug("octo/reef")
    ('octo', 'reef')

    """
    text = slug.strip()
    if text.count("/") != 1:
        msg = f"Invalid repository slug: expected 'owner/name', got {slug!r}"
        raise ValueError(msg)

    owner, name = text.split("/")
    if not _SLUG_PART.match(owner) or not _SLUG_PART.match(name):
        msg = f"Invalid repository slug: expected 'owner/name', got {slug!r}"
        raise ValueError(msg)

    return owner, name
