"""Path normalization relative to the configured base library."""


def clean_path(path: str | None) -> str:
    """Drop leading, trailing and repeated slashes.

    >>> clean_path("//Shared//Docs/")
    'Shared/Docs'
    """
    if not path:
        return ""
    return "/".join(segment for segment in path.split("/") if segment)


def join_path(*parts: str | None) -> str:
    """Join path fragments, ignoring empty ones."""
    return "/".join(cleaned for cleaned in (clean_path(p) for p in parts) if cleaned)


def resolve_path(base_library: str | None, path: str | None) -> str:
    """Map a caller-visible path onto the drive.

    The base library is prefixed when configured; otherwise the caller path
    addresses the drive root directly.
    """
    return join_path(base_library, path)


def split_path(path: str | None) -> tuple[str, str]:
    """Split a path into (folder, name); the folder is empty for top-level items."""
    cleaned = clean_path(path)
    folder, _, name = cleaned.rpartition("/")
    return folder, name
