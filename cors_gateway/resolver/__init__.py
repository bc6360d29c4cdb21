from .target_resolver import (
    TARGET_SOURCES,
    join_paths,
    parse_target,
    resolve_target,
)

__all__ = [
    "TARGET_SOURCES",
    "join_paths",
    "parse_target",
    "resolve_target",
]
