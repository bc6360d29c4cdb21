from pathlib import Path
from typing import Optional
from urllib.parse import unquote


def find_static_file(static_dir: str, request_path: str) -> Optional[Path]:
    """
    Map a request path onto a file below ``static_dir``.

    Tries the path itself, then ``<path>.html``; directories map to their
    ``index.html``. Paths escaping the directory never match.
    """
    if not static_dir:
        return None
    root = Path(static_dir).resolve()
    if not root.is_dir():
        return None

    candidate = (root / unquote(request_path).lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        return None

    if candidate.is_dir():
        options = [candidate / "index.html"]
    else:
        options = [candidate, candidate.with_name(f"{candidate.name}.html")]
    for option in options:
        if option.is_file():
            return option
    return None
