"""
Review API
Blueprint registry and request helpers shared by the blueprints.

Blueprints are the only layer that reads ``flask.g``; they hand the
caller Identity to services explicitly.
"""

import unicodedata
from urllib.parse import quote

from flask import Response, g, stream_with_context
from werkzeug.http import dump_options_header

from review_api.core.exceptions import UnauthorizedError


def current_identity():
    """Return the caller Identity, or raise UnauthorizedError when there is none."""
    identity = getattr(g, "identity", None)
    if identity is None:
        raise UnauthorizedError(getattr(g, "auth_error", None) or "Authentication required")
    return identity


def parse_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def content_disposition(file_name: str) -> str:
    """``attachment`` header value; non-ASCII names go in ``filename*`` with an ASCII fallback."""
    try:
        file_name.encode("ascii")
    except UnicodeEncodeError:
        fallback = unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode("ascii")
        return dump_options_header("attachment", {
            "filename": fallback.strip() or "download",
            "filename*": "UTF-8''" + quote(file_name, safe="!#$&+^`|"),
        })
    return dump_options_header("attachment", {"filename": file_name})


def file_response(stream):
    """Stream a services FileStream as an attachment."""
    headers = {"Content-Disposition": content_disposition(stream.file_name)}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return Response(
        stream_with_context(stream.iter_chunks()),
        mimetype=stream.content_type,
        headers=headers,
    )
