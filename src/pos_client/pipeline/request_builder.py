"""Turns a logical call into a ``RequestDescriptor``.

Pure functions: no I/O, no access to the token store. The caller reads the
credential and passes it in.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pos_client.core.types import RequestDescriptor

JSON_CONTENT_TYPE = "application/json"


def join_url(base: str, path: str) -> str:
    """Join an API prefix and a path; absolute URLs pass through untouched."""
    if path.startswith(("http://", "https://")):
        return path
    if not path:
        return base
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def build_headers(
    custom: Mapping[str, str] | None = None,
    *,
    token: str | None = None,
    json_content: bool = True,
) -> dict[str, str]:
    """Merge default, caller and credential headers.

    Caller headers win over the ``Content-Type`` default; names are compared
    case-insensitively. The bearer header is attached only when a token is
    present.
    """
    headers: dict[str, str] = {}
    if json_content:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    for name, value in (custom or {}).items():
        for existing in [k for k in headers if k.lower() == name.lower()]:
            del headers[existing]
        headers[name] = value
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def build_request(
    method: str,
    url: str,
    *,
    params: Mapping[str, Any] | None = None,
    body: Any = None,
    headers: Mapping[str, str] | None = None,
    token: str | None = None,
) -> RequestDescriptor:
    """Build a JSON request descriptor.

    Args:
        method: HTTP verb.
        url: Absolute URL (see ``join_url``).
        params: Query parameters; ``None`` values are dropped.
        body: JSON-serializable body.
        headers: Caller headers, merged over the defaults.
        token: Current credential, if any.

    Returns:
        A fresh, immutable descriptor.
    """
    query = {k: v for k, v in (params or {}).items() if v is not None}
    return RequestDescriptor(
        method=method,
        url=url,
        headers=build_headers(headers, token=token),
        params=query or None,
        body=body,
    )


def build_upload(
    url: str,
    *,
    file: Any,
    filename: str | None = None,
    content_type: str | None = None,
    fields: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    token: str | None = None,
) -> RequestDescriptor:
    """Build a multipart POST descriptor.

    No JSON content type is set so the HTTP client can write the multipart
    boundary. Scalar fields are sent as strings.
    """
    part: tuple[Any, ...]
    if content_type is not None:
        part = (filename or "file", file, content_type)
    else:
        part = (filename or "file", file)
    form = {k: str(v) for k, v in (fields or {}).items() if v is not None}
    return RequestDescriptor(
        method="POST",
        url=url,
        headers=build_headers(headers, token=token, json_content=False),
        form=form,
        files={"file": part},
    )
