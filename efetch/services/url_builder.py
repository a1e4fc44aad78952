"""
efetch/services/url_builder.py

WHAT THIS FILE IS FOR
---------------------
Single canonical rule for turning (base_url, endpoint, identifier,
query_params) into the request URL used by HttpFetchClient.

COMPOSITION RULE
----------------
1) Strip ONE trailing '/' from base_url and ONE leading '/' from endpoint,
   then join them with a single '/'.
2) If an identifier is given, append '/' + str(identifier).
3) If query_params is non-empty, append '?' + 'k=v' pairs joined by '&'
   in the mapping's iteration order.

Example:
    combine_url("http://h/api", "/todos", 5, {"done": "true"})
    -> "http://h/api/todos/5?done=true"

KNOWN LIMITATION
----------------
Query values are NOT URL-encoded. Callers must pre-encode values that
contain reserved characters (e.g. urllib.parse.quote).

WHAT THIS FILE IS NOT FOR
-------------------------
It performs pure string composition only: no validation of the
resulting URL, no I/O, no logging.
"""

from __future__ import annotations

from typing import Mapping, Optional, Union

Identifier = Union[int, str]


def _strip_one(value: str, char: str, *, leading: bool) -> str:
    if leading:
        return value[1:] if value.startswith(char) else value
    return value[:-1] if value.endswith(char) else value


def format_identifier(identifier: Identifier) -> str:
    """
    String form of a path identifier.

    bool is rejected explicitly because it is an int subclass and
    "True"/"False" is never a meaningful path segment.
    """
    if isinstance(identifier, bool) or not isinstance(identifier, (int, str)):
        raise TypeError(
            f"identifier must be int or str, got {type(identifier).__name__}"
        )
    return str(identifier)


def combine_url(
    base_url: str,
    endpoint: str,
    identifier: Optional[Identifier] = None,
    query_params: Optional[Mapping[str, object]] = None,
) -> str:
    url = _strip_one(base_url, "/", leading=False) + "/" + _strip_one(endpoint, "/", leading=True)

    if identifier is not None:
        url += "/" + format_identifier(identifier)

    if query_params:
        url += "?" + "&".join(f"{key}={value}" for key, value in query_params.items())

    return url
