# src/multifetch/scheduling/parser.py
"""Turn a finished transfer's raw output into a FetchResult.

Content from the transport is framed the way HTTP/1.x sends it: a header
block, a blank line ("\\r\\n\\r\\n"), then the body. The header block is
decoded as ISO-8859-1, the historical charset for HTTP header bytes.
"""

from __future__ import annotations

from typing import Any

from multifetch.contracts.errors import as_error_code, describe_error
from multifetch.contracts.results import FetchResult
from multifetch.contracts.transport import RawTransfer

HEADER_TERMINATOR = b"\r\n\r\n"
HEADER_ENCODING = "iso-8859-1"


def parse_header_block(header: str) -> dict[str, str]:
    """Tokenize a raw header block into a name -> value mapping.

    The name is everything before the first colon; the value is everything
    after it, minus a single leading space. Lines without a colon (the
    status line, blank lines) are skipped. On duplicate names the last
    value wins.

    Args:
        header: Raw header text, lines separated by CRLF

    Returns:
        Mapping of field name to value
    """
    headers: dict[str, str] = {}
    for line in header.split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep:
            continue
        if value.startswith(" "):
            value = value[1:]
        headers[name] = value
    return headers


def split_content(content: bytes) -> tuple[str, bytes]:
    """Split raw content at the first blank line.

    Returns:
        (header_text, body). If no blank line is present, the whole content
        is treated as header and the body is empty.
    """
    header, _, body = content.partition(HEADER_TERMINATOR)
    return header.decode(HEADER_ENCODING), body


def parse_response(
    *,
    ticket: int,
    handle: Any,
    user_data: Any,
    raw: RawTransfer,
    error: tuple[int, str],
    parse_headers: bool = True,
) -> FetchResult:
    """Build a FetchResult from a finished transfer.

    Args:
        ticket: Ticket of the finished transfer
        handle: Caller's handle
        user_data: Payload recovered from the in-flight registry
        raw: Metrics and raw content from the multiplexer
        error: (code, message) from the multiplexer
        parse_headers: Tokenize the header block (True) or keep raw text

    Returns:
        Immutable FetchResult
    """
    info = dict(raw.info)
    header_size = info.get("header_size", 0) or 0
    content_length = info.get("download_content_length", -1)
    if content_length is None:
        content_length = -1

    header: str | dict[str, str] | None = None
    body = b""
    if header_size > 0:
        header_text, body = split_content(raw.content)
        header = parse_header_block(header_text) if parse_headers else header_text
    elif content_length > 0 or raw.content:
        body = raw.content

    code, message = error
    return FetchResult(
        ticket=ticket,
        handle=handle,
        user_data=user_data,
        transport_info=info,
        header=header,
        body=body,
        error_code=as_error_code(code),
        error_message=message,
        error_description=describe_error(code),
    )
