"""
The series lookup tool.

Lets an agent discover which metrics and labels actually exist before it
writes a PromQL query.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import structlog
from mcp import types

from promql_mcp.client import PrometheusClient
from promql_mcp.exceptions import BackendError, InvalidArgumentError, SeriesLookupError

GET_SERIES_TOOL_NAME = "prometheus_get_series"

SERIES_LOOKBACK = timedelta(hours=1)
SERIES_TIMEOUT = 10.0

SERIES_HEADER = "We have the following series:\n\n"

GET_SERIES_DESCRIPTION = """\
Allows you to get only series from Prometheus by querying the api/v1/series endpoint with a match param that is fully constructed PromQL expr.
An example output of this tool would be like the following,

We have the following series:

{__name__="some_metric", container="some_container"...}
...

You can actually use this tool to figure out what metrics are available within the Prometheus instance.
With this knowledge, you can then choose to optionally generate PromQL queries to give they user the data they want or to answer their question.
DO NOT try to get ALL series from this tool using match params like __name__=~\\".*\\"."""

GET_SERIES_TOOL = types.Tool(
    name=GET_SERIES_TOOL_NAME,
    description=GET_SERIES_DESCRIPTION,
    inputSchema={
        "type": "object",
        "properties": {
            "match": {
                "type": "string",
                "description": (
                    "A fully constructed PromQL expr to match the series that will be "
                    "sent as a match[] arg to the api/v1/series endpoint."
                ),
            },
        },
        "required": ["match"],
    },
)

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def quote_label_value(value: str) -> str:
    """Double-quote a label value, escaping quotes and non-printable characters."""
    out = []
    for ch in value:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif not ch.isprintable():
            code = ord(ch)
            if code < 0x20 or code == 0x7F:
                out.append(f"\\x{code:02x}")
            elif code < 0x10000:
                out.append(f"\\u{code:04x}")
            else:
                out.append(f"\\U{code:08x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def format_label_set(labels: Mapping[str, str]) -> str:
    """
    Render a label set in selector form.

    Label names are sorted, so the same series always renders the same way:

        >>> format_label_set({"job": "node", "__name__": "up"})
        '{__name__="up", job="node"}'
    """
    pairs = (f"{name}={quote_label_value(labels[name])}" for name in sorted(labels))
    return "{" + ", ".join(pairs) + "}"


def format_series(label_sets: list[dict[str, str]]) -> str:
    """Build the tool's text response, one series per line in the order given."""
    return SERIES_HEADER + "".join(format_label_set(s) + "\n" for s in label_sets)


async def get_series(
    client: PrometheusClient,
    arguments: Optional[Mapping[str, Any]],
    logger: Optional[structlog.stdlib.BoundLogger] = None,
) -> list[types.TextContent]:
    """
    Look up the series matching a selector over the last hour.

    Args:
        client: Connected API client
        arguments: Tool arguments; ``match`` must be a string
        logger: Logger for backend errors and warnings

    Returns:
        A single text block listing the matching series

    Raises:
        InvalidArgumentError: If ``match`` is missing or not a string
        SeriesLookupError: If the API call fails or times out
    """
    log = logger or structlog.get_logger(__name__)

    match = (arguments or {}).get("match")
    if not isinstance(match, str):
        raise InvalidArgumentError(
            "invalid type for 'match', expected string", argument="match"
        )

    end = datetime.now(timezone.utc)
    start = end - SERIES_LOOKBACK

    try:
        label_sets, warnings = await client.series(
            [match], start=start, end=end, timeout=SERIES_TIMEOUT
        )
    except BackendError as e:
        log.error("error querying Prometheus", match=match, error=str(e))
        raise SeriesLookupError(f"error querying Prometheus: {e}") from e

    if warnings:
        log.warning("Prometheus warnings", match=match, warnings=warnings)

    return [types.TextContent(type="text", text=format_series(label_sets))]
