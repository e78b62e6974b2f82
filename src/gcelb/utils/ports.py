"""Forwarding rule port-range parsing."""

PORT_RANGE_SEPARATOR = "-"
ALL_PORTS_RANGE = "1-65535"


class MalformedPortRangeError(ValueError):
    """Port range string could not be parsed."""

    pass


def _parse_port(text: str, port_range: str) -> int:
    try:
        return int(text.strip())
    except ValueError as e:
        raise MalformedPortRangeError(f"Malformed port range: {port_range!r}") from e


def parse_port_range(port_range: str) -> tuple[int, int]:
    """Parse a provider port range into its inclusive bounds.

    Args:
        port_range: "start-end" (inclusive) or a single port, e.g. "80-443" or "8080"

    Returns:
        (start, end); both equal for a single port

    Raises:
        MalformedPortRangeError: If the range is not numeric or start > end
    """
    text = port_range.strip()

    if PORT_RANGE_SEPARATOR not in text:
        port = _parse_port(text, port_range)
        return port, port

    parts = text.split(PORT_RANGE_SEPARATOR)
    if len(parts) != 2:
        raise MalformedPortRangeError(f"Malformed port range: {port_range!r}")

    start = _parse_port(parts[0], port_range)
    end = _parse_port(parts[1], port_range)
    if start > end:
        raise MalformedPortRangeError(
            f"Malformed port range: {port_range!r} (start is greater than end)"
        )

    return start, end


def expand_port_range(port_range: str) -> list[int]:
    """Expand a provider port range into the ascending ports it covers.

    Raises:
        MalformedPortRangeError: If the range cannot be parsed
    """
    start, end = parse_port_range(port_range)
    return list(range(start, end + 1))


def single_port_range(port: int) -> str:
    """Format a single port as a forwarding rule port range."""
    return str(port)
