import ipaddress
import re

# One DNS label; underscores are tolerated as they show up in real hostnames.
_label_valid = re.compile(r"[A-Z\d\-_]{1,63}$", re.IGNORECASE)


def is_valid_host(host: str) -> bool:
    """
    Checks if `host` is an IPv4/IPv6 literal or a DNS hostname, internationalized names included.
    """
    try:
        ipaddress.ip_address(host)
    except ValueError:
        pass
    else:
        return True

    try:
        ascii_host = host.encode("idna").decode("ascii")
        # reject punycode that does not decode back
        ascii_host.encode("ascii").decode("idna")
    except UnicodeError:
        return False
    ascii_host = ascii_host.removesuffix(".")
    # RFC1035: 255 bytes or less.
    if not ascii_host or len(ascii_host) > 255:
        return False
    return all(_label_valid.match(label) for label in ascii_host.split("."))


def is_valid_port(port: int) -> bool:
    return 0 <= port <= 65535
