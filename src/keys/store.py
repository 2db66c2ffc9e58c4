"""Virtual key allow-list: parsing the key file and constant-time lookups."""

import hmac


class VirtualKeyStore:
    """Immutable set of virtual keys accepted for substitution."""

    def __init__(self, keys=()):
        self._keys: frozenset[str] = frozenset(k for k in keys if k)

    def __contains__(self, key: str) -> bool:
        """Constant-time membership test across all keys."""
        if not key:
            return False

        candidate = key.encode("utf-8")
        found = False
        # Always iterate all keys to maintain constant-time behavior
        for valid_key in self._keys:
            if hmac.compare_digest(candidate, valid_key.encode("utf-8")):
                found = True
        return found

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        # Never print the keys themselves
        return f"VirtualKeyStore(<{len(self._keys)} keys>)"

    @property
    def keys(self) -> frozenset[str]:
        return self._keys


def parse_virtual_keys(content: str) -> VirtualKeyStore:
    """Parse newline-separated keys, trimming whitespace and skipping blank lines."""
    return VirtualKeyStore(line.strip() for line in content.splitlines() if line.strip())


def load_virtual_keys(path: str) -> VirtualKeyStore:
    """Read and parse a virtual key file. Raises OSError if unreadable."""
    with open(path, encoding="utf-8") as f:
        return parse_virtual_keys(f.read())
