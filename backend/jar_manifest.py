"""Reader/writer for ``META-INF/MANIFEST.MF``.

The format is ``Name: Value`` headers, values wrapped at 72 bytes with
continuation lines starting with a single space, and sections separated by a
blank line. The first section is the main section; the rest are per-entry
sections which are kept as-is.
"""
from __future__ import annotations

from typing import Dict, List, Optional

MANIFEST_PATH = "META-INF/MANIFEST.MF"
MAX_LINE_BYTES = 72


class Manifest:
    def __init__(self, main: Optional[Dict[str, str]] = None, sections: Optional[List[Dict[str, str]]] = None):
        self.main: Dict[str, str] = dict(main or {})
        self.sections: List[Dict[str, str]] = [dict(s) for s in (sections or [])]

    def _key(self, name: str) -> Optional[str]:
        # Header names are case-insensitive
        lowered = name.lower()
        for key in self.main:
            if key.lower() == lowered:
                return key
        return None

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        key = self._key(name)
        return self.main[key] if key is not None else default

    def set(self, name: str, value: str) -> None:
        key = self._key(name)
        if key is not None and key != name:
            # Rebuild to keep position while normalizing the header's case
            self.main = {(name if k == key else k): (value if k == key else v) for k, v in self.main.items()}
        else:
            self.main[name] = value

    def dump(self) -> bytes:
        main = dict(self.main)
        version_key = self._key("Manifest-Version")
        version = main.pop(version_key, "1.0") if version_key else "1.0"
        out: List[bytes] = [_header_line("Manifest-Version", version)]
        out.extend(_header_line(k, v) for k, v in main.items())
        out.append(b"\r\n")
        for section in self.sections:
            out.extend(_header_line(k, v) for k, v in section.items())
            out.append(b"\r\n")
        return b"".join(out)


def _header_line(name: str, value: str) -> bytes:
    raw = f"{name}: {value}".encode("utf-8")
    lines: List[bytes] = []
    limit = MAX_LINE_BYTES
    while len(raw) > limit:
        cut = limit
        # Never split inside a multi-byte UTF-8 sequence
        while cut > 1 and (raw[cut] & 0xC0) == 0x80:
            cut -= 1
        lines.append(raw[:cut])
        raw = raw[cut:]
        limit = MAX_LINE_BYTES - 1
    lines.append(raw)
    return b"\r\n ".join(lines) + b"\r\n"


def parse_manifest(data: bytes) -> Manifest:
    text = data.decode("utf-8", errors="replace")
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    sections: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    last_key: Optional[str] = None
    started = False

    for line in text.split("\n"):
        if line == "":
            if current or not started:
                # The main section is always recorded, even when empty
                sections.append(current)
                started = True
            current = {}
            last_key = None
            continue
        if line.startswith(" ") and last_key is not None:
            current[last_key] += line[1:]
            continue
        name, sep, value = line.partition(":")
        if not sep:
            # Tolerate junk lines rather than rejecting the whole archive
            continue
        last_key = name.strip()
        current[last_key] = value[1:] if value.startswith(" ") else value
    if current:
        sections.append(current)

    if not sections:
        return Manifest()
    return Manifest(sections[0], sections[1:])
