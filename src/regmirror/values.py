"""
Typed registry values and their textual encodings.

Every registry value type is a frozen dataclass holding the decoded payload
(bytes, text, a list of text, or an unsigned integer) that can reproduce its
exact binary encoding through ``raw``.

Three textual forms are supported:
- the command line form printed by ``reg query`` and accepted by ``reg add``
  (``RegValue.parse`` / ``to_command_data``)
- the friendly ``.reg`` export syntax (``format_value(v)`` / ``parse_value``)
- the strict ``hex(<tag>):..`` syntax of the exact binary encoding
  (``format_value(v, strict=True)`` / ``encode_wire``), decoded by ``decode_wire``
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from typing import Any, ClassVar

from regmirror.exceptions import ValidationError


def _hex_to_bytes(text: str) -> bytes:
    cleaned = re.sub(r"[\s,]", "", text)
    try:
        return bytes.fromhex(cleaned)
    except ValueError as e:
        raise ValidationError(
            "Invalid hex payload",
            context={"value": text, "expected": "pairs of hex digits"},
        ) from e


def _bytes_to_hex(data: bytes) -> str:
    return ",".join(f"{b:02x}" for b in data)


def _parse_int(text: str) -> int:
    t = text.strip()
    try:
        if t[:2].lower() == "0x":
            return int(t[2:], 16)
        return int(t, 10)
    except ValueError as e:
        raise ValidationError(
            "Invalid integer payload",
            context={"value": text, "expected": "decimal or 0x-prefixed hex"},
        ) from e


def _encode_string(text: str) -> bytes:
    return (text + "\0").encode("utf-16-le", errors="surrogatepass")


def _decode_string(data: bytes) -> str:
    if len(data) % 2:
        data = data[:-1]
    return data.decode("utf-16-le", errors="surrogatepass")


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


def _hex_form(tag: str, data: bytes) -> str:
    return f"hex({tag}):{_bytes_to_hex(data)}"


def _normal_tag(tag: str) -> str:
    return tag.lower().lstrip("0") or "0"


_QUOTED = r'"(?:[^"\\]|\\.)*"'
_QUOTED_PATTERN = re.compile(rf"({_QUOTED})", re.DOTALL)
_QUOTED_LIST_PATTERN = re.compile(
    rf"\[\s*(?:{_QUOTED}(?:\s*,\s*{_QUOTED})*)?\s*\]", re.DOTALL
)
_HEX_FORM_PATTERN = re.compile(
    r"hex(?:\((?P<tag>[0-9a-fA-F]+)\))?:(?P<bytes>.*)", re.IGNORECASE | re.DOTALL
)


@dataclass(frozen=True)
class RegValue:
    """Base class of all registry value types."""

    type_name: ClassVar[str] = ""
    tag: ClassVar[str] = ""

    value: Any

    @property
    def raw(self) -> bytes:
        """Exact binary encoding as stored in the registry."""
        raise NotImplementedError

    @property
    def reg_type(self) -> str:
        """Long type name understood by the tool, e.g. REG_SZ."""
        return f"REG_{self.type_name}"

    @classmethod
    def parse(cls, text: str) -> RegValue:
        """Build a value from its command line text."""
        raise NotImplementedError

    @classmethod
    def from_raw(cls, data: bytes) -> RegValue:
        """Build a value from its binary encoding."""
        raise NotImplementedError

    @classmethod
    def parse_reg(cls, text: str) -> RegValue | None:
        """Build a value from its .reg syntax (see format()).

        Returns:
            The value, or None if text is not in a .reg form of this type.
        """
        m = _HEX_FORM_PATTERN.fullmatch(_CONTINUATION.sub("", text.strip()))
        if m is None:
            return None
        tag = m.group("tag")
        if (Binary if tag is None else _TAGS.get(_normal_tag(tag))) is not cls:
            return None
        return cls.from_raw(_hex_to_bytes(m.group("bytes")))

    def format(self, strict: bool = False) -> str:
        """Render in .reg syntax. See format_value()."""
        return _hex_form(self.tag, self.raw)

    def to_command_data(self, separator: str = ",") -> str:
        """Payload text for ``reg add /d``."""
        return str(self.value)


# ---------------------------------------------------------------------------
# Byte payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoneValue(RegValue):
    """REG_NONE: opaque bytes with no declared type."""

    type_name: ClassVar[str] = "NONE"
    tag: ClassVar[str] = "0"

    value: bytes = b""

    @property
    def raw(self) -> bytes:
        return self.value

    @classmethod
    def parse(cls, text: str) -> RegValue:
        return cls(_hex_to_bytes(text))

    @classmethod
    def from_raw(cls, data: bytes) -> RegValue:
        return cls(bytes(data))

    def to_command_data(self, separator: str = ",") -> str:
        return self.value.hex().upper()


class Binary(NoneValue):
    type_name: ClassVar[str] = "BINARY"
    tag: ClassVar[str] = "3"

    def format(self, strict: bool = False) -> str:
        # Binary is the one type written untagged
        return f"hex:{_bytes_to_hex(self.value)}"


class Link(NoneValue):
    type_name: ClassVar[str] = "LINK"
    tag: ClassVar[str] = "6"


class ResourceList(NoneValue):
    type_name: ClassVar[str] = "RESOURCE_LIST"
    tag: ClassVar[str] = "8"


class FullResourceDescriptor(NoneValue):
    type_name: ClassVar[str] = "FULL_RESOURCE_DESCRIPTOR"
    tag: ClassVar[str] = "9"


class ResourceRequirementsList(NoneValue):
    type_name: ClassVar[str] = "RESOURCE_REQUIREMENTS_LIST"
    tag: ClassVar[str] = "a"


# ---------------------------------------------------------------------------
# Text payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class String(RegValue):
    """REG_SZ: NUL terminated UTF-16LE text."""

    type_name: ClassVar[str] = "SZ"
    tag: ClassVar[str] = "1"

    value: str = ""

    @property
    def raw(self) -> bytes:
        return _encode_string(self.value)

    @classmethod
    def parse(cls, text: str) -> RegValue:
        return cls(text)

    @classmethod
    def from_raw(cls, data: bytes) -> RegValue:
        text = _decode_string(data)
        return cls(text[:-1] if text.endswith("\0") else text)

    @classmethod
    def parse_reg(cls, text: str) -> RegValue | None:
        t = text.strip()
        if re.fullmatch(_QUOTED, t, re.DOTALL):
            return cls(_unquote(t[1:-1]))
        return super().parse_reg(text)

    def format(self, strict: bool = False) -> str:
        if strict:
            return super().format(strict)
        return _quote(self.value)


class ExpandString(String):
    """REG_EXPAND_SZ: text with unexpanded %VARIABLE% references."""

    type_name: ClassVar[str] = "EXPAND_SZ"
    tag: ClassVar[str] = "2"


@dataclass(frozen=True)
class MultiString(RegValue):
    """REG_MULTI_SZ: a list of NUL terminated strings plus a final NUL.

    Any iterable of strings is accepted and stored as a tuple.
    """

    type_name: ClassVar[str] = "MULTI_SZ"
    tag: ClassVar[str] = "7"

    value: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", tuple(self.value))

    @property
    def raw(self) -> bytes:
        return b"".join(_encode_string(s) for s in self.value) + b"\0\0"

    @classmethod
    def parse(cls, text: str) -> RegValue:
        # reg.exe prints the separators as a literal backslash-zero
        return cls(text.split("\\0") if text else [])

    @classmethod
    def from_raw(cls, data: bytes) -> RegValue:
        text = _decode_string(data)
        if text.endswith("\0"):
            text = text[:-1]
        if not text:
            return cls([])
        if text.endswith("\0"):
            text = text[:-1]
        return cls(text.split("\0"))

    @classmethod
    def parse_reg(cls, text: str) -> RegValue | None:
        t = text.strip()
        if _QUOTED_LIST_PATTERN.fullmatch(t):
            return cls(_unquote(s[1:-1]) for s in _QUOTED_PATTERN.findall(t))
        return super().parse_reg(text)

    def format(self, strict: bool = False) -> str:
        if strict:
            return super().format(strict)
        return "[" + ",".join(_quote(s) for s in self.value) + "]"

    def to_command_data(self, separator: str = ",") -> str:
        """Join the strings for ``reg add /s separator /d``.

        Raises:
            ValidationError: If a string contains the separator, which the
                tool would split on.
        """
        for s in self.value:
            if separator in s:
                raise ValidationError(
                    "REG_MULTI_SZ element contains the separator",
                    context={"value": s, "separator": separator},
                )
        return separator.join(self.value)


# ---------------------------------------------------------------------------
# Integer payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dword(RegValue):
    """REG_DWORD: 32-bit unsigned little-endian integer."""

    type_name: ClassVar[str] = "DWORD"
    tag: ClassVar[str] = "4"
    _format: ClassVar[str] = "<I"
    _bits: ClassVar[int] = 32
    _prefix: ClassVar[str] = "dword"

    value: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.value < 1 << self._bits:
            raise ValidationError(
                f"{self.reg_type} out of range",
                context={"value": self.value, "expected": f"0 <= value < 2**{self._bits}"},
            )

    @property
    def raw(self) -> bytes:
        return struct.pack(self._format, self.value)

    @classmethod
    def parse(cls, text: str) -> RegValue:
        return cls(_parse_int(text))

    @classmethod
    def from_raw(cls, data: bytes) -> RegValue:
        size = struct.calcsize(cls._format)
        return cls(struct.unpack(cls._format, bytes(data[:size]).ljust(size, b"\0"))[0])

    @classmethod
    def parse_reg(cls, text: str) -> RegValue | None:
        m = re.fullmatch(rf"{cls._prefix}:([0-9a-fA-F]+)", text.strip(), re.IGNORECASE)
        if m:
            return cls(int(m.group(1), 16))
        return super().parse_reg(text)

    def format(self, strict: bool = False) -> str:
        if strict:
            return super().format(strict)
        return f"{self._prefix}:{self.value:x}"


class DwordBigEndian(Dword):
    type_name: ClassVar[str] = "DWORD_BIG_ENDIAN"
    tag: ClassVar[str] = "5"
    _format: ClassVar[str] = ">I"


class Qword(Dword):
    """REG_QWORD: 64-bit unsigned little-endian integer."""

    type_name: ClassVar[str] = "QWORD"
    tag: ClassVar[str] = "11"
    _format: ClassVar[str] = "<Q"
    _bits: ClassVar[int] = 64
    _prefix: ClassVar[str] = "qword"


VALUE_TYPES: dict[str, type[RegValue]] = {
    cls.type_name: cls
    for cls in (
        NoneValue,
        String,
        ExpandString,
        Binary,
        Dword,
        DwordBigEndian,
        Link,
        MultiString,
        ResourceList,
        FullResourceDescriptor,
        ResourceRequirementsList,
        Qword,
    )
}

# Tags of the hex(<tag>) form; "b" is what .reg exports use for QWORD
_TAGS: dict[str, type[RegValue]] = {cls.tag: cls for cls in VALUE_TYPES.values()}
_TAGS["b"] = Qword

_WIRE_PATTERN = re.compile(
    r'"(?P<string>(?:[^"\\]|\\.)*)"'
    r"|dword:(?P<dword>[0-9a-fA-F]{1,8})\b"
    r"|qword:(?P<qword>[0-9a-fA-F]{1,16})\b"
    r"|hex(?:\((?P<tag>[0-9a-fA-F]+)\))?:"
    r"(?P<bytes>\s*[0-9a-fA-F]{2}(?:\s*,\s*[0-9a-fA-F]{2})*)?"
)

_CONTINUATION = re.compile(r"\\\r?\n\s*")


def value_type(type_name: str) -> type[RegValue] | None:
    """Look up a value type by short (SZ) or long (REG_SZ) name."""
    name = type_name.strip().upper()
    if name.startswith("REG_"):
        name = name[4:]
    return VALUE_TYPES.get(name)


def parse_value(type_name: str, text: str) -> RegValue | None:
    """Build a value from a type name and text.

    The text may be any .reg form format_value() renders for the type
    (``dword:1a``, ``"text"``, ``["a","b"]``, ``hex(<tag>):..``) or else the
    command line form printed by ``reg query``.

    Returns:
        The value, or None if the type name is unknown.

    Raises:
        ValidationError: If the text is not valid for the type.
    """
    cls = value_type(type_name)
    if cls is None:
        return None
    value = cls.parse_reg(text)
    if value is None:
        value = cls.parse(text)
    return value


def format_value(value: RegValue, strict: bool = False) -> str:
    """Render a value in .reg syntax.

    Args:
        value: Value to render.
        strict: Render every type as hex(<tag>) of its exact encoding.
    """
    return value.format(strict)


def encode_wire(value: RegValue) -> str:
    """Lossless textual encoding, the inverse of decode_wire()."""
    return format_value(value, strict=True)


def decode_wire(text: str) -> RegValue | None:
    """Decode a .reg style value.

    Unknown hex tags decode to NoneValue carrying the raw bytes.

    Returns:
        The value, or None when the text has no recognisable form.
    """
    m = _WIRE_PATTERN.search(_CONTINUATION.sub("", text))
    if m is None:
        return None

    if m.group("string") is not None:
        return String(_unquote(m.group("string")))
    if m.group("dword") is not None:
        return Dword(int(m.group("dword"), 16))
    if m.group("qword") is not None:
        return Qword(int(m.group("qword"), 16))

    hex_bytes = m.group("bytes")
    data = bytes(int(b, 16) for b in hex_bytes.split(",")) if hex_bytes else b""

    tag = m.group("tag")
    if tag is None:
        return Binary(data)
    cls = _TAGS.get(_normal_tag(tag), NoneValue)
    return cls.from_raw(data)


def to_command_data(value: RegValue, separator: str = ",") -> str:
    """Payload text for ``reg add /d``."""
    return value.to_command_data(separator)
