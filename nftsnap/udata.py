"""
nftables user data (udata) decoding.

The nft tool stores out-of-band metadata, most notably comments, in the
opaque USERDATA attribute of tables, chains, rules, objects, sets and set
elements. The kernel never interprets it. The format is a flat stream of
type-length-value records:

    +------+--------+------------------+
    | type | length | payload (length) |
    | u8   | u8     | bytes            |
    +------+--------+------------------+

Attribute type numbers are scoped to the kind of object carrying the data,
so each object kind has its own interpreter function.

See libnftnl's include/udata.h and include/libnftnl/udata.h.
"""

import struct
from dataclasses import dataclass
from typing import Callable, Iterator, List, Tuple, Union

# Table attribute types (NFTNL_UDATA_TABLE_*)
TABLE_COMMENT = 0

# Chain attribute types (NFTNL_UDATA_CHAIN_*)
CHAIN_COMMENT = 0

# Rule attribute types (NFTNL_UDATA_RULE_*)
RULE_COMMENT = 0
RULE_EBTABLES_POLICY = 1

# Object attribute types (NFTNL_UDATA_OBJ_*)
OBJ_COMMENT = 0

# Set attribute types (NFTNL_UDATA_SET_*)
SET_KEY_BYTEORDER = 0
SET_DATA_BYTEORDER = 1
SET_MERGE_ELEMENTS = 2
SET_KEY_TYPEOF = 3
SET_DATA_TYPEOF = 4
SET_EXPR = 5
SET_DATA_INTERVAL = 6
SET_COMMENT = 7

# Set typeof attribute types (NFTNL_UDATA_SET_TYPEOF_*)
SET_TYPEOF_EXPR = 0
SET_TYPEOF_DATA = 1

# Set element attribute types (NFTNL_UDATA_SET_ELEM_*)
SET_ELEM_COMMENT = 0
SET_ELEM_FLAGS = 1

# Set element flag bits
SET_ELEM_INTERVAL_OPEN = 0x01

HEADER_LEN = 2


class UnmarshalError(ValueError):
    """
    Raised when user data cannot be decoded.

    attrs holds whatever was decoded before the failing record, so callers
    can still tell "partially readable" from "empty".
    """

    def __init__(self, message: str, attrs=None):
        super().__init__(message)
        self.attrs = list(attrs) if attrs else []


class TruncatedHeaderError(UnmarshalError):
    pass


class TruncatedAttributeError(UnmarshalError):
    pass


class IncompleteStringError(UnmarshalError):
    pass


@dataclass(frozen=True)
class Comment:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class ElemFlags:
    value: int


@dataclass(frozen=True)
class UnknownAttr:
    """An attribute this module has no interpreter for. Payload kept as-is."""
    type: int
    data: bytes


Attr = Union[Comment, ElemFlags, UnknownAttr]

AttrUnmarshalFunc = Callable[[int, bytes], Attr]


def iter_attrs(data: bytes) -> Iterator[Tuple[int, bytes]]:
    """
    Split user data into (type, payload) records.

    Raises TruncatedHeaderError or TruncatedAttributeError when the stream
    ends in the middle of a record. Records yielded before that are valid.
    """
    view = memoryview(bytes(data))
    offset = 0
    while len(view) - offset >= HEADER_LEN:
        typ = view[offset]
        length = view[offset + 1]
        remaining = len(view) - offset - HEADER_LEN
        if remaining < length:
            raise TruncatedAttributeError(
                f"incomplete udata attribute: got {remaining} bytes, want {length} bytes")
        start = offset + HEADER_LEN
        yield typ, view[start:start + length].tobytes()
        offset = start + length

    if offset < len(view):
        raise TruncatedHeaderError(
            f"incomplete udata attribute header: {len(view) - offset} bytes")


def unmarshal(data: bytes, interpret: AttrUnmarshalFunc) -> List[Attr]:
    """
    Decode a user data blob with the given per-attribute interpreter.

    Parsing is strict: the first malformed record, or the first record the
    interpreter rejects, aborts the decode. The raised UnmarshalError carries
    the attributes decoded so far in its attrs field.
    """
    attrs: List[Attr] = []
    try:
        for typ, body in iter_attrs(data):
            attrs.append(interpret(typ, body))
    except UnmarshalError as e:
        e.attrs = attrs
        raise
    return attrs


def unmarshal_comment(data: bytes) -> Comment:
    """Decode a NUL-terminated comment payload."""
    if not data or data[-1] != 0:
        raise IncompleteStringError("incomplete string data")
    return Comment(data[:-1].decode('utf-8', errors='replace'))


def marshal_comment(typ: int, text: str) -> bytes:
    """Encode a comment record the way nft writes it."""
    body = text.encode('utf-8') + b'\x00'
    if len(body) > 0xFF:
        raise ValueError(f"comment too long: {len(body)} bytes")
    return bytes((typ, len(body))) + body


def unmarshal_table_attr(typ: int, data: bytes) -> Attr:
    if typ == TABLE_COMMENT:
        return unmarshal_comment(data)
    return UnknownAttr(typ, data)


def unmarshal_chain_attr(typ: int, data: bytes) -> Attr:
    if typ == CHAIN_COMMENT:
        return unmarshal_comment(data)
    return UnknownAttr(typ, data)


def unmarshal_rule_attr(typ: int, data: bytes) -> Attr:
    if typ == RULE_COMMENT:
        return unmarshal_comment(data)
    return UnknownAttr(typ, data)


def unmarshal_obj_attr(typ: int, data: bytes) -> Attr:
    if typ == OBJ_COMMENT:
        return unmarshal_comment(data)
    return UnknownAttr(typ, data)


def unmarshal_set_attr(typ: int, data: bytes) -> Attr:
    if typ == SET_COMMENT:
        return unmarshal_comment(data)
    return UnknownAttr(typ, data)


def unmarshal_set_elem_attr(typ: int, data: bytes) -> Attr:
    if typ == SET_ELEM_COMMENT:
        return unmarshal_comment(data)
    if typ == SET_ELEM_FLAGS:
        # libnftnl writes this as a host-order u32
        if len(data) != 4:
            raise UnmarshalError(f"invalid set element flags length: {len(data)}")
        return ElemFlags(struct.unpack('=I', data)[0])
    return UnknownAttr(typ, data)


def find_comment(data: bytes, interpret: AttrUnmarshalFunc) -> str:
    """
    Return the first comment in a user data blob, or '' if there is none.

    Decode errors propagate to the caller.
    """
    for attr in unmarshal(data, interpret):
        if isinstance(attr, Comment):
            return attr.text
    return ''
