#!/usr/bin/env python3
"""
nf_tables Netlink Query with C Library via CFFI
Read-only inspection of the live nftables ruleset including:
- Tables (family, flags, comments)
- Chains (hook, priority, policy, type)
- Rules (counter expressions, comments from user data)
- Named counter objects
- Sets and maps (key/data types, elements)

The C library only owns the NETLINK_NETFILTER socket: it sends GET dump
requests and buffers the replies. Messages and attributes are decoded in
Python.

NFTablesQuery implements the provider interface that
nftsnap.collector.NFTCollector reads from.

Requirements:
    - Python 3.8+
    - cffi>=1.0.0
    - setuptools (required for Python 3.12+)
    - Linux kernel headers (linux/netfilter/nfnetlink.h)

Usage:
    sudo nftsnap-dump                 # Full JSON output
    sudo nftsnap-dump --summary       # Human-readable summary
    sudo nftsnap-dump --compact       # Single-line JSON
"""

from cffi import FFI
import errno
import json
import os
import struct
import sys
import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

from . import udata
from .labels import (
    chain_policy_string,
    hook_string,
    rule_counter,
    set_datatype_name,
    table_family_string,
    table_flag_mask_string,
)
from .objects import (
    OBJECT_COUNTER,
    SET_F_MAP,
    TABLE_FAMILY_UNSPEC,
    Chain,
    CounterExpr,
    CounterObj,
    Obj,
    Rule,
    Set,
    SetDatatype,
    SetElement,
    Table,
    UnknownExpr,
    UnknownObj,
)

# Check Python version
if sys.version_info < (3, 8):
    raise RuntimeError("Python 3.8 or higher is required")

# C library source code - NETLINK_NETFILTER transport
C_SOURCE = r"""
#include <stdio.h>
#include <stdlib.h>
#include <string.h>
#include <unistd.h>
#include <errno.h>
#include <sys/socket.h>
#include <linux/netlink.h>
#include <linux/netfilter/nfnetlink.h>

// Verify we have minimum required kernel headers
#if !defined(NETLINK_NETFILTER) || !defined(NFNETLINK_V0)
#error "Kernel headers too old - need netfilter netlink support"
#endif

#define NL_RECV_SIZE 65536

// Response buffer structure
typedef struct {
    unsigned char* data;
    size_t length;
    size_t capacity;
    unsigned int seq;
} response_buffer_t;

static unsigned int nl_seq = 0;

// Create netfilter netlink socket, returns -errno on failure
int nl_create_socket(void) {
    int sock = socket(AF_NETLINK, SOCK_RAW | SOCK_CLOEXEC, NETLINK_NETFILTER);
    if (sock < 0) {
        return -errno;
    }

    struct sockaddr_nl addr = {0};
    addr.nl_family = AF_NETLINK;
    addr.nl_pid = 0;  // let the kernel pick a port id

    if (bind(sock, (struct sockaddr*)&addr, sizeof(addr)) < 0) {
        int err = errno;
        close(sock);
        return -err;
    }

    return sock;
}

// Close netlink socket
void nl_close_socket(int sock) {
    if (sock >= 0) {
        close(sock);
    }
}

// Send an nfnetlink request: nlmsghdr + nfgenmsg + pre-encoded attributes
int nl_send_request(int sock, unsigned short msg_type, unsigned short flags,
                    unsigned char family, const char* attrs, size_t attrs_len,
                    unsigned int* seq_out) {
    size_t len = NLMSG_LENGTH(sizeof(struct nfgenmsg) + attrs_len);
    unsigned char* req = calloc(1, NLMSG_ALIGN(len));
    if (!req) {
        return -ENOMEM;
    }

    struct nlmsghdr* nlh = (struct nlmsghdr*)req;
    nlh->nlmsg_len = len;
    nlh->nlmsg_type = msg_type;
    nlh->nlmsg_flags = flags;
    nlh->nlmsg_seq = ++nl_seq;
    nlh->nlmsg_pid = 0;

    struct nfgenmsg* nfg = (struct nfgenmsg*)NLMSG_DATA(nlh);
    nfg->nfgen_family = family;
    nfg->version = NFNETLINK_V0;
    nfg->res_id = 0;

    if (attrs_len > 0) {
        memcpy((unsigned char*)nfg + sizeof(struct nfgenmsg), attrs, attrs_len);
    }

    struct sockaddr_nl dst = {0};
    dst.nl_family = AF_NETLINK;

    *seq_out = nlh->nlmsg_seq;
    ssize_t sent = sendto(sock, req, len, 0, (struct sockaddr*)&dst, sizeof(dst));
    int err = errno;
    free(req);

    if (sent < 0) {
        return -err;
    }

    return 0;
}

// Append one message to the response buffer
static int buf_append(response_buffer_t* buf, const struct nlmsghdr* nh) {
    size_t msg_len = nh->nlmsg_len;
    size_t padded = NLMSG_ALIGN(msg_len);

    while (buf->length + padded > buf->capacity) {
        size_t new_capacity = buf->capacity * 2;
        unsigned char* new_data = realloc(buf->data, new_capacity);
        if (!new_data) {
            return -ENOMEM;
        }
        buf->data = new_data;
        buf->capacity = new_capacity;
    }

    memcpy(buf->data + buf->length, nh, msg_len);
    memset(buf->data + buf->length + msg_len, 0, padded - msg_len);
    buf->length += padded;
    return 0;
}

// Receive and buffer all reply messages for one request.
// On failure returns NULL and stores a negative errno in *error_out.
response_buffer_t* nl_receive_response(int sock, unsigned int expected_seq, int* error_out) {
    *error_out = 0;

    response_buffer_t* buf = malloc(sizeof(response_buffer_t));
    if (!buf) {
        *error_out = -ENOMEM;
        return NULL;
    }

    buf->capacity = 65536;
    buf->data = malloc(buf->capacity);
    buf->length = 0;
    buf->seq = expected_seq;

    unsigned char* recv_buf = malloc(NL_RECV_SIZE);

    if (!buf->data || !recv_buf) {
        free(recv_buf);
        free(buf->data);
        free(buf);
        *error_out = -ENOMEM;
        return NULL;
    }

    int done = 0;

    while (!done) {
        ssize_t len = recv(sock, recv_buf, NL_RECV_SIZE, 0);
        if (len < 0) {
            if (errno == EINTR) {
                continue;
            }
            *error_out = -errno;
            goto fail;
        }

        int remaining = (int)len;
        struct nlmsghdr* nh = (struct nlmsghdr*)recv_buf;

        while (NLMSG_OK(nh, remaining)) {
            if (nh->nlmsg_seq != expected_seq) {
                nh = NLMSG_NEXT(nh, remaining);
                continue;
            }

            if (nh->nlmsg_type == NLMSG_DONE) {
                done = 1;
                break;
            }

            if (nh->nlmsg_type == NLMSG_ERROR) {
                struct nlmsgerr* err = (struct nlmsgerr*)NLMSG_DATA(nh);
                if (err->error == 0) {
                    // plain ACK
                    done = 1;
                    break;
                }
                *error_out = err->error;
                goto fail;
            }

            if (buf_append(buf, nh) < 0) {
                *error_out = -ENOMEM;
                goto fail;
            }

            if (!(nh->nlmsg_flags & NLM_F_MULTI)) {
                done = 1;
                break;
            }

            nh = NLMSG_NEXT(nh, remaining);
        }
    }

    free(recv_buf);
    return buf;

fail:
    free(recv_buf);
    free(buf->data);
    free(buf);
    return NULL;
}

// Free response buffer
void nl_free_response(response_buffer_t* buf) {
    if (buf) {
        if (buf->data) {
            free(buf->data);
        }
        free(buf);
    }
}
"""

# Define FFI interface
ffi = FFI()
ffi.cdef("""
typedef struct {
    unsigned char* data;
    size_t length;
    size_t capacity;
    unsigned int seq;
} response_buffer_t;

int nl_create_socket(void);
void nl_close_socket(int sock);
int nl_send_request(int sock, unsigned short msg_type, unsigned short flags,
                    unsigned char family, const char* attrs, size_t attrs_len,
                    unsigned int* seq_out);
response_buffer_t* nl_receive_response(int sock, unsigned int expected_seq, int* error_out);
void nl_free_response(response_buffer_t* buf);
""")

_lib = None
_lib_lock = threading.Lock()


def load_lib():
    """Compile (or load the cached build of) the C transport."""
    global _lib
    with _lib_lock:
        if _lib is None:
            if sys.version_info >= (3, 12):
                try:
                    import setuptools  # noqa
                except ImportError:
                    raise RuntimeError(
                        "Python 3.12+ requires setuptools for CFFI.\n"
                        "Install it with: pip install setuptools"
                    )
            try:
                _lib = ffi.verify(C_SOURCE, modulename="nftsnap_nl_lib_v1")
            except Exception as e:
                raise RuntimeError(
                    f"Error compiling netlink C library: {e}\n"
                    "This might be a CFFI caching issue. Try removing the __pycache__ directory."
                ) from e
    return _lib


# Netlink header layout
NLMSG_HDR = struct.Struct('=IHHII')   # len, type, flags, seq, pid
NFGENMSG = struct.Struct('=BBH')      # family, version, res_id (be16)
NLA_HDR = struct.Struct('=HH')        # len, type
NLA_F_NESTED = 0x8000
NLA_F_NET_BYTEORDER = 0x4000
NLA_TYPE_MASK = ~(NLA_F_NESTED | NLA_F_NET_BYTEORDER) & 0xFFFF

NLM_F_REQUEST = 0x1
NLM_F_DUMP = 0x300

NFNL_SUBSYS_NFTABLES = 10

# nf_tables message types (NFT_MSG_*)
NFT_MSG_NEWTABLE = 0
NFT_MSG_GETTABLE = 1
NFT_MSG_NEWCHAIN = 3
NFT_MSG_GETCHAIN = 4
NFT_MSG_NEWRULE = 6
NFT_MSG_GETRULE = 7
NFT_MSG_NEWSET = 9
NFT_MSG_GETSET = 10
NFT_MSG_NEWSETELEM = 12
NFT_MSG_GETSETELEM = 13
NFT_MSG_NEWOBJ = 18
NFT_MSG_GETOBJ = 19

NFT_MSG_NAMES = {
    NFT_MSG_GETTABLE: 'GETTABLE',
    NFT_MSG_GETCHAIN: 'GETCHAIN',
    NFT_MSG_GETRULE: 'GETRULE',
    NFT_MSG_GETSET: 'GETSET',
    NFT_MSG_GETSETELEM: 'GETSETELEM',
    NFT_MSG_GETOBJ: 'GETOBJ',
}

# Table attributes (NFTA_TABLE_*)
NFTA_TABLE_NAME = 1
NFTA_TABLE_FLAGS = 2
NFTA_TABLE_USE = 3
NFTA_TABLE_HANDLE = 4
NFTA_TABLE_USERDATA = 6

# Chain attributes (NFTA_CHAIN_*)
NFTA_CHAIN_TABLE = 1
NFTA_CHAIN_HANDLE = 2
NFTA_CHAIN_NAME = 3
NFTA_CHAIN_HOOK = 4
NFTA_CHAIN_POLICY = 5
NFTA_CHAIN_TYPE = 7
NFTA_CHAIN_USERDATA = 12

# Hook attributes (NFTA_HOOK_*)
NFTA_HOOK_HOOKNUM = 1
NFTA_HOOK_PRIORITY = 2

# Rule attributes (NFTA_RULE_*)
NFTA_RULE_TABLE = 1
NFTA_RULE_CHAIN = 2
NFTA_RULE_HANDLE = 3
NFTA_RULE_EXPRESSIONS = 4
NFTA_RULE_USERDATA = 7

NFTA_LIST_ELEM = 1

# Expression attributes (NFTA_EXPR_*)
NFTA_EXPR_NAME = 1
NFTA_EXPR_DATA = 2

# Counter attributes (NFTA_COUNTER_*), shared by expressions and objects
NFTA_COUNTER_BYTES = 1
NFTA_COUNTER_PACKETS = 2

# Set attributes (NFTA_SET_*)
NFTA_SET_TABLE = 1
NFTA_SET_NAME = 2
NFTA_SET_FLAGS = 3
NFTA_SET_KEY_TYPE = 4
NFTA_SET_KEY_LEN = 5
NFTA_SET_DATA_TYPE = 6
NFTA_SET_DATA_LEN = 7
NFTA_SET_HANDLE = 16
NFTA_SET_USERDATA = 13

# Set element list attributes (NFTA_SET_ELEM_LIST_*)
NFTA_SET_ELEM_LIST_TABLE = 1
NFTA_SET_ELEM_LIST_SET = 2
NFTA_SET_ELEM_LIST_ELEMENTS = 3

# Set element attributes (NFTA_SET_ELEM_*)
NFTA_SET_ELEM_KEY = 1
NFTA_SET_ELEM_DATA = 2
NFTA_SET_ELEM_FLAGS = 3
NFTA_SET_ELEM_USERDATA = 6

NFTA_DATA_VALUE = 1

# Object attributes (NFTA_OBJ_*)
NFTA_OBJ_TABLE = 1
NFTA_OBJ_NAME = 2
NFTA_OBJ_TYPE = 3
NFTA_OBJ_DATA = 4
NFTA_OBJ_HANDLE = 6

# Data type used by verdict maps
NFT_DATA_VERDICT = 0xffffff00


class NFTablesError(OSError):
    """A netlink request failed; errno is the kernel's error code."""


def nla_align(length: int) -> int:
    return (length + 3) & ~3


def nla_pack(attr_type: int, payload: bytes) -> bytes:
    length = NLA_HDR.size + len(payload)
    return NLA_HDR.pack(length, attr_type) + payload + b'\x00' * (nla_align(length) - length)


def nla_string(attr_type: int, value: str) -> bytes:
    return nla_pack(attr_type, value.encode('utf-8') + b'\x00')


def iter_nlattrs(data: bytes) -> Iterator[Tuple[int, bytes]]:
    """Yield (type, payload) for each netlink attribute. Flag bits are masked off."""
    offset = 0
    while offset + NLA_HDR.size <= len(data):
        length, attr_type = NLA_HDR.unpack_from(data, offset)
        if length < NLA_HDR.size or offset + length > len(data):
            raise ValueError(f"malformed netlink attribute at offset {offset}: length {length}")
        yield attr_type & NLA_TYPE_MASK, data[offset + NLA_HDR.size:offset + length]
        offset += nla_align(length)


def parse_nlattrs(data: bytes) -> Dict[int, bytes]:
    """Attributes by type. Repeated types keep the last payload."""
    return dict(iter_nlattrs(data))


def iter_nlmsgs(data: bytes) -> Iterator[Tuple[int, int, Dict[int, bytes]]]:
    """Yield (nft message type, family, attributes) for each buffered reply."""
    offset = 0
    while offset + NLMSG_HDR.size <= len(data):
        length, msg_type, _flags, _seq, _pid = NLMSG_HDR.unpack_from(data, offset)
        if length < NLMSG_HDR.size + NFGENMSG.size or offset + length > len(data):
            raise ValueError(f"malformed netlink message at offset {offset}: length {length}")
        family, _version, _res_id = NFGENMSG.unpack_from(data, offset + NLMSG_HDR.size)
        body = data[offset + NLMSG_HDR.size + NFGENMSG.size:offset + length]
        yield msg_type & 0xFF, family, parse_nlattrs(body)
        offset += nla_align(length)


def _str(attrs: Dict[int, bytes], attr_type: int) -> str:
    value = attrs.get(attr_type, b'')
    return value.split(b'\x00', 1)[0].decode('utf-8', errors='replace')


def _be32(attrs: Dict[int, bytes], attr_type: int, default: int = 0) -> int:
    value = attrs.get(attr_type)
    if value is None or len(value) < 4:
        return default
    return struct.unpack('>I', value[:4])[0]


def _be64(attrs: Dict[int, bytes], attr_type: int, default: int = 0) -> int:
    value = attrs.get(attr_type)
    if value is None or len(value) < 8:
        return default
    return struct.unpack('>Q', value[:8])[0]


def parse_table(family: int, attrs: Dict[int, bytes]) -> Table:
    return Table(
        name=_str(attrs, NFTA_TABLE_NAME),
        family=family,
        flags=_be32(attrs, NFTA_TABLE_FLAGS),
        handle=_be64(attrs, NFTA_TABLE_HANDLE),
        use=_be32(attrs, NFTA_TABLE_USE),
        userdata=attrs.get(NFTA_TABLE_USERDATA, b''),
    )


def parse_chain(family: int, attrs: Dict[int, bytes], table: Optional[Table] = None) -> Chain:
    if table is None:
        table = Table(name=_str(attrs, NFTA_CHAIN_TABLE), family=family)

    hooknum = 0
    priority = 0
    if NFTA_CHAIN_HOOK in attrs:
        hook = parse_nlattrs(attrs[NFTA_CHAIN_HOOK])
        hooknum = _be32(hook, NFTA_HOOK_HOOKNUM)
        if NFTA_HOOK_PRIORITY in hook:
            priority = struct.unpack('>i', hook[NFTA_HOOK_PRIORITY][:4])[0]

    policy = None
    if NFTA_CHAIN_POLICY in attrs:
        policy = _be32(attrs, NFTA_CHAIN_POLICY)

    return Chain(
        name=_str(attrs, NFTA_CHAIN_NAME),
        table=table,
        hooknum=hooknum,
        priority=priority,
        policy=policy,
        type=_str(attrs, NFTA_CHAIN_TYPE),
        handle=_be64(attrs, NFTA_CHAIN_HANDLE),
        userdata=attrs.get(NFTA_CHAIN_USERDATA, b''),
    )


def parse_expr(payload: bytes):
    attrs = parse_nlattrs(payload)
    name = _str(attrs, NFTA_EXPR_NAME)
    data = attrs.get(NFTA_EXPR_DATA, b'')
    if name == 'counter':
        counter = parse_nlattrs(data)
        return CounterExpr(
            packets=_be64(counter, NFTA_COUNTER_PACKETS),
            bytes=_be64(counter, NFTA_COUNTER_BYTES),
        )
    return UnknownExpr(name=name, data=data)


def parse_rule(attrs: Dict[int, bytes], table: Table, chain: Chain) -> Rule:
    exprs = []
    for attr_type, payload in iter_nlattrs(attrs.get(NFTA_RULE_EXPRESSIONS, b'')):
        if attr_type == NFTA_LIST_ELEM:
            exprs.append(parse_expr(payload))

    return Rule(
        table=table,
        chain=chain,
        exprs=exprs,
        userdata=attrs.get(NFTA_RULE_USERDATA, b''),
        handle=_be64(attrs, NFTA_RULE_HANDLE),
    )


def datatype_name(typ: int) -> str:
    if typ == NFT_DATA_VERDICT:
        return 'verdict'
    return set_datatype_name(typ)


def parse_set(attrs: Dict[int, bytes], table: Table) -> Set:
    flags = _be32(attrs, NFTA_SET_FLAGS)
    key_type = SetDatatype(
        name=datatype_name(_be32(attrs, NFTA_SET_KEY_TYPE)),
        bytes=_be32(attrs, NFTA_SET_KEY_LEN),
    )
    data_type = SetDatatype()
    if NFTA_SET_DATA_TYPE in attrs:
        data_type = SetDatatype(
            name=datatype_name(_be32(attrs, NFTA_SET_DATA_TYPE)),
            bytes=_be32(attrs, NFTA_SET_DATA_LEN),
        )

    return Set(
        name=_str(attrs, NFTA_SET_NAME),
        table=table,
        is_map=bool(flags & SET_F_MAP),
        key_type=key_type,
        data_type=data_type,
        flags=flags,
        handle=_be64(attrs, NFTA_SET_HANDLE),
        userdata=attrs.get(NFTA_SET_USERDATA, b''),
    )


def _data_value(attrs: Dict[int, bytes], attr_type: int) -> bytes:
    if attr_type not in attrs:
        return b''
    return parse_nlattrs(attrs[attr_type]).get(NFTA_DATA_VALUE, b'')


def parse_set_elements(attrs: Dict[int, bytes]) -> List[SetElement]:
    elements = []
    for attr_type, payload in iter_nlattrs(attrs.get(NFTA_SET_ELEM_LIST_ELEMENTS, b'')):
        if attr_type != NFTA_LIST_ELEM:
            continue
        elem = parse_nlattrs(payload)
        elements.append(SetElement(
            key=_data_value(elem, NFTA_SET_ELEM_KEY),
            data=_data_value(elem, NFTA_SET_ELEM_DATA),
            flags=_be32(elem, NFTA_SET_ELEM_FLAGS),
            userdata=elem.get(NFTA_SET_ELEM_USERDATA, b''),
        ))
    return elements


def parse_obj(attrs: Dict[int, bytes], table: Table) -> Obj:
    name = _str(attrs, NFTA_OBJ_NAME)
    obj_type = _be32(attrs, NFTA_OBJ_TYPE)
    data = attrs.get(NFTA_OBJ_DATA, b'')
    if obj_type == OBJECT_COUNTER:
        counter = parse_nlattrs(data)
        return CounterObj(
            name=name,
            table=table,
            packets=_be64(counter, NFTA_COUNTER_PACKETS),
            bytes=_be64(counter, NFTA_COUNTER_BYTES),
        )
    return UnknownObj(name=name, table=table, type=obj_type, data=data)


class NFTablesQuery:
    """
    Query the nftables ruleset using nfnetlink via C library.

    Can be used with context manager or explicit open()/close():
        with NFTablesQuery() as nft:
            tables = nft.list_tables()

    One instance owns one socket and is not safe for concurrent use.
    """

    def __init__(self):
        self.sock = -1

    def open(self) -> 'NFTablesQuery':
        lib = load_lib()
        sock = lib.nl_create_socket()
        if sock < 0:
            raise NFTablesError(-sock, f"Failed to create netfilter netlink socket: {os.strerror(-sock)}")
        self.sock = sock
        return self

    def close(self) -> None:
        if self.sock >= 0:
            load_lib().nl_close_socket(self.sock)
            self.sock = -1

    def __enter__(self):
        """Context manager entry - create socket"""
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb): #@UnusedVariable
        """Context manager exit - close socket"""
        self.close()
        return False

    def _dump(self, msg: int, family: int = TABLE_FAMILY_UNSPEC,
              attrs: bytes = b'') -> List[Tuple[int, int, Dict[int, bytes]]]:
        if self.sock < 0:
            raise RuntimeError("NFTablesQuery is not open")

        lib = load_lib()
        name = NFT_MSG_NAMES.get(msg, str(msg))
        seq = ffi.new("unsigned int*")
        msg_type = (NFNL_SUBSYS_NFTABLES << 8) | msg

        rc = lib.nl_send_request(self.sock, msg_type, NLM_F_REQUEST | NLM_F_DUMP,
                                 family, attrs, len(attrs), seq)
        if rc < 0:
            raise NFTablesError(-rc, f"Failed to send NFT_MSG_{name} request: {os.strerror(-rc)}")

        error = ffi.new("int*")
        response = lib.nl_receive_response(self.sock, seq[0], error)
        if response == ffi.NULL:
            code = -error[0] if error[0] else errno.EIO
            raise NFTablesError(code, f"NFT_MSG_{name} failed: {os.strerror(code)}")

        try:
            data = bytes(ffi.buffer(response.data, response.length))
        finally:
            lib.nl_free_response(response)

        return list(iter_nlmsgs(data))

    def list_tables(self) -> List[Table]:
        return [
            parse_table(family, attrs)
            for msg_type, family, attrs in self._dump(NFT_MSG_GETTABLE)
            if msg_type == NFT_MSG_NEWTABLE
        ]

    def list_chains(self) -> List[Chain]:
        return [
            parse_chain(family, attrs)
            for msg_type, family, attrs in self._dump(NFT_MSG_GETCHAIN)
            if msg_type == NFT_MSG_NEWCHAIN
        ]

    def get_objects(self, table: Table) -> List[Obj]:
        request = nla_string(NFTA_OBJ_TABLE, table.name)
        return [
            parse_obj(attrs, table)
            for msg_type, _family, attrs in self._dump(NFT_MSG_GETOBJ, table.family, request)
            if msg_type == NFT_MSG_NEWOBJ and _str(attrs, NFTA_OBJ_TABLE) == table.name
        ]

    def get_rules(self, table: Table, chain: Chain) -> List[Rule]:
        request = nla_string(NFTA_RULE_TABLE, table.name) + nla_string(NFTA_RULE_CHAIN, chain.name)
        return [
            parse_rule(attrs, table, chain)
            for msg_type, _family, attrs in self._dump(NFT_MSG_GETRULE, table.family, request)
            if msg_type == NFT_MSG_NEWRULE
            and _str(attrs, NFTA_RULE_TABLE) == table.name
            and _str(attrs, NFTA_RULE_CHAIN) == chain.name
        ]

    def get_sets(self, table: Table) -> List[Set]:
        request = nla_string(NFTA_SET_TABLE, table.name)
        return [
            parse_set(attrs, table)
            for msg_type, _family, attrs in self._dump(NFT_MSG_GETSET, table.family, request)
            if msg_type == NFT_MSG_NEWSET and _str(attrs, NFTA_SET_TABLE) == table.name
        ]

    def get_set_elements(self, s: Set) -> List[SetElement]:
        request = (nla_string(NFTA_SET_ELEM_LIST_TABLE, s.table.name)
                   + nla_string(NFTA_SET_ELEM_LIST_SET, s.name))
        elements = []
        for msg_type, _family, attrs in self._dump(NFT_MSG_GETSETELEM, s.table.family, request):
            if msg_type == NFT_MSG_NEWSETELEM:
                elements.extend(parse_set_elements(attrs))
        return elements

    def get_ruleset(self) -> List[Dict[str, Any]]:
        """
        Query the whole ruleset.

        Returns:
            List of tables, each with its chains (and their rules), named
            counters and sets, with comments decoded from user data
        """
        tables = []
        chains = self.list_chains()
        for table in self.list_tables():
            tables.append(describe_table(self, table, [
                c for c in chains
                if c.table.name == table.name and c.table.family == table.family
            ]))
        return tables


def _comment(data: bytes, interpret: udata.AttrUnmarshalFunc, info: Dict[str, Any]) -> None:
    """Store the comment (or the decode error) from user data in info."""
    if not data:
        return
    try:
        comment = udata.find_comment(data, interpret)
    except udata.UnmarshalError as e:
        info['comment_error'] = str(e)
        return
    if comment:
        info['comment'] = comment


def describe_rule(rule: Rule) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        'handle': rule.handle,
        'expressions': [
            'counter' if isinstance(e, CounterExpr) else e.name for e in rule.exprs
        ],
    }
    counter = rule_counter(rule)
    if counter is not None:
        info['counter'] = {'packets': counter.packets, 'bytes': counter.bytes}
    _comment(rule.userdata, udata.unmarshal_rule_attr, info)
    return info


def describe_chain(nft: NFTablesQuery, chain: Chain) -> Dict[str, Any]:
    table = chain.table
    info: Dict[str, Any] = {
        'name': chain.name,
        'handle': chain.handle,
    }
    # Only base chains carry a type and hook
    if chain.type:
        info['type'] = chain.type
        info['hook'] = hook_string(table.family, chain.hooknum)
        info['priority'] = chain.priority
        info['policy'] = chain_policy_string(chain.policy)
    _comment(chain.userdata, udata.unmarshal_chain_attr, info)

    try:
        info['rules'] = [describe_rule(r) for r in nft.get_rules(table, chain)]
    except (NFTablesError, ValueError) as e:
        info['rules_error'] = str(e)
    return info


def describe_set(nft: NFTablesQuery, s: Set) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        'name': s.name,
        'handle': s.handle,
        'ismap': s.is_map,
        'keytype': s.key_type.name,
        'datatype': s.data_type.name if s.is_map else '',
        'flags': s.flags,
    }
    _comment(s.userdata, udata.unmarshal_set_attr, info)

    try:
        elements = nft.get_set_elements(s)
    except (NFTablesError, ValueError) as e:
        info['elements_error'] = str(e)
        return info

    info['elements'] = []
    for el in elements:
        el_info: Dict[str, Any] = {'key': el.key.hex()}
        if el.data:
            el_info['data'] = el.data.hex()
        if el.flags:
            el_info['flags'] = el.flags
        _comment(el.userdata, udata.unmarshal_set_elem_attr, el_info)
        info['elements'].append(el_info)
    return info


def describe_table(nft: NFTablesQuery, table: Table, chains: List[Chain]) -> Dict[str, Any]:
    info: Dict[str, Any] = {
        'family': table_family_string(table.family),
        'name': table.name,
        'handle': table.handle,
        'flags': table_flag_mask_string(table.flags),
    }
    _comment(table.userdata, udata.unmarshal_table_attr, info)

    info['chains'] = [describe_chain(nft, c) for c in chains]

    try:
        objs = nft.get_objects(table)
    except (NFTablesError, ValueError) as e:
        info['objects_error'] = str(e)
    else:
        info['counters'] = [
            {'name': o.name, 'packets': o.packets, 'bytes': o.bytes}
            for o in objs if isinstance(o, CounterObj)
        ]

    try:
        sets = nft.get_sets(table)
    except (NFTablesError, ValueError) as e:
        info['sets_error'] = str(e)
    else:
        info['sets'] = [describe_set(nft, s) for s in sets]

    return info


def print_summary(tables: List[Dict[str, Any]]) -> None:
    print(f"\nTotal tables: {len(tables)}\n")
    for table in tables:
        flags = f" [{table['flags']}]" if table['flags'] else ""
        print(f"table {table['family']} {table['name']}{flags}")

        for chain in table['chains']:
            parts = [f"  chain {chain['name']}"]
            if 'hook' in chain:
                parts.append(f"{chain['type']} hook {chain['hook']} priority {chain['priority']} policy {chain['policy']}")
            rules = chain.get('rules', [])
            parts.append(f"({len(rules)} rules)")
            print(" ".join(parts))
            for rule in rules:
                if 'comment' not in rule:
                    continue
                counter = rule.get('counter')
                stats = f"packets {counter['packets']} bytes {counter['bytes']}" if counter else "no counter"
                print(f"    \"{rule['comment']}\": {stats}")

        for counter in table.get('counters', []):
            print(f"  counter {counter['name']}: packets {counter['packets']} bytes {counter['bytes']}")

        for s in table.get('sets', []):
            kind = 'map' if s['ismap'] else 'set'
            types = f"{s['keytype']} : {s['datatype']}" if s['ismap'] else s['keytype']
            count = len(s.get('elements', []))
            print(f"  {kind} {s['name']} type {types} ({count} elements)")


def main():
    """Main entry point for the command."""
    import argparse

    parser = argparse.ArgumentParser(description='nftables Ruleset Query Tool')
    parser.add_argument('--summary', action='store_true',
                        help='Show human-readable summary')
    parser.add_argument('--compact', '-c', action='store_true',
                        help='Compact JSON output (default: pretty-print)')
    args = parser.parse_args()

    try:
        with NFTablesQuery() as nft:
            tables = nft.get_ruleset()

        if args.summary:
            print_summary(tables)
        elif args.compact:
            print(json.dumps(tables, separators=(',', ':')))
        else:
            print(json.dumps(tables, indent=2))
        return 0

    except (PermissionError, NFTablesError) as e:
        if e.errno in (errno.EPERM, errno.EACCES):
            print("Error: This tool requires root privileges (sudo)", file=sys.stderr)
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
