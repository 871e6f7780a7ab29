"""
nftables object model.

Plain data holders for the kernel objects the netlink provider decodes:
tables, chains, rules (with their expressions), stateful objects, sets and
set elements. Numeric fields keep the kernel's values; turning them into
labels is the job of nftsnap.labels.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

# Table families (NFPROTO_*)
TABLE_FAMILY_UNSPEC = 0
TABLE_FAMILY_INET = 1
TABLE_FAMILY_IPV4 = 2
TABLE_FAMILY_ARP = 3
TABLE_FAMILY_NETDEV = 5
TABLE_FAMILY_BRIDGE = 7
TABLE_FAMILY_IPV6 = 10

# Table flags (NFT_TABLE_F_*)
TABLE_F_DORMANT = 0x1
TABLE_F_OWNER = 0x2
TABLE_F_PERSIST = 0x4

# Chain hooks for the ip, ip6 and inet families (NF_INET_*)
CHAIN_HOOK_PREROUTING = 0
CHAIN_HOOK_INPUT = 1
CHAIN_HOOK_FORWARD = 2
CHAIN_HOOK_OUTPUT = 3
CHAIN_HOOK_POSTROUTING = 4

# Chain hooks for the netdev family (NF_NETDEV_*)
CHAIN_HOOK_INGRESS = 0

# Chain policies (NF_DROP / NF_ACCEPT)
CHAIN_POLICY_DROP = 0
CHAIN_POLICY_ACCEPT = 1

# Set flags (NFT_SET_*)
SET_F_ANONYMOUS = 0x1
SET_F_CONSTANT = 0x2
SET_F_INTERVAL = 0x4
SET_F_MAP = 0x8
SET_F_TIMEOUT = 0x10
SET_F_EVAL = 0x20
SET_F_OBJECT = 0x40

# Stateful object types (NFT_OBJECT_*)
OBJECT_COUNTER = 1


@dataclass
class Table:
    name: str
    family: int = TABLE_FAMILY_UNSPEC
    flags: int = 0
    handle: int = 0
    use: int = 0
    userdata: bytes = b''


@dataclass
class Chain:
    """
    A chain within a table.

    hooknum is only meaningful for base chains and its interpretation
    depends on the owning table's family. A policy of None means the kernel
    reported no policy, which netfilter treats as accept.
    """
    name: str
    table: Table
    hooknum: int = 0
    priority: int = 0
    policy: Optional[int] = None
    type: str = ''
    handle: int = 0
    userdata: bytes = b''


@dataclass
class CounterExpr:
    packets: int = 0
    bytes: int = 0


@dataclass
class UnknownExpr:
    """Any rule expression other than a counter, kept undecoded."""
    name: str
    data: bytes = b''


Expr = Union[CounterExpr, UnknownExpr]


@dataclass
class Rule:
    table: Table
    chain: Chain
    exprs: List[Expr] = field(default_factory=list)
    userdata: bytes = b''
    handle: int = 0


@dataclass
class CounterObj:
    """A named counter object ("counter" statement in a table)."""
    name: str
    table: Optional[Table] = None
    packets: int = 0
    bytes: int = 0


@dataclass
class UnknownObj:
    name: str
    table: Optional[Table] = None
    type: int = 0
    data: bytes = b''


Obj = Union[CounterObj, UnknownObj]


@dataclass
class SetDatatype:
    name: str = ''
    bytes: int = 0


@dataclass
class Set:
    name: str
    table: Table
    is_map: bool = False
    key_type: SetDatatype = field(default_factory=SetDatatype)
    data_type: SetDatatype = field(default_factory=SetDatatype)
    flags: int = 0
    handle: int = 0
    userdata: bytes = b''


@dataclass
class SetElement:
    key: bytes = b''
    data: bytes = b''
    flags: int = 0
    userdata: bytes = b''
