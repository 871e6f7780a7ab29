"""
String labels for nftables enumerations.

Every mapper here is total: a value it knows becomes a fixed lowercase label,
anything else becomes "unknown(N)". Label values end up in metric label sets,
so they must stay stable across releases.
"""

from typing import List, Optional

from . import udata
from .objects import (
    CHAIN_HOOK_FORWARD,
    CHAIN_HOOK_INGRESS,
    CHAIN_HOOK_INPUT,
    CHAIN_HOOK_OUTPUT,
    CHAIN_HOOK_POSTROUTING,
    CHAIN_HOOK_PREROUTING,
    CHAIN_POLICY_ACCEPT,
    CHAIN_POLICY_DROP,
    TABLE_F_DORMANT,
    TABLE_F_OWNER,
    TABLE_F_PERSIST,
    TABLE_FAMILY_ARP,
    TABLE_FAMILY_BRIDGE,
    TABLE_FAMILY_INET,
    TABLE_FAMILY_IPV4,
    TABLE_FAMILY_IPV6,
    TABLE_FAMILY_NETDEV,
    CounterExpr,
    Rule,
)

TABLE_FAMILY_NAMES = {
    TABLE_FAMILY_INET: 'inet',
    TABLE_FAMILY_IPV4: 'ip',
    TABLE_FAMILY_IPV6: 'ip6',
    TABLE_FAMILY_ARP: 'arp',
    TABLE_FAMILY_NETDEV: 'netdev',
    TABLE_FAMILY_BRIDGE: 'bridge',
}

CHAIN_POLICY_NAMES = {
    CHAIN_POLICY_DROP: 'drop',
    CHAIN_POLICY_ACCEPT: 'accept',
}

INET_HOOK_NAMES = {
    CHAIN_HOOK_PREROUTING: 'prerouting',
    CHAIN_HOOK_INPUT: 'input',
    CHAIN_HOOK_FORWARD: 'forward',
    CHAIN_HOOK_OUTPUT: 'output',
    CHAIN_HOOK_POSTROUTING: 'postrouting',
}

NETDEV_HOOK_NAMES = {
    CHAIN_HOOK_INGRESS: 'ingress',
}

# Hook numbering is per family
HOOK_NAMES_BY_FAMILY = {
    TABLE_FAMILY_INET: INET_HOOK_NAMES,
    TABLE_FAMILY_IPV4: INET_HOOK_NAMES,
    TABLE_FAMILY_IPV6: INET_HOOK_NAMES,
    TABLE_FAMILY_NETDEV: NETDEV_HOOK_NAMES,
}

TABLE_FLAG_NAMES = {
    TABLE_F_DORMANT: 'dormant',
    TABLE_F_OWNER: 'owner',
    TABLE_F_PERSIST: 'persist',
}

TABLE_FLAG_BITS = 32

# nft datatype ids, as found in NFTA_SET_KEY_TYPE / NFTA_SET_DATA_TYPE
SET_DATATYPE_NAMES = {
    0: 'invalid', 1: 'verdict', 2: 'nf_proto', 3: 'bitmask', 4: 'integer',
    5: 'string', 6: 'll_addr', 7: 'ipv4_addr', 8: 'ipv6_addr',
    9: 'ether_addr', 10: 'ether_type', 11: 'arp_op', 12: 'inet_proto',
    13: 'inet_service', 14: 'icmp_type', 15: 'tcp_flag', 16: 'dccp_pkttype',
    17: 'mh_type', 18: 'time', 19: 'mark', 20: 'iface_index',
    21: 'iface_type', 22: 'realm', 23: 'classid', 24: 'uid', 25: 'gid',
    26: 'ct_state', 27: 'ct_dir', 28: 'ct_status', 29: 'icmpv6_type',
    30: 'ct_label', 31: 'pkt_type', 32: 'icmp_code', 33: 'icmpv6_code',
    34: 'icmpx_code', 35: 'devgroup', 36: 'dscp', 37: 'ecn',
    38: 'fib_addrtype', 39: 'boolean', 40: 'ct_event', 41: 'ifname',
    42: 'igmp_type', 43: 'time', 44: 'hour', 45: 'day', 46: 'cgroupsv2',
}

# Concatenated types pack one 6-bit datatype id per component
SET_DATATYPE_BITS = 6


def unknown(value: int) -> str:
    return f'unknown({value})'


def table_family_string(family: int) -> str:
    return TABLE_FAMILY_NAMES.get(family, unknown(family))


def chain_policy_string(policy: Optional[int]) -> str:
    """Policy label. No policy at all means accept, like netfilter does."""
    if policy is None:
        return 'accept'
    return CHAIN_POLICY_NAMES.get(policy, unknown(policy))


def hook_string(family: int, hooknum: int) -> str:
    """Hook label. The meaning of hooknum depends on the table family."""
    names = HOOK_NAMES_BY_FAMILY.get(family, {})
    return names.get(hooknum, unknown(hooknum))


def table_flag_string(flag: int) -> str:
    """
    Label for a single table flag bit.

    Unknown flags render as the bit index rather than the bit value.
    """
    if flag == 0:
        return 'none'
    if flag in TABLE_FLAG_NAMES:
        return TABLE_FLAG_NAMES[flag]
    return unknown((flag & -flag).bit_length() - 1)


def table_flag_mask_string(mask: int) -> str:
    """Comma-separated list of table flags, lowest bit first. Empty for 0."""
    flags: List[str] = []
    for bit in range(TABLE_FLAG_BITS):
        m = 1 << bit
        if mask & m:
            flags.append(table_flag_string(m))
    return ','.join(flags)


def set_datatype_name(typ: int) -> str:
    """
    nft name of a set key/data datatype.

    Concatenations ("ipv4_addr . inet_service") are encoded by shifting each
    component id in from the right, so the first component is in the highest
    occupied 6-bit group.
    """
    if typ in SET_DATATYPE_NAMES:
        return SET_DATATYPE_NAMES[typ]

    mask = (1 << SET_DATATYPE_BITS) - 1
    parts = []
    rest = typ
    while rest:
        part = rest & mask
        if part not in SET_DATATYPE_NAMES:
            return unknown(typ)
        parts.append(SET_DATATYPE_NAMES[part])
        rest >>= SET_DATATYPE_BITS
    return ' . '.join(reversed(parts))


def rule_counter(rule: Rule) -> Optional[CounterExpr]:
    """Return the rule's counter expression, or None."""
    for expr in rule.exprs:
        if isinstance(expr, CounterExpr):
            return expr
    return None


def rule_comment(rule: Rule) -> str:
    """
    Return the rule's comment, or '' if it has none.

    Raises udata.UnmarshalError if the user data is malformed.
    """
    return udata.find_comment(rule.userdata, udata.unmarshal_rule_attr)
