#!/usr/bin/env python3
"""
Tests for nf_tables netlink decoding and the nftsnap-dump tool

These run without a netlink socket: replies are built in Python and the
query methods are fed through a patched _dump().
"""

import errno
import json
import struct
import sys

import pytest

from nftsnap import nft_info, udata
from nftsnap.nft_info import (
    NFT_MSG_GETCHAIN,
    NFT_MSG_GETOBJ,
    NFT_MSG_GETRULE,
    NFT_MSG_GETSET,
    NFT_MSG_GETSETELEM,
    NFT_MSG_GETTABLE,
    NFT_MSG_NEWCHAIN,
    NFT_MSG_NEWOBJ,
    NFT_MSG_NEWRULE,
    NFT_MSG_NEWSET,
    NFT_MSG_NEWSETELEM,
    NFT_MSG_NEWTABLE,
    NFTablesError,
    NFTablesQuery,
    nla_pack,
    nla_string,
)
from nftsnap.objects import (
    CHAIN_HOOK_INPUT,
    CHAIN_POLICY_DROP,
    OBJECT_COUNTER,
    SET_F_MAP,
    TABLE_F_DORMANT,
    TABLE_FAMILY_INET,
    TABLE_FAMILY_IPV4,
    Chain,
    CounterExpr,
    CounterObj,
    Rule,
    Set,
    SetDatatype,
    SetElement,
    Table,
    UnknownExpr,
    UnknownObj,
)


def be32(value):
    return struct.pack('>I', value)


def be64(value):
    return struct.pack('>Q', value)


def nlmsg(msg, family, attrs=b''):
    """One nf_tables netlink message as the kernel sends it"""
    body = nft_info.NFGENMSG.pack(family, 0, 0) + attrs
    length = nft_info.NLMSG_HDR.size + len(body)
    header = nft_info.NLMSG_HDR.pack(length, (nft_info.NFNL_SUBSYS_NFTABLES << 8) | msg, 2, 1, 0)
    return header + body + b'\x00' * (nft_info.nla_align(length) - length)


def table_attrs(name, flags=0, userdata=b''):
    attrs = (nla_string(nft_info.NFTA_TABLE_NAME, name)
             + nla_pack(nft_info.NFTA_TABLE_FLAGS, be32(flags))
             + nla_pack(nft_info.NFTA_TABLE_HANDLE, be64(7)))
    if userdata:
        attrs += nla_pack(nft_info.NFTA_TABLE_USERDATA, userdata)
    return attrs


def counter_expr(packets, nbytes):
    data = (nla_pack(nft_info.NFTA_COUNTER_BYTES, be64(nbytes))
            + nla_pack(nft_info.NFTA_COUNTER_PACKETS, be64(packets)))
    return nla_pack(nft_info.NFTA_LIST_ELEM,
                    nla_string(nft_info.NFTA_EXPR_NAME, 'counter')
                    + nla_pack(nft_info.NFTA_EXPR_DATA | nft_info.NLA_F_NESTED, data))


def named_expr(name):
    return nla_pack(nft_info.NFTA_LIST_ELEM, nla_string(nft_info.NFTA_EXPR_NAME, name))


def rule_attrs(table, chain, exprs=b'', userdata=b'', handle=3):
    attrs = (nla_string(nft_info.NFTA_RULE_TABLE, table)
             + nla_string(nft_info.NFTA_RULE_CHAIN, chain)
             + nla_pack(nft_info.NFTA_RULE_HANDLE, be64(handle))
             + nla_pack(nft_info.NFTA_RULE_EXPRESSIONS | nft_info.NLA_F_NESTED, exprs))
    if userdata:
        attrs += nla_pack(nft_info.NFTA_RULE_USERDATA, userdata)
    return attrs


def parsed(data):
    return list(nft_info.iter_nlmsgs(data))


# ============================================================================
# Attribute / Message Framing Tests
# ============================================================================

class TestFraming:

    def test_nla_pack_pads_to_four(self):
        packed = nla_pack(1, b'abcde')
        assert len(packed) == 12
        assert struct.unpack('=HH', packed[:4]) == (9, 1)
        assert packed[9:] == b'\x00\x00\x00'

    def test_nla_string_nul_terminated(self):
        assert nla_string(2, 'ab') == struct.pack('=HH', 7, 2) + b'ab\x00\x00'

    def test_iter_nlattrs_masks_flags(self):
        data = nla_pack(4 | nft_info.NLA_F_NESTED, b'xx') + nla_pack(5, b'')
        assert list(nft_info.iter_nlattrs(data)) == [(4, b'xx'), (5, b'')]

    def test_iter_nlattrs_malformed(self):
        with pytest.raises(ValueError, match='malformed netlink attribute'):
            list(nft_info.iter_nlattrs(struct.pack('=HH', 40, 1) + b'abcd'))

    def test_iter_nlattrs_short_length(self):
        with pytest.raises(ValueError):
            list(nft_info.iter_nlattrs(struct.pack('=HH', 2, 1)))

    def test_parse_nlattrs_last_wins(self):
        data = nla_pack(1, b'a') + nla_pack(1, b'b')
        assert nft_info.parse_nlattrs(data) == {1: b'b'}

    def test_iter_nlmsgs(self):
        data = nlmsg(NFT_MSG_NEWTABLE, TABLE_FAMILY_INET, nla_string(1, 'a')) + \
            nlmsg(NFT_MSG_NEWTABLE, TABLE_FAMILY_IPV4, nla_string(1, 'bb'))

        got = parsed(data)

        assert [(m, f) for m, f, _ in got] == [
            (NFT_MSG_NEWTABLE, TABLE_FAMILY_INET),
            (NFT_MSG_NEWTABLE, TABLE_FAMILY_IPV4),
        ]
        assert got[1][2] == {1: b'bb\x00'}

    def test_iter_nlmsgs_truncated(self):
        data = nlmsg(NFT_MSG_NEWTABLE, TABLE_FAMILY_INET, nla_string(1, 'abc'))
        with pytest.raises(ValueError, match='malformed netlink message'):
            parsed(data[:-4])

    def test_missing_integer_uses_default(self):
        assert nft_info._be32({}, 1) == 0
        assert nft_info._be32({1: b'\x01'}, 1, default=9) == 9
        assert nft_info._be64({1: be64(2 ** 40)}, 1) == 2 ** 40


# ============================================================================
# Object Parser Tests
# ============================================================================

class TestParsers:

    def test_parse_table(self):
        attrs = nft_info.parse_nlattrs(table_attrs('filter', TABLE_F_DORMANT, b'\x00\x02x\x00'))

        table = nft_info.parse_table(TABLE_FAMILY_INET, attrs)

        assert table == Table(name='filter', family=TABLE_FAMILY_INET, flags=TABLE_F_DORMANT,
                              handle=7, userdata=b'\x00\x02x\x00')

    def test_parse_base_chain(self):
        hook = (nla_pack(nft_info.NFTA_HOOK_HOOKNUM, be32(CHAIN_HOOK_INPUT))
                + nla_pack(nft_info.NFTA_HOOK_PRIORITY, struct.pack('>i', -150)))
        attrs = nft_info.parse_nlattrs(
            nla_string(nft_info.NFTA_CHAIN_TABLE, 'filter')
            + nla_string(nft_info.NFTA_CHAIN_NAME, 'input')
            + nla_pack(nft_info.NFTA_CHAIN_HOOK | nft_info.NLA_F_NESTED, hook)
            + nla_pack(nft_info.NFTA_CHAIN_POLICY, be32(CHAIN_POLICY_DROP))
            + nla_string(nft_info.NFTA_CHAIN_TYPE, 'filter'))

        chain = nft_info.parse_chain(TABLE_FAMILY_INET, attrs)

        assert chain.name == 'input'
        assert chain.table == Table(name='filter', family=TABLE_FAMILY_INET)
        assert chain.hooknum == CHAIN_HOOK_INPUT
        assert chain.priority == -150
        assert chain.policy == CHAIN_POLICY_DROP
        assert chain.type == 'filter'

    def test_parse_regular_chain(self):
        """No hook means hook 0 and no policy"""
        attrs = nft_info.parse_nlattrs(nla_string(nft_info.NFTA_CHAIN_TABLE, 't')
                                       + nla_string(nft_info.NFTA_CHAIN_NAME, 'c'))

        chain = nft_info.parse_chain(TABLE_FAMILY_INET, attrs)

        assert (chain.hooknum, chain.priority, chain.policy, chain.type) == (0, 0, None, '')

    def test_parse_rule(self):
        table = Table(name='filter', family=TABLE_FAMILY_INET)
        chain = Chain(name='input', table=table)
        userdata = udata.marshal_comment(udata.RULE_COMMENT, 'ssh')
        attrs = nft_info.parse_nlattrs(rule_attrs(
            'filter', 'input', named_expr('payload') + counter_expr(10, 600), userdata, handle=12))

        rule = nft_info.parse_rule(attrs, table, chain)

        assert rule == Rule(table=table, chain=chain,
                            exprs=[UnknownExpr(name='payload'), CounterExpr(packets=10, bytes=600)],
                            userdata=userdata, handle=12)

    def test_parse_set(self):
        table = Table(name='filter', family=TABLE_FAMILY_INET)
        attrs = nft_info.parse_nlattrs(
            nla_string(nft_info.NFTA_SET_TABLE, 'filter')
            + nla_string(nft_info.NFTA_SET_NAME, 'm')
            + nla_pack(nft_info.NFTA_SET_FLAGS, be32(SET_F_MAP))
            + nla_pack(nft_info.NFTA_SET_KEY_TYPE, be32((7 << 6) | 13))
            + nla_pack(nft_info.NFTA_SET_KEY_LEN, be32(8))
            + nla_pack(nft_info.NFTA_SET_DATA_TYPE, be32(nft_info.NFT_DATA_VERDICT))
            + nla_pack(nft_info.NFTA_SET_DATA_LEN, be32(16)))

        s = nft_info.parse_set(attrs, table)

        assert s.name == 'm'
        assert s.is_map
        assert s.key_type == SetDatatype(name='ipv4_addr . inet_service', bytes=8)
        assert s.data_type == SetDatatype(name='verdict', bytes=16)

    def test_parse_plain_set(self):
        table = Table(name='filter', family=TABLE_FAMILY_INET)
        attrs = nft_info.parse_nlattrs(nla_string(nft_info.NFTA_SET_NAME, 's')
                                       + nla_pack(nft_info.NFTA_SET_KEY_TYPE, be32(7)))

        s = nft_info.parse_set(attrs, table)

        assert not s.is_map
        assert s.key_type.name == 'ipv4_addr'
        assert s.data_type == SetDatatype()

    def test_parse_set_elements(self):
        key = nla_pack(nft_info.NFTA_DATA_VALUE, b'\x0a\x00\x00\x01')
        elem = (nla_pack(nft_info.NFTA_SET_ELEM_KEY | nft_info.NLA_F_NESTED, key)
                + nla_pack(nft_info.NFTA_SET_ELEM_FLAGS, be32(1)))
        elements = nla_pack(nft_info.NFTA_LIST_ELEM, elem) * 2
        attrs = nft_info.parse_nlattrs(
            nla_pack(nft_info.NFTA_SET_ELEM_LIST_ELEMENTS | nft_info.NLA_F_NESTED, elements))

        got = nft_info.parse_set_elements(attrs)

        assert got == [SetElement(key=b'\x0a\x00\x00\x01', flags=1)] * 2

    def test_parse_counter_obj(self):
        table = Table(name='filter', family=TABLE_FAMILY_INET)
        data = (nla_pack(nft_info.NFTA_COUNTER_BYTES, be64(4711))
                + nla_pack(nft_info.NFTA_COUNTER_PACKETS, be64(42)))
        attrs = nft_info.parse_nlattrs(
            nla_string(nft_info.NFTA_OBJ_NAME, 'counter1')
            + nla_pack(nft_info.NFTA_OBJ_TYPE, be32(OBJECT_COUNTER))
            + nla_pack(nft_info.NFTA_OBJ_DATA | nft_info.NLA_F_NESTED, data))

        assert nft_info.parse_obj(attrs, table) == CounterObj(
            name='counter1', table=table, packets=42, bytes=4711)

    def test_parse_other_obj(self):
        table = Table(name='filter', family=TABLE_FAMILY_INET)
        attrs = nft_info.parse_nlattrs(nla_string(nft_info.NFTA_OBJ_NAME, 'q')
                                       + nla_pack(nft_info.NFTA_OBJ_TYPE, be32(2)))

        obj = nft_info.parse_obj(attrs, table)

        assert isinstance(obj, UnknownObj)
        assert obj.type == 2


# ============================================================================
# NFTablesQuery Tests
# ============================================================================

class FakeDump:
    """Replays canned replies per message type and records the requests"""

    def __init__(self, replies=None, errors=None):
        self.replies = replies or {}
        self.errors = errors or {}
        self.requests = []

    def __call__(self, msg, family=0, attrs=b''):
        self.requests.append((msg, family, nft_info.parse_nlattrs(attrs)))
        if msg in self.errors:
            raise self.errors[msg]
        return parsed(b''.join(self.replies.get(msg, [])))


def make_query(monkeypatch, **kwargs):
    nft = NFTablesQuery()
    dump = FakeDump(**kwargs)
    monkeypatch.setattr(nft, '_dump', dump)
    return nft, dump


class TestNFTablesQuery:

    def test_dump_requires_open(self):
        with pytest.raises(RuntimeError, match='not open'):
            NFTablesQuery()._dump(NFT_MSG_GETTABLE)

    def test_close_without_open(self):
        """Closing an unopened query is a no-op"""
        nft = NFTablesQuery()
        nft.close()
        assert nft.sock == -1

    def test_list_tables(self, monkeypatch):
        nft, _ = make_query(monkeypatch, replies={NFT_MSG_GETTABLE: [
            nlmsg(NFT_MSG_NEWTABLE, TABLE_FAMILY_INET, table_attrs('t1')),
            nlmsg(NFT_MSG_NEWTABLE, TABLE_FAMILY_IPV4, table_attrs('t2', TABLE_F_DORMANT)),
        ]})

        tables = nft.list_tables()

        assert [(t.name, t.family, t.flags) for t in tables] == [
            ('t1', TABLE_FAMILY_INET, 0),
            ('t2', TABLE_FAMILY_IPV4, TABLE_F_DORMANT),
        ]

    def test_list_chains(self, monkeypatch):
        nft, _ = make_query(monkeypatch, replies={NFT_MSG_GETCHAIN: [
            nlmsg(NFT_MSG_NEWCHAIN, TABLE_FAMILY_INET,
                  nla_string(nft_info.NFTA_CHAIN_TABLE, 't1') + nla_string(nft_info.NFTA_CHAIN_NAME, 'c1')),
        ]})

        chains = nft.list_chains()

        assert [(c.table.name, c.table.family, c.name) for c in chains] == [('t1', TABLE_FAMILY_INET, 'c1')]

    def test_get_rules_request_and_filter(self, monkeypatch):
        """Rules from other chains in the reply are dropped"""
        table = Table(name='t1', family=TABLE_FAMILY_INET)
        chain = Chain(name='c1', table=table)
        nft, dump = make_query(monkeypatch, replies={NFT_MSG_GETRULE: [
            nlmsg(NFT_MSG_NEWRULE, TABLE_FAMILY_INET, rule_attrs('t1', 'c1', counter_expr(1, 2))),
            nlmsg(NFT_MSG_NEWRULE, TABLE_FAMILY_INET, rule_attrs('t1', 'other')),
        ]})

        rules = nft.get_rules(table, chain)

        assert len(rules) == 1
        assert rules[0].chain is chain
        assert rules[0].exprs == [CounterExpr(packets=1, bytes=2)]
        msg, family, attrs = dump.requests[0]
        assert (msg, family) == (NFT_MSG_GETRULE, TABLE_FAMILY_INET)
        assert attrs[nft_info.NFTA_RULE_TABLE] == b't1\x00'
        assert attrs[nft_info.NFTA_RULE_CHAIN] == b'c1\x00'

    def test_get_objects_filters_table(self, monkeypatch):
        table = Table(name='t1', family=TABLE_FAMILY_INET)

        def obj(tname, name):
            return nlmsg(NFT_MSG_NEWOBJ, TABLE_FAMILY_INET,
                         nla_string(nft_info.NFTA_OBJ_TABLE, tname)
                         + nla_string(nft_info.NFTA_OBJ_NAME, name)
                         + nla_pack(nft_info.NFTA_OBJ_TYPE, be32(OBJECT_COUNTER)))

        nft, _ = make_query(monkeypatch, replies={NFT_MSG_GETOBJ: [obj('t1', 'a'), obj('t2', 'b')]})

        assert [o.name for o in nft.get_objects(table)] == ['a']

    def test_get_sets(self, monkeypatch):
        table = Table(name='t1', family=TABLE_FAMILY_INET)
        nft, _ = make_query(monkeypatch, replies={NFT_MSG_GETSET: [
            nlmsg(NFT_MSG_NEWSET, TABLE_FAMILY_INET,
                  nla_string(nft_info.NFTA_SET_TABLE, 't1') + nla_string(nft_info.NFTA_SET_NAME, 's1')),
        ]})

        sets = nft.get_sets(table)

        assert [s.name for s in sets] == ['s1']
        assert sets[0].table is table

    def test_get_set_elements(self, monkeypatch):
        table = Table(name='t1', family=TABLE_FAMILY_INET)
        elem = nla_pack(nft_info.NFTA_LIST_ELEM, nla_pack(
            nft_info.NFTA_SET_ELEM_KEY, nla_pack(nft_info.NFTA_DATA_VALUE, b'\x01')))
        nft, dump = make_query(monkeypatch, replies={NFT_MSG_GETSETELEM: [
            nlmsg(NFT_MSG_NEWSETELEM, TABLE_FAMILY_INET,
                  nla_pack(nft_info.NFTA_SET_ELEM_LIST_ELEMENTS, elem * 3)),
        ]})

        elements = nft.get_set_elements(Set(name='s1', table=table))

        assert len(elements) == 3
        assert dump.requests[0][2][nft_info.NFTA_SET_ELEM_LIST_SET] == b's1\x00'

    def test_errors_propagate(self, monkeypatch):
        nft, _ = make_query(monkeypatch, errors={NFT_MSG_GETTABLE: NFTablesError(errno.EPERM, 'denied')})
        with pytest.raises(NFTablesError):
            nft.list_tables()


# ============================================================================
# Ruleset Description Tests
# ============================================================================

class FakeQuery:
    """Object-level stand-in for NFTablesQuery"""

    def __init__(self, tables=(), chains=(), rules=None, objs=None, sets=None,
                 elements=None, errors=None):
        self.tables = list(tables)
        self.chains = list(chains)
        self.rules = rules or {}
        self.objs = objs or {}
        self.sets = sets or {}
        self.elements = elements or {}
        self.errors = errors or {}

    def _check(self, op):
        if op in self.errors:
            raise self.errors[op]

    def list_tables(self):
        return self.tables

    def list_chains(self):
        return self.chains

    def get_rules(self, table, chain):
        self._check('rules')
        return self.rules.get(chain.name, [])

    def get_objects(self, table):
        self._check('objects')
        return self.objs.get(table.name, [])

    def get_sets(self, table):
        self._check('sets')
        return self.sets.get(table.name, [])

    def get_set_elements(self, s):
        self._check('elements')
        return self.elements.get(s.name, [])

    get_ruleset = NFTablesQuery.get_ruleset

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def sample_query(**kwargs):
    table = Table(name='filter', family=TABLE_FAMILY_INET,
                  userdata=udata.marshal_comment(udata.TABLE_COMMENT, 'main'))
    other = Table(name='filter', family=TABLE_FAMILY_IPV4)
    base = Chain(name='input', table=table, hooknum=CHAIN_HOOK_INPUT, priority=0,
                 policy=CHAIN_POLICY_DROP, type='filter')
    regular = Chain(name='helper', table=table)
    return FakeQuery(
        tables=[table, other],
        chains=[base, regular],
        rules={'input': [
            Rule(table=table, chain=base, exprs=[CounterExpr(packets=3, bytes=180)],
                 userdata=udata.marshal_comment(udata.RULE_COMMENT, 'ssh'), handle=4),
            Rule(table=table, chain=base, exprs=[UnknownExpr('immediate')], handle=5),
            Rule(table=table, chain=base, userdata=b'\x00', handle=6),
        ]},
        objs={'filter': [CounterObj(name='c1', packets=1, bytes=2), UnknownObj(name='q')]},
        sets={'filter': [
            Set(name='allow', table=table, key_type=SetDatatype('ipv4_addr')),
            Set(name='ports', table=table, is_map=True, key_type=SetDatatype('inet_service'),
                data_type=SetDatatype('verdict')),
        ]},
        elements={'allow': [SetElement(key=b'\x0a\x00\x00\x01', userdata=udata.marshal_comment(
            udata.SET_ELEM_COMMENT, 'router'))]},
        **kwargs)


class TestDescribe:

    def test_ruleset_groups_chains_by_table(self):
        """Chains belong to the table with the same name and family"""
        tables = sample_query().get_ruleset()

        assert [(t['family'], t['name']) for t in tables] == [('inet', 'filter'), ('ip', 'filter')]
        assert [c['name'] for c in tables[0]['chains']] == ['input', 'helper']
        assert tables[1]['chains'] == []

    def test_table(self):
        table = sample_query().get_ruleset()[0]
        assert table['comment'] == 'main'
        assert table['flags'] == ''
        assert table['counters'] == [{'name': 'c1', 'packets': 1, 'bytes': 2}]

    def test_base_chain(self):
        chain = sample_query().get_ruleset()[0]['chains'][0]
        assert chain['hook'] == 'input'
        assert chain['policy'] == 'drop'
        assert chain['type'] == 'filter'

    def test_regular_chain_has_no_hook(self):
        chain = sample_query().get_ruleset()[0]['chains'][1]
        assert 'hook' not in chain
        assert chain['rules'] == []

    def test_rules(self):
        rules = sample_query().get_ruleset()[0]['chains'][0]['rules']

        assert rules[0] == {'handle': 4, 'expressions': ['counter'],
                            'counter': {'packets': 3, 'bytes': 180}, 'comment': 'ssh'}
        assert rules[1] == {'handle': 5, 'expressions': ['immediate']}
        assert 'comment_error' in rules[2]

    def test_sets(self):
        sets = sample_query().get_ruleset()[0]['sets']

        assert sets[0]['datatype'] == ''
        assert sets[0]['elements'] == [{'key': '0a000001', 'comment': 'router'}]
        assert sets[1]['ismap'] is True
        assert sets[1]['datatype'] == 'verdict'

    def test_errors_are_recorded(self):
        """Failing sub-queries are reported inline instead of aborting"""
        q = sample_query(errors={
            'rules': NFTablesError(errno.ENOENT, 'no rules'),
            'objects': NFTablesError(errno.ENOENT, 'no objects'),
            'elements': ValueError('bad reply'),
        })

        table = q.get_ruleset()[0]

        assert 'rules_error' in table['chains'][0]
        assert 'objects_error' in table and 'counters' not in table
        assert table['sets'][0]['elements_error'] == 'bad reply'

    def test_sets_error(self):
        table = sample_query(errors={'sets': NFTablesError(errno.EIO, 'io')}).get_ruleset()[0]
        assert 'sets_error' in table and 'sets' not in table

    def test_json_serialisable(self):
        json.dumps(sample_query().get_ruleset())

    def test_print_summary(self, capsys):
        nft_info.print_summary(sample_query().get_ruleset())

        out = capsys.readouterr().out
        assert 'Total tables: 2' in out
        assert 'table inet filter' in out
        assert 'chain input filter hook input priority 0 policy drop (3 rules)' in out
        assert '"ssh": packets 3 bytes 180' in out
        assert 'counter c1: packets 1 bytes 2' in out
        assert 'map ports type inet_service : verdict (0 elements)' in out
        assert 'set allow type ipv4_addr (1 elements)' in out


# ============================================================================
# nftsnap-dump Command Tests
# ============================================================================

class TestMain:

    def _run(self, monkeypatch, query, *argv):
        monkeypatch.setattr(nft_info, 'NFTablesQuery', lambda: query)
        monkeypatch.setattr(sys, 'argv', ['nftsnap-dump', *argv])
        return nft_info.main()

    def test_json(self, monkeypatch, capsys):
        assert self._run(monkeypatch, sample_query()) == 0
        tables = json.loads(capsys.readouterr().out)
        assert tables[0]['name'] == 'filter'

    def test_compact(self, monkeypatch, capsys):
        assert self._run(monkeypatch, sample_query(), '--compact') == 0
        out = capsys.readouterr().out
        assert out.count('\n') == 1
        assert ', ' not in out

    def test_summary(self, monkeypatch, capsys):
        assert self._run(monkeypatch, sample_query(), '--summary') == 0
        assert 'Total tables: 2' in capsys.readouterr().out

    def test_permission_error(self, monkeypatch, capsys):
        class Denied(FakeQuery):
            def __enter__(self):
                raise NFTablesError(errno.EPERM, 'Operation not permitted')

        assert self._run(monkeypatch, Denied()) == 1
        assert 'requires root privileges' in capsys.readouterr().err

    def test_other_netlink_error(self, monkeypatch, capsys):
        class Broken(FakeQuery):
            def list_tables(self):
                raise NFTablesError(errno.EIO, 'NFT_MSG_GETTABLE failed')

        assert self._run(monkeypatch, Broken()) == 1
        assert 'Error: ' in capsys.readouterr().err

    def test_interrupted(self, monkeypatch, capsys):
        class Interrupted(FakeQuery):
            def list_chains(self):
                raise KeyboardInterrupt

        assert self._run(monkeypatch, Interrupted()) == 130
        assert 'Interrupted' in capsys.readouterr().err
