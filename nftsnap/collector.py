"""
Prometheus collector for nftables state.

NFTCollector walks the live kernel object graph through an NFTConn provider
on every scrape and turns it into metric families. Tables, chains and sets
are exported as metadata series (value 1), rules and counter objects as
packet/byte counters. Objects left out by policy are counted per reason in
the ineligible_* counters, provider failures in collection_failures.

The provider is not safe for concurrent use, so a whole collection pass runs
under a lock.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from prometheus_client import Metric
from prometheus_client.core import GaugeMetricFamily

from . import udata
from .labels import (
    chain_policy_string,
    hook_string,
    rule_comment,
    rule_counter,
    table_family_string,
    table_flag_mask_string,
)
from .objects import Chain, CounterObj, Obj, Rule, Set, SetElement, Table

logger = logging.getLogger(__name__)

Filter = Callable[[str], bool]

# Ineligibility reasons
REASON_COMMENT_ERROR = 'comment-error'
REASON_NO_COMMENT = 'no-comment'
REASON_COMMENT_FILTER = 'comment-filter'
REASON_NO_COUNTER = 'no-counter'
REASON_NAME_FILTER = 'name-filter'
REASON_ELEMENTS_ERROR = 'elements-error'


class NFTConn(Protocol):
    """The kernel state provider. Implemented by nft_info.NFTablesQuery."""

    def list_tables(self) -> List[Table]: ...

    def list_chains(self) -> List[Chain]: ...

    def get_objects(self, table: Table) -> List[Obj]: ...

    def get_rules(self, table: Table, chain: Chain) -> List[Rule]: ...

    def get_sets(self, table: Table) -> List[Set]: ...

    def get_set_elements(self, s: Set) -> List[SetElement]: ...


@dataclass(frozen=True)
class MetricSpec:
    name: str
    documentation: str
    kind: str
    labels: Tuple[str, ...]


TABLE_METADATA = MetricSpec(
    'nftables_table_metadata', 'Metadata about each table. Value is always 1.',
    'gauge', ('family', 'table', 'flags'))
CHAIN_METADATA = MetricSpec(
    'nftables_chain_metadata', 'Metadata about each chain. Value is always 1.',
    'gauge', ('family', 'table', 'chain', 'hook', 'policy', 'priority'))
SET_METADATA = MetricSpec(
    'nftables_set_metadata', 'Metadata about each set. Value is always 1.',
    'gauge', ('family', 'table', 'set', 'ismap', 'keytype', 'datatype'))
CHAIN_RULE_COUNT = MetricSpec(
    'nftables_chain_rule_count', 'Total rule count in chain.',
    'gauge', ('family', 'table', 'chain'))
RULE_PACKET_COUNT = MetricSpec(
    'nftables_rule_packet_count', 'Number of packets matching the rule.',
    'counter', ('family', 'table', 'chain', 'comment'))
RULE_BYTE_COUNT = MetricSpec(
    'nftables_rule_byte_count', 'Number of bytes matching the rule.',
    'counter', ('family', 'table', 'chain', 'comment'))
COUNTER_PACKET_COUNT = MetricSpec(
    'nftables_counter_packet_count', 'Number of packets triggering the counter.',
    'counter', ('family', 'table', 'counter'))
COUNTER_BYTE_COUNT = MetricSpec(
    'nftables_counter_byte_count', 'Number of bytes triggering the counter.',
    'counter', ('family', 'table', 'counter'))
SET_SIZE = MetricSpec(
    'nftables_set_size', 'Number of elements in the set.',
    'gauge', ('family', 'table', 'set'))

COLLECTION_FAILURES = MetricSpec(
    'nftables_collection_failures', 'Collection failures while reading from nftables.',
    'counter', ())
INELIGIBLE_RULES = MetricSpec(
    'nftables_ineligible_rules', 'Number of rules that were not exported for some reason.',
    'counter', ('family', 'table', 'reason'))
INELIGIBLE_COUNTERS = MetricSpec(
    'nftables_ineligible_counters', 'Number of counters that were not exported for some reason.',
    'counter', ('family', 'table', 'reason'))
INELIGIBLE_SETS = MetricSpec(
    'nftables_ineligible_sets', 'Number of sets that were not exported for some reason.',
    'counter', ('family', 'table', 'reason'))

# Families rebuilt on every pass
METRIC_SPECS = (
    TABLE_METADATA,
    CHAIN_METADATA,
    SET_METADATA,
    CHAIN_RULE_COUNT,
    RULE_PACKET_COUNT,
    RULE_BYTE_COUNT,
    COUNTER_PACKET_COUNT,
    COUNTER_BYTE_COUNT,
    SET_SIZE,
)

# Families accumulated over the process lifetime
COUNTER_SPECS = (
    COLLECTION_FAILURES,
    INELIGIBLE_RULES,
    INELIGIBLE_COUNTERS,
    INELIGIBLE_SETS,
)


def _family(spec: MetricSpec, series: Iterable[Tuple[Tuple[str, ...], float]] = ()) -> Metric:
    """
    Build one family. Counter samples keep the family name as is, without
    the _total suffix CounterMetricFamily would add.
    """
    if spec.kind == 'counter':
        family = Metric(spec.name, spec.documentation, 'counter')
        for labels, value in series:
            family.add_sample(spec.name, dict(zip(spec.labels, labels)), value)
        return family
    family = GaugeMetricFamily(spec.name, spec.documentation, labels=spec.labels)
    for labels, value in series:
        family.add_metric(list(labels), value)
    return family


class Observations:
    """
    The samples emitted by one collection pass.

    Samples are keyed by label values, so emitting the same series twice
    keeps the last value.
    """

    def __init__(self):
        self._samples: Dict[str, Dict[Tuple[str, ...], float]] = OrderedDict(
            (spec.name, OrderedDict()) for spec in METRIC_SPECS)

    def emit(self, spec: MetricSpec, labels: Sequence[str], value: float) -> None:
        if len(labels) != len(spec.labels):
            raise ValueError(f"{spec.name}: expected {len(spec.labels)} label values, got {len(labels)}")
        series = self._samples[spec.name]
        key = tuple(labels)
        if key in series:
            logger.debug("Overwriting duplicate series %s%s", spec.name, key)
        series[key] = float(value)

    def get(self, spec: MetricSpec, labels: Sequence[str]) -> Optional[float]:
        return self._samples[spec.name].get(tuple(labels))

    def series(self, spec: MetricSpec) -> Dict[Tuple[str, ...], float]:
        return dict(self._samples[spec.name])

    def __len__(self) -> int:
        return sum(len(s) for s in self._samples.values())

    def families(self) -> List[Metric]:
        """Render the observations as prometheus_client metric families."""
        return [_family(spec, self._samples[spec.name].items()) for spec in METRIC_SPECS]


class CollectorCounters:
    """
    Process-lifetime failure and ineligibility counters.

    The collector that increments them also exports them, so a failure
    shows up in the scrape that caused it. collection_failures is exported
    from zero; labelled counters appear once first incremented.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Dict[Tuple[str, ...], float]] = OrderedDict(
            (spec.name, OrderedDict()) for spec in COUNTER_SPECS)
        self._values[COLLECTION_FAILURES.name][()] = 0.0

    def inc(self, spec: MetricSpec, labels: Sequence[str] = (), amount: float = 1.0) -> None:
        if len(labels) != len(spec.labels):
            raise ValueError(f"{spec.name}: expected {len(spec.labels)} label values, got {len(labels)}")
        key = tuple(labels)
        with self._lock:
            series = self._values[spec.name]
            series[key] = series.get(key, 0.0) + amount

    def get(self, spec: MetricSpec, labels: Sequence[str] = ()) -> float:
        with self._lock:
            return self._values[spec.name].get(tuple(labels), 0.0)

    def families(self) -> List[Metric]:
        with self._lock:
            snapshot = [(spec, list(self._values[spec.name].items())) for spec in COUNTER_SPECS]
        return [_family(spec, series) for spec, series in snapshot]


class NFTCollector:
    """
    Exports metadata and statistics about nftables through an NFTConn.

    Objects are exported if the matching filter returns True for their
    comment (rules) or name (counters, sets).
    """

    def __init__(self, conn: NFTConn, rule_comment_filter: Filter,
                 counter_name_filter: Filter, set_name_filter: Filter,
                 counters: Optional[CollectorCounters] = None):
        self.conn = conn
        self.rule_comment_filter = rule_comment_filter
        self.counter_name_filter = counter_name_filter
        self.set_name_filter = set_name_filter
        self.counters = counters if counters is not None else CollectorCounters()
        self._lock = threading.Lock()

    def describe(self):
        """Declare the metric families without touching the kernel."""
        return [_family(spec) for spec in METRIC_SPECS + COUNTER_SPECS]

    def collect(self):
        """prometheus_client entry point: one full collection pass."""
        families = self.collect_observations().families()
        # Counters are read after the pass so its failures are included
        return families + self.counters.families()

    def collect_observations(self) -> Observations:
        out = Observations()
        with self._lock:
            self._collect(out)
        return out

    def _collect(self, out: Observations) -> None:
        try:
            tables = self.conn.list_tables()
        except Exception as e:
            logger.error("Failed to list NF tables: %s", e)
            self.counters.inc(COLLECTION_FAILURES)
            return

        for table in tables:
            try:
                self._collect_table(out, table)
            except Exception as e:
                logger.error("%s (ignored)", e)
                self.counters.inc(COLLECTION_FAILURES)

        try:
            chains = self.conn.list_chains()
        except Exception as e:
            logger.error("Failed to list NF chains: %s", e)
            self.counters.inc(COLLECTION_FAILURES)
            return

        for chain in chains:
            try:
                self._collect_chain(out, chain)
            except Exception as e:
                logger.error("%s (ignored)", e)
                self.counters.inc(COLLECTION_FAILURES)

    def _collect_table(self, out: Observations, table: Table) -> None:
        """Export one table with its counter objects and sets."""
        family = table_family_string(table.family)
        out.emit(TABLE_METADATA, (family, table.name, table_flag_mask_string(table.flags)), 1)

        try:
            objs = self.conn.get_objects(table)
        except Exception as e:
            raise RuntimeError(f"listing objects for table {table.name!r}: {e}") from e

        for obj in objs:
            if not isinstance(obj, CounterObj):
                continue
            if not self.counter_name_filter(obj.name):
                logger.debug("Counter %s/%s excluded by name filter", table.name, obj.name)
                self.counters.inc(INELIGIBLE_COUNTERS, (family, table.name, REASON_COMMENT_FILTER))
                continue
            out.emit(COUNTER_PACKET_COUNT, (family, table.name, obj.name), obj.packets)
            out.emit(COUNTER_BYTE_COUNT, (family, table.name, obj.name), obj.bytes)

        try:
            sets = self.conn.get_sets(table)
        except Exception as e:
            raise RuntimeError(f"listing sets for table {table.name!r}: {e}") from e

        for s in sets:
            try:
                self._collect_set(out, family, table, s)
            except Exception as e:
                logger.error("%s (ignored)", e)
                self.counters.inc(COLLECTION_FAILURES)

    def _collect_set(self, out: Observations, family: str, table: Table, s: Set) -> None:
        if not self.set_name_filter(s.name):
            logger.debug("Set %s/%s excluded by name filter", table.name, s.name)
            self.counters.inc(INELIGIBLE_SETS, (family, table.name, REASON_NAME_FILTER))
            return

        is_map = '1' if s.is_map else '0'
        data_type = s.data_type.name if s.is_map else ''
        out.emit(SET_METADATA, (family, table.name, s.name, is_map, s.key_type.name, data_type), 1)

        try:
            elements = self.conn.get_set_elements(s)
        except Exception as e:
            self.counters.inc(INELIGIBLE_SETS, (family, table.name, REASON_ELEMENTS_ERROR))
            raise RuntimeError(f"getting elements for set {family}/{table.name}/{s.name}: {e}") from e

        out.emit(SET_SIZE, (family, table.name, s.name), len(elements))

    def _collect_chain(self, out: Observations, chain: Chain) -> None:
        """Export one chain, its rule count and its eligible rules."""
        table = chain.table
        family = table_family_string(table.family)
        out.emit(CHAIN_METADATA, (
            family,
            table.name,
            chain.name,
            hook_string(table.family, chain.hooknum),
            chain_policy_string(chain.policy),
            str(chain.priority),
        ), 1)

        try:
            rules = self.conn.get_rules(table, chain)
        except Exception as e:
            raise RuntimeError(f"listing rules of chain {table.name}:{chain.name}: {e}") from e

        out.emit(CHAIN_RULE_COUNT, (family, table.name, chain.name), len(rules))

        for rule in rules:
            self._collect_rule(out, family, table, chain, rule)

    def _collect_rule(self, out: Observations, family: str, table: Table,
                      chain: Chain, rule: Rule) -> None:
        counters = self.counters
        try:
            comment = rule_comment(rule)
        except udata.UnmarshalError as e:
            logger.debug("Rule %s:%s#%d has unreadable user data: %s",
                         table.name, chain.name, rule.handle, e)
            counters.inc(INELIGIBLE_RULES, (family, table.name, REASON_COMMENT_ERROR))
            return
        if not comment:
            counters.inc(INELIGIBLE_RULES, (family, table.name, REASON_NO_COMMENT))
            return
        if not self.rule_comment_filter(comment):
            counters.inc(INELIGIBLE_RULES, (family, table.name, REASON_COMMENT_FILTER))
            return

        counter = rule_counter(rule)
        if counter is None:
            counters.inc(INELIGIBLE_RULES, (family, table.name, REASON_NO_COUNTER))
            return

        labels = (family, table.name, chain.name, comment)
        out.emit(RULE_PACKET_COUNT, labels, counter.packets)
        out.emit(RULE_BYTE_COUNT, labels, counter.bytes)


def new_collector(conn: NFTConn, rule_comment_filter: Filter,
                  counter_name_filter: Filter,
                  set_name_filter: Filter) -> Tuple[NFTCollector, CollectorCounters]:
    """Create a collector together with the counters it maintains."""
    counters = CollectorCounters()
    collector = NFTCollector(conn, rule_comment_filter, counter_name_filter,
                             set_name_filter, counters=counters)
    return collector, counters
