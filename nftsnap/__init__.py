"""
nftsnap - nftables metrics exporter for Prometheus

A Python package that reads the live nftables ruleset over nfnetlink and
exposes tables, chains, sets, rule counters and named counters as
Prometheus metrics.

Modules:
    udata: nftables user data (comment) decoding
    labels: string labels for nftables enumerations
    objects: the nftables object model
    collector: the Prometheus collector
    nft_info: nf_tables netlink queries (nftsnap-dump)
    exporter: HTTP exporter (nftsnap-exporter)

Example:
    >>> from nftsnap.nft_info import NFTablesQuery
    >>> with NFTablesQuery() as nft:
    ...     tables = nft.list_tables()
"""

__version__ = "1.0.0"
__author__ = "Harry Coin"
__email__ = "hcoin@quietfountain.com"
__license__ = "MIT"

from . import objects
from . import udata
from . import labels
from . import collector
from . import nft_info

__all__ = [
    "objects",
    "udata",
    "labels",
    "collector",
    "nft_info",
    "__version__",
]
