"""
Hosts Keeper - Domain blocking through the system hosts file.

This package edits the hosts file without disturbing unrelated lines,
keeps a bounded history of restorable snapshots, writes atomically and
follows external edits of the file.
"""

__version__ = "0.1.0"
__author__ = "Hosts Keeper Team"

from hosts_keeper.exceptions import (
    HostsKeeperError,
    IoError,
    ParseError,
    NotFoundError,
    ValidationError,
    AtomicRenameError,
    PrivilegeError,
    NetworkError,
    DnsFlushError,
)
from hosts_keeper.enums import (
    LineKind,
    LogFormat,
    LogLevel,
    Theme,
)
from hosts_keeper.models import (
    LineRecord,
    BlockedDomain,
    Statistics,
    HistoryEntry,
    DeleteResult,
)
from hosts_keeper.config import (
    Configuration,
    DEFAULT_HISTORY_ENTRIES,
    MAX_HISTORY_ENTRIES,
    MIN_HISTORY_ENTRIES,
)
from hosts_keeper.parser import (
    parse,
    serialize,
    decode_hosts,
    encode_hosts,
)
from hosts_keeper.domain_validator import (
    HostnameValidator,
    is_block_address,
    is_blocking_pair,
    is_local_hostname,
)
from hosts_keeper.domain_store import DomainStore
from hosts_keeper.commit import CommitEngine, atomic_write_bytes
from hosts_keeper.history import HistoryManager
from hosts_keeper.config_store import ConfigStore
from hosts_keeper.watcher import HostsFileWatcher
from hosts_keeper.blocklist_source import BlocklistSource
from hosts_keeper.audit_logger import AuditLogger, LogEntry
from hosts_keeper.app_state import AppState

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "HostsKeeperError",
    "IoError",
    "ParseError",
    "NotFoundError",
    "ValidationError",
    "AtomicRenameError",
    "PrivilegeError",
    "NetworkError",
    "DnsFlushError",
    # Enums
    "LineKind",
    "LogFormat",
    "LogLevel",
    "Theme",
    # Models
    "LineRecord",
    "BlockedDomain",
    "Statistics",
    "HistoryEntry",
    "DeleteResult",
    # Configuration
    "Configuration",
    "DEFAULT_HISTORY_ENTRIES",
    "MAX_HISTORY_ENTRIES",
    "MIN_HISTORY_ENTRIES",
    "ConfigStore",
    # Grammar
    "parse",
    "serialize",
    "decode_hosts",
    "encode_hosts",
    # Validation
    "HostnameValidator",
    "is_block_address",
    "is_blocking_pair",
    "is_local_hostname",
    # Components
    "DomainStore",
    "CommitEngine",
    "atomic_write_bytes",
    "HistoryManager",
    "HostsFileWatcher",
    "BlocklistSource",
    "AppState",
    # Logging
    "AuditLogger",
    "LogEntry",
]
