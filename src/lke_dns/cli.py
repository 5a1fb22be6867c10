#!/usr/bin/env python3
"""lke-dns - Node Pool DNS Synchronization

Keeps the apex A/AAAA records of a Linode DNS zone in step with the public
addresses of the nodes in an LKE node pool. Every poll the node pool is
observed, the addresses are turned into a canonical snapshot, and the zone is
reconciled with the smallest possible set of record deletions and creations.
Records with other names or other types are never touched.

Command line flags:
    --cluster-id ID            LKE cluster ID
    --cluster-pool-id ID       Node pool ID within the cluster
    --domain-id ID             Linode DNS domain (zone) ID
    --interval SECONDS         Poll interval in watch mode
    --config PATH              YAML config file (overrides CONFIG_PATH)
    --once                     Run a single sync and exit
    --dry-run                  Log planned changes without applying them
    -v, --verbose              Enable debug logging

Environment variables:

    Linode API:
        LINODE_TOKEN                    Personal access token (required)
        LINODE_URL                      API base URL (default: https://api.linode.com/v4)
        LINODE_REQUEST_TIMEOUT_SECONDS  Per-request transport timeout (default: 30)

    Targets (flags take precedence, then environment, then config file):
        LKE_CLUSTER_ID         LKE cluster ID
        LKE_CLUSTER_POOL_ID    Node pool ID
        LINODE_DOMAIN_ID       DNS domain ID whose apex records are managed

    Runtime:
        SYNC_MODE              "once" or "watch" (polling loop) (default: watch)
        POLL_INTERVAL_SECONDS  Poll interval in watch mode (default: 300)
        DRY_RUN                Log the reconcile plan only (default: false)
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)
        CONFIG_PATH            Optional YAML config file
                               (default: /config/lke-dns.yaml)
                               Example config file:
                                 cluster_id: 12345
                                 cluster_pool_id: 67890
                                 domain_id: 424242
                                 poll_interval_seconds: 300
"""

from __future__ import annotations

import argparse
import ipaddress
import logging
import os
import signal
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import FrameType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

import requests
import yaml

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_LINODE_URL = "https://api.linode.com/v4"
DEFAULT_CONFIG_PATH = "/config/lke-dns.yaml"
DEFAULT_POLL_INTERVAL_SECONDS = 300
MIN_POLL_INTERVAL_SECONDS = 5
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
RECORDS_PAGE_SIZE = 500
USER_AGENT = "lke-dns/0.1.0"

# The zone apex is addressed by an empty record name.
APEX_NAME = ""

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Errors
# =============================================================================


class LkeDNSError(Exception):
    """Base class for lke-dns errors."""


class FatalConfigError(LkeDNSError):
    """Required configuration is missing or invalid; the loop must not start."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ProviderError(LkeDNSError):
    """A provider API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientFetchError(LkeDNSError):
    """Node or address state could not be read; the cycle is skipped."""


class TransientMutationError(LkeDNSError):
    """Zone records could not be read or changed; the pass is abandoned."""


class SyncCancelled(LkeDNSError):
    """Shutdown was requested while a cycle was in progress."""


# =============================================================================
# Enums
# =============================================================================


class RecordType(str, Enum):
    """Address record types managed at the zone apex."""

    A = "A"
    AAAA = "AAAA"

    @property
    def ip_version(self) -> int:
        return 4 if self is RecordType.A else 6


class TickOutcome(Enum):
    """Result of a single control loop cycle."""

    OBSERVE_FAILED = "observe_failed"
    UNCHANGED = "unchanged"
    RECONCILED = "reconciled"
    RECONCILE_FAILED = "reconcile_failed"
    DRY_RUN = "dry_run"
    CANCELLED = "cancelled"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class NodeRef:
    """A member of an LKE node pool."""

    node_id: str
    instance_id: int
    status: str = ""


@dataclass(frozen=True)
class SlaacAddress:
    address: str
    public: bool


@dataclass(frozen=True)
class NodeAddresses:
    """Addresses assigned to a single node's compute instance."""

    ipv4_public: Tuple[str, ...] = ()
    ipv6_slaac: Optional[SlaacAddress] = None


@dataclass(frozen=True)
class ZoneRecord:
    """A record as it exists in the remote zone."""

    id: int
    type: str
    name: str
    target: str

    @property
    def is_apex(self) -> bool:
        return self.name == APEX_NAME


@dataclass(frozen=True)
class AddressSnapshot:
    """Canonical set of node addresses observed in one cycle.

    Both sequences are always deduplicated and sorted, so two snapshots of the
    same address set have identical fingerprints.
    """

    ipv4: Tuple[str, ...] = ()
    ipv6: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Invalid values for the family are dropped with a warning; the rest
        # are kept in compressed form.
        object.__setattr__(self, "ipv4", tuple(sorted(set(_normalize_addresses(self.ipv4, 4)))))
        object.__setattr__(self, "ipv6", tuple(sorted(set(_normalize_addresses(self.ipv6, 6)))))

    @classmethod
    def from_addresses(cls, ipv4: Iterable[str], ipv6: Iterable[str]) -> "AddressSnapshot":
        """Build a snapshot from raw observed addresses."""
        return cls(ipv4=tuple(ipv4), ipv6=tuple(ipv6))

    @property
    def fingerprint(self) -> str:
        return ",".join(self.ipv4) + "," + ",".join(self.ipv6)

    def addresses_for(self, record_type: RecordType) -> Tuple[str, ...]:
        return self.ipv4 if record_type is RecordType.A else self.ipv6


@dataclass(frozen=True)
class DesiredRecord:
    """An apex address record that should be created."""

    type: RecordType
    target: str
    name: str = APEX_NAME


@dataclass
class ReconcilePlan:
    """Deletions and creations needed to converge a zone on a snapshot."""

    deletes: List[ZoneRecord] = field(default_factory=list)
    creates: List[DesiredRecord] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.deletes or self.creates)

    def summary(self) -> str:
        parts = [f"-{r.type} {r.target}" for r in self.deletes]
        parts.extend(f"+{r.type.value} {r.target}" for r in self.creates)
        return ", ".join(parts) if parts else "no changes"


@dataclass(frozen=True)
class SyncConfig:
    """Validated process configuration."""

    cluster_id: int
    cluster_pool_id: int
    domain_id: int
    token: str = field(repr=False)
    api_url: str = DEFAULT_LINODE_URL
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    sync_mode: str = "watch"
    dry_run: bool = False


# =============================================================================
# Provider Interfaces
# =============================================================================


class ClusterProvider(ABC):
    """Abstract source of cluster membership and node addresses."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def list_cluster_nodes(self, cluster_id: int, pool_id: int) -> List[NodeRef]:
        """List the member nodes of a cluster node pool."""
        pass

    @abstractmethod
    def get_node_addresses(self, node: NodeRef) -> NodeAddresses:
        """Get the addresses assigned to a node."""
        pass


class DNSProvider(ABC):
    """Abstract base class for DNS zone providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def list_zone_records(self, zone_id: int) -> List[ZoneRecord]:
        """List every record in the zone."""
        pass

    @abstractmethod
    def delete_zone_record(self, zone_id: int, record_id: int) -> None:
        """Delete a record. Raises ProviderError on failure."""
        pass

    @abstractmethod
    def create_zone_record(
        self, zone_id: int, record_type: RecordType, name: str, target: str
    ) -> ZoneRecord:
        """Create a record. Raises ProviderError on failure."""
        pass


# =============================================================================
# Linode Implementations
# =============================================================================


class LinodeClient:
    """Thin requests wrapper around the Linode API v4."""

    def __init__(
        self,
        token: str,
        url: str = DEFAULT_LINODE_URL,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ):
        self._url = url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            }
        )

    def test_connection(self) -> None:
        """Check that the API is reachable and the token is accepted."""
        self.get("/profile")
        logger.info("Linode API connection successful")

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: Dict[str, Any]) -> Any:
        return self._request("POST", path, json=payload)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            reason = _api_error_reason(e.response) or str(e)
            raise ProviderError(f"{method} {path} failed: {reason}", status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{method} {path} returned invalid JSON: {e}") from e


class LinodeClusterProvider(ClusterProvider):
    """Reads LKE node pool membership and instance addresses."""

    def __init__(self, client: LinodeClient):
        self._client = client

    @property
    def name(self) -> str:
        return "Linode LKE"

    def list_cluster_nodes(self, cluster_id: int, pool_id: int) -> List[NodeRef]:
        data = self._client.get(f"/lke/clusters/{cluster_id}/pools/{pool_id}")
        members = data.get("nodes") if isinstance(data, dict) else None
        if not isinstance(members, list):
            raise ProviderError(
                f"Unexpected node pool response for cluster {cluster_id} pool {pool_id}"
            )

        nodes: List[NodeRef] = []
        for item in members:
            instance_id = item.get("instance_id") if isinstance(item, dict) else None
            # A member without an instance cannot be resolved to addresses, and
            # skipping it would shrink the snapshot.
            if not isinstance(instance_id, int) or isinstance(instance_id, bool):
                raise ProviderError(f"Node pool member has no instance: {item}")
            nodes.append(
                NodeRef(
                    node_id=str(item.get("id") or ""),
                    instance_id=instance_id,
                    status=str(item.get("status") or ""),
                )
            )
        return nodes

    def get_node_addresses(self, node: NodeRef) -> NodeAddresses:
        data = self._client.get(f"/linode/instances/{node.instance_id}/ips")
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected address response for instance {node.instance_id}")

        ipv4 = data.get("ipv4") or {}
        public = ipv4.get("public") if isinstance(ipv4, dict) else None
        ipv4_public = tuple(
            str(entry["address"])
            for entry in public or []
            if isinstance(entry, dict) and entry.get("address")
        )

        ipv6 = data.get("ipv6") or {}
        slaac = ipv6.get("slaac") if isinstance(ipv6, dict) else None
        ipv6_slaac: Optional[SlaacAddress] = None
        if isinstance(slaac, dict) and slaac.get("address"):
            ipv6_slaac = SlaacAddress(
                address=str(slaac["address"]), public=bool(slaac.get("public"))
            )

        return NodeAddresses(ipv4_public=ipv4_public, ipv6_slaac=ipv6_slaac)


class LinodeDNSProvider(DNSProvider):
    """Linode DNS Manager provider implementation."""

    def __init__(self, client: LinodeClient):
        self._client = client

    @property
    def name(self) -> str:
        return "Linode DNS"

    def list_zone_records(self, zone_id: int) -> List[ZoneRecord]:
        records: List[ZoneRecord] = []
        page = 1
        while True:
            data = self._client.get(
                f"/domains/{zone_id}/records",
                params={"page": page, "page_size": RECORDS_PAGE_SIZE},
            )
            items = data.get("data") if isinstance(data, dict) else None
            if not isinstance(items, list):
                raise ProviderError(f"Unexpected record list response for domain {zone_id}")

            for item in items:
                record = _parse_zone_record(item)
                if record is None:
                    logger.warning(f"Skipping malformed record: {item}")
                    continue
                records.append(record)

            pages = data.get("pages")
            if not isinstance(pages, int) or page >= pages:
                break
            page += 1
        return records

    def delete_zone_record(self, zone_id: int, record_id: int) -> None:
        self._client.delete(f"/domains/{zone_id}/records/{record_id}")
        logger.debug(f"Deleted record {record_id} from domain {zone_id}")

    def create_zone_record(
        self, zone_id: int, record_type: RecordType, name: str, target: str
    ) -> ZoneRecord:
        payload = {"type": record_type.value, "name": name, "target": target}
        data = self._client.post(f"/domains/{zone_id}/records", payload)
        record = _parse_zone_record(data)
        if record is None:
            raise ProviderError(f"Unexpected create response for domain {zone_id}: {data}")
        logger.debug(f"Created record {record.id} in domain {zone_id}")
        return record


# =============================================================================
# Utility Functions
# =============================================================================


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _api_error_reason(response: Optional[requests.Response]) -> str:
    """Extract the error reasons from a Linode API error body."""
    if response is None:
        return ""
    try:
        data = response.json()
    except ValueError:
        return ""
    errors = data.get("errors") if isinstance(data, dict) else None
    if not isinstance(errors, list):
        return ""
    reasons = [str(e["reason"]) for e in errors if isinstance(e, dict) and e.get("reason")]
    return "; ".join(reasons)


def _parse_zone_record(item: Any) -> Optional[ZoneRecord]:
    if not isinstance(item, dict):
        return None
    record_id = item.get("id")
    record_type = item.get("type")
    if not isinstance(record_id, int) or not isinstance(record_type, str):
        return None
    return ZoneRecord(
        id=record_id,
        type=record_type.upper(),
        name=str(item.get("name") or ""),
        target=str(item.get("target") or ""),
    )


def _normalize_address(value: Any, version: int) -> Optional[str]:
    """Return the compressed form of an IP address of the given version."""
    if not isinstance(value, str):
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if address.version != version:
        return None
    return address.compressed


def _normalize_addresses(values: Iterable[Any], version: int) -> List[str]:
    normalized: List[str] = []
    for value in values:
        address = _normalize_address(value, version)
        if address is None:
            logger.warning(f"Ignoring invalid IPv{version} address: {value!r}")
            continue
        normalized.append(address)
    return normalized


def _normalize_target(target: str) -> str:
    """Normalize a record target for comparison; unparseable targets are kept verbatim."""
    try:
        return ipaddress.ip_address(target.strip()).compressed
    except ValueError:
        return target


def _check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise SyncCancelled("Shutdown requested")


# =============================================================================
# IP Observer
# =============================================================================


class IPObserver:
    """Collects the public addresses of every node in a pool."""

    def __init__(self, provider: ClusterProvider):
        self.provider = provider

    def observe(
        self,
        cluster_id: int,
        pool_id: int,
        cancel: Optional[threading.Event] = None,
    ) -> AddressSnapshot:
        """Return a canonical snapshot of the pool's public addresses.

        Any provider failure aborts the whole observation; a partial snapshot
        is never returned.
        """
        try:
            nodes = self.provider.list_cluster_nodes(cluster_id, pool_id)
        except ProviderError as e:
            raise TransientFetchError(
                f"Failed to list nodes of cluster {cluster_id} pool {pool_id}: {e}"
            ) from e

        ipv4: List[str] = []
        ipv6: List[str] = []
        for node in nodes:
            _check_cancelled(cancel)
            try:
                addresses = self.provider.get_node_addresses(node)
            except ProviderError as e:
                raise TransientFetchError(
                    f"Failed to get addresses of instance {node.instance_id}: {e}"
                ) from e
            logger.debug(
                f"Node {node.node_id} (instance {node.instance_id}, status {node.status or 'unknown'})"
            )

            if not addresses.ipv4_public:
                logger.debug(f"Instance {node.instance_id} has no public IPv4 address")
            ipv4.extend(addresses.ipv4_public)

            slaac = addresses.ipv6_slaac
            if slaac is not None and slaac.public:
                ipv6.append(slaac.address)
            else:
                logger.debug(f"Instance {node.instance_id} has no public IPv6 SLAAC address")

        snapshot = AddressSnapshot.from_addresses(ipv4, ipv6)
        logger.debug(
            f"Observed {len(nodes)} node(s): "
            f"{len(snapshot.ipv4)} IPv4, {len(snapshot.ipv6)} IPv6 address(es)"
        )
        return snapshot


# =============================================================================
# Reconciler
# =============================================================================


def plan_changes(records: Iterable[ZoneRecord], desired: AddressSnapshot) -> ReconcilePlan:
    """Compute the minimal plan that makes the apex address records match desired.

    Only apex records of type A and AAAA are candidates. A candidate whose
    target is desired is kept; every other candidate is deleted, and every
    desired address without a candidate is created.
    """
    records = list(records)
    plan = ReconcilePlan()

    for record_type in (RecordType.A, RecordType.AAAA):
        wanted = desired.addresses_for(record_type)
        wanted_set = set(wanted)
        present: Set[str] = set()

        for record in records:
            if record.type != record_type.value or not record.is_apex:
                continue
            target = _normalize_target(record.target)
            if target in wanted_set:
                present.add(target)
            else:
                plan.deletes.append(record)

        for address in wanted:
            if address not in present:
                plan.creates.append(DesiredRecord(type=record_type, target=address))

    return plan


class Reconciler:
    """Converges a zone's apex address records on a snapshot."""

    def __init__(self, dns_provider: DNSProvider):
        self.dns_provider = dns_provider

    def plan(self, zone_id: int, desired: AddressSnapshot) -> ReconcilePlan:
        try:
            records = self.dns_provider.list_zone_records(zone_id)
        except ProviderError as e:
            raise TransientMutationError(f"Failed to list records of domain {zone_id}: {e}") from e
        return plan_changes(records, desired)

    def apply(
        self,
        zone_id: int,
        plan: ReconcilePlan,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Apply a plan, deletions first.

        The first failure aborts the rest of the plan. Whatever was already
        applied stays applied; the next pass finishes the job.
        """
        for record in plan.deletes:
            _check_cancelled(cancel)
            try:
                self.dns_provider.delete_zone_record(zone_id, record.id)
            except ProviderError as e:
                raise TransientMutationError(
                    f"Failed to delete {record.type} record {record.target} (id {record.id}): {e}"
                ) from e
            logger.info(f"Deleted {record.type} record {record.target} (id {record.id})")

        for desired in plan.creates:
            _check_cancelled(cancel)
            try:
                created = self.dns_provider.create_zone_record(
                    zone_id, desired.type, desired.name, desired.target
                )
            except ProviderError as e:
                raise TransientMutationError(
                    f"Failed to create {desired.type.value} record {desired.target}: {e}"
                ) from e
            logger.info(f"Added {desired.type.value} record {desired.target} (id {created.id})")

    def reconcile(
        self,
        zone_id: int,
        desired: AddressSnapshot,
        cancel: Optional[threading.Event] = None,
    ) -> ReconcilePlan:
        """List the zone, plan, and apply. Returns the applied plan."""
        plan = self.plan(zone_id, desired)
        if plan.has_changes():
            self.apply(zone_id, plan, cancel)
        return plan


# =============================================================================
# Core Syncer
# =============================================================================


class NodeDNSSyncer:
    def __init__(
        self,
        *,
        observer: IPObserver,
        reconciler: Reconciler,
        cluster_id: int,
        cluster_pool_id: int,
        domain_id: int,
        poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS,
        dry_run: bool = False,
    ):
        self.observer = observer
        self.reconciler = reconciler
        self.cluster_id = cluster_id
        self.cluster_pool_id = cluster_pool_id
        self.domain_id = domain_id
        self.poll_interval_seconds = poll_interval_seconds
        self.dry_run = dry_run
        # Fingerprint of the last snapshot that was fully applied. Empty until
        # the first successful pass, so the first tick always reconciles.
        self.last_fingerprint = ""
        self.last_success_at: Optional[float] = None

    def tick(
        self,
        now: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TickOutcome:
        """Run one observe/compare/reconcile cycle."""
        now = time.time() if now is None else now

        try:
            _check_cancelled(cancel)
            snapshot = self.observer.observe(self.cluster_id, self.cluster_pool_id, cancel)
        except SyncCancelled:
            logger.info("Sync cancelled during observation")
            return TickOutcome.CANCELLED
        except TransientFetchError as e:
            logger.error(f"Skipping cycle: {e}")
            return TickOutcome.OBSERVE_FAILED

        fingerprint = snapshot.fingerprint
        logger.info(f"Node addresses: {fingerprint}")
        if fingerprint == self.last_fingerprint:
            logger.debug(
                f"No address changes since last sync "
                f"({now - (self.last_success_at or now):.0f}s ago)"
            )
            return TickOutcome.UNCHANGED

        if self.dry_run:
            try:
                plan = self.reconciler.plan(self.domain_id, snapshot)
            except TransientMutationError as e:
                logger.error(f"Dry run failed: {e}")
                return TickOutcome.RECONCILE_FAILED
            logger.info(f"[dry-run] Domain {self.domain_id}: {plan.summary()}")
            return TickOutcome.DRY_RUN

        try:
            plan = self.reconciler.reconcile(self.domain_id, snapshot, cancel)
        except SyncCancelled:
            logger.info("Sync cancelled during reconciliation")
            return TickOutcome.CANCELLED
        except TransientMutationError as e:
            logger.error(f"Reconciliation failed, will retry next cycle: {e}")
            return TickOutcome.RECONCILE_FAILED

        self.last_fingerprint = fingerprint
        self.last_success_at = now
        if plan.has_changes():
            logger.info(
                f"Domain {self.domain_id} updated: "
                f"{len(plan.deletes)} deleted, {len(plan.creates)} added"
            )
        else:
            logger.info(f"Domain {self.domain_id} already in sync")
        return TickOutcome.RECONCILED

    def run(self, cancel: threading.Event) -> None:
        """Tick immediately, then every poll interval until cancel is set."""
        while not cancel.is_set():
            self.tick(time.time(), cancel)
            if cancel.wait(self.poll_interval_seconds):
                break


# =============================================================================
# Config Loading
# =============================================================================


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lke-dns",
        description="Sync a Linode DNS zone's apex A/AAAA records with an LKE node pool",
    )
    parser.add_argument("--cluster-id", help="LKE cluster ID (env: LKE_CLUSTER_ID)")
    parser.add_argument("--cluster-pool-id", help="Node pool ID (env: LKE_CLUSTER_POOL_ID)")
    parser.add_argument("--domain-id", help="DNS domain ID (env: LINODE_DOMAIN_ID)")
    parser.add_argument(
        "--interval",
        help=f"Poll interval in seconds (env: POLL_INTERVAL_SECONDS, default: {DEFAULT_POLL_INTERVAL_SECONDS})",
    )
    parser.add_argument("--config", help=f"YAML config file (env: CONFIG_PATH, default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--once", action="store_true", help="Run a single sync and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log planned changes only")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load the optional YAML config file. A missing file yields no values."""
    path = Path(config_path)
    if not path.is_file():
        return {}
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise FatalConfigError([f"Failed to load config file {path}: {e}"]) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FatalConfigError([f"Config file {path} must contain a mapping"])
    logger.debug(f"Loaded config file {path}")
    return data


def _first_set(*values: Any) -> Any:
    for value in values:
        if value is not None and str(value).strip() != "":
            return value
    return None


def _parse_positive_int(value: Any, label: str, errors: List[str]) -> int:
    if value is None:
        errors.append(f"{label} is required")
        return 0
    if isinstance(value, bool):
        errors.append(f"{label} must be a positive integer, got {value!r}")
        return 0
    try:
        parsed = int(str(value).strip())
    except ValueError:
        errors.append(f"{label} must be a positive integer, got {value!r}")
        return 0
    if parsed <= 0:
        errors.append(f"{label} must be a positive integer, got {value!r}")
        return 0
    return parsed


def load_config(
    args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None
) -> SyncConfig:
    """Merge flags, environment and config file into a validated SyncConfig.

    Precedence is flag, then environment, then config file. Every problem is
    collected before FatalConfigError is raised.
    """
    env = os.environ if environ is None else environ
    config_path = args.config or env.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    file_values = load_config_file(config_path)

    errors: List[str] = []
    cluster_id = _parse_positive_int(
        _first_set(args.cluster_id, env.get("LKE_CLUSTER_ID"), file_values.get("cluster_id")),
        "Cluster ID (--cluster-id / LKE_CLUSTER_ID)",
        errors,
    )
    cluster_pool_id = _parse_positive_int(
        _first_set(
            args.cluster_pool_id,
            env.get("LKE_CLUSTER_POOL_ID"),
            file_values.get("cluster_pool_id"),
        ),
        "Cluster pool ID (--cluster-pool-id / LKE_CLUSTER_POOL_ID)",
        errors,
    )
    domain_id = _parse_positive_int(
        _first_set(args.domain_id, env.get("LINODE_DOMAIN_ID"), file_values.get("domain_id")),
        "Domain ID (--domain-id / LINODE_DOMAIN_ID)",
        errors,
    )

    token = env.get("LINODE_TOKEN", "").strip()
    if not token:
        errors.append("LINODE_TOKEN is not set, please ensure it is set")

    poll_interval = _parse_positive_int(
        _first_set(
            args.interval,
            env.get("POLL_INTERVAL_SECONDS"),
            file_values.get("poll_interval_seconds"),
            DEFAULT_POLL_INTERVAL_SECONDS,
        ),
        "Poll interval (--interval / POLL_INTERVAL_SECONDS)",
        errors,
    )
    if 0 < poll_interval < MIN_POLL_INTERVAL_SECONDS:
        errors.append(f"Poll interval must be at least {MIN_POLL_INTERVAL_SECONDS}s")

    raw_timeout = env.get("LINODE_REQUEST_TIMEOUT_SECONDS", "")
    request_timeout = DEFAULT_REQUEST_TIMEOUT_SECONDS
    if raw_timeout.strip():
        try:
            request_timeout = float(raw_timeout)
        except ValueError:
            errors.append(f"LINODE_REQUEST_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}")
        else:
            if request_timeout <= 0:
                errors.append("LINODE_REQUEST_TIMEOUT_SECONDS must be positive")

    sync_mode = "once" if args.once else env.get("SYNC_MODE", "watch").lower().strip()
    if sync_mode not in ("once", "watch"):
        errors.append(f"Invalid SYNC_MODE: {sync_mode}. Use 'once' or 'watch'")

    if errors:
        raise FatalConfigError(errors)

    return SyncConfig(
        cluster_id=cluster_id,
        cluster_pool_id=cluster_pool_id,
        domain_id=domain_id,
        token=token,
        api_url=env.get("LINODE_URL", "").strip() or DEFAULT_LINODE_URL,
        request_timeout_seconds=request_timeout,
        poll_interval_seconds=poll_interval,
        sync_mode=sync_mode,
        dry_run=args.dry_run or _parse_bool(env.get("DRY_RUN"), default=False),
    )


# =============================================================================
# Main
# =============================================================================


def _install_signal_handlers(shutdown_event: threading.Event) -> None:
    def handler(signum: int, frame: Optional[FrameType]) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args)
    except FatalConfigError as e:
        for error in e.errors:
            logger.error(error)
        logger.error("Configuration validation failed")
        sys.exit(1)

    client = LinodeClient(config.token, config.api_url, config.request_timeout_seconds)
    cluster_provider = LinodeClusterProvider(client)
    dns_provider = LinodeDNSProvider(client)

    logger.info(f"lke-dns: {cluster_provider.name} -> {dns_provider.name}")
    logger.info(f"Cluster: {config.cluster_id}, pool: {config.cluster_pool_id}")
    logger.info(f"Domain: {config.domain_id} (apex A/AAAA records)")
    logger.info(f"Sync mode: {config.sync_mode}")
    if config.sync_mode == "watch":
        logger.info(f"Poll interval: {config.poll_interval_seconds}s")
    if config.dry_run:
        logger.info("Dry run: planned changes are logged, not applied")

    try:
        client.test_connection()
    except ProviderError as e:
        if e.status_code in (401, 403):
            logger.error(f"Linode API rejected LINODE_TOKEN: {e}")
            sys.exit(1)
        logger.warning(f"Linode API check failed, continuing: {e}")

    syncer = NodeDNSSyncer(
        observer=IPObserver(cluster_provider),
        reconciler=Reconciler(dns_provider),
        cluster_id=config.cluster_id,
        cluster_pool_id=config.cluster_pool_id,
        domain_id=config.domain_id,
        poll_interval_seconds=config.poll_interval_seconds,
        dry_run=config.dry_run,
    )

    try:
        if config.sync_mode == "once":
            outcome = syncer.tick(time.time())
            if outcome not in (TickOutcome.RECONCILED, TickOutcome.UNCHANGED, TickOutcome.DRY_RUN):
                sys.exit(1)
            return

        shutdown_event = threading.Event()
        _install_signal_handlers(shutdown_event)
        syncer.run(shutdown_event)
        logger.info("Shutting down gracefully...")

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
