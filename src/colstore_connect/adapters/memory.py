"""In-process reference store.

Keeps tables, indexes and permissions in memory, shared by every connection
that names the same cluster (``memory://<cluster>``). It enforces the same
store-side rules as a real cluster: schema changes and deletes need a
disabled table, data operations need an enabled one, and MOB-enabled
families keep oversized values in a separate object store.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence

from colstore_connect.adapters.base import (
    AccessControlHandle,
    AdminHandle,
    BaseAdapter,
    IndexAdminHandle,
    ScannerHandle,
    TableHandle,
)
from colstore_connect.core.mob import LargeObjectPolicy, StorageClass
from colstore_connect.exceptions import (
    AlreadyExists,
    IndexNotFound,
    NotFound,
    StoreConnectionError,
    TableOfflineError,
    TableOnlineError,
)
from colstore_connect.models.access import UserPermission, parse_actions
from colstore_connect.models.capabilities import StoreCapabilities
from colstore_connect.models.data import Cell, ColumnRef, Put, Row
from colstore_connect.models.index import IndexSpecification
from colstore_connect.models.scan import ScanRequest
from colstore_connect.models.schema import RegionInfo, TableDescriptor

logger = logging.getLogger(__name__)


@dataclass
class StoredCell:
    """One cell version; MOB values live in the table's object store."""

    timestamp: int
    storage: StorageClass
    value: Optional[bytes] = None
    mob_ref: Optional[str] = None


@dataclass
class MemoryTable:
    """State of one table."""

    descriptor: TableDescriptor
    enabled: bool = True
    # row key -> (family, qualifier) -> versions, newest first
    rows: dict[bytes, dict[tuple[str, str], list[StoredCell]]] = field(default_factory=dict)
    mob_store: dict[str, bytes] = field(default_factory=dict)
    regions: list[RegionInfo] = field(default_factory=list)
    flush_count: int = 0

    def storage_class(
        self, row_key: bytes, family: str, qualifier: str
    ) -> Optional[StorageClass]:
        """Storage class of a column's newest version, None if absent."""
        versions = self.rows.get(row_key, {}).get((family, qualifier))
        return versions[0].storage if versions else None

    def read_row(self, row_key: bytes) -> Optional[Row]:
        """Materialize a stored row, resolving MOB references."""
        columns = self.rows.get(row_key)
        if not columns:
            return None

        cells = []
        for (family, qualifier), versions in columns.items():
            for stored in versions:
                if stored.storage is StorageClass.MOB:
                    value = self.mob_store[stored.mob_ref]  # type: ignore[index]
                else:
                    value = stored.value  # type: ignore[assignment]
                cells.append(
                    Cell(
                        family=family,
                        qualifier=qualifier,
                        value=value,
                        timestamp=stored.timestamp,
                    )
                )
        return Row(row_key=row_key, cells=cells)

    def drop_versions(self, versions: list[StoredCell]) -> None:
        """Forget cell versions, including their MOB objects."""
        for stored in versions:
            if stored.mob_ref is not None:
                self.mob_store.pop(stored.mob_ref, None)


class MemoryCluster:
    """A named in-memory store shared by all connections to it."""

    def __init__(self, name: str):
        self.name = name
        self.available = True
        self.tables: dict[str, MemoryTable] = {}
        self.indexes: dict[str, dict[str, IndexSpecification]] = {}
        self.permissions: list[UserPermission] = []
        self.lock = threading.RLock()
        self._clock = 0
        self._region_seq = 0

    def tick(self) -> int:
        """Next logical timestamp."""
        self._clock += 1
        return self._clock

    def new_region_name(self, table: str, start_key: bytes) -> str:
        self._region_seq += 1
        return f"{table},{start_key.hex()},{self._region_seq}"

    def get_table(self, name: str) -> MemoryTable:
        table = self.tables.get(name)
        if table is None:
            raise NotFound(f"Table {name} does not exist", table=name)
        return table

    def online_table(self, name: str) -> MemoryTable:
        table = self.get_table(name)
        if not table.enabled:
            raise TableOfflineError(f"Table {name} is disabled", table=name)
        return table

    def offline_table(self, name: str) -> MemoryTable:
        table = self.get_table(name)
        if table.enabled:
            raise TableOnlineError(
                f"Table {name} must be disabled before this change", table=name
            )
        return table


_clusters: dict[str, MemoryCluster] = {}
_clusters_lock = threading.Lock()


def get_cluster(name: str) -> MemoryCluster:
    """Get or create the in-memory cluster with the given name."""
    with _clusters_lock:
        cluster = _clusters.get(name)
        if cluster is None:
            cluster = MemoryCluster(name)
            _clusters[name] = cluster
        return cluster


def drop_cluster(name: str) -> None:
    """Discard an in-memory cluster and all of its data."""
    with _clusters_lock:
        _clusters.pop(name, None)


class MemoryAdminHandle(AdminHandle):
    """Administrative handle on an in-memory cluster."""

    def __init__(self, cluster: MemoryCluster):
        super().__init__()
        self.cluster = cluster

    async def table_exists(self, name: str) -> bool:
        self._ensure_open()
        with self.cluster.lock:
            return name in self.cluster.tables

    async def create_table(
        self, descriptor: TableDescriptor, split_keys: Optional[Sequence[bytes]] = None
    ) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            if descriptor.name in cluster.tables:
                raise AlreadyExists(
                    f"Table {descriptor.name} already exists", table=descriptor.name
                )

            boundaries = [b""] + sorted({key for key in (split_keys or []) if key})
            regions = []
            for i, start in enumerate(boundaries):
                end = boundaries[i + 1] if i + 1 < len(boundaries) else b""
                regions.append(
                    RegionInfo(
                        table=descriptor.name,
                        region_name=cluster.new_region_name(descriptor.name, start),
                        start_key=start,
                        end_key=end,
                    )
                )

            cluster.tables[descriptor.name] = MemoryTable(
                descriptor=descriptor.model_copy(deep=True), regions=regions
            )
            cluster.indexes[descriptor.name] = {}

    async def disable_table(self, name: str) -> None:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(name).enabled = False

    async def enable_table(self, name: str) -> None:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(name).enabled = True

    async def is_table_enabled(self, name: str) -> bool:
        self._ensure_open()
        with self.cluster.lock:
            return self.cluster.get_table(name).enabled

    async def modify_table(self, name: str, descriptor: TableDescriptor) -> None:
        self._ensure_open()
        if descriptor.name != name:
            raise ValueError(
                f"Descriptor is for table {descriptor.name}, not {name}"
            )
        with self.cluster.lock:
            table = self.cluster.offline_table(name)
            removed = set(table.descriptor.family_names) - set(descriptor.family_names)
            table.descriptor = descriptor.model_copy(deep=True)
            if removed:
                for columns in table.rows.values():
                    for key in [key for key in columns if key[0] in removed]:
                        table.drop_versions(columns.pop(key))
                table.rows = {key: cols for key, cols in table.rows.items() if cols}

    async def delete_table(self, name: str) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            cluster.offline_table(name)
            del cluster.tables[name]
            cluster.indexes.pop(name, None)
            cluster.permissions = [p for p in cluster.permissions if p.table != name]

    async def get_table_descriptor(self, name: str) -> TableDescriptor:
        self._ensure_open()
        with self.cluster.lock:
            return self.cluster.get_table(name).descriptor.model_copy(deep=True)

    async def list_tables(self) -> list[str]:
        self._ensure_open()
        with self.cluster.lock:
            return sorted(self.cluster.tables)

    async def list_regions(self, name: str) -> list[RegionInfo]:
        self._ensure_open()
        with self.cluster.lock:
            regions = self.cluster.get_table(name).regions
            return [region.model_copy() for region in regions]

    async def split_region(self, region_name: str, split_keys: Sequence[bytes]) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            for table in cluster.tables.values():
                for i, region in enumerate(table.regions):
                    if region.region_name != region_name:
                        continue
                    inside = sorted(
                        {
                            key
                            for key in split_keys
                            if key > region.start_key
                            and (not region.end_key or key < region.end_key)
                        }
                    )
                    if not inside:
                        return
                    bounds = [region.start_key, *inside, region.end_key]
                    table.regions[i : i + 1] = [
                        RegionInfo(
                            table=region.table,
                            region_name=cluster.new_region_name(region.table, start),
                            start_key=start,
                            end_key=end,
                        )
                        for start, end in zip(bounds, bounds[1:])
                    ]
                    return
        raise NotFound(f"Region {region_name} does not exist")

    async def flush(self, name: str) -> None:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(name).flush_count += 1


class MemoryIndexAdminHandle(IndexAdminHandle):
    """Index coordinator handle on an in-memory cluster."""

    def __init__(self, cluster: MemoryCluster):
        super().__init__()
        self.cluster = cluster

    async def add_index(self, table: str, spec: IndexSpecification) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            descriptor = cluster.get_table(table).descriptor
            for family in spec.families:
                if not descriptor.has_family(family):
                    raise NotFound(
                        f"Indexed column family {family} does not exist", table=table
                    )
            indexes = cluster.indexes.setdefault(table, {})
            if spec.name in indexes:
                raise AlreadyExists(f"Index {spec.name} already exists", table=table)
            indexes[spec.name] = spec.model_copy(deep=True)

    async def drop_index(self, table: str, index_name: str) -> None:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(table)
            indexes = self.cluster.indexes.get(table, {})
            if index_name not in indexes:
                raise IndexNotFound(f"Index {index_name} does not exist", table=table)
            del indexes[index_name]

    async def list_indexes(self, table: str) -> list[IndexSpecification]:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(table)
            indexes = self.cluster.indexes.get(table, {})
            return [spec.model_copy(deep=True) for spec in indexes.values()]


class MemoryScanner(ScannerHandle):
    """Pages matching rows out of an in-memory table."""

    def __init__(self, cluster: MemoryCluster, table: str, request: ScanRequest, caching: int):
        super().__init__(request, caching)
        self.cluster = cluster
        self.table = table
        self._last_key: Optional[bytes] = None

    async def _fetch(self, max_rows: int) -> list[Row]:
        rows: list[Row] = []
        request = self.request
        with self.cluster.lock:
            table = self.cluster.online_table(self.table)
            for row_key in sorted(table.rows):
                if self._last_key is not None and row_key <= self._last_key:
                    continue
                if not request.in_range(row_key):
                    if request.stop_row and row_key >= request.stop_row:
                        break
                    continue

                self._last_key = row_key
                row = table.read_row(row_key)
                if row is None:
                    continue
                if request.filter is not None and not request.filter.matches(row):
                    continue
                projected = request.project(row)
                if projected.is_empty:
                    continue

                rows.append(projected)
                if len(rows) >= max_rows:
                    break
        return rows


class MemoryTableHandle(TableHandle):
    """Data handle on an in-memory table."""

    def __init__(self, cluster: MemoryCluster, name: str):
        super().__init__(name)
        self.cluster = cluster

    async def put(self, puts: Sequence[Put]) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            table = cluster.online_table(self.name)
            for put in puts:
                for family in put.families:
                    if not table.descriptor.has_family(family):
                        raise NotFound(
                            f"Column family {family} does not exist", table=self.name
                        )
                self._apply(table, put)

    def _apply(self, table: MemoryTable, put: Put) -> None:
        timestamp = self.cluster.tick()
        columns = table.rows.setdefault(put.row_key, {})
        for cell in put.cells:
            family = table.descriptor.get_family(cell.family)
            storage = LargeObjectPolicy.storage_class(family, cell.value)
            stored = StoredCell(timestamp=cell.timestamp or timestamp, storage=storage)
            if storage is StorageClass.MOB:
                stored.mob_ref = uuid.uuid4().hex
                table.mob_store[stored.mob_ref] = cell.value
            else:
                stored.value = cell.value

            versions = columns.setdefault((cell.family, cell.qualifier), [])
            versions.insert(0, stored)
            versions.sort(key=lambda v: v.timestamp, reverse=True)
            max_versions = family.max_versions if family is not None else 1
            if len(versions) > max_versions:
                table.drop_versions(versions[max_versions:])
                del versions[max_versions:]

    async def get(
        self, row_key: bytes, columns: Optional[Sequence[ColumnRef]] = None
    ) -> Optional[Row]:
        self._ensure_open()
        with self.cluster.lock:
            row = self.cluster.online_table(self.name).read_row(row_key)
        if row is None:
            return None
        if columns:
            wanted = set(columns)
            row = Row(
                row_key=row.row_key,
                cells=[cell for cell in row.cells if cell.column in wanted],
            )
        return None if row.is_empty else row

    async def delete(self, row_key: bytes) -> None:
        self._ensure_open()
        with self.cluster.lock:
            table = self.cluster.online_table(self.name)
            columns = table.rows.pop(row_key, {})
            for versions in columns.values():
                table.drop_versions(versions)

    async def get_scanner(self, request: ScanRequest, caching: int) -> ScannerHandle:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.online_table(self.name)
        return MemoryScanner(self.cluster, self.name, request, caching)

    async def storage_classes(self, row_key: bytes) -> dict[str, StorageClass]:
        self._ensure_open()
        with self.cluster.lock:
            columns = self.cluster.get_table(self.name).rows.get(row_key, {})
            return {
                f"{family}:{qualifier}": versions[0].storage
                for (family, qualifier), versions in columns.items()
                if versions
            }


class MemoryAccessControlHandle(AccessControlHandle):
    """Access-control handle on an in-memory cluster."""

    def __init__(self, cluster: MemoryCluster):
        super().__init__()
        self.cluster = cluster

    async def grant(self, permission: UserPermission) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            cluster.get_table(permission.table)
            for i, existing in enumerate(cluster.permissions):
                if existing.same_scope(permission):
                    merged = parse_actions([*existing.actions, *permission.actions])
                    cluster.permissions[i] = existing.model_copy(
                        update={"actions": merged}
                    )
                    return
            cluster.permissions.append(permission.model_copy(deep=True))

    async def revoke(self, permission: UserPermission) -> None:
        self._ensure_open()
        cluster = self.cluster
        with cluster.lock:
            cluster.get_table(permission.table)
            for i, existing in enumerate(cluster.permissions):
                if not existing.same_scope(permission):
                    continue
                remaining = [a for a in existing.actions if a not in permission.actions]
                if remaining:
                    cluster.permissions[i] = existing.model_copy(
                        update={"actions": remaining}
                    )
                else:
                    del cluster.permissions[i]
                return

    async def get_user_permissions(self, table: str) -> list[UserPermission]:
        self._ensure_open()
        with self.cluster.lock:
            self.cluster.get_table(table)
            return [
                p.model_copy(deep=True) for p in self.cluster.permissions if p.table == table
            ]


class MemoryAdapter(BaseAdapter):
    """Adapter for the in-process reference store."""

    def __init__(self, config):
        super().__init__(config)
        self.cluster: Optional[MemoryCluster] = None

    @property
    def capabilities(self) -> StoreCapabilities:
        """In-memory store supports every optional feature except persistence."""
        return StoreCapabilities(
            secondary_indexes=True,
            mob=True,
            access_control=True,
            region_split=True,
            persistent=False,
        )

    @property
    def is_connected(self) -> bool:
        return self.cluster is not None

    async def connect(self) -> None:
        if self.cluster is not None:
            return
        cluster = get_cluster(self.config.cluster_name)
        if not cluster.available:
            raise StoreConnectionError(
                f"Cluster {cluster.name} is unreachable", operation="connect"
            )
        self.cluster = cluster
        logger.debug("Connected to in-memory cluster %s", cluster.name)

    async def close(self) -> None:
        self.cluster = None

    def _require_cluster(self) -> MemoryCluster:
        if self.cluster is None:
            raise StoreConnectionError("Adapter is not connected. Call connect() first.")
        if not self.cluster.available:
            raise StoreConnectionError(f"Cluster {self.cluster.name} is unreachable")
        return self.cluster

    async def open_admin(self) -> AdminHandle:
        return MemoryAdminHandle(self._require_cluster())

    async def open_index_admin(self) -> IndexAdminHandle:
        return MemoryIndexAdminHandle(self._require_cluster())

    async def open_table(self, name: str) -> TableHandle:
        return MemoryTableHandle(self._require_cluster(), name)

    async def open_access_control(self) -> AccessControlHandle:
        return MemoryAccessControlHandle(self._require_cluster())
