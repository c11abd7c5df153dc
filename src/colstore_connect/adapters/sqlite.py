"""SQLAlchemy-backed persistent store.

Maps the wide-column model onto a handful of relational tables in a SQLite
database. The SQLite driver is synchronous, so every store call runs a
short transaction on a worker thread, bounded by the configured operation
timeout. Calls are serialized with a lock because SQLite allows a single
writer.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional, Sequence, TypeVar

from sqlalchemy import (
    Boolean,
    Column,
    Connection,
    Engine,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool

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
from colstore_connect.models.config import StoreConfig
from colstore_connect.models.data import Cell, ColumnRef, Put, Row
from colstore_connect.models.index import IndexSpecification
from colstore_connect.models.scan import ScanRequest
from colstore_connect.models.schema import RegionInfo, TableDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")

metadata = MetaData()

tables_table = Table(
    "cs_tables",
    metadata,
    Column("name", String(255), primary_key=True),
    Column("descriptor", Text, nullable=False),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("flush_count", Integer, nullable=False, default=0),
)

regions_table = Table(
    "cs_regions",
    metadata,
    Column("region_name", String(512), primary_key=True),
    Column("table_name", String(255), nullable=False, index=True),
    Column("start_key", LargeBinary, nullable=False),
    Column("end_key", LargeBinary, nullable=False),
)

mob_table = Table(
    "cs_mob",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("table_name", String(255), nullable=False, index=True),
    Column("data", LargeBinary, nullable=False),
)

cells_table = Table(
    "cs_cells",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("table_name", String(255), nullable=False),
    Column("row_key", LargeBinary, nullable=False),
    Column("family", String(255), nullable=False),
    Column("qualifier", String(1024), nullable=False),
    Column("ts", Integer, nullable=False),
    Column("storage", String(16), nullable=False),
    Column("value", LargeBinary, nullable=True),
    Column("mob_id", Integer, ForeignKey("cs_mob.id"), nullable=True),
)

indexes_table = Table(
    "cs_indexes",
    metadata,
    Column("table_name", String(255), primary_key=True),
    Column("index_name", String(255), primary_key=True),
    Column("spec", Text, nullable=False),
)

acl_table = Table(
    "cs_acl",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("table_name", String(255), nullable=False, index=True),
    Column("permission", Text, nullable=False),
)

clock_table = Table(
    "cs_clock",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("value", Integer, nullable=False),
)


def _table_row(conn: Connection, name: str) -> Any:
    row = conn.execute(select(tables_table).where(tables_table.c.name == name)).first()
    if row is None:
        raise NotFound(f"Table {name} does not exist", table=name)
    return row


def _load_descriptor(conn: Connection, name: str) -> TableDescriptor:
    return TableDescriptor.model_validate_json(_table_row(conn, name).descriptor)


def _require_online(conn: Connection, name: str) -> TableDescriptor:
    row = _table_row(conn, name)
    if not row.enabled:
        raise TableOfflineError(f"Table {name} is disabled", table=name)
    return TableDescriptor.model_validate_json(row.descriptor)


def _require_offline(conn: Connection, name: str) -> None:
    if _table_row(conn, name).enabled:
        raise TableOnlineError(
            f"Table {name} must be disabled before this change", table=name
        )


def _tick(conn: Connection) -> int:
    current = conn.execute(
        select(clock_table.c.value).where(clock_table.c.id == 1)
    ).scalar()
    if current is None:
        conn.execute(insert(clock_table).values(id=1, value=1))
        return 1
    conn.execute(update(clock_table).where(clock_table.c.id == 1).values(value=current + 1))
    return current + 1


def _delete_cells(conn: Connection, condition: Any) -> None:
    """Delete cells matching a condition together with their MOB objects."""
    mob_ids = [
        mob_id
        for mob_id in conn.execute(select(cells_table.c.mob_id).where(condition)).scalars()
        if mob_id is not None
    ]
    conn.execute(delete(cells_table).where(condition))
    if mob_ids:
        conn.execute(delete(mob_table).where(mob_table.c.id.in_(mob_ids)))


def _read_row(
    conn: Connection,
    table: str,
    row_key: bytes,
    columns: Optional[Sequence[ColumnRef]] = None,
) -> Optional[Row]:
    query = (
        select(
            cells_table.c.family,
            cells_table.c.qualifier,
            cells_table.c.ts,
            cells_table.c.value,
            mob_table.c.data,
        )
        .select_from(cells_table.outerjoin(mob_table, cells_table.c.mob_id == mob_table.c.id))
        .where(cells_table.c.table_name == table, cells_table.c.row_key == row_key)
        .order_by(cells_table.c.id)
    )
    wanted = set(columns) if columns else None

    cells = []
    for family, qualifier, ts, value, mob_data in conn.execute(query):
        if wanted is not None and ColumnRef(family=family, qualifier=qualifier) not in wanted:
            continue
        cells.append(
            Cell(
                family=family,
                qualifier=qualifier,
                value=mob_data if value is None else value,
                timestamp=ts,
            )
        )
    if not cells:
        return None
    return Row(row_key=row_key, cells=cells)


def _build_regions(table: str, start: bytes, end: bytes, keys: list[bytes]) -> list[RegionInfo]:
    bounds = [start, *keys, end]
    return [
        RegionInfo(
            table=table,
            region_name=f"{table},{low.hex()},{i}",
            start_key=low,
            end_key=high,
        )
        for i, (low, high) in enumerate(zip(bounds, bounds[1:]))
    ]


class SqliteAdminHandle(AdminHandle):
    """Administrative handle on a SQLite-backed store."""

    def __init__(self, adapter: "SqliteAdapter"):
        super().__init__()
        self.adapter = adapter

    async def _run(self, fn: Callable[[Connection], T]) -> T:
        self._ensure_open()
        return await self.adapter.run(fn)

    async def table_exists(self, name: str) -> bool:
        def exists(conn: Connection) -> bool:
            query = select(tables_table.c.name).where(tables_table.c.name == name)
            return conn.execute(query).first() is not None

        return await self._run(exists)

    async def create_table(
        self, descriptor: TableDescriptor, split_keys: Optional[Sequence[bytes]] = None
    ) -> None:
        keys = sorted({key for key in (split_keys or []) if key})

        def create(conn: Connection) -> None:
            query = select(tables_table.c.name).where(tables_table.c.name == descriptor.name)
            if conn.execute(query).first() is not None:
                raise AlreadyExists(
                    f"Table {descriptor.name} already exists", table=descriptor.name
                )
            conn.execute(
                insert(tables_table).values(
                    name=descriptor.name,
                    descriptor=descriptor.model_dump_json(),
                    enabled=True,
                    flush_count=0,
                )
            )
            for region in _build_regions(descriptor.name, b"", b"", keys):
                conn.execute(
                    insert(regions_table).values(
                        region_name=region.region_name,
                        table_name=region.table,
                        start_key=region.start_key,
                        end_key=region.end_key,
                    )
                )

        await self._run(create)

    async def _set_enabled(self, name: str, enabled: bool) -> None:
        def set_enabled(conn: Connection) -> None:
            _table_row(conn, name)
            conn.execute(
                update(tables_table).where(tables_table.c.name == name).values(enabled=enabled)
            )

        await self._run(set_enabled)

    async def disable_table(self, name: str) -> None:
        await self._set_enabled(name, False)

    async def enable_table(self, name: str) -> None:
        await self._set_enabled(name, True)

    async def is_table_enabled(self, name: str) -> bool:
        return await self._run(lambda conn: bool(_table_row(conn, name).enabled))

    async def modify_table(self, name: str, descriptor: TableDescriptor) -> None:
        if descriptor.name != name:
            raise ValueError(f"Descriptor is for table {descriptor.name}, not {name}")

        def modify(conn: Connection) -> None:
            _require_offline(conn, name)
            previous = _load_descriptor(conn, name)
            removed = set(previous.family_names) - set(descriptor.family_names)
            conn.execute(
                update(tables_table)
                .where(tables_table.c.name == name)
                .values(descriptor=descriptor.model_dump_json())
            )
            if removed:
                _delete_cells(
                    conn,
                    (cells_table.c.table_name == name) & cells_table.c.family.in_(removed),
                )

        await self._run(modify)

    async def delete_table(self, name: str) -> None:
        def drop(conn: Connection) -> None:
            _require_offline(conn, name)
            conn.execute(delete(cells_table).where(cells_table.c.table_name == name))
            conn.execute(delete(mob_table).where(mob_table.c.table_name == name))
            conn.execute(delete(regions_table).where(regions_table.c.table_name == name))
            conn.execute(delete(indexes_table).where(indexes_table.c.table_name == name))
            conn.execute(delete(acl_table).where(acl_table.c.table_name == name))
            conn.execute(delete(tables_table).where(tables_table.c.name == name))

        await self._run(drop)

    async def get_table_descriptor(self, name: str) -> TableDescriptor:
        return await self._run(lambda conn: _load_descriptor(conn, name))

    async def list_tables(self) -> list[str]:
        def names(conn: Connection) -> list[str]:
            query = select(tables_table.c.name).order_by(tables_table.c.name)
            return list(conn.execute(query).scalars())

        return await self._run(names)

    async def list_regions(self, name: str) -> list[RegionInfo]:
        def regions(conn: Connection) -> list[RegionInfo]:
            _table_row(conn, name)
            query = (
                select(regions_table)
                .where(regions_table.c.table_name == name)
                .order_by(regions_table.c.start_key)
            )
            return [
                RegionInfo(
                    table=row.table_name,
                    region_name=row.region_name,
                    start_key=row.start_key,
                    end_key=row.end_key,
                )
                for row in conn.execute(query)
            ]

        return await self._run(regions)

    async def split_region(self, region_name: str, split_keys: Sequence[bytes]) -> None:
        def split(conn: Connection) -> None:
            region = conn.execute(
                select(regions_table).where(regions_table.c.region_name == region_name)
            ).first()
            if region is None:
                raise NotFound(f"Region {region_name} does not exist")

            inside = sorted(
                {
                    key
                    for key in split_keys
                    if key > region.start_key and (not region.end_key or key < region.end_key)
                }
            )
            if not inside:
                return

            conn.execute(delete(regions_table).where(regions_table.c.region_name == region_name))
            children = _build_regions(
                region.table_name, region.start_key, region.end_key, inside
            )
            for child in children:
                conn.execute(
                    insert(regions_table).values(
                        region_name=f"{region_name}.{child.region_name.rsplit(',', 1)[-1]}",
                        table_name=child.table,
                        start_key=child.start_key,
                        end_key=child.end_key,
                    )
                )

        await self._run(split)

    async def flush(self, name: str) -> None:
        def flush(conn: Connection) -> None:
            row = _table_row(conn, name)
            conn.execute(
                update(tables_table)
                .where(tables_table.c.name == name)
                .values(flush_count=row.flush_count + 1)
            )

        await self._run(flush)


class SqliteIndexAdminHandle(IndexAdminHandle):
    """Index coordinator handle on a SQLite-backed store."""

    def __init__(self, adapter: "SqliteAdapter"):
        super().__init__()
        self.adapter = adapter

    async def add_index(self, table: str, spec: IndexSpecification) -> None:
        self._ensure_open()

        def add(conn: Connection) -> None:
            descriptor = _load_descriptor(conn, table)
            for family in spec.families:
                if not descriptor.has_family(family):
                    raise NotFound(
                        f"Indexed column family {family} does not exist", table=table
                    )
            existing = conn.execute(
                select(indexes_table.c.index_name).where(
                    indexes_table.c.table_name == table,
                    indexes_table.c.index_name == spec.name,
                )
            ).first()
            if existing is not None:
                raise AlreadyExists(f"Index {spec.name} already exists", table=table)
            conn.execute(
                insert(indexes_table).values(
                    table_name=table, index_name=spec.name, spec=spec.model_dump_json()
                )
            )

        await self.adapter.run(add)

    async def drop_index(self, table: str, index_name: str) -> None:
        self._ensure_open()

        def drop(conn: Connection) -> None:
            _table_row(conn, table)
            result = conn.execute(
                delete(indexes_table).where(
                    indexes_table.c.table_name == table,
                    indexes_table.c.index_name == index_name,
                )
            )
            if result.rowcount == 0:
                raise IndexNotFound(f"Index {index_name} does not exist", table=table)

        await self.adapter.run(drop)

    async def list_indexes(self, table: str) -> list[IndexSpecification]:
        self._ensure_open()

        def indexes(conn: Connection) -> list[IndexSpecification]:
            _table_row(conn, table)
            query = (
                select(indexes_table.c.spec)
                .where(indexes_table.c.table_name == table)
                .order_by(indexes_table.c.index_name)
            )
            return [
                IndexSpecification.model_validate_json(spec)
                for spec in conn.execute(query).scalars()
            ]

        return await self.adapter.run(indexes)


class SqliteScanner(ScannerHandle):
    """Pages matching rows out of a SQLite-backed table."""

    def __init__(self, adapter: "SqliteAdapter", table: str, request: ScanRequest, caching: int):
        super().__init__(request, caching)
        self.adapter = adapter
        self.table = table
        self._last_key: Optional[bytes] = None

    async def _fetch(self, max_rows: int) -> list[Row]:
        return await self.adapter.run(lambda conn: self._fetch_sync(conn, max_rows))

    def _fetch_sync(self, conn: Connection, max_rows: int) -> list[Row]:
        request = self.request
        _require_online(conn, self.table)

        rows: list[Row] = []
        while len(rows) < max_rows:
            query = (
                select(cells_table.c.row_key)
                .where(cells_table.c.table_name == self.table)
                .distinct()
                .order_by(cells_table.c.row_key)
                .limit(max_rows)
            )
            if self._last_key is not None:
                query = query.where(cells_table.c.row_key > self._last_key)
            elif request.start_row:
                query = query.where(cells_table.c.row_key >= request.start_row)
            if request.stop_row:
                query = query.where(cells_table.c.row_key < request.stop_row)

            keys = list(conn.execute(query).scalars())
            for row_key in keys:
                self._last_key = row_key
                row = _read_row(conn, self.table, row_key)
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

            if len(keys) < max_rows:
                break
        return rows


class SqliteTableHandle(TableHandle):
    """Data handle on a SQLite-backed table."""

    def __init__(self, adapter: "SqliteAdapter", name: str):
        super().__init__(name)
        self.adapter = adapter

    async def put(self, puts: Sequence[Put]) -> None:
        self._ensure_open()

        def write(conn: Connection) -> None:
            descriptor = _require_online(conn, self.name)
            for put in puts:
                for family in put.families:
                    if not descriptor.has_family(family):
                        raise NotFound(
                            f"Column family {family} does not exist", table=self.name
                        )
            for put in puts:
                self._apply(conn, descriptor, put)

        await self.adapter.run(write)

    def _apply(self, conn: Connection, descriptor: TableDescriptor, put: Put) -> None:
        timestamp = _tick(conn)
        for cell in put.cells:
            family = descriptor.get_family(cell.family)
            storage = LargeObjectPolicy.storage_class(family, cell.value)
            values: dict[str, Any] = {
                "table_name": self.name,
                "row_key": put.row_key,
                "family": cell.family,
                "qualifier": cell.qualifier,
                "ts": cell.timestamp or timestamp,
                "storage": storage.value,
            }
            if storage is StorageClass.MOB:
                result = conn.execute(
                    insert(mob_table).values(table_name=self.name, data=cell.value)
                )
                values["mob_id"] = result.inserted_primary_key[0]
            else:
                values["value"] = cell.value
            conn.execute(insert(cells_table).values(**values))

            max_versions = family.max_versions if family is not None else 1
            stale_ids = list(
                conn.execute(
                    select(cells_table.c.id)
                    .where(
                        cells_table.c.table_name == self.name,
                        cells_table.c.row_key == put.row_key,
                        cells_table.c.family == cell.family,
                        cells_table.c.qualifier == cell.qualifier,
                    )
                    .order_by(cells_table.c.ts.desc(), cells_table.c.id.desc())
                    .offset(max_versions)
                ).scalars()
            )
            if stale_ids:
                _delete_cells(conn, cells_table.c.id.in_(stale_ids))

    async def get(
        self, row_key: bytes, columns: Optional[Sequence[ColumnRef]] = None
    ) -> Optional[Row]:
        self._ensure_open()

        def read(conn: Connection) -> Optional[Row]:
            _require_online(conn, self.name)
            return _read_row(conn, self.name, row_key, columns)

        return await self.adapter.run(read)

    async def delete(self, row_key: bytes) -> None:
        self._ensure_open()

        def remove(conn: Connection) -> None:
            _require_online(conn, self.name)
            _delete_cells(
                conn,
                (cells_table.c.table_name == self.name) & (cells_table.c.row_key == row_key),
            )

        await self.adapter.run(remove)

    async def get_scanner(self, request: ScanRequest, caching: int) -> ScannerHandle:
        self._ensure_open()
        await self.adapter.run(lambda conn: _require_online(conn, self.name))
        return SqliteScanner(self.adapter, self.name, request, caching)

    async def storage_classes(self, row_key: bytes) -> dict[str, StorageClass]:
        """Storage class of the newest version of each column in a row."""
        self._ensure_open()

        def classes(conn: Connection) -> dict[str, StorageClass]:
            _table_row(conn, self.name)
            query = select(
                cells_table.c.family, cells_table.c.qualifier, cells_table.c.storage
            ).where(cells_table.c.table_name == self.name, cells_table.c.row_key == row_key)
            query = query.order_by(cells_table.c.ts, cells_table.c.id)
            return {
                f"{family}:{qualifier}": StorageClass(storage)
                for family, qualifier, storage in conn.execute(query)
            }

        return await self.adapter.run(classes)


class SqliteAccessControlHandle(AccessControlHandle):
    """Access-control handle on a SQLite-backed store."""

    def __init__(self, adapter: "SqliteAdapter"):
        super().__init__()
        self.adapter = adapter

    @staticmethod
    def _matching(
        conn: Connection, permission: UserPermission
    ) -> Optional[tuple[int, UserPermission]]:
        _table_row(conn, permission.table)
        query = select(acl_table.c.id, acl_table.c.permission).where(
            acl_table.c.table_name == permission.table
        )
        for acl_id, text in conn.execute(query):
            existing = UserPermission.model_validate_json(text)
            if existing.same_scope(permission):
                return acl_id, existing
        return None

    async def grant(self, permission: UserPermission) -> None:
        self._ensure_open()

        def grant(conn: Connection) -> None:
            match = self._matching(conn, permission)
            if match is None:
                conn.execute(
                    insert(acl_table).values(
                        table_name=permission.table, permission=permission.model_dump_json()
                    )
                )
                return
            acl_id, existing = match
            merged = existing.model_copy(
                update={"actions": parse_actions([*existing.actions, *permission.actions])}
            )
            conn.execute(
                update(acl_table)
                .where(acl_table.c.id == acl_id)
                .values(permission=merged.model_dump_json())
            )

        await self.adapter.run(grant)

    async def revoke(self, permission: UserPermission) -> None:
        self._ensure_open()

        def revoke(conn: Connection) -> None:
            match = self._matching(conn, permission)
            if match is None:
                return
            acl_id, existing = match
            remaining = [a for a in existing.actions if a not in permission.actions]
            if not remaining:
                conn.execute(delete(acl_table).where(acl_table.c.id == acl_id))
                return
            conn.execute(
                update(acl_table)
                .where(acl_table.c.id == acl_id)
                .values(
                    permission=existing.model_copy(update={"actions": remaining}).model_dump_json()
                )
            )

        await self.adapter.run(revoke)

    async def get_user_permissions(self, table: str) -> list[UserPermission]:
        self._ensure_open()

        def permissions(conn: Connection) -> list[UserPermission]:
            _table_row(conn, table)
            query = (
                select(acl_table.c.permission)
                .where(acl_table.c.table_name == table)
                .order_by(acl_table.c.id)
            )
            return [
                UserPermission.model_validate_json(text)
                for text in conn.execute(query).scalars()
            ]

        return await self.adapter.run(permissions)


class SqliteAdapter(BaseAdapter):
    """Adapter storing the wide-column model in SQLite through SQLAlchemy."""

    def __init__(self, config: StoreConfig):
        super().__init__(config)
        self.engine: Optional[Engine] = None
        self._lock = threading.Lock()

    @property
    def capabilities(self) -> StoreCapabilities:
        """SQLite store supports every optional feature."""
        return StoreCapabilities(
            secondary_indexes=True,
            mob=True,
            access_control=True,
            region_split=True,
            persistent=True,
        )

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    def _create_engine(self) -> Engine:
        url = make_url(self.config.url)
        if url.database in (None, "", ":memory:"):
            # One shared connection so every thread sees the same in-memory database
            return create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=self.config.echo_sql,
            )
        return create_engine(
            url,
            pool_size=self.config.pool_size,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
            echo=self.config.echo_sql,
        )

    async def connect(self) -> None:
        if self.engine is not None:
            return

        engine = self._create_engine()
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, metadata.create_all, engine),
                timeout=self.config.operation_timeout,
            )
        except Exception as e:
            engine.dispose()
            raise StoreConnectionError(
                f"Failed to open store at {self.config.cluster_name}", e, operation="connect"
            ) from e

        self.engine = engine
        logger.debug("Connected to SQLite store %s", self.config.cluster_name)

    async def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    async def run(self, fn: Callable[[Connection], T]) -> T:
        """
        Run a function inside one transaction on a worker thread.

        Args:
            fn: Function receiving a SQLAlchemy connection

        Returns:
            The function's result

        Raises:
            StoreConnectionError: If the adapter is not connected
            TimeoutError: If the call exceeds the operation timeout
        """
        engine = self.engine
        if engine is None:
            raise StoreConnectionError("Adapter is not connected. Call connect() first.")

        def call() -> T:
            with self._lock, engine.begin() as conn:
                return fn(conn)

        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, call), timeout=self.config.operation_timeout
        )

    def _require_engine(self) -> None:
        if self.engine is None:
            raise StoreConnectionError("Adapter is not connected. Call connect() first.")

    async def open_admin(self) -> AdminHandle:
        self._require_engine()
        return SqliteAdminHandle(self)

    async def open_index_admin(self) -> IndexAdminHandle:
        self._require_engine()
        return SqliteIndexAdminHandle(self)

    async def open_table(self, name: str) -> TableHandle:
        self._require_engine()
        return SqliteTableHandle(self, name)

    async def open_access_control(self) -> AccessControlHandle:
        self._require_engine()
        return SqliteAccessControlHandle(self)
