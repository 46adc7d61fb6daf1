"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable
from uuid import uuid4

import aiosqlite

from folio_watch.core.config import StorageConfig
from folio_watch.core.exceptions import StorageError
from folio_watch.core.models import (
    Holding,
    PortfolioSnapshot,
    StorageBackend as StorageBackendEnum,
    normalize_symbol,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@runtime_checkable
class StorageProtocol(Protocol):
    """Abstract storage interface for folio-watch data."""

    async def add_holding(
        self,
        stock_name: str,
        symbol: str,
        exchange: str,
        sector: str,
        purchase_price: float,
        quantity: int,
        current_market_price: float | None = None,
    ) -> Holding: ...
    async def get_holding(self, holding_id: str) -> Holding | None: ...
    async def list_holdings(self, sector: str | None = None) -> list[Holding]: ...
    async def delete_holding(self, holding_id: str) -> bool: ...
    async def update_holding(
        self,
        holding_id: str,
        stock_name: str | None = None,
        sector: str | None = None,
        purchase_price: float | None = None,
        quantity: int | None = None,
    ) -> Holding | None: ...
    async def update_holding_market_data(
        self,
        holding_id: str,
        current_market_price: float,
        present_value: float,
        gain_loss: float,
        pe_ratio: float | None,
        latest_earnings: float | None,
    ) -> None: ...
    async def recompute_portfolio_percentages(self) -> None: ...
    async def save_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot: ...
    async def list_snapshots(self, limit: int | None = None) -> list[PortfolioSnapshot]: ...
    async def get_statistics(self) -> dict: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS holdings (
                    id TEXT PRIMARY KEY,
                    stock_name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    exchange TEXT NOT NULL,
                    sector TEXT NOT NULL,
                    purchase_price REAL NOT NULL,
                    quantity INTEGER NOT NULL,
                    investment REAL NOT NULL,
                    portfolio_percentage REAL NOT NULL DEFAULT 0,
                    current_market_price REAL NOT NULL,
                    present_value REAL NOT NULL,
                    gain_loss REAL NOT NULL,
                    pe_ratio REAL,
                    latest_earnings REAL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS portfolio_snapshots (
                    id TEXT PRIMARY KEY,
                    total_investment REAL NOT NULL,
                    total_present_value REAL NOT NULL,
                    total_gain_loss REAL NOT NULL,
                    snapshot_date TEXT NOT NULL
                )""",
                "CREATE INDEX IF NOT EXISTS idx_holdings_symbol ON holdings(symbol)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_sector ON holdings(sector)",
                "CREATE INDEX IF NOT EXISTS idx_snapshots_date ON portfolio_snapshots(snapshot_date)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Holding Operations ---

    async def add_holding(
        self,
        stock_name: str,
        symbol: str,
        exchange: str,
        sector: str,
        purchase_price: float,
        quantity: int,
        current_market_price: float | None = None,
    ) -> Holding:
        """Insert a holding and rebalance portfolio percentages.

        Without a known market price the purchase price stands in, so the
        new row starts at zero gain/loss.
        """
        holding_id = uuid4().hex
        now = _now()
        price = purchase_price if current_market_price is None else current_market_price
        investment = purchase_price * quantity
        present_value = price * quantity
        holding = Holding(
            id=holding_id,
            stock_name=stock_name,
            symbol=normalize_symbol(symbol),
            exchange=exchange.strip().upper(),
            sector=sector,
            purchase_price=purchase_price,
            quantity=quantity,
            investment=investment,
            current_market_price=price,
            present_value=present_value,
            gain_loss=present_value - investment,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
        )
        try:
            await self._db.execute(
                """INSERT INTO holdings
                   (id, stock_name, symbol, exchange, sector, purchase_price,
                    quantity, investment, portfolio_percentage,
                    current_market_price, present_value, gain_loss,
                    pe_ratio, latest_earnings, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, NULL, NULL, ?, ?)""",
                (
                    holding.id,
                    holding.stock_name,
                    holding.symbol,
                    holding.exchange,
                    holding.sector,
                    holding.purchase_price,
                    holding.quantity,
                    holding.investment,
                    holding.current_market_price,
                    holding.present_value,
                    holding.gain_loss,
                    now,
                    now,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to add holding: {e}",
                context={"operation": "insert", "table": "holdings", "symbol": symbol},
            ) from e

        await self.recompute_portfolio_percentages()
        return await self.get_holding(holding_id) or holding

    async def get_holding(self, holding_id: str) -> Holding | None:
        try:
            async with self._db.execute(
                "SELECT * FROM holdings WHERE id = ?", (holding_id,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_holding(row) if row is not None else None
        except Exception as e:
            raise StorageError(
                f"Failed to get holding: {e}",
                context={"operation": "query", "table": "holdings", "id": holding_id},
            ) from e

    async def list_holdings(self, sector: str | None = None) -> list[Holding]:
        try:
            query = "SELECT * FROM holdings WHERE 1=1"
            params: list = []
            if sector is not None:
                query += " AND sector = ?"
                params.append(sector)
            query += " ORDER BY created_at DESC"
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_holding(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e

    async def update_holding(
        self,
        holding_id: str,
        stock_name: str | None = None,
        sector: str | None = None,
        purchase_price: float | None = None,
        quantity: int | None = None,
    ) -> Holding | None:
        """Edit a position. Omitted fields keep their stored values.

        Investment, present value and gain/loss are recomputed in the same
        statement against the row's current market price. Returns None if
        the holding does not exist.
        """
        try:
            cursor = await self._db.execute(
                """UPDATE holdings
                   SET stock_name = COALESCE(?, stock_name),
                       sector = COALESCE(?, sector),
                       purchase_price = COALESCE(?, purchase_price),
                       quantity = COALESCE(?, quantity),
                       investment = COALESCE(?, purchase_price) * COALESCE(?, quantity),
                       present_value = current_market_price * COALESCE(?, quantity),
                       gain_loss = current_market_price * COALESCE(?, quantity)
                                   - COALESCE(?, purchase_price) * COALESCE(?, quantity),
                       updated_at = ?
                   WHERE id = ?""",
                (
                    stock_name,
                    sector,
                    purchase_price,
                    quantity,
                    purchase_price,
                    quantity,
                    quantity,
                    quantity,
                    purchase_price,
                    quantity,
                    _now(),
                    holding_id,
                ),
            )
            await self._db.commit()
            updated = cursor.rowcount > 0
        except Exception as e:
            raise StorageError(
                f"Failed to update holding: {e}",
                context={"operation": "update", "table": "holdings", "id": holding_id},
            ) from e
        if not updated:
            return None
        await self.recompute_portfolio_percentages()
        return await self.get_holding(holding_id)

    async def delete_holding(self, holding_id: str) -> bool:
        try:
            cursor = await self._db.execute(
                "DELETE FROM holdings WHERE id = ?", (holding_id,)
            )
            await self._db.commit()
            deleted = cursor.rowcount > 0
        except Exception as e:
            raise StorageError(
                f"Failed to delete holding: {e}",
                context={"operation": "delete", "table": "holdings", "id": holding_id},
            ) from e
        if deleted:
            await self.recompute_portfolio_percentages()
        return deleted

    async def update_holding_market_data(
        self,
        holding_id: str,
        current_market_price: float,
        present_value: float,
        gain_loss: float,
        pe_ratio: float | None,
        latest_earnings: float | None,
    ) -> None:
        try:
            await self._db.execute(
                """UPDATE holdings
                   SET current_market_price = ?,
                       present_value = ?,
                       gain_loss = ?,
                       pe_ratio = ?,
                       latest_earnings = ?,
                       updated_at = ?
                   WHERE id = ?""",
                (
                    current_market_price,
                    present_value,
                    gain_loss,
                    pe_ratio,
                    latest_earnings,
                    _now(),
                    holding_id,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to update holding market data: {e}",
                context={"operation": "update", "table": "holdings", "id": holding_id},
            ) from e

    async def recompute_portfolio_percentages(self) -> None:
        """Set each holding's share of total investment, in percent.

        The total is derived inside the same UPDATE statement so no other
        writer can slip in between read and write.
        """
        try:
            await self._db.execute(
                """UPDATE holdings
                   SET portfolio_percentage = COALESCE(
                       investment * 100.0 / NULLIF(
                           (SELECT SUM(investment) FROM holdings), 0
                       ),
                       0
                   )"""
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to recompute portfolio percentages: {e}",
                context={"operation": "update", "table": "holdings"},
            ) from e

    # --- Snapshot Operations ---

    async def save_snapshot(self, snapshot: PortfolioSnapshot) -> PortfolioSnapshot:
        stored = snapshot.model_copy(
            update={
                "id": snapshot.id or uuid4().hex,
                "snapshot_date": snapshot.snapshot_date or datetime.now(timezone.utc),
            }
        )
        try:
            await self._db.execute(
                """INSERT INTO portfolio_snapshots
                   (id, total_investment, total_present_value, total_gain_loss, snapshot_date)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    stored.id,
                    stored.total_investment,
                    stored.total_present_value,
                    stored.total_gain_loss,
                    stored.snapshot_date.isoformat(),
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to save snapshot: {e}",
                context={"operation": "insert", "table": "portfolio_snapshots"},
            ) from e
        return stored

    async def list_snapshots(self, limit: int | None = None) -> list[PortfolioSnapshot]:
        try:
            query = "SELECT * FROM portfolio_snapshots ORDER BY snapshot_date DESC"
            params: list = []
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_snapshot(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list snapshots: {e}",
                context={"operation": "query", "table": "portfolio_snapshots"},
            ) from e

    async def get_statistics(self) -> dict:
        try:
            async with self._db.execute(
                """SELECT COUNT(*) AS holdings,
                          COUNT(DISTINCT symbol) AS symbols,
                          COALESCE(SUM(investment), 0) AS total_investment,
                          COALESCE(SUM(present_value), 0) AS total_present_value
                   FROM holdings"""
            ) as cursor:
                row = await cursor.fetchone()
            async with self._db.execute(
                "SELECT COUNT(*), MAX(snapshot_date) FROM portfolio_snapshots"
            ) as cursor:
                snap = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e
        return {
            "total_holdings": row["holdings"],
            "unique_symbols": row["symbols"],
            "total_investment": row["total_investment"],
            "total_present_value": row["total_present_value"],
            "total_snapshots": snap[0],
            "latest_snapshot": snap[1],
        }

    # --- Row mappers ---

    @staticmethod
    def _row_to_holding(row: aiosqlite.Row) -> Holding:
        return Holding(
            id=row["id"],
            stock_name=row["stock_name"],
            symbol=row["symbol"],
            exchange=row["exchange"],
            sector=row["sector"],
            purchase_price=row["purchase_price"],
            quantity=row["quantity"],
            investment=row["investment"],
            portfolio_percentage=row["portfolio_percentage"],
            current_market_price=row["current_market_price"],
            present_value=row["present_value"],
            gain_loss=row["gain_loss"],
            pe_ratio=row["pe_ratio"],
            latest_earnings=row["latest_earnings"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_snapshot(row: aiosqlite.Row) -> PortfolioSnapshot:
        return PortfolioSnapshot(
            id=row["id"],
            total_investment=row["total_investment"],
            total_present_value=row["total_present_value"],
            total_gain_loss=row["total_gain_loss"],
            snapshot_date=datetime.fromisoformat(row["snapshot_date"]),
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
