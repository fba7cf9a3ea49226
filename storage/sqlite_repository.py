"""SQLite-backed persistence layer for discovered tokens and simulated holdings."""
from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from analysis.models import DiscoveredToken
from storage.models import NewPosition, PositionRecord, TokenRecord

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(ISO_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _row_to_position(row: sqlite3.Row) -> PositionRecord:
    return PositionRecord(
        id=row["id"],
        symbol=row["symbol"],
        mint_address=row["mint_address"],
        bought_at=_parse_ts(row["bought_at"]),
        buy_price=float(row["buy_price"] or 0.0),
        sell_price=row["sell_price"],
        sold_at=_parse_ts(row["sold_at"]),
    )


class SQLiteRepository:
    """Provides async-friendly helpers for the token list and the holdings ledger."""

    def __init__(self, db_path: Path | str = Path("data/meme_trades.db")) -> None:
        self.db_path = Path(db_path)
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS meme_token (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL UNIQUE,
                mint_address TEXT NOT NULL,
                discovered_at TEXT NOT NULL
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS holding (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                symbol TEXT NOT NULL,
                mint_address TEXT NOT NULL,
                bought_at TEXT NOT NULL,
                buy_price REAL NOT NULL DEFAULT 0,
                sell_price REAL,
                sold_at TEXT
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_holding_open
                ON holding(sell_price);
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_holding_bought_at
                ON holding(bought_at);
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def fetch_known_symbols(self) -> set[str]:
        return await self._run(self._fetch_known_symbols_sync)

    def _fetch_known_symbols_sync(self) -> set[str]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT symbol FROM meme_token")
            rows = cursor.fetchall()
            cursor.close()
        return {row["symbol"] for row in rows}

    async def insert_tokens(self, tokens: Iterable[DiscoveredToken], discovered_at: datetime) -> int:
        """Record newly seen tokens; symbols already present are left untouched."""
        return await self._run(self._insert_tokens_sync, list(tokens), discovered_at)

    def _insert_tokens_sync(self, tokens: list[DiscoveredToken], discovered_at: datetime) -> int:
        if not tokens:
            return 0
        stamp = _format_ts(discovered_at)
        with self._lock:
            cursor = self._connection.cursor()
            before = self._connection.total_changes
            cursor.executemany(
                """
                INSERT OR IGNORE INTO meme_token (symbol, mint_address, discovered_at)
                VALUES (?, ?, ?)
                """,
                [(token.symbol, token.mint_address, stamp) for token in tokens],
            )
            self._connection.commit()
            inserted = self._connection.total_changes - before
            cursor.close()
        return inserted

    async def fetch_tokens(self) -> list[TokenRecord]:
        return await self._run(self._fetch_tokens_sync)

    def _fetch_tokens_sync(self) -> list[TokenRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM meme_token ORDER BY discovered_at DESC, id DESC")
            rows = cursor.fetchall()
            cursor.close()
        return [
            TokenRecord(
                id=row["id"],
                symbol=row["symbol"],
                mint_address=row["mint_address"],
                discovered_at=_parse_ts(row["discovered_at"]),
            )
            for row in rows
        ]

    async def insert_positions(self, positions: Iterable[NewPosition]) -> int:
        return await self._run(self._insert_positions_sync, list(positions))

    def _insert_positions_sync(self, positions: list[NewPosition]) -> int:
        if not positions:
            return 0
        with self._lock:
            cursor = self._connection.cursor()
            cursor.executemany(
                """
                INSERT INTO holding (symbol, mint_address, bought_at, buy_price, sell_price)
                VALUES (?, ?, ?, ?, NULL)
                """,
                [
                    (p.symbol, p.mint_address, _format_ts(p.bought_at), p.buy_price)
                    for p in positions
                ],
            )
            self._connection.commit()
            cursor.close()
        return len(positions)

    async def fetch_open_positions(self) -> list[PositionRecord]:
        return await self._run(self._fetch_open_positions_sync)

    def _fetch_open_positions_sync(self) -> list[PositionRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                SELECT * FROM holding
                WHERE sell_price IS NULL
                ORDER BY bought_at ASC, id ASC
                """
            )
            rows = cursor.fetchall()
            cursor.close()
        return [_row_to_position(row) for row in rows]

    async def close_position(self, position_id: int, sell_price: float, sold_at: datetime) -> bool:
        """Set the sell price once. Returns False when the position was already closed."""
        return await self._run(self._close_position_sync, position_id, sell_price, sold_at)

    def _close_position_sync(self, position_id: int, sell_price: float, sold_at: datetime) -> bool:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE holding
                SET sell_price = ?, sold_at = ?
                WHERE id = ? AND sell_price IS NULL
                """,
                (sell_price, _format_ts(sold_at), position_id),
            )
            self._connection.commit()
            updated = cursor.rowcount == 1
            cursor.close()
        return updated

    async def fetch_positions(self, limit: Optional[int] = None) -> list[PositionRecord]:
        """All holdings, newest purchase first."""
        return await self._run(self._fetch_positions_sync, limit)

    def _fetch_positions_sync(self, limit: Optional[int]) -> list[PositionRecord]:
        query = "SELECT * FROM holding ORDER BY bought_at DESC, id DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()
            cursor.close()
        return [_row_to_position(row) for row in rows]

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteRepository", "TokenRecord", "PositionRecord", "NewPosition"]
