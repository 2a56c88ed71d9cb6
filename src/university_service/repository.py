"""SQLite-backed repository for universities, careers, and categories."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import aiosqlite

from .schemas.universities import University

CareerRecord = dict[str, Any]

_UNIVERSITY_COLUMNS = "id, name, acronym, city, website, image"


def _to_university(row: aiosqlite.Row) -> University:
    return University(**dict(row))


class UniversityRepository:
    """Persist university records and expose their related careers."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS universities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                acronym TEXT,
                city TEXT,
                website TEXT,
                image TEXT,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS careers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                university_id INTEGER NOT NULL REFERENCES universities(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                duration_years INTEGER,
                modality TEXT
            );

            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            );

            CREATE TABLE IF NOT EXISTS career_categories (
                career_id INTEGER NOT NULL REFERENCES careers(id) ON DELETE CASCADE,
                category_id INTEGER NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
                PRIMARY KEY (career_id, category_id)
            );

            CREATE INDEX IF NOT EXISTS idx_careers_university_id ON careers(university_id);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def add_university(
        self,
        name: str,
        *,
        acronym: str | None = None,
        city: str | None = None,
        website: str | None = None,
        image: str | None = None,
        university_id: int | None = None,
    ) -> University:
        """Insert a university and return the stored record."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            INSERT INTO universities(id, name, acronym, city, website, image)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (university_id, name, acronym, city, website, image),
        )
        new_id = cursor.lastrowid
        await cursor.close()
        await self._connection.commit()
        record = await self.get_by_id(int(new_id))
        assert record is not None
        return record

    async def add_career(
        self,
        university_id: int,
        name: str,
        *,
        duration_years: int | None = None,
        modality: str | None = None,
        categories: list[str] | None = None,
    ) -> int:
        """Insert a career, linking it to the named categories."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            INSERT INTO careers(university_id, name, duration_years, modality)
            VALUES (?, ?, ?, ?)
            """,
            (university_id, name, duration_years, modality),
        )
        career_id = int(cursor.lastrowid)
        await cursor.close()
        for category in categories or []:
            await self._connection.execute(
                "INSERT OR IGNORE INTO categories(name) VALUES (?)", (category,)
            )
            await self._connection.execute(
                """
                INSERT OR IGNORE INTO career_categories(career_id, category_id)
                SELECT ?, id FROM categories WHERE name = ?
                """,
                (career_id, category),
            )
        await self._connection.commit()
        return career_id

    async def get_all(self) -> list[University]:
        assert self._connection is not None
        cursor = await self._connection.execute(
            f"SELECT {_UNIVERSITY_COLUMNS} FROM universities ORDER BY id"
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [_to_university(row) for row in rows]

    async def get_by_id(self, university_id: int) -> University | None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            f"SELECT {_UNIVERSITY_COLUMNS} FROM universities WHERE id = ? LIMIT 1",
            (university_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return _to_university(row)

    async def exists(self, university_id: int) -> bool:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT 1 FROM universities WHERE id = ? LIMIT 1", (university_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def get_carreras_by_universidad(
        self, university_id: int
    ) -> list[CareerRecord] | None:
        """Return the careers offered by a university, or None if it is unknown."""

        if not await self.exists(university_id):
            return None

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT id, university_id, name, duration_years, modality
            FROM careers
            WHERE university_id = ?
            ORDER BY id
            """,
            (university_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [dict(row) for row in rows]

    async def get_carreras_with_categorias(
        self, university_id: int
    ) -> list[CareerRecord] | None:
        """Return careers with their categories nested under ``categorias``."""

        careers = await self.get_carreras_by_universidad(university_id)
        if careers is None:
            return None

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            SELECT cc.career_id, c.id, c.name
            FROM career_categories cc
            JOIN categories c ON c.id = cc.category_id
            JOIN careers k ON k.id = cc.career_id
            WHERE k.university_id = ?
            ORDER BY c.name
            """,
            (university_id,),
        )
        rows = await cursor.fetchall()
        await cursor.close()

        by_career: dict[int, list[dict[str, Any]]] = {}
        for row in rows:
            by_career.setdefault(row["career_id"], []).append(
                {"id": row["id"], "name": row["name"]}
            )
        for career in careers:
            career["categorias"] = by_career.get(career["id"], [])
        return careers

    async def update(self, university: University) -> int:
        """Rewrite a university record and return the number of affected rows."""

        assert self._connection is not None
        cursor = await self._connection.execute(
            """
            UPDATE universities
            SET name = ?, acronym = ?, city = ?, website = ?, image = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (
                university.name,
                university.acronym,
                university.city,
                university.website,
                university.image,
                university.id,
            ),
        )
        updated = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return updated


__all__ = ["CareerRecord", "UniversityRepository"]
