# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Error as SQLiteError
from sqlite3 import Row

import aiosqlite
from werkzeug.security import generate_password_hash

from core.errors import PersistenceError
from utils.config import settings
from utils.logger import get_logger

_logger = get_logger(__name__)

_HERE = os.path.dirname(os.path.abspath(__file__))

DB_PATH = settings.db_path
SEED_DEMO = settings.seed_demo
SCHEMA_SCRIPT = os.path.join(_HERE, "schema.sql")
DEMO_DATA_SCRIPT = os.path.join(_HERE, "dummy-data.sql")

# (id, username, password, display name, role, shop id, shop name)
DEFAULT_ADMIN = ("p-admin", "admin", "admin123", "Administrator", "admin", None, None)
DEMO_SELLERS = [
    ("p-kiambu", "kiambu_shop", "password123", "Kiambu Seller", "seller", "kiambu", "Kiambu Shop"),
    ("p-ikinu", "ikinu_shop", "password123", "Ikinu Seller", "seller", "ikinu", "Ikinu Shop"),
    ("p-kwa-maiko", "kwa_maiko_shop", "password123", "Kwa-Maiko Seller", "seller", "kwa-maiko", "Kwa-Maiko Shop"),
    ("p-githunguri", "githunguri_shop", "password123", "Githunguri Seller", "seller", "githunguri", "Githunguri Shop"),
    ("p-manyatta", "manyatta_shop", "password123", "Manyatta Seller", "seller", "manyatta", "Manyatta Shop"),
    ("p-kibugu", "kibugu_shop", "password123", "Kibugu Seller", "seller", "kibugu", "Kibugu Shop"),
]  # fmt: skip

_initialized = False
_init_lock = asyncio.Lock()


async def _seed_profiles(conn: aiosqlite.Connection, profiles) -> None:
    for pid, username, pwd, display_name, role, shop_id, shop_name in profiles:
        await conn.execute(
            """
            INSERT OR IGNORE INTO profiles
                (id, username, password_hash, display_name, role, shop_id, shop_name)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                pid,
                username,
                generate_password_hash(pwd),
                display_name,
                role,
                shop_id,
                shop_name,
            ),
        )


async def _init_db(conn: aiosqlite.Connection) -> None:
    _logger.info(f"Initializing database with script {SCHEMA_SCRIPT}...")
    with open(SCHEMA_SCRIPT, "r", encoding="utf-8") as f:
        await conn.executescript(f.read())

    await _seed_profiles(conn, [DEFAULT_ADMIN])
    _logger.warning(
        f"Created default admin '{DEFAULT_ADMIN[1]}', change its password after first login."
    )

    if SEED_DEMO:
        _logger.info(f"Loading demo data from {DEMO_DATA_SCRIPT}...")
        await _seed_profiles(conn, DEMO_SELLERS)
        with open(DEMO_DATA_SCRIPT, "r", encoding="utf-8") as f:
            await conn.executescript(f.read())
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the database is initialized (tables and seed data) on first use.
    Any sqlite error raised inside the block comes out as PersistenceError.
    """
    global _initialized
    folder = os.path.dirname(DB_PATH)
    if folder:
        os.makedirs(folder, exist_ok=True)

    try:
        conn = await aiosqlite.connect(DB_PATH)
    except SQLiteError as e:
        raise PersistenceError(f"Cannot open database: {e}") from e
    conn.row_factory = Row

    try:
        await conn.execute("PRAGMA foreign_keys = ON;")
        if not _initialized:
            async with _init_lock:
                if not _initialized:
                    exists = await _table_exists(conn, "profiles")
                    if not exists:
                        _logger.info("Initializing database...")
                        await _init_db(conn)
                    _initialized = True
        yield conn
    except SQLiteError as e:
        _logger.error(f"Database error: {e}")
        raise PersistenceError(f"Database error: {e}") from e
    finally:
        await conn.close()


@asynccontextmanager
async def transaction() -> aiosqlite.Connection:
    """
    Connection inside BEGIN IMMEDIATE: committed when the block finishes,
    rolled back if anything is raised, so multi-row writes land together or not at all.
    """
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()
