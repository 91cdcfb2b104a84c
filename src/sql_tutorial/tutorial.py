"""The tutorial exercise: player, team and player_team tables."""

import logging

from sql_tutorial.models.statement import Statement
from sql_tutorial.runner import TutorialRunner

logger = logging.getLogger(__name__)

PLAYER_DDL = """
CREATE TABLE player (
    id INTEGER PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    birth_year INTEGER,
    height INTEGER CHECK (height > 0),
    country VARCHAR(50) NOT NULL DEFAULT 'unknown'
)
""".strip()

TEAM_DDL = """
CREATE TABLE team (
    id INTEGER PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    city VARCHAR(100) NOT NULL,
    founded INTEGER,
    UNIQUE (name, city)
)
""".strip()

PLAYER_TEAM_DDL = """
CREATE TABLE player_team (
    player_id INTEGER NOT NULL REFERENCES player(id),
    team_id INTEGER NOT NULL REFERENCES team(id),
    season INTEGER NOT NULL,
    jersey_number INTEGER CHECK (jersey_number BETWEEN 0 AND 99),
    is_captain BOOLEAN NOT NULL DEFAULT FALSE,
    PRIMARY KEY (player_id, team_id, season)
)
""".strip()

# Parents before children
SCHEMA: tuple[Statement, ...] = (
    Statement(sql=PLAYER_DDL),
    Statement(sql=TEAM_DDL),
    Statement(sql=PLAYER_TEAM_DDL),
)

# Children before parents
DROP_SCHEMA: tuple[Statement, ...] = (
    Statement(sql="DROP TABLE IF EXISTS player_team"),
    Statement(sql="DROP TABLE IF EXISTS team"),
    Statement(sql="DROP TABLE IF EXISTS player"),
)

PLAYERS: list[dict[str, object]] = [
    {"id": 1, "name": "Marta Kovac", "birth_year": 1996, "height": 182, "country": "Croatia"},
    {"id": 2, "name": "Jonas Lind", "birth_year": 1993, "height": 201, "country": "Sweden"},
    {"id": 3, "name": "Ade Okafor", "birth_year": 1999, "height": 195, "country": "Nigeria"},
    {"id": 4, "name": "Lucia Ferro", "birth_year": 2001, "height": 176, "country": "Italy"},
    {"id": 5, "name": "Tomas Novak", "birth_year": 1990, "height": 208, "country": "Czechia"},
]

TEAMS: list[dict[str, object]] = [
    {"id": 1, "name": "Harbor Hawks", "city": "Rijeka", "founded": 1987},
    {"id": 2, "name": "North Stars", "city": "Uppsala", "founded": 1964},
    {"id": 3, "name": "Harbor Hawks", "city": "Lagos", "founded": 2005},
]

PLAYER_TEAMS: list[dict[str, object]] = [
    {"player_id": 1, "team_id": 1, "season": 2022, "jersey_number": 7, "is_captain": True},
    {"player_id": 1, "team_id": 1, "season": 2023, "jersey_number": 7, "is_captain": True},
    {"player_id": 2, "team_id": 2, "season": 2022, "jersey_number": 12, "is_captain": False},
    {"player_id": 3, "team_id": 3, "season": 2023, "jersey_number": 23, "is_captain": False},
    {"player_id": 4, "team_id": 1, "season": 2023, "jersey_number": 4, "is_captain": False},
    {"player_id": 5, "team_id": 2, "season": 2023, "jersey_number": 15, "is_captain": True},
]


async def create_schema(runner: TutorialRunner) -> None:
    """Create the three tutorial tables in one transaction."""
    await runner.run_script(SCHEMA, transactional=True)
    logger.info("Tutorial schema created")


async def drop_schema(runner: TutorialRunner) -> None:
    """Drop the tutorial tables if present."""
    await runner.run_script(DROP_SCHEMA)
    logger.info("Tutorial schema dropped")


async def seed(runner: TutorialRunner) -> int:
    """Insert the sample rows; returns the number of rows written."""
    total = 0
    total += await runner.write_table("player", PLAYERS)
    total += await runner.write_table("team", TEAMS)
    total += await runner.write_table("player_team", PLAYER_TEAMS)
    logger.info("Seeded %d tutorial rows", total)
    return total
