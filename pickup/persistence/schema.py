"""
SQLite schema for events, teams, matches, memberships and the award ledger.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def events_schema() -> str:
    """One row per event. mode: manual | round_robin. status: scheduled | active | completed | cancelled."""
    return """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        mode TEXT NOT NULL DEFAULT 'manual'
            CHECK (mode IN ('manual', 'round_robin')),
        status TEXT NOT NULL DEFAULT 'scheduled'
            CHECK (status IN ('scheduled', 'active', 'completed', 'cancelled')),
        winning_team TEXT,
        mvp_player_id TEXT,
        version INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_events_status ON events(status);
    """


def teams_schema() -> str:
    """Teams are keyed by (event_id, name). position is the configured order."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        event_id TEXT NOT NULL,
        name TEXT NOT NULL,
        color TEXT NOT NULL DEFAULT '',
        position INTEGER NOT NULL,
        PRIMARY KEY (event_id, name),
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    );
    """


def matches_schema() -> str:
    """round_number 0 = manual match. Insertion order (rowid) is fixture order within a round."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        home_team TEXT NOT NULL,
        away_team TEXT NOT NULL,
        home_score INTEGER NOT NULL DEFAULT 0 CHECK (home_score >= 0),
        away_score INTEGER NOT NULL DEFAULT 0 CHECK (away_score >= 0),
        round_number INTEGER NOT NULL DEFAULT 0 CHECK (round_number >= 0),
        status TEXT NOT NULL DEFAULT 'scheduled'
            CHECK (status IN ('scheduled', 'active', 'completed', 'cancelled')),
        is_final INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        CHECK (home_team <> away_team),
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS ix_matches_event_round ON matches(event_id, round_number);
    """


def team_memberships_schema() -> str:
    """Participant-to-team assignment per event. team_name NULL = unassigned."""
    return """
    CREATE TABLE IF NOT EXISTS team_memberships (
        event_id TEXT NOT NULL,
        participant_id TEXT NOT NULL,
        team_name TEXT,
        is_winner INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (event_id, participant_id),
        FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS ix_team_memberships_team ON team_memberships(event_id, team_name);
    """


def award_ledger_schema() -> str:
    """Cumulative MVP awards per participant. Never negative."""
    return """
    CREATE TABLE IF NOT EXISTS award_ledger (
        participant_id TEXT PRIMARY KEY,
        mvp_awards INTEGER NOT NULL DEFAULT 0 CHECK (mvp_awards >= 0)
    );
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order: events, teams, matches, team_memberships, award_ledger."""
    return "\n".join([
        events_schema(),
        teams_schema(),
        matches_schema(),
        team_memberships_schema(),
        award_ledger_schema(),
    ])
