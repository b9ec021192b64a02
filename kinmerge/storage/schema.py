"""SQLite schema for family persons, their dependents and dedupe state."""

# Tables are created in dependency order
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS families (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS people (
        id TEXT PRIMARY KEY,
        family_id TEXT NOT NULL REFERENCES families(id),
        given_name TEXT,
        surname TEXT,
        nickname TEXT,
        gender TEXT,
        birth_date TEXT,
        birth_place TEXT,
        death_date TEXT,
        death_place TEXT,
        bio TEXT,
        alternate_names TEXT NOT NULL DEFAULT '[]',
        tags TEXT NOT NULL DEFAULT '[]',
        is_active INTEGER NOT NULL DEFAULT 1,
        merged_into_id TEXT REFERENCES people(id),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_people_family ON people(family_id, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_people_merged_into ON people(merged_into_id)",
    """
    CREATE TABLE IF NOT EXISTS relationships (
        id TEXT PRIMARY KEY,
        family_id TEXT NOT NULL REFERENCES families(id),
        from_person_id TEXT NOT NULL REFERENCES people(id),
        to_person_id TEXT NOT NULL REFERENCES people(id),
        relationship_type TEXT NOT NULL
            CHECK (relationship_type IN ('parent', 'child', 'spouse', 'sibling')),
        created_at TEXT NOT NULL,
        UNIQUE (from_person_id, to_person_id, relationship_type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_relationships_to ON relationships(to_person_id)",
    """
    CREATE TABLE IF NOT EXISTS story_people (
        id TEXT PRIMARY KEY,
        story_id TEXT NOT NULL,
        person_id TEXT NOT NULL REFERENCES people(id),
        role TEXT,
        UNIQUE (story_id, person_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_story_people_person ON story_people(person_id)",
    """
    CREATE TABLE IF NOT EXISTS media_tags (
        id TEXT PRIMARY KEY,
        media_id TEXT NOT NULL,
        person_id TEXT NOT NULL REFERENCES people(id),
        label TEXT,
        UNIQUE (media_id, person_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_media_tags_person ON media_tags(person_id)",
    """
    CREATE TABLE IF NOT EXISTS person_claims (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        person_id TEXT NOT NULL REFERENCES people(id),
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        UNIQUE (user_id, person_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_person_claims_person ON person_claims(person_id)",
    """
    CREATE TABLE IF NOT EXISTS timeline_entries (
        id TEXT PRIMARY KEY,
        person_id TEXT NOT NULL REFERENCES people(id),
        title TEXT NOT NULL,
        event_date TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_timeline_entries_person ON timeline_entries(person_id)",
    """
    CREATE TABLE IF NOT EXISTS duplicate_candidates (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        family_id TEXT NOT NULL REFERENCES families(id),
        person_a_id TEXT NOT NULL REFERENCES people(id),
        person_b_id TEXT NOT NULL REFERENCES people(id),
        confidence_score REAL NOT NULL,
        match_reasons TEXT NOT NULL DEFAULT '[]',
        breakdown TEXT NOT NULL DEFAULT '{}',
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'dismissed', 'merged')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        reviewed_by TEXT,
        reviewed_at TEXT,
        merge_id TEXT,
        CHECK (person_a_id < person_b_id)
    )
    """,
    # At most one live row per unordered pair within a family
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_candidates_pending_pair
    ON duplicate_candidates(family_id, person_a_id, person_b_id)
    WHERE status = 'pending'
    """,
    "CREATE INDEX IF NOT EXISTS idx_candidates_a ON duplicate_candidates(person_a_id)",
    "CREATE INDEX IF NOT EXISTS idx_candidates_b ON duplicate_candidates(person_b_id)",
    """
    CREATE TABLE IF NOT EXISTS person_merges (
        id TEXT PRIMARY KEY,
        family_id TEXT NOT NULL REFERENCES families(id),
        winner_id TEXT NOT NULL REFERENCES people(id),
        loser_id TEXT NOT NULL REFERENCES people(id),
        actor_id TEXT NOT NULL,
        merged_at TEXT NOT NULL,
        candidate_id TEXT,
        confidence_score REAL,
        match_reasons TEXT NOT NULL DEFAULT '[]',
        reason TEXT,
        field_decisions TEXT NOT NULL DEFAULT '[]',
        winner_snapshot TEXT NOT NULL,
        loser_snapshot TEXT NOT NULL,
        dependent_snapshot TEXT NOT NULL,
        redirected_tombstones TEXT NOT NULL DEFAULT '[]',
        repoint_summary TEXT NOT NULL DEFAULT '{}',
        undo_expires_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_person_merges_family ON person_merges(family_id, merged_at)",
    """
    CREATE TRIGGER IF NOT EXISTS person_merges_no_update
    BEFORE UPDATE ON person_merges
    BEGIN
        SELECT RAISE(ABORT, 'person_merges is append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS person_merges_no_delete
    BEFORE DELETE ON person_merges
    BEGIN
        SELECT RAISE(ABORT, 'person_merges is append-only');
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS merge_undos (
        id TEXT PRIMARY KEY,
        merge_id TEXT NOT NULL UNIQUE REFERENCES person_merges(id),
        actor_id TEXT NOT NULL,
        undone_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scan_state (
        family_id TEXT PRIMARY KEY REFERENCES families(id),
        last_scanned_at TEXT NOT NULL
    )
    """,
]
