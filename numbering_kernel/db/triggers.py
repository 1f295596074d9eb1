"""
Module: numbering_kernel.db.triggers
Responsibility: Installing, removing and verifying the database-level
    immutability triggers (Layer 2 of 2).  This is the complement to the ORM
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced (PostgreSQL and SQLite flavours of the same rules):
    - issued_identifiers rows: no UPDATE, no DELETE.  A reissue is a new row.
    - client_codes rows: no UPDATE, no DELETE.  Frozen at onboarding.

Failure modes:
    - PostgreSQL ``RAISE EXCEPTION`` / SQLite ``RAISE(ABORT, ...)`` on any
      violation, surfaced by SQLAlchemy as a DBAPIError whose message
      contains ``IMMUTABILITY_VIOLATION``.
    - ValueError for an unsupported dialect.

Audit relevance:
    These triggers catch raw SQL, bulk statements and direct console access
    that bypass the ORM listeners.
"""

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

PROTECTED_TABLES = ("issued_identifiers", "client_codes")

ALL_TRIGGER_NAMES = [
    "trg_issued_identifiers_immutability_update",
    "trg_issued_identifiers_immutability_delete",
    "trg_client_codes_immutability_update",
    "trg_client_codes_immutability_delete",
]

_PG_FUNCTION = """
CREATE OR REPLACE FUNCTION numbering_reject_mutation() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING MESSAGE =
        'IMMUTABILITY_VIOLATION: ' || TG_OP || ' on ' || TG_TABLE_NAME
        || ' is not allowed (id=' || OLD.id || ')';
END;
$$ LANGUAGE plpgsql
"""


def _postgres_statements() -> list[str]:
    statements = [_PG_FUNCTION]
    for table in PROTECTED_TABLES:
        for op in ("update", "delete"):
            name = f"trg_{table}_immutability_{op}"
            statements.append(f"DROP TRIGGER IF EXISTS {name} ON {table}")
            statements.append(
                f"CREATE TRIGGER {name} BEFORE {op.upper()} ON {table} "
                "FOR EACH ROW EXECUTE FUNCTION numbering_reject_mutation()"
            )
    return statements


def _sqlite_statements() -> list[str]:
    statements = []
    for table in PROTECTED_TABLES:
        for op in ("update", "delete"):
            name = f"trg_{table}_immutability_{op}"
            statements.append(
                f"CREATE TRIGGER IF NOT EXISTS {name} BEFORE {op.upper()} ON {table} "
                "BEGIN SELECT RAISE(ABORT, "
                f"'IMMUTABILITY_VIOLATION: {op.upper()} on {table} is not allowed'); END"
            )
    return statements


def _install_statements(engine: Engine) -> list[str]:
    dialect = engine.dialect.name
    if dialect == "postgresql":
        return _postgres_statements()
    if dialect == "sqlite":
        return _sqlite_statements()
    raise ValueError(f"No immutability triggers for dialect {dialect!r}")


def _drop_statements(engine: Engine) -> list[str]:
    dialect = engine.dialect.name
    if dialect == "postgresql":
        # DROP TRIGGER ... ON t fails when t itself is missing.
        existing = set(inspect(engine).get_table_names())
        statements = [
            f"DROP TRIGGER IF EXISTS trg_{table}_immutability_{op} ON {table}"
            for table in PROTECTED_TABLES
            if table in existing
            for op in ("update", "delete")
        ]
        statements.append("DROP FUNCTION IF EXISTS numbering_reject_mutation()")
        return statements
    if dialect == "sqlite":
        return [f"DROP TRIGGER IF EXISTS {name}" for name in ALL_TRIGGER_NAMES]
    raise ValueError(f"No immutability triggers for dialect {dialect!r}")


# =============================================================================
# Public API
# =============================================================================


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers (idempotent).

    Preconditions: Tables must exist (call after metadata.create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
    """
    with engine.begin() as conn:
        for statement in _install_statements(engine):
            conn.exec_driver_sql(statement)


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for test cleanup and schema teardown.  Re-install
    immediately afterwards.
    """
    with engine.begin() as conn:
        for statement in _drop_statements(engine):
            conn.exec_driver_sql(statement)


def get_installed_triggers(engine: Engine) -> list[str]:
    """Get the sorted list of installed immutability triggers."""
    if engine.dialect.name == "postgresql":
        query = text("SELECT tgname FROM pg_trigger ORDER BY tgname")
    else:
        query = text(
            "SELECT name FROM sqlite_master WHERE type = 'trigger' ORDER BY name"
        )

    with engine.connect() as conn:
        return [row[0] for row in conn.execute(query) if row[0] in ALL_TRIGGER_NAMES]


def get_missing_triggers(engine: Engine) -> list[str]:
    """Get the triggers that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return not get_missing_triggers(engine)
