"""Compare the live database schema with the roundplay models.

Exit codes: 0 no drift, 1 drift found, 2 the check itself failed.
Usage: ``python scripts/check_schema_drift.py [DATABASE_URL]``
"""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from roundplay.db.engine import make_engine
from roundplay.models import Base

# Tables owned by the migration tooling rather than the models.
IGNORED_TABLES = {"alembic_version"}


def _include_object(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "table" and name in IGNORED_TABLES:
        return False
    return True


def _describe(ops, indent: int = 0) -> list[str]:
    lines = []
    prefix = "  " * indent
    for op in ops:
        lines.append(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            lines.extend(_describe(sub_ops, indent + 1))
    return lines


def check(database_url: Optional[str] = None) -> tuple[int, list[str]]:
    """Return ``(exit_code, report_lines)`` for the configured database."""
    engine = make_engine(database_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "include_object": _include_object,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        return 2, [f"Schema drift check: ERROR for {url_display}: {exc}"]
    finally:
        engine.dispose()

    if upgrade_ops is None:
        return 2, [f"Schema drift check: ERROR for {url_display}: missing upgrade ops."]
    if upgrade_ops.is_empty():
        return 0, [f"Schema drift check: OK (no differences) for {url_display}."]
    return 1, [
        f"Schema drift check: FAILED for {url_display}. Differences detected:",
        *_describe(upgrade_ops.ops or []),
    ]


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    code, lines = check(args[0] if args else None)
    stream = sys.stderr if code == 2 else sys.stdout
    for line in lines:
        print(line, file=stream)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
