import re
from pathlib import Path

from tms_api.db.base import Base


def _schema_sql() -> str:
    repo_root = Path(__file__).resolve().parents[3]
    return (repo_root / "infra/sql/010_role_engine.sql").read_text(encoding="utf-8")


def _table_bodies(sql: str) -> dict[str, str]:
    pattern = re.compile(r"CREATE TABLE IF NOT EXISTS (\w+) \((.*?)\n\);", re.DOTALL)
    return {name: body for name, body in pattern.findall(sql)}


def test_sql_script_declares_every_orm_table_and_column():
    tables = _table_bodies(_schema_sql())

    missing_tables = sorted(set(Base.metadata.tables) - set(tables))
    assert missing_tables == [], f"tables missing in infra/sql: {missing_tables}"

    for name, table in Base.metadata.tables.items():
        declared = {line.split()[0] for line in tables[name].splitlines() if line.strip()}
        missing_columns = sorted(column.name for column in table.columns if column.name not in declared)
        assert missing_columns == [], f"{name} columns missing in infra/sql: {missing_columns}"


def test_sql_script_keeps_assignment_constraints():
    body = _table_bodies(_schema_sql())["role_assignments"]
    assert "UNIQUE (natural_key)" in body
    assert "CHECK (scope <> 'company' OR company_id IS NOT NULL)" in body
