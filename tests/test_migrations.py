import pytest

from clinicdb import migrations, models
from clinicdb.migrations import MigrationStep


def _schema_snapshot(conn):
    rows = conn.execute(
        "SELECT type, name, sql FROM sqlite_master WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
    )
    return [tuple(row) for row in rows]


def test_migrations_are_idempotent(conn):
    migrations.ensure_base_schema(conn)
    first = migrations.run_migrations(conn)
    assert [step.name for step in first] == [f'migration_{version}' for version in range(1, 13)]
    assert all(step.ok for step in first)

    snapshot = _schema_snapshot(conn)
    second = migrations.run_migrations(conn)
    assert second == []
    assert _schema_snapshot(conn) == snapshot
    assert migrations.applied_versions(conn) == list(range(1, 13))
    assert migrations.current_version(conn) == 12


def test_columns_added_to_old_tables(conn):
    conn.execute('CREATE TABLE patients (id TEXT PRIMARY KEY, full_name TEXT NOT NULL)')
    conn.execute(
        'CREATE TABLE payments (id TEXT PRIMARY KEY, patient_id TEXT NOT NULL, amount REAL NOT NULL)'
    )
    conn.execute('CREATE TABLE settings (id TEXT PRIMARY KEY, clinic_name TEXT)')

    outcomes = migrations.run_migrations(conn)
    assert all(step.ok for step in outcomes)

    patient_columns = models.table_columns(conn, 'patients')
    assert 'profile_image' in patient_columns
    assert 'patient_number' in patient_columns
    payment_columns = models.table_columns(conn, 'payments')
    for column in ('tooth_treatment_id', 'treatment_total_cost', 'treatment_total_paid', 'lab_order_id'):
        assert column in payment_columns
    indexes = {row['name'] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
    assert 'idx_payments_lab_order' in indexes
    assert 'idx_payments_tooth_treatment' in indexes
    assert models.table_exists(conn, 'lab_orders')


def test_column_add_is_skipped_when_present(conn):
    conn.execute('CREATE TABLE patients (id TEXT PRIMARY KEY, profile_image TEXT)')
    assert migrations.add_column(conn, 'patients', 'profile_image', 'TEXT') is False
    assert migrations.add_column(conn, 'missing_table', 'anything', 'TEXT') is False
    assert migrations.add_column(conn, 'patients', 'notes', 'TEXT') is True


def test_failed_step_is_skipped_and_recorded(conn):
    state = {'fail': True}

    def broken(connection):
        connection.execute('CREATE TABLE half_done (id INTEGER)')
        if state['fail']:
            connection.execute('SELECT * FROM table_that_does_not_exist')

    steps = [
        MigrationStep(1, 'first', lambda c: c.execute('CREATE TABLE first_table (id INTEGER)')),
        MigrationStep(2, 'broken', broken),
        MigrationStep(3, 'third', lambda c: c.execute('CREATE TABLE third_table (id INTEGER)')),
    ]

    outcomes = migrations.run_migrations(conn, steps)
    assert [(step.name, step.ok) for step in outcomes] == [
        ('migration_1', True),
        ('migration_2', False),
        ('migration_3', True),
    ]
    assert not models.table_exists(conn, 'half_done')
    assert models.table_exists(conn, 'third_table')
    assert migrations.current_version(conn) == 3
    skipped = migrations.skipped_versions(conn)
    assert list(skipped) == [2]
    assert 'table_that_does_not_exist' in skipped[2]

    # Skipped steps are not retried automatically.
    assert migrations.run_migrations(conn, steps) == []

    state['fail'] = False
    retried = migrations.retry_skipped(conn, 2, steps)
    assert retried.ok and retried.changed
    assert models.table_exists(conn, 'half_done')
    assert migrations.skipped_versions(conn) == {}
    assert migrations.applied_versions(conn) == [1, 2, 3]


def test_retry_that_fails_again_stays_skipped(conn):
    steps = [MigrationStep(1, 'broken', lambda c: c.execute('SELECT * FROM nowhere'))]
    migrations.run_migrations(conn, steps)

    outcome = migrations.retry_skipped(conn, 1, steps)
    assert not outcome.ok
    assert list(migrations.skipped_versions(conn)) == [1]
    assert migrations.current_version(conn) == 0


def test_retry_unknown_version_raises(conn):
    with pytest.raises(ValueError):
        migrations.retry_skipped(conn, 99, [])


def test_steps_run_in_version_order(conn):
    applied = []
    steps = [
        MigrationStep(2, 'second', lambda c: applied.append(2)),
        MigrationStep(1, 'first', lambda c: applied.append(1)),
    ]
    migrations.run_migrations(conn, steps)
    assert applied == [1, 2]


def test_duplicate_versions_raise(conn):
    steps = [
        MigrationStep(1, 'one', lambda c: None),
        MigrationStep(1, 'also one', lambda c: None),
    ]
    with pytest.raises(ValueError):
        migrations.run_migrations(conn, steps)


def test_steps_at_or_below_ledger_are_not_reapplied(conn):
    migrations.ensure_ledger(conn)
    migrations.record_version(conn, 5)
    applied = []
    steps = [
        MigrationStep(4, 'old', lambda c: applied.append(4)),
        MigrationStep(6, 'new', lambda c: applied.append(6)),
    ]
    migrations.run_migrations(conn, steps)
    assert applied == [6]
