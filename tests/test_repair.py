from clinicdb import models, repair
from clinicdb.connection import foreign_keys_enabled

LEGACY_DENTAL_TREATMENTS = """
CREATE TABLE dental_treatments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    appointment_id TEXT,
    tooth_number INTEGER NOT NULL CHECK (tooth_number >= 1 AND tooth_number <= 32),
    tooth_name TEXT,
    current_treatment TEXT,
    next_treatment TEXT,
    treatment_details TEXT,
    treatment_status TEXT DEFAULT 'active'
        CHECK (treatment_status IN ('active', 'completed', 'cancelled', 'on_hold')),
    treatment_color TEXT DEFAULT '#ef4444',
    cost REAL DEFAULT 0,
    notes TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
)
"""

LEGACY_LAB_ORDERS = """
CREATE TABLE lab_orders (
    id TEXT PRIMARY KEY,
    lab_id TEXT NOT NULL,
    patient_id TEXT,
    service_name TEXT NOT NULL,
    cost REAL NOT NULL,
    order_date TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('pending', 'completed', 'cancelled')),
    notes TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (lab_id) REFERENCES labs(id) ON DELETE CASCADE
)
"""


def _with_patient(conn):
    models.create_tables(conn, models.patients, models.appointments)
    conn.execute(
        """
        INSERT INTO patients (id, serial_number, full_name, gender, age, patient_condition)
        VALUES ('p1', 'p1', 'Omar Saleh', 'male', 40, 'Healthy')
        """
    )


def _changed(outcomes):
    return {step.name: step.changed for step in outcomes}


def test_legacy_dental_treatments_are_rebuilt(conn):
    _with_patient(conn)
    conn.execute(LEGACY_DENTAL_TREATMENTS)
    conn.executemany(
        'INSERT INTO dental_treatments (id, patient_id, tooth_number, treatment_status) VALUES (?, ?, ?, ?)',
        [('t1', 'p1', 5, 'active'), ('t2', 'p1', 14, 'on_hold'), ('t3', 'p1', 30, None)],
    )

    outcomes = repair.repair_drift(conn)
    assert all(step.ok for step in outcomes)
    changed = _changed(outcomes)
    assert changed['dental_treatments_tooth_range'] is True
    assert changed['dental_treatments_status_values'] is False

    rows = {
        row['id']: (row['tooth_number'], row['treatment_status'])
        for row in conn.execute('SELECT id, tooth_number, treatment_status FROM dental_treatments')
    }
    assert rows == {'t1': (14, 'in_progress'), 't2': (14, 'planned'), 't3': (46, 'planned')}

    descriptor = repair.describe_table(conn, 'dental_treatments')
    assert descriptor.sql_contains('tooth_number >= 11')
    assert not descriptor.sql_contains(repair.LEGACY_TOOTH_RANGE)
    assert foreign_keys_enabled(conn)
    assert not models.table_exists(conn, 'dental_treatments__rebuild')

    # The repaired table now enforces FDI numbering.
    assert not repair.detect_legacy_tooth_range(conn)
    assert all(not step.changed for step in repair.repair_drift(conn))


def test_image_tooth_record_column_is_dropped(conn):
    _with_patient(conn)
    models.create_tables(conn, models.dental_treatments)
    conn.execute("INSERT INTO dental_treatments (id, patient_id, tooth_number) VALUES ('d1', 'p1', 11)")
    conn.execute(
        """
        CREATE TABLE dental_treatment_images (
            id TEXT PRIMARY KEY,
            tooth_record_id TEXT,
            dental_treatment_id TEXT,
            patient_id TEXT NOT NULL,
            tooth_number INTEGER NOT NULL,
            image_path TEXT NOT NULL,
            image_type TEXT NOT NULL,
            description TEXT,
            taken_date DATETIME DEFAULT CURRENT_TIMESTAMP,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.executemany(
        """
        INSERT INTO dental_treatment_images
            (id, tooth_record_id, dental_treatment_id, patient_id, tooth_number, image_path, image_type)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [
            ('i1', 'r1', 'd1', 'p1', 11, '/img/1.png', 'before'),
            ('i2', 'r2', None, 'p1', 11, '/img/2.png', 'after'),
        ],
    )

    outcomes = repair.repair_drift(conn)
    assert _changed(outcomes)['dental_treatment_images_tooth_record'] is True

    assert 'tooth_record_id' not in models.table_columns(conn, 'dental_treatment_images')
    ids = [row['id'] for row in conn.execute('SELECT id FROM dental_treatment_images')]
    assert ids == ['i1']


def test_tooth_treatment_images_treatment_becomes_optional(conn):
    _with_patient(conn)
    models.create_tables(conn, models.tooth_treatments)
    conn.execute(
        """
        CREATE TABLE tooth_treatment_images (
            id TEXT PRIMARY KEY,
            tooth_treatment_id TEXT NOT NULL,
            patient_id TEXT NOT NULL,
            tooth_number INTEGER NOT NULL,
            image_path TEXT NOT NULL,
            image_type TEXT NOT NULL,
            description TEXT,
            taken_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        INSERT INTO tooth_treatment_images
            (id, tooth_treatment_id, patient_id, tooth_number, image_path, image_type, created_at, updated_at)
        VALUES ('i1', 'gone', 'p1', 21, '/img/x.png', 'xray', '2024-01-01', '2024-01-01')
        """
    )

    outcomes = repair.repair_drift(conn)
    assert _changed(outcomes)['tooth_treatment_images_optional_treatment'] is True

    column = repair.describe_table(conn, 'tooth_treatment_images').column('tooth_treatment_id')
    assert column is not None and not column.notnull
    assert conn.execute('SELECT COUNT(*) FROM tooth_treatment_images').fetchone()[0] == 1


def test_legacy_lab_order_statuses_are_translated(conn):
    _with_patient(conn)
    models.create_tables(conn, models.labs, models.tooth_treatments)
    conn.execute("INSERT INTO labs (id, name) VALUES ('lab1', 'Smile Lab')")
    conn.execute(LEGACY_LAB_ORDERS)
    conn.executemany(
        'INSERT INTO lab_orders (id, lab_id, patient_id, service_name, cost, order_date, status) VALUES (?, ?, ?, ?, ?, ?, ?)',
        [
            ('o1', 'lab1', 'p1', 'Crown', 300, '2024-02-01', 'pending'),
            ('o2', 'lab1', 'p1', 'Bridge', 500, '2024-02-02', 'completed'),
            ('o3', 'lab1', 'p1', 'Veneer', 200, '2024-02-03', 'cancelled'),
        ],
    )

    outcomes = repair.repair_drift(conn)
    assert _changed(outcomes)['lab_orders_status_values'] is True

    rows = {
        row['id']: (row['status'], row['paid_amount'], row['priority'])
        for row in conn.execute('SELECT id, status, paid_amount, priority FROM lab_orders')
    }
    assert rows == {'o1': ('معلق', 0, 1), 'o2': ('مكتمل', 0, 1), 'o3': ('ملغي', 0, 1)}
    assert 'tooth_treatment_id' in models.table_columns(conn, 'lab_orders')
    assert not repair.detect_legacy_lab_order_status(conn)


def test_current_schema_is_left_alone(conn):
    models.create_tables(conn, *models.TABLES_BY_NAME.values())
    before = [tuple(row) for row in conn.execute('SELECT name, sql FROM sqlite_master ORDER BY name')]

    outcomes = repair.repair_drift(conn)
    assert [step.name for step in outcomes] == [check.name for check in repair.DRIFT_CHECKS]
    assert all(step.ok and not step.changed for step in outcomes)
    after = [tuple(row) for row in conn.execute('SELECT name, sql FROM sqlite_master ORDER BY name')]
    assert after == before


def test_failed_repair_is_reported(conn):
    def explode(connection):
        connection.execute('SELECT * FROM no_such_table')
        return 0

    checks = [repair.DriftCheck('always_broken', lambda c: True, explode)]
    outcomes = repair.repair_drift(conn, checks)
    assert len(outcomes) == 1
    assert not outcomes[0].ok
    assert 'no_such_table' in outcomes[0].error


def test_legacy_patients_are_converted(conn):
    conn.execute(
        """
        CREATE TABLE patients (
            id TEXT PRIMARY KEY,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            date_of_birth TEXT,
            phone TEXT,
            email TEXT,
            address TEXT,
            medical_history TEXT,
            allergies TEXT,
            insurance_info TEXT,
            notes TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.executemany(
        """
        INSERT INTO patients
            (id, first_name, last_name, date_of_birth, phone, medical_history, allergies, insurance_info)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            ('abcdef12-0001', 'Sara', 'Ali', '', '0500', '', 'Penicillin', 'Diabetes'),
            ('12345678-0002', 'Hadi', 'Nour', '1980-05-01', None, 'Hypertension', None, None),
        ],
    )
    assert repair.has_legacy_patients(conn)

    outcome = repair.migrate_legacy_patients(conn)
    assert outcome.ok and outcome.changed
    assert not repair.has_legacy_patients(conn)

    rows = {row['id']: dict(row) for row in conn.execute('SELECT * FROM patients')}
    sara = rows['abcdef12-0001']
    assert sara['full_name'] == 'Sara Ali'
    assert sara['serial_number'] == 'abcdef12'
    assert sara['gender'] == 'male'
    assert sara['age'] == repair.DEFAULT_PATIENT_AGE
    assert sara['patient_condition'] == repair.DEFAULT_PATIENT_CONDITION
    assert sara['medical_conditions'] == 'Diabetes'
    assert sara['allergies'] == 'Penicillin'
    assert sara['phone'] == '0500'

    hadi = rows['12345678-0002']
    assert hadi['age'] > 40
    assert hadi['patient_condition'] == 'Hypertension'

    again = repair.migrate_legacy_patients(conn)
    assert again.ok and not again.changed
