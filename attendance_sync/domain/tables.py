from __future__ import annotations

from dataclasses import dataclass, field

SYNC_COLUMNS = ("owner_id", "created_at", "updated_at", "last_synced_at", "is_dirty")

REFERENCE_DATA_GROUP = "reference_data"


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class TableSpec:
    """Describe una tabla espejo: columnas de dominio, claves JSON remotas y FKs lógicas."""

    name: str
    columns: tuple[str, ...]
    references: dict[str, str] = field(default_factory=dict)
    json_overrides: dict[str, str] = field(default_factory=dict)
    boolean_columns: frozenset[str] = frozenset()

    def json_key(self, column: str) -> str:
        return self.json_overrides.get(column, snake_to_camel(column))

    @property
    def all_columns(self) -> tuple[str, ...]:
        return ("id", *self.columns, *SYNC_COLUMNS)


IDENTITIES = TableSpec(
    name="identities",
    columns=("email", "role", "first_name", "last_name", "employee_id", "department", "phone", "is_active"),
    boolean_columns=frozenset({"is_active"}),
)

CLASSES = TableSpec(
    name="classes",
    columns=("name", "grade", "section", "academic_year", "description", "is_active"),
    boolean_columns=frozenset({"is_active"}),
)

ASSIGNMENTS = TableSpec(
    name="assignments",
    columns=("teacher_id", "class_id", "is_primary_teacher", "is_active"),
    references={"teacher_id": "identities", "class_id": "classes"},
    boolean_columns=frozenset({"is_primary_teacher", "is_active"}),
)

STUDENTS = TableSpec(
    name="students",
    columns=(
        "student_code",
        "first_name",
        "last_name",
        "email",
        "phone",
        "gender",
        "date_of_birth",
        "class_id",
        "is_active",
    ),
    references={"class_id": "classes"},
    json_overrides={"student_code": "studentId"},
    boolean_columns=frozenset({"is_active"}),
)

SUBJECTS = TableSpec(
    name="subjects",
    columns=("name", "code", "description", "is_active"),
    boolean_columns=frozenset({"is_active"}),
)

TEACHER_ATTENDANCE = TableSpec(
    name="teacher_attendance",
    columns=("teacher_id", "date", "check_in", "check_out", "status", "notes", "latitude", "longitude"),
    references={"teacher_id": "identities"},
)

STUDENT_ATTENDANCE = TableSpec(
    name="student_attendance",
    columns=("student_id", "class_id", "teacher_attendance_id", "date", "status", "notes", "marked_by"),
    references={
        "student_id": "students",
        "class_id": "classes",
        "teacher_attendance_id": "teacher_attendance",
        "marked_by": "identities",
    },
)

MIRRORED_TABLES: tuple[TableSpec, ...] = (
    IDENTITIES,
    CLASSES,
    ASSIGNMENTS,
    STUDENTS,
    SUBJECTS,
    TEACHER_ATTENDANCE,
    STUDENT_ATTENDANCE,
)

REFERENCE_TABLES: tuple[TableSpec, ...] = (IDENTITIES, CLASSES, ASSIGNMENTS, STUDENTS, SUBJECTS)

# Orden de push: las marcas de alumno pueden apuntar a un fichaje del docente.
ATTENDANCE_TABLES: tuple[TableSpec, ...] = (TEACHER_ATTENDANCE, STUDENT_ATTENDANCE)

_BY_NAME = {spec.name: spec for spec in MIRRORED_TABLES}


def table_spec(name: str) -> TableSpec:
    try:
        return _BY_NAME[name]
    except KeyError as exc:
        raise ValueError(f"Tabla desconocida: {name}") from exc


def referencing_columns(target_table: str) -> list[tuple[str, str]]:
    """Pares (tabla, columna) que apuntan a ``target_table``."""
    return [
        (spec.name, column)
        for spec in MIRRORED_TABLES
        for column, target in spec.references.items()
        if target == target_table
    ]
