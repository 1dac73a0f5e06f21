from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import IntegrityError

from miniorm.app import open_context
from miniorm.domain.context import DbContext
from miniorm.domain.db_set import DbSet
from miniorm.domain.errors import EntityValidationError, ReferentialIntegrityError
from miniorm.domain.persistence import SaveResult
from tests.helpers.catalog import CatalogContext, Category, catalog_metadata
from tests.helpers.company import (
    CompanyContext,
    Department,
    Employee,
    EmployeeProject,
    Project,
)
from tests.helpers.stores import RecordingStore, StoreFailure

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine


def _by_name(company: CompanyContext) -> dict[str, Employee]:
    return {e.first_name: e for e in company.employees}


def test_round_trip_of_new_entity_with_foreign_key(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    sales = next(d for d in company.departments if d.name == "Sales")
    company.employees.add(
        Employee(first_name="Katherine", last_name="Johnson", department=sales, salary=4100)
    )

    result = company.save_changes()

    assert result == SaveResult(inserted=1)
    fresh = reload()
    katherine = _by_name(fresh)["Katherine"]
    assert katherine.id is not None
    assert katherine.department is not None
    assert katherine.department.name == "Sales"
    assert katherine in katherine.department.employees


def test_generated_keys_are_written_back(company: CompanyContext) -> None:
    legal = Department(name="Legal")
    company.departments.add(legal)

    company.save_changes()

    assert legal.id == 4


def test_parent_and_child_added_in_one_save(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    legal = Department(name="Legal")
    company.departments.add(legal)
    company.employees.add(Employee(first_name="Ruth", last_name="Bader", department=legal))

    result = company.save_changes()

    assert result.inserted == 2
    ruth = _by_name(reload())["Ruth"]
    assert ruth.department is not None
    assert ruth.department.name == "Legal"
    assert ruth.department_id == legal.id


def test_in_place_edits_are_updated(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    ada = _by_name(company)["Ada"]
    ada.salary = 6000
    ada.nickname = "Countess"

    result = company.save_changes()

    assert result == SaveResult(updated=1)
    assert _by_name(reload())["Ada"].salary == 6000


def test_key_edits_update_the_loaded_row(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    research = next(d for d in company.departments if d.name == "Research")
    research.id = 30

    company.save_changes()

    names = {d.id: d.name for d in reload().departments}
    assert names == {1: "Engineering", 2: "Sales", 30: "Research"}


def test_removed_link_rows_are_deleted(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    link = next(
        link
        for link in company.employee_projects
        if (link.employee_id, link.project_id) == (1, 2)
    )
    company.employee_projects.remove(link)

    result = company.save_changes()

    assert result == SaveResult(deleted=1)
    assert [p.name for p in _by_name(reload())["Ada"].projects] == ["Compiler"]


def test_new_link_rows_extend_many_to_many(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    company.employee_projects.add(EmployeeProject(employee_id=3, project_id=3))

    company.save_changes()

    fresh = reload()
    archive = next(p for p in fresh.projects if p.name == "Archive")
    assert [e.first_name for e in archive.employees] == ["Linus"]


def test_add_then_remove_issues_no_writes(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine)
    company = open_context(CompanyContext, store)
    project = Project(name="Scratch")
    company.projects.add(project)
    company.projects.remove(project)

    result = company.save_changes()

    assert result == SaveResult()
    assert store.writes() == []


def test_trackers_are_reset_after_save(company: CompanyContext) -> None:
    company.projects.add(Project(name="Search"))
    _by_name(company)["Grace"].salary = 5300

    company.save_changes()
    second = company.save_changes()

    assert second == SaveResult()
    assert company.projects.tracker.added == ()
    assert company.employees.tracker.modified(company.employees) == []


def test_invalid_entity_blocks_every_write(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine)
    company = open_context(CompanyContext, store)
    opened_after_load = store.opened
    company.departments.add(Department(name="Legal"))
    company.projects.add(Project(name="Search"))
    company.employees.add(Employee(first_name="", last_name="Nobody", department_id=1))
    company.employees.add(Employee(first_name="Valid", last_name="Person", department_id=1))

    with pytest.raises(EntityValidationError) as exc_info:
        company.save_changes()

    assert exc_info.value.set_name == "employees"
    assert exc_info.value.count == 1
    assert "1 invalid entities found in 'employees'" in str(exc_info.value)
    assert store.calls == []
    assert store.opened == opened_after_load
    assert len(company.departments.tracker.added) == 1
    assert len(open_context(CompanyContext, sqlite_engine).departments) == 3


def test_store_failure_on_third_set_rolls_back_all_sets(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine, fail_on="employees")
    company = open_context(CompanyContext, store)
    legal = Department(name="Legal")
    company.departments.add(legal)
    company.projects.add(Project(name="Search"))
    company.employees.add(Employee(first_name="Ruth", last_name="Bader", department=legal))
    company.employee_projects.add(EmployeeProject(employee_id=2, project_id=2))

    with pytest.raises(StoreFailure) as exc_info:
        company.save_changes()

    assert exc_info.value is store.error
    assert ("insert", "employees_projects") not in store.calls
    assert not store.is_open
    fresh = open_context(CompanyContext, sqlite_engine)
    assert [d.name for d in fresh.departments] == ["Engineering", "Sales", "Research"]
    assert [p.name for p in fresh.projects] == ["Compiler", "Kernel", "Archive"]
    assert len(fresh.employees) == 3
    assert len(fresh.employee_projects) == 4


def test_failed_save_leaves_in_memory_state_untouched(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine, fail_on="employees")
    company = open_context(CompanyContext, store)
    legal = Department(name="Legal")
    ruth = Employee(first_name="Ruth", last_name="Bader", department=legal)
    company.departments.add(legal)
    company.employees.add(ruth)

    with pytest.raises(StoreFailure):
        company.save_changes()

    assert legal.id is None
    assert ruth.department_id is None
    assert company.departments.tracker.added == (legal,)
    assert company.employees.tracker.added == (ruth,)


def test_constraint_violation_propagates_unchanged(
    company: CompanyContext, reload: Callable[[], CompanyContext]
) -> None:
    company.projects.add(Project(name="Search"))
    company.employees.add(
        Employee(id=1, first_name="Duplicate", last_name="Row", department_id=1)
    )

    with pytest.raises(IntegrityError):
        company.save_changes()

    fresh = reload()
    assert len(fresh.projects) == 3
    assert [e.first_name for e in fresh.employees] == ["Ada", "Grace", "Linus"]


def test_connection_is_closed_after_every_save(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine)
    company = open_context(CompanyContext, store)

    company.save_changes()

    assert store.opened == store.closed
    assert not store.is_open


def test_persistence_follows_declaration_order(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine)
    company = open_context(CompanyContext, store)
    company.employee_projects.add(EmployeeProject(employee_id=3, project_id=1))
    company.employees.add(Employee(first_name="Ruth", last_name="Bader", department_id=2))
    company.departments.add(Department(name="Legal"))

    company.save_changes()

    assert store.writes() == [
        ("insert", "departments"),
        ("insert", "employees"),
        ("insert", "employees_projects"),
    ]


class ChildFirstContext(DbContext):
    employees: DbSet[Employee]
    departments: DbSet[Department]
    projects: DbSet[Project]
    employee_projects: DbSet[EmployeeProject]


def test_parent_declared_after_child_gets_key_written_back(
    sqlite_engine: Engine, reload: Callable[[], CompanyContext]
) -> None:
    store = RecordingStore(sqlite_engine)
    context = open_context(ChildFirstContext, store)
    legal = Department(name="Legal")
    ruth = Employee(first_name="Ruth", last_name="Bader", department=legal)
    context.employees.add(ruth)
    context.departments.add(legal)

    result = context.save_changes()

    assert result == SaveResult(inserted=2)
    assert store.writes() == [
        ("insert", "employees"),
        ("insert", "departments"),
        ("update", "employees"),
    ]
    assert ruth.department_id == legal.id
    assert context.employees.tracker.modified(context.employees) == []
    fresh = _by_name(reload())["Ruth"]
    assert fresh.department is not None
    assert fresh.department.name == "Legal"


def test_reference_within_one_set_to_later_insert(sqlite_engine: Engine) -> None:
    catalog_metadata.create_all(sqlite_engine)
    catalog = open_context(CatalogContext, sqlite_engine)
    root = Category(name="Root")
    leaf = Category(name="Leaf", parent=root)
    catalog.categories.add(leaf)
    catalog.categories.add(root)

    result = catalog.save_changes()

    assert result == SaveResult(inserted=2)
    assert leaf.parent_id == root.id
    fresh = {c.name: c for c in open_context(CatalogContext, sqlite_engine).categories}
    assert fresh["Leaf"].parent is fresh["Root"]
    assert fresh["Root"].parent_id is None
    assert fresh["Root"].children == [fresh["Leaf"]]


def test_reference_to_unsaved_entity_fails_the_save(sqlite_engine: Engine) -> None:
    company = open_context(CompanyContext, sqlite_engine)
    ghost = Department(name="Ghost")
    ruth = Employee(first_name="Ruth", last_name="Bader", department=ghost)
    company.employees.add(ruth)

    with pytest.raises(ReferentialIntegrityError, match=r"employees\.department_id cannot be set"):
        company.save_changes()

    assert ruth.department_id is None
    assert company.employees.tracker.added == (ruth,)
    assert len(open_context(CompanyContext, sqlite_engine).employees) == 3


def test_failing_rollback_keeps_the_original_error(sqlite_engine: Engine) -> None:
    store = RecordingStore(sqlite_engine, fail_on="employees", fail_rollback=True)
    company = open_context(CompanyContext, store)
    legal = Department(name="Legal")
    company.departments.add(legal)
    company.employees.add(Employee(first_name="Ruth", last_name="Bader", department_id=1))

    with pytest.raises(StoreFailure) as exc_info:
        company.save_changes()

    assert exc_info.value is store.error
    assert legal.id is None
    assert not store.is_open
    assert len(open_context(CompanyContext, sqlite_engine).departments) == 3
