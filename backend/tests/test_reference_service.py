"""
Reference data tests: branches, departments, categories and employees.
"""

import pytest

from assetdesk.errors import ConflictError, NotFoundError, ValidationError
from assetdesk.services import assignment_service, reference_service, repository

from conftest import add_units


class TestNamedEntities:
    def test_create_and_list_sorted(self, db_session):
        reference_service.create_branch({"name": "  Tokyo  "})
        reference_service.create_branch({"name": "Berlin"})

        names = [b.name for b in reference_service.list_branches()]
        assert names == ["Berlin", "Tokyo"]

    def test_search_is_substring(self, db_session):
        reference_service.create_category({"name": "Laptops"})
        reference_service.create_category({"name": "Monitors"})
        assert [c.name for c in reference_service.list_categories(search="top")] == ["Laptops"]

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            reference_service.create_department({"description": "no name"})
        with pytest.raises(ValidationError):
            reference_service.create_department({"name": "   "})

    def test_duplicate_name_conflicts_case_insensitively(self, db_session):
        reference_service.create_department({"name": "Finance"})
        with pytest.raises(ConflictError):
            reference_service.create_department({"name": "finance"})

    def test_deleted_name_can_be_reused(self, db_session):
        branch = reference_service.create_branch({"name": "Lagos"})
        reference_service.delete_branch(branch.id)

        again = reference_service.create_branch({"name": "Lagos"})
        assert again.id != branch.id
        assert repository.branches.count(include_deleted=True) == 2

    def test_update_rename(self, db_session):
        first = reference_service.create_category({"name": "Phones"})
        reference_service.create_category({"name": "Tablets"})

        updated = reference_service.update_category(first.id, {"description": "Mobile phones"})
        assert updated.description == "Mobile phones"
        with pytest.raises(ConflictError):
            reference_service.update_category(first.id, {"name": "Tablets"})

    def test_branch_with_products_cannot_be_deleted(self, db_session, product, branch):
        with pytest.raises(ConflictError, match="products"):
            reference_service.delete_branch(branch.id)

    def test_branch_with_employees_cannot_be_deleted(self, db_session, employee, branch):
        with pytest.raises(ConflictError, match="employees"):
            reference_service.delete_branch(branch.id)

    def test_category_in_use_cannot_be_deleted(self, db_session, product, category):
        with pytest.raises(ConflictError):
            reference_service.delete_category(category.id)

    def test_get_deleted_is_not_found(self, db_session, department):
        reference_service.delete_department(department.id)
        with pytest.raises(NotFoundError, match="Department not found"):
            reference_service.get_department(department.id)


class TestValidateReferences:
    def test_returns_loaded_rows(self, db_session, product, employee):
        found = reference_service.validate_references(product_id=product.id, employee_id=employee.id)
        assert found == {"product": product, "employee": employee}

    def test_missing_reference_names_entity(self, db_session, product):
        with pytest.raises(NotFoundError, match="Employee not found"):
            reference_service.validate_references(product_id=product.id, employee_id=9999)

    def test_none_means_not_supplied(self, db_session):
        assert reference_service.validate_references(branch_id=None) == {}


class TestEmployees:
    def test_create_with_camel_case_keys(self, db_session, branch):
        employee = reference_service.create_employee({
            "empId": "E-100",
            "name": "Priya Nair",
            "email": "priya@example.com",
            "department": "Finance",
            "branchId": branch.id,
        })
        assert employee.emp_id == "E-100"
        assert employee.branch_id == branch.id

    def test_emp_id_unique(self, db_session, employee):
        with pytest.raises(ConflictError, match="Employee ID already exists"):
            reference_service.create_employee({"empId": employee.emp_id, "name": "Clone"})

    def test_unknown_branch_rejected(self, db_session):
        with pytest.raises(NotFoundError):
            reference_service.create_employee({"empId": "E-9", "name": "Nobody", "branchId": 777})

    def test_list_counts_active_assignments(self, db_session, product, employee, second_employee, admin_user):
        add_units(product, 2)
        for _ in range(2):
            assignment_service.assign(
                product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id
            )

        rows = {r["empId"]: r for r in reference_service.list_employees()}
        assert rows["E-001"]["activeAssignments"] == 2
        assert rows["E-002"]["activeAssignments"] == 0

        assert [r["name"] for r in reference_service.list_employees(search="sam")] == ["Sam Okafor"]

    def test_get_employee_lists_open_assignments(self, db_session, product, employee, admin_user):
        add_units(product, 1, serials=["EMP-SN"])
        assignment_service.assign(product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id)

        data = reference_service.get_employee(employee.id)
        assert len(data["assignments"]) == 1
        assert data["assignments"][0]["product"]["name"] == "ThinkPad T14"

    def test_employee_with_open_assignment_cannot_be_deleted(self, db_session, product, employee, admin_user):
        add_units(product, 1)
        assignment = assignment_service.assign(
            product_id=product.id, employee_id=employee.id, acting_user_id=admin_user.id
        )
        with pytest.raises(ConflictError):
            reference_service.delete_employee(employee.id)

        assignment_service.return_assignment(assignment.id, acting_user_id=admin_user.id)
        reference_service.delete_employee(employee.id)
        assert repository.employees.get(employee.id) is None
