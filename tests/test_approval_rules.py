"""
Tests for ApprovalRuleService.
"""
from decimal import Decimal

import pytest

from app.database.models.approval import ApprovalRule, ApprovalStep
from app.database.services.approval_service import ApprovalRuleService
from app.logic.exceptions import ApprovalRuleNotFoundError, AuthorizationError, ValidationError
from app.ReqResModels.approvalmodels import (
    ApprovalRuleQueryParams,
    ApprovalSequence,
    CreateApprovalRuleRequest,
    RuleConditions,
    UpdateApprovalRuleRequest,
)
from factories import caller_for


def create(db, admin, approvers, **kwargs):
    fields = {"name": "Large travel", "approvers": [a.id for a in approvers]}
    fields.update(kwargs)
    return ApprovalRuleService.create_approval_rule(db, caller_for(admin), CreateApprovalRuleRequest(**fields))


# ---------------------------------------------------------------------------
# ApprovalRuleService.create_approval_rule
# ---------------------------------------------------------------------------

class TestCreateRule:
    def test_creates_rule_with_ordered_steps(self, db, admin, manager, approver_b, category):
        rule = create(
            db, admin, [approver_b, manager],
            sequence="parallel", min_approval_percentage=50,
            conditions=RuleConditions(amount_threshold=Decimal("500"), category_ids=[category.id]),
        )

        assert rule.sequence == ApprovalSequence.PARALLEL
        assert [a.approver_id for a in rule.approvers] == [approver_b.id, manager.id]
        assert [a.sequence_order for a in rule.approvers] == [1, 2]
        assert rule.approvers[0].approver_name == approver_b.name
        assert rule.conditions.category_ids == [category.id]

        stored = db.get(ApprovalRule, rule.id)
        # Stored as JSON so the resolver can read it back without pydantic
        assert stored.conditions == {"amount_threshold": "500", "category_ids": [category.id]}

    def test_only_admins(self, db, manager, approver_b):
        with pytest.raises(AuthorizationError):
            create(db, manager, [approver_b])

    def test_employee_cannot_be_approver(self, db, admin, employee):
        with pytest.raises(ValidationError) as exc:
            create(db, admin, [employee])
        assert "approvers" in exc.value.details

    def test_approver_from_another_company(self, db, admin, outsider):
        with pytest.raises(ValidationError):
            create(db, admin, [outsider])

    def test_sequential_requires_full_percentage(self, db, admin, manager, approver_b):
        with pytest.raises(ValidationError) as exc:
            create(db, admin, [manager, approver_b], sequence="SEQUENTIAL", min_approval_percentage=50)
        assert "min_approval_percentage" in exc.value.details

    def test_duplicate_approvers(self, db, admin, manager):
        with pytest.raises(ValidationError):
            create(db, admin, [manager, manager], sequence="PARALLEL", min_approval_percentage=100)
        assert db.query(ApprovalRule).count() == 0

    def test_unknown_category_condition(self, db, admin, manager, category):
        with pytest.raises(ValidationError) as exc:
            create(db, admin, [manager], conditions=RuleConditions(category_ids=[category.id + 50]))
        assert "conditions.category_ids" in exc.value.details


# ---------------------------------------------------------------------------
# Reading, updating and deleting rules
# ---------------------------------------------------------------------------

class TestManageRules:
    def test_list_and_filter(self, db, admin, manager, approver_b):
        create(db, admin, [manager])
        create(db, admin, [approver_b], name="Dormant", is_active=False)

        everything = ApprovalRuleService.get_approval_rules(db, caller_for(admin), ApprovalRuleQueryParams())
        active = ApprovalRuleService.get_approval_rules(db, caller_for(admin), ApprovalRuleQueryParams(is_active=True))

        assert everything.total == 2
        assert [r.name for r in active.rules] == ["Large travel"]

    def test_replace_approvers_keeps_existing_ones(self, db, admin, manager, approver_b, approver_c):
        rule = create(db, admin, [manager, approver_b])

        updated = ApprovalRuleService.update_approval_rule(
            db, caller_for(admin), rule.id, UpdateApprovalRuleRequest(approvers=[approver_b.id, approver_c.id])
        )

        assert [a.approver_id for a in updated.approvers] == [approver_b.id, approver_c.id]
        assert db.query(ApprovalStep).count() == 2

    def test_update_is_validated_against_stored_values(self, db, admin, manager, approver_b):
        rule = create(db, admin, [manager, approver_b], sequence="PARALLEL", min_approval_percentage=50)
        with pytest.raises(ValidationError):
            ApprovalRuleService.update_approval_rule(
                db, caller_for(admin), rule.id, UpdateApprovalRuleRequest(sequence="SEQUENTIAL")
            )

    def test_name_cannot_be_cleared(self, db, admin, manager):
        rule = create(db, admin, [manager])
        with pytest.raises(ValidationError):
            ApprovalRuleService.update_approval_rule(
                db, caller_for(admin), rule.id, UpdateApprovalRuleRequest(name=None)
            )

    def test_rules_of_other_companies_are_invisible(self, db, admin, manager, outsider):
        rule = create(db, admin, [manager])
        with pytest.raises(ApprovalRuleNotFoundError):
            ApprovalRuleService.get_approval_rule(db, caller_for(outsider), rule.id)

    def test_delete(self, db, admin, manager):
        rule = create(db, admin, [manager])
        ApprovalRuleService.delete_approval_rule(db, caller_for(admin), rule.id)

        assert db.query(ApprovalRule).count() == 0
        assert db.query(ApprovalStep).count() == 0
        with pytest.raises(ApprovalRuleNotFoundError):
            ApprovalRuleService.delete_approval_rule(db, caller_for(admin), rule.id)
