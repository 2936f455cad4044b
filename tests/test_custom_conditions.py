"""
Feature: Custom condition validations
  As a board administrator
  I want to gate a column on a condition over a task field
  So that only tasks meeting a business rule can enter it

Scenario: Operators are restricted by field type
  Given a condition on a text or date field
  When it uses an operator the field type does not support
  Then the condition is rejected before being stored

Scenario: Condition values are normalized once and stay stable
  Given a condition whose value is locale formatted or a comma list
  When it is prepared for storage
  Then the value is stored in canonical form
  And preparing it again yields the same value

Scenario: Evaluating conditions against tasks
  Given a prepared condition
  When it is evaluated against a task
  Then text comparisons ignore case
  And empty fields only satisfy negative operators
  And values that cannot be read as the field type fail the condition
"""

import pytest
from datetime import date
from models.boards import Task, TaskPriority
from models.rules import ConditionOperator, ValueType
from rules.conditions import allowed_operators_for_field, evaluate_condition, prepare_condition
from rules.config import Condition
from rules.errors import ConfigurationError


def make_task(**fields) -> Task:
    return Task(title="Apartment 302", column_id="column_test", **fields)


def test_ordering_operator_rejected_on_text_field():
    # Given a condition on a text field using an ordering operator
    condition = Condition(field="title", operator=ConditionOperator.GREATER_THAN, value="a")

    # When it is prepared
    with pytest.raises(ConfigurationError) as error:
        prepare_condition(condition)

    # Then the operator is rejected
    assert error.value.field == "condition.operator"


def test_containment_operator_rejected_on_date_field():
    condition = Condition(field="dueDate", operator=ConditionOperator.CONTAINS, value="2024")

    with pytest.raises(ConfigurationError) as error:
        prepare_condition(condition)

    assert error.value.field == "condition.operator"


def test_unknown_field_rejected():
    condition = Condition(field="favouriteColor", operator=ConditionOperator.EQUALS, value="blue")

    with pytest.raises(ConfigurationError) as error:
        prepare_condition(condition)

    assert error.value.field == "condition.field"


def test_declared_type_must_match_field_type():
    condition = Condition(
        field="totalValue",
        operator=ConditionOperator.EQUALS,
        value="10",
        value_type=ValueType.STRING
    )

    with pytest.raises(ConfigurationError) as error:
        prepare_condition(condition)

    assert error.value.field == "condition.valueType"


def test_operator_needing_value_rejects_blank_value():
    condition = Condition(field="source", operator=ConditionOperator.EQUALS, value="   ")

    with pytest.raises(ConfigurationError) as error:
        prepare_condition(condition)

    assert error.value.field == "condition.value"


def test_allowed_operators_by_type():
    assert ConditionOperator.GREATER_THAN in allowed_operators_for_field("totalValue")
    assert ConditionOperator.CONTAINS not in allowed_operators_for_field("isCompleted")
    assert ConditionOperator.IN not in allowed_operators_for_field("dueDate")
    assert ConditionOperator.CONTAINS in allowed_operators_for_field("tags")


def test_comma_list_normalized_and_stable():
    # Given an "in" condition written as a comma separated list with a repeat
    condition = Condition(field="priority", operator=ConditionOperator.IN, value="high, urgent, high")

    # When it is prepared
    prepared = prepare_condition(condition)

    # Then the value is a de-duplicated list
    assert prepared.value == ["high", "urgent"]
    assert prepared.value_type == ValueType.STRING

    # And preparing it again changes nothing
    assert prepare_condition(prepared).value == prepared.value


def test_locale_number_and_day_first_date_normalized():
    number = prepare_condition(Condition(
        field="totalValue", operator=ConditionOperator.GREATER_OR_EQUAL, value="R$ 1.234,56"
    ))
    assert number.value == 1234.56
    assert prepare_condition(number).value == 1234.56

    due = prepare_condition(Condition(
        field="dueDate", operator=ConditionOperator.LESS_THAN, value="25/12/2024"
    ))
    assert due.value == "2024-12-25"
    assert prepare_condition(due).value == "2024-12-25"


def test_empty_operator_stores_no_value():
    prepared = prepare_condition(Condition(field="clientId", operator=ConditionOperator.EMPTY, value="x"))

    assert prepared.value is None


def test_text_equality_ignores_case():
    condition = prepare_condition(Condition(field="source", operator=ConditionOperator.EQUALS, value="Website"))

    passed, details = evaluate_condition(condition, make_task(source="WEBSITE"))

    assert passed is True
    assert details["actual"] == "WEBSITE"


def test_priority_in_list():
    condition = prepare_condition(Condition(field="priority", operator=ConditionOperator.IN, value=["high", "urgent"]))

    assert evaluate_condition(condition, make_task(priority=TaskPriority.URGENT))[0] is True
    assert evaluate_condition(condition, make_task(priority=TaskPriority.LOW))[0] is False


def test_blank_field_only_satisfies_negative_operators():
    equals = prepare_condition(Condition(field="source", operator=ConditionOperator.EQUALS, value="website"))
    not_equals = prepare_condition(Condition(field="source", operator=ConditionOperator.NOT_EQUALS, value="website"))
    not_empty = prepare_condition(Condition(field="source", operator=ConditionOperator.NOT_EMPTY))

    task = make_task(source=None)

    assert evaluate_condition(equals, task)[0] is False
    assert evaluate_condition(not_equals, task)[0] is True
    assert evaluate_condition(not_empty, task)[0] is False


def test_number_and_date_ordering():
    above = prepare_condition(Condition(field="totalValue", operator=ConditionOperator.GREATER_THAN, value="1000"))
    before = prepare_condition(Condition(field="dueDate", operator=ConditionOperator.LESS_THAN, value="2025-01-01"))

    task = make_task(total_value=1500.0, due_date=date(2024, 6, 1))

    assert evaluate_condition(above, task)[0] is True
    assert evaluate_condition(before, task)[0] is True
    assert evaluate_condition(above, make_task(total_value=999.99))[0] is False


def test_tags_contains_ignores_case():
    condition = prepare_condition(Condition(field="tags", operator=ConditionOperator.CONTAINS, value="VIP"))

    assert evaluate_condition(condition, make_task(tags=["vip", "hot-lead"]))[0] is True
    assert evaluate_condition(condition, make_task(tags=["cold"]))[0] is False


def test_custom_field_uses_declared_type():
    condition = prepare_condition(Condition(
        field="customFields.score",
        operator=ConditionOperator.GREATER_OR_EQUAL,
        value="10",
        value_type=ValueType.NUMBER
    ))

    assert evaluate_condition(condition, make_task(custom_fields={"score": "12"}))[0] is True
    assert evaluate_condition(condition, make_task(custom_fields={"score": 3}))[0] is False


def test_unreadable_task_value_fails_condition():
    condition = prepare_condition(Condition(
        field="customFields.score",
        operator=ConditionOperator.GREATER_THAN,
        value=5,
        value_type=ValueType.NUMBER
    ))

    passed, details = evaluate_condition(condition, make_task(custom_fields={"score": "a lot"}))

    assert passed is False
    assert "error" in details
