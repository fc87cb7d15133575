import logging
from uuid import UUID, uuid4

from tms_api.services.conditions import ConditionEvaluator, filter_fields

COMPANY_1 = UUID("00000000-0000-0000-0000-0000000000c1")
COMPANY_2 = UUID("00000000-0000-0000-0000-0000000000c2")


class _StubDirectory:
    """内存版人员目录。"""

    def __init__(self, companies: dict[UUID, UUID | None]):
        self.companies = companies

    def exists(self, actor_id):
        return actor_id in self.companies

    def belongs_to_tenant(self, actor_id, tenant_id):
        return actor_id in self.companies

    def company_of(self, actor_id):
        return self.companies.get(actor_id)

    def global_role_of(self, actor_id):
        return None


def test_empty_conditions_are_satisfied():
    evaluator = ConditionEvaluator(_StubDirectory({}))
    assert evaluator.evaluate(None, uuid4(), None)
    assert evaluator.evaluate({}, uuid4(), uuid4())


def test_owned_by_self():
    actor = uuid4()
    evaluator = ConditionEvaluator(_StubDirectory({}))
    assert evaluator.evaluate({"ownedBy": "self"}, actor, actor)
    assert not evaluator.evaluate({"ownedBy": "self"}, actor, uuid4())
    assert not evaluator.evaluate({"ownedBy": "self"}, actor, None)


def test_same_company():
    actor, colleague, outsider, freelancer, target = uuid4(), uuid4(), uuid4(), uuid4(), uuid4()
    directory = _StubDirectory(
        {actor: COMPANY_1, colleague: COMPANY_1, outsider: COMPANY_2, freelancer: None, target: None}
    )
    evaluator = ConditionEvaluator(directory)
    same = {"companyId": "same"}

    assert evaluator.evaluate(same, actor, colleague)
    assert not evaluator.evaluate(same, actor, outsider)
    assert not evaluator.evaluate(same, actor, None)
    # 两个都没有公司的人员不算同一公司。
    assert not evaluator.evaluate(same, freelancer, target)


def test_unknown_condition_fails_open_by_default(caplog):
    evaluator = ConditionEvaluator(_StubDirectory({}))
    with caplog.at_level(logging.WARNING, logger="tms_api.conditions"):
        assert evaluator.evaluate({"region": "emea"}, uuid4(), uuid4())
    assert "unrecognized permission condition" in caplog.text


def test_unknown_condition_fails_closed_when_configured():
    evaluator = ConditionEvaluator(_StubDirectory({}), fail_closed=True)
    assert not evaluator.evaluate({"region": "emea"}, uuid4(), uuid4())
    assert not evaluator.evaluate({"ownedBy": "team"}, uuid4(), uuid4())


def test_filter_fields():
    record = {"id": 1, "name": "李四", "phone": "138"}
    assert filter_fields(record, []) == record
    assert filter_fields(record, ["name"]) == {"id": 1, "name": "李四"}
    assert filter_fields([record, "raw"], ["phone"]) == [{"id": 1, "phone": "138"}, "raw"]
    assert filter_fields({"name": "王五"}, ["phone"]) == {}
    assert filter_fields(None, ["name"]) is None
